from django.contrib import admin
from .models import OperationLog


@admin.register(OperationLog)
class OperationLogAdmin(admin.ModelAdmin):
    """Read-only view of multi-step operations for manual reconciliation."""
    list_display = ['operation', 'status', 'started_at', 'finished_at', 'step_count']
    list_filter = ['status', 'operation', 'started_at']
    search_fields = ['operation', 'error']
    readonly_fields = ['operation', 'status', 'steps', 'error', 'started_at', 'finished_at', 'duration']
    date_hierarchy = 'started_at'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        """Prevent deletion of audit logs."""
        return False

    def step_count(self, obj):
        return len(obj.steps or [])
    step_count.short_description = 'Steps'
