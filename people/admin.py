from django.contrib import admin
from .models import Player


@admin.register(Player)
class PlayerAdmin(admin.ModelAdmin):
    list_display = ["full_name", "email", "phone", "credit", "registration_count"]
    search_fields = ["first_name", "last_name", "email"]
    readonly_fields = ["created_at"]

    def registration_count(self, obj):
        return obj.registrations.count()
    registration_count.short_description = "Registrations"
