from django.contrib import admin
from .models import (
    Category, Level, Location, Package, Program, ProgramPackage, Registration, Season
)


class ProgramPackageInline(admin.TabularInline):
    model = ProgramPackage
    extra = 1
    autocomplete_fields = ['program']


class RegistrationInline(admin.TabularInline):
    model = Registration
    extra = 0
    fields = ['player', 'package', 'created_at']
    readonly_fields = ['created_at']
    autocomplete_fields = ['player']


@admin.register(Level, Category, Location, Season)
class ReferenceItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at']
    search_fields = ['name']


@admin.register(Program)
class ProgramAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'date', 'start_time', 'end_time', 'price',
        'registration_summary', 'level', 'category', 'location', 'season',
    ]
    list_filter = ['level', 'category', 'location', 'season', 'date']
    search_fields = ['name', 'original_id']
    date_hierarchy = 'date'
    inlines = [RegistrationInline]
    readonly_fields = ['created_at']

    def registration_summary(self, obj):
        if obj.max_registrations:
            return f"{obj.registration_count}/{obj.max_registrations}"
        return str(obj.registration_count)
    registration_summary.short_description = 'Registrations'


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ['name', 'price', 'location', 'program_count', 'original_id']
    list_filter = ['location']
    search_fields = ['name', 'original_id']
    inlines = [ProgramPackageInline]
    readonly_fields = ['created_at']

    def program_count(self, obj):
        return obj.program_links.count()
    program_count.short_description = 'Programs'


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    list_display = ['player', 'program', 'package', 'created_at']
    list_filter = ['package', 'created_at']
    search_fields = ['player__first_name', 'player__last_name', 'player__email', 'program__name', 'package__name']
    autocomplete_fields = ['player', 'program', 'package']
    readonly_fields = ['created_at']
