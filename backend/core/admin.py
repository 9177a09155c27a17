from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, Role, Permission, AuditLog, Notification


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ['code', 'name']
    search_fields = ['code', 'name']


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_system']
    filter_horizontal = ['permissions']


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'first_name', 'role', 'is_manager', 'is_staff']
    list_filter = ['role', 'is_manager']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Hotel', {'fields': ('role', 'phone', 'is_manager')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Hotel', {'fields': ('email', 'role', 'phone', 'is_manager')}),
    )


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'action', 'model_name', 'object_id', 'created_at']
    list_filter = ['action', 'created_at']
    readonly_fields = ['user', 'action', 'model_name', 'object_id', 'details', 'ip_address', 'created_at']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['kind', 'title', 'recipient', 'is_read', 'created_at']
    list_filter = ['kind', 'is_read']
