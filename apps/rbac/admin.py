"""
Django admin configuration for RBAC app.
"""
from django.contrib import admin

from .models import Permission, ResourcePermission, Role, RoleAuditLog, UserRole


admin.site.site_header = "Warden Administration"
admin.site.site_title = "Warden Admin"
admin.site.index_title = "Roles and permissions"


class PermissionInline(admin.TabularInline):
    model = Permission
    extra = 0
    fields = ['entity', 'field', 'action', 'mask_type', 'display_name']


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    """
    Admin interface for roles.

    Edits made here bypass the service layer and are not audited; system
    roles are read-only and no role can be deleted from the admin.
    """
    list_display = ['name', 'is_active', 'is_system', 'permission_total', 'created_at', 'updated_at']
    list_filter = ['is_active', 'is_system', 'created_at']
    search_fields = ['name', 'description']
    ordering = ['name']
    inlines = [PermissionInline]

    fieldsets = (
        (None, {
            'fields': ('name', 'description')
        }),
        ('Status', {
            'fields': ('is_active', 'is_system')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['created_at', 'updated_at']

    def permission_total(self, obj):
        return obj.permissions.count()
    permission_total.short_description = 'Permissions'

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and obj.is_system:
            return ['name', 'description', 'is_active', 'is_system', 'created_at', 'updated_at']
        return self.readonly_fields

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    """Admin interface for entity-level permissions."""
    list_display = ['role', 'entity', 'field', 'action', 'mask_type', 'created_at']
    list_filter = ['action', 'mask_type', 'entity']
    search_fields = ['entity', 'field', 'role__name', 'display_name']
    list_select_related = ['role']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(ResourcePermission)
class ResourcePermissionAdmin(admin.ModelAdmin):
    """Admin interface for resource-level overrides."""
    list_display = ['role', 'resource_type', 'resource_id', 'action', 'granted', 'granted_by', 'granted_at']
    list_filter = ['granted', 'resource_type', 'action']
    search_fields = ['resource_type', 'resource_id', 'role__name']
    list_select_related = ['role']
    readonly_fields = ['granted_at', 'created_at', 'updated_at']


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ['user_id', 'role', 'assigned_by', 'created_at']
    search_fields = ['user_id', 'role__name']
    list_select_related = ['role']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(RoleAuditLog)
class RoleAuditLogAdmin(admin.ModelAdmin):
    """Read-only view of the audit trail."""
    list_display = ['timestamp', 'action', 'role_id', 'user_id', 'ip_address']
    list_filter = ['action', 'timestamp']
    search_fields = ['user_id', 'role_id']
    ordering = ['-timestamp']
    date_hierarchy = 'timestamp'
    readonly_fields = [
        'id', 'action', 'role_id', 'user_id', 'old_value', 'new_value',
        'ip_address', 'user_agent', 'timestamp',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
