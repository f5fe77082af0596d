"""
RBAC API URLs.

Provides endpoints for:
- Role management (CRUD, lifecycle, batch operations, permission changes)
- Permission management
- Resource permission overrides
- User-role assignments
- Access checks
- Audit log viewing
"""
from django.urls import path
from apps.rbac.views import (
    AccessCheckView,
    AssignmentListView,
    AssignmentRevokeView,
    AuditLogListView,
    BulkAssignView,
    BulkRevokeView,
    PermissionDetailView,
    PermissionListView,
    PermissionStatsView,
    ResourcePermissionDetailView,
    ResourcePermissionListView,
    ResourcePermissionStatsView,
    RoleActivateView,
    RoleBatchCreateView,
    RoleBulkDeleteView,
    RoleBulkUpdateView,
    RoleCanDeleteView,
    RoleCleanupView,
    RoleCloneView,
    RoleDeactivateView,
    RoleDetailView,
    RoleListView,
    RolePermissionsRemoveView,
    RolePermissionsView,
    RoleRestoreView,
    RoleStatsView,
    RoleUsersView,
    UserRolesView,
)

app_name = 'rbac'

urlpatterns = [
    # Role endpoints
    path('roles', RoleListView.as_view(), name='role-list'),
    path('roles/batch', RoleBatchCreateView.as_view(), name='role-batch-create'),
    path('roles/bulk-update', RoleBulkUpdateView.as_view(), name='role-bulk-update'),
    path('roles/bulk-delete', RoleBulkDeleteView.as_view(), name='role-bulk-delete'),
    path('roles/cleanup', RoleCleanupView.as_view(), name='role-cleanup'),
    path('roles/stats', RoleStatsView.as_view(), name='role-stats'),
    path('roles/<uuid:role_id>', RoleDetailView.as_view(), name='role-detail'),
    path('roles/<uuid:role_id>/activate', RoleActivateView.as_view(), name='role-activate'),
    path('roles/<uuid:role_id>/deactivate', RoleDeactivateView.as_view(), name='role-deactivate'),
    path('roles/<uuid:role_id>/restore', RoleRestoreView.as_view(), name='role-restore'),
    path('roles/<uuid:role_id>/clone', RoleCloneView.as_view(), name='role-clone'),
    path('roles/<uuid:role_id>/can-delete', RoleCanDeleteView.as_view(), name='role-can-delete'),
    path('roles/<uuid:role_id>/permissions', RolePermissionsView.as_view(), name='role-permissions'),
    path('roles/<uuid:role_id>/permissions/remove', RolePermissionsRemoveView.as_view(),
         name='role-permissions-remove'),
    path('roles/<uuid:role_id>/users', RoleUsersView.as_view(), name='role-users'),

    # Permission endpoints
    path('permissions', PermissionListView.as_view(), name='permission-list'),
    path('permissions/stats', PermissionStatsView.as_view(), name='permission-stats'),
    path('permissions/<uuid:permission_id>', PermissionDetailView.as_view(), name='permission-detail'),

    # Resource permission endpoints
    path('resource-permissions', ResourcePermissionListView.as_view(), name='resource-permission-list'),
    path('resource-permissions/stats', ResourcePermissionStatsView.as_view(),
         name='resource-permission-stats'),
    path('resource-permissions/<uuid:resource_permission_id>', ResourcePermissionDetailView.as_view(),
         name='resource-permission-detail'),

    # Assignment endpoints
    path('assignments', AssignmentListView.as_view(), name='assignment-list'),
    path('assignments/revoke', AssignmentRevokeView.as_view(), name='assignment-revoke'),
    path('assignments/bulk-assign', BulkAssignView.as_view(), name='assignment-bulk-assign'),
    path('assignments/bulk-revoke', BulkRevokeView.as_view(), name='assignment-bulk-revoke'),
    path('users/<str:user_id>/roles', UserRolesView.as_view(), name='user-roles'),

    # Access check endpoint
    path('access/check', AccessCheckView.as_view(), name='access-check'),

    # Audit log endpoint
    path('audit-logs', AuditLogListView.as_view(), name='audit-log-list'),
]
