"""
RBAC serializers for REST API endpoints.

Provides serialization for:
- Roles (read, create, update, batch and lifecycle payloads)
- Permissions and role permission changes
- Resource permission overrides
- User-role assignments
- Access checks
- Audit logs
"""
from rest_framework import serializers

from apps.rbac.models import (
    MaskType, Permission, PermissionAction, ResourcePermission, Role,
    RoleAuditLog, UserRole, WILDCARD_FIELD,
)


# ===== PERMISSION SERIALIZERS =====

class PermissionSerializer(serializers.ModelSerializer):
    """Serializer for Permission model."""

    role_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Permission
        fields = [
            'id', 'role_id', 'entity', 'field', 'action', 'mask_type', 'code',
            'display_name', 'description', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class PermissionSpecSerializer(serializers.Serializer):
    """One permission inside a role payload."""

    entity = serializers.CharField(max_length=100)
    field = serializers.CharField(max_length=100, required=False, default=WILDCARD_FIELD)
    action = serializers.ChoiceField(choices=PermissionAction.choices)
    mask_type = serializers.ChoiceField(choices=MaskType.choices, required=False, default=MaskType.NONE)


class PermissionCreateSerializer(PermissionSpecSerializer):
    """Serializer for creating a permission on a role."""

    role_id = serializers.UUIDField()
    display_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    description = serializers.CharField(required=False, allow_blank=True, default='')


class PermissionUpdateSerializer(serializers.Serializer):
    """Partial update of a permission."""

    entity = serializers.CharField(max_length=100, required=False)
    field = serializers.CharField(max_length=100, required=False)
    action = serializers.ChoiceField(choices=PermissionAction.choices, required=False)
    mask_type = serializers.ChoiceField(choices=MaskType.choices, required=False)
    display_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)


class PermissionIdsSerializer(serializers.Serializer):
    """Serializer for adding or removing permissions on a role."""

    permission_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        help_text="List of permission IDs"
    )


# ===== ROLE SERIALIZERS =====

class RoleSerializer(serializers.ModelSerializer):
    """Serializer for Role model."""

    permission_count = serializers.SerializerMethodField()
    user_count = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = [
            'id', 'name', 'description', 'is_active', 'is_system',
            'permission_count', 'user_count',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_permission_count(self, obj):
        """Use the annotation when present."""
        count = getattr(obj, 'permission_count', None)
        return obj.permissions.count() if count is None else count

    def get_user_count(self, obj):
        count = getattr(obj, 'user_count', None)
        return obj.user_roles.count() if count is None else count


class RoleDetailSerializer(RoleSerializer):
    """Detailed serializer for Role with full permission list."""

    permissions = PermissionSerializer(many=True, read_only=True)

    class Meta(RoleSerializer.Meta):
        fields = RoleSerializer.Meta.fields + ['permissions']
        read_only_fields = fields


class RoleCreateSerializer(serializers.Serializer):
    """Serializer for creating roles."""

    name = serializers.CharField(max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    is_active = serializers.BooleanField(required=False, default=True)
    is_system = serializers.BooleanField(required=False, default=False)
    permissions = PermissionSpecSerializer(many=True, required=False)


class RoleUpdateSerializer(serializers.Serializer):
    """Partial update of a role. `permissions` replaces the whole set."""

    name = serializers.CharField(max_length=100, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)
    is_system = serializers.BooleanField(required=False)
    permissions = PermissionSpecSerializer(many=True, required=False)


class RoleBatchCreateSerializer(serializers.Serializer):
    roles = RoleCreateSerializer(many=True, allow_empty=False)


class RoleBulkUpdateItemSerializer(RoleUpdateSerializer):
    id = serializers.UUIDField()


class RoleBulkUpdateSerializer(serializers.Serializer):
    updates = RoleBulkUpdateItemSerializer(many=True, allow_empty=False)


class RoleBulkDeleteSerializer(serializers.Serializer):
    role_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    permanent = serializers.BooleanField(required=False, default=False)


class RoleFromTemplateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class RoleCleanupSerializer(serializers.Serializer):
    older_than_days = serializers.IntegerField(min_value=0, required=False, allow_null=True, default=None)


class RoleListQuerySerializer(serializers.Serializer):
    """Query parameters for the role list."""

    search = serializers.CharField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False, allow_null=True, default=None)
    is_system = serializers.BooleanField(required=False, allow_null=True, default=None)
    created_after = serializers.DateTimeField(required=False)
    created_before = serializers.DateTimeField(required=False)
    sort_by = serializers.CharField(required=False, default='created_at')
    sort_order = serializers.CharField(required=False, default='desc')
    page = serializers.IntegerField(required=False, default=1)
    page_size = serializers.IntegerField(required=False)


class PageQuerySerializer(serializers.Serializer):
    """Paging parameters shared by list endpoints."""

    page = serializers.IntegerField(required=False, default=1)
    page_size = serializers.IntegerField(required=False)


class PermissionListQuerySerializer(PageQuerySerializer):
    """Query parameters for the permission list."""

    search = serializers.CharField(required=False, allow_blank=True)
    entity = serializers.CharField(required=False, allow_blank=True)
    action = serializers.CharField(required=False, allow_blank=True)
    field = serializers.CharField(required=False, allow_blank=True)
    mask_type = serializers.CharField(required=False, allow_blank=True)
    role_id = serializers.UUIDField(required=False)


# ===== RESOURCE PERMISSION SERIALIZERS =====

class ResourcePermissionSerializer(serializers.ModelSerializer):
    """Serializer for ResourcePermission model."""

    role_id = serializers.UUIDField(read_only=True)
    role_name = serializers.CharField(source='role.name', read_only=True)

    class Meta:
        model = ResourcePermission
        fields = [
            'id', 'role_id', 'role_name', 'resource_type', 'resource_id',
            'action', 'actions', 'granted', 'granted_at', 'granted_by',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class ResourcePermissionCreateSerializer(serializers.Serializer):
    """Serializer for creating one override per action."""

    role_id = serializers.UUIDField()
    resource_type = serializers.CharField(max_length=100)
    resource_id = serializers.CharField(max_length=255)
    actions = serializers.ListField(
        child=serializers.CharField(max_length=50),
        allow_empty=False,
        help_text="Actions the override applies to"
    )
    granted = serializers.BooleanField(required=False, default=True)


class ResourcePermissionUpdateSerializer(serializers.Serializer):
    resource_type = serializers.CharField(max_length=100, required=False)
    resource_id = serializers.CharField(max_length=255, required=False)
    action = serializers.CharField(max_length=50, required=False)
    granted = serializers.BooleanField(required=False)


class ResourcePermissionListQuerySerializer(PageQuerySerializer):
    """Query parameters for the resource permission list."""

    search = serializers.CharField(required=False, allow_blank=True)
    resource_type = serializers.CharField(required=False, allow_blank=True)
    resource_id = serializers.CharField(required=False, allow_blank=True)
    action = serializers.CharField(required=False, allow_blank=True)
    granted = serializers.BooleanField(required=False, allow_null=True, default=None)
    role_id = serializers.UUIDField(required=False)


# ===== ASSIGNMENT SERIALIZERS =====

class UserRoleSerializer(serializers.ModelSerializer):
    """Serializer for UserRole (role assignments)."""

    role_id = serializers.UUIDField(read_only=True)
    role_name = serializers.CharField(source='role.name', read_only=True)

    class Meta:
        model = UserRole
        fields = ['id', 'user_id', 'role_id', 'role_name', 'assigned_by', 'created_at']
        read_only_fields = fields


class AssignRoleSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=255)
    role_id = serializers.UUIDField()


class BulkAssignmentSerializer(serializers.Serializer):
    user_ids = serializers.ListField(child=serializers.CharField(max_length=255), allow_empty=False)
    role_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)


class AssignmentListQuerySerializer(PageQuerySerializer):
    """Query parameters for the assignment list."""

    user_id = serializers.CharField(required=False, allow_blank=True)
    role_id = serializers.UUIDField(required=False)


# ===== ACCESS CHECK SERIALIZERS =====

class AccessCheckSerializer(serializers.Serializer):
    """Serializer for evaluating a user's or a role's access."""

    user_id = serializers.CharField(max_length=255, required=False)
    role_id = serializers.UUIDField(required=False)
    entity = serializers.CharField(max_length=100)
    action = serializers.CharField(max_length=50)
    field = serializers.CharField(max_length=100, required=False, default=WILDCARD_FIELD)
    resource_id = serializers.CharField(max_length=255, required=False, allow_null=True, default=None)

    def validate(self, attrs):
        if bool(attrs.get('user_id')) == bool(attrs.get('role_id')):
            raise serializers.ValidationError("Provide exactly one of user_id or role_id")
        return attrs


# ===== AUDIT SERIALIZERS =====

class AuditLogSerializer(serializers.ModelSerializer):
    """Serializer for RoleAuditLog model."""

    class Meta:
        model = RoleAuditLog
        fields = [
            'id', 'action', 'role_id', 'user_id', 'old_value', 'new_value',
            'ip_address', 'user_agent', 'timestamp'
        ]
        read_only_fields = fields


class AuditLogQuerySerializer(PageQuerySerializer):
    """Query parameters for the audit log list. `action` is comma separated."""

    role_id = serializers.UUIDField(required=False)
    user_id = serializers.CharField(required=False, allow_blank=True)
    action = serializers.CharField(required=False, allow_blank=True)
    from_date = serializers.DateTimeField(required=False)
    to_date = serializers.DateTimeField(required=False)
    search = serializers.CharField(required=False, allow_blank=True)
