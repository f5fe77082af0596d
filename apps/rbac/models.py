"""
RBAC models for the authorization engine.

Implements:
- Role (named bundle of permissions; system roles are protected)
- Permission (entity/field/action grant owned by one role, with a mask type)
- UserRole (assignment of an external user id to a role)
- ResourcePermission (instance-scoped grant/deny override owned by one role)
- RoleAuditLog (append-only audit trail of every policy mutation)
"""
import logging
import uuid

from django.db import models
from django.db.models import Count, Q
from django.utils import timezone

from apps.core.models import BaseModel

logger = logging.getLogger(__name__)

WILDCARD_FIELD = '*'


class PermissionAction(models.TextChoices):
    CREATE = 'create', 'Create'
    READ = 'read', 'Read'
    UPDATE = 'update', 'Update'
    DELETE = 'delete', 'Delete'
    ADMIN = 'admin', 'Admin'


class MaskType(models.TextChoices):
    NONE = 'none', 'None'
    PARTIAL = 'partial', 'Partial'
    HIDDEN = 'hidden', 'Hidden'
    ENCRYPTED = 'encrypted', 'Encrypted'
    REDACTED = 'redacted', 'Redacted'


# Least to most restrictive.
MASK_RESTRICTIVENESS = {
    'none': 0,
    'partial': 1,
    'encrypted': 2,
    'redacted': 3,
    'hidden': 4,
}


class AuditAction(models.TextChoices):
    CREATED = 'CREATED', 'Created'
    UPDATED = 'UPDATED', 'Updated'
    DELETED = 'DELETED', 'Deleted'
    ASSIGNED = 'ASSIGNED', 'Assigned'
    REVOKED = 'REVOKED', 'Revoked'
    ACTIVATED = 'ACTIVATED', 'Activated'
    DEACTIVATED = 'DEACTIVATED', 'Deactivated'
    PERMISSION_GRANTED = 'PERMISSION_GRANTED', 'Permission granted'
    PERMISSION_REVOKED = 'PERMISSION_REVOKED', 'Permission revoked'
    BULK_ASSIGNED = 'BULK_ASSIGNED', 'Bulk assigned'
    BULK_REVOKED = 'BULK_REVOKED', 'Bulk revoked'


class RoleQuerySet(models.QuerySet):
    """QuerySet for Role queries."""

    def active(self):
        """Return only active roles."""
        return self.filter(is_active=True)

    def inactive(self):
        return self.filter(is_active=False)

    def system(self):
        """Get system (protected) roles."""
        return self.filter(is_system=True)

    def custom(self):
        """Get custom (non-system) roles."""
        return self.filter(is_system=False)

    def by_name(self, name):
        """Find role by name."""
        return self.filter(name=name).first()

    def with_counts(self):
        """Annotate permission_count and user_count aggregates."""
        return self.annotate(
            permission_count=Count('permissions', distinct=True),
            user_count=Count('user_roles', distinct=True),
        )

    def deletable(self):
        """Non-system roles with no user assignments."""
        return self.custom().filter(user_roles__isnull=True)


class Role(BaseModel):
    """
    Named bundle of permissions.

    System roles represent built-in roles: they can never be deleted and
    their is_system flag can never be cleared.
    """

    name = models.CharField(
        max_length=100,
        unique=True,
        help_text="Role name, unique among all roles (active or not)"
    )
    description = models.TextField(
        blank=True,
        default='',
        help_text="Role description"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether this role currently grants anything"
    )
    is_system = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this is a protected built-in role"
    )

    objects = RoleQuerySet.as_manager()

    class Meta:
        db_table = 'roles'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active', 'is_system'], name='roles_active_system_idx'),
            models.Index(fields=['is_active', 'updated_at'], name='roles_active_updated_idx'),
        ]

    def __str__(self):
        return self.name


class PermissionQuerySet(models.QuerySet):
    """QuerySet for Permission queries."""

    def for_role(self, role):
        return self.filter(role=role)

    def matching(self, entity, field, action):
        """Rows for entity/action whose field is the requested one or the wildcard."""
        return self.filter(entity=entity, action=action).filter(
            Q(field=field) | Q(field=WILDCARD_FIELD)
        )


class Permission(BaseModel):
    """
    Entity-level grant owned by exactly one role.

    The natural key (role, entity, field, action) identifies a grant;
    inserting the same key twice is an idempotent add.
    """

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='permissions',
        help_text="Role that owns this permission"
    )
    entity = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Resource type this permission applies to (e.g., 'user')"
    )
    field = models.CharField(
        max_length=100,
        default=WILDCARD_FIELD,
        help_text="Field name, or '*' for all fields"
    )
    action = models.CharField(
        max_length=20,
        choices=PermissionAction.choices,
        db_index=True,
        help_text="Action granted on the entity"
    )
    mask_type = models.CharField(
        max_length=20,
        choices=MaskType.choices,
        default=MaskType.NONE,
        help_text="How a matched field should be rendered to the caller"
    )
    display_name = models.CharField(max_length=255, blank=True, default='')
    description = models.TextField(blank=True, default='')

    objects = PermissionQuerySet.as_manager()

    class Meta:
        db_table = 'permissions'
        ordering = ['entity', 'action', 'field']
        constraints = [
            models.UniqueConstraint(
                fields=['role', 'entity', 'field', 'action'],
                name='uniq_permission_natural_key',
            ),
        ]
        indexes = [
            models.Index(fields=['role', 'entity', 'action'], name='perm_role_entity_action_idx'),
        ]

    def __str__(self):
        return f"{self.role_id}: {self.entity}.{self.field}:{self.action}"

    @property
    def code(self):
        """Coarse 'entity:action' form used by validate_role_permissions."""
        return f"{self.entity}:{self.action}"

    def natural_key(self):
        return (self.entity, self.field, self.action)

    def matches(self, entity, field, action):
        """Check entity/action equality with the field wildcard rule."""
        return (
            self.entity == entity
            and self.action == action
            and (self.field == field or self.field == WILDCARD_FIELD)
        )


class UserRole(BaseModel):
    """
    Assignment of an external user to a role.

    user_id is an opaque identifier owned by the identity subsystem.
    The role FK is PROTECT so a role with assignments can only be removed
    after its assignments are.
    """

    user_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="External user identifier"
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.PROTECT,
        related_name='user_roles',
        help_text="Role assigned to the user"
    )
    assigned_by = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Actor who made the assignment (null for system)"
    )

    class Meta:
        db_table = 'user_roles'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['user_id', 'role'], name='uniq_user_role'),
        ]

    def __str__(self):
        return f"{self.user_id} -> {self.role_id}"


class ResourcePermissionQuerySet(models.QuerySet):

    def for_resource(self, resource_type, resource_id):
        return self.filter(resource_type=resource_type, resource_id=resource_id)

    def grants(self):
        return self.filter(granted=True)

    def denies(self):
        return self.filter(granted=False)


class ResourcePermission(BaseModel):
    """
    Instance-scoped grant or deny for one action on one resource.

    An explicit row overrides the entity-level Permission in either
    direction. Rows may outlive the resource they point at; readers treat
    such orphans as no-op overrides.
    """

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='resource_permissions',
        help_text="Role this override applies to"
    )
    resource_type = models.CharField(
        max_length=100,
        help_text="Resource type (matches Permission.entity)"
    )
    resource_id = models.CharField(
        max_length=255,
        help_text="Identifier of one concrete resource instance"
    )
    action = models.CharField(
        max_length=50,
        help_text="Action this override applies to"
    )
    granted = models.BooleanField(
        default=True,
        help_text="True = allow, False = explicit deny"
    )
    granted_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the decision was made"
    )
    granted_by = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Actor who made the decision (null for system)"
    )

    objects = ResourcePermissionQuerySet.as_manager()

    class Meta:
        db_table = 'resource_permissions'
        ordering = ['resource_type', 'resource_id', 'action']
        constraints = [
            models.UniqueConstraint(
                fields=['role', 'resource_type', 'resource_id', 'action'],
                name='uniq_resource_permission_key',
            ),
        ]
        indexes = [
            models.Index(fields=['resource_type', 'resource_id'], name='resperm_resource_idx'),
        ]

    def __str__(self):
        verdict = "GRANT" if self.granted else "DENY"
        return f"{verdict} {self.action} on {self.resource_type}/{self.resource_id}"

    @property
    def actions(self):
        return [self.action]


class AuditLogImmutable(Exception):
    """Raised on any attempt to modify or delete an audit row."""


class RoleAuditLogQuerySet(models.QuerySet):
    """Read-only query surface for the audit stream."""

    def for_role(self, role_id):
        return self.filter(role_id=role_id)

    def for_user(self, user_id):
        return self.filter(user_id=user_id)

    def by_action(self, *actions):
        return self.filter(action__in=actions)

    def between(self, date_from=None, date_to=None):
        qs = self
        if date_from:
            qs = qs.filter(timestamp__gte=date_from)
        if date_to:
            qs = qs.filter(timestamp__lte=date_to)
        return qs

    def update(self, **kwargs):
        raise AuditLogImmutable("Audit log rows cannot be updated")

    def delete(self):
        raise AuditLogImmutable("Audit log rows cannot be deleted")


class RoleAuditLog(models.Model):
    """
    Append-only audit trail for role, permission, assignment and override changes.

    role_id is a plain column rather than a foreign key so that deleting a
    role never touches its history.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    action = models.CharField(
        max_length=30,
        choices=AuditAction.choices,
        db_index=True,
        help_text="Kind of mutation recorded"
    )
    old_value = models.JSONField(null=True, blank=True, help_text="State before the mutation")
    new_value = models.JSONField(null=True, blank=True, help_text="State after the mutation")
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(null=True, blank=True)
    user_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Actor who performed the mutation (null for system)"
    )
    role_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Role the mutation applies to"
    )

    objects = RoleAuditLogQuerySet.as_manager()

    class Meta:
        db_table = 'role_audit_logs'
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['role_id', 'timestamp'], name='audit_role_ts_idx'),
            models.Index(fields=['user_id', 'timestamp'], name='audit_user_ts_idx'),
            models.Index(fields=['action', 'timestamp'], name='audit_action_ts_idx'),
        ]

    def __str__(self):
        actor = self.user_id or 'system'
        return f"{self.action} by {actor} on {self.role_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditLogImmutable("Audit log rows cannot be updated")
        kwargs['force_insert'] = True
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditLogImmutable("Audit log rows cannot be deleted")
