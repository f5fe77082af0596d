"""
Role registry: role lifecycle and its protective invariants.

Implements:
- Role creation (single, batch, from template) with name uniqueness
- Updates with diffed permission replacement
- Activate/deactivate, soft/hard/force delete, restore, cleanup
- Role queries and listing
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from django.conf import settings
from django.db import DatabaseError as DjangoDatabaseError, transaction
from django.db.models import ProtectedError, Q
from django.utils import timezone

from apps.core.exceptions import (
    BadRequestError, ConflictError, ForbiddenError, NotFoundError,
    ValidationError, WardenException, translate_integrity_error,
)
from apps.core.logging import SecurityLogger
from apps.core.pagination import Page, paginate
from apps.rbac.models import AuditAction, Permission, Role, UserRole
from apps.rbac.services.audit_service import (
    AuditService, permission_snapshot, role_snapshot,
)
from apps.rbac.services.base import BatchResult, get_role_or_404
from apps.rbac.services.permission_service import validate_permission_spec

logger = logging.getLogger(__name__)

SORT_FIELDS = ('name', 'created_at', 'updated_at', 'permission_count', 'user_count')
SORT_ORDERS = ('asc', 'desc')


@dataclass
class RoleFilters:
    search: Optional[str] = None
    is_active: Optional[bool] = None
    is_system: Optional[bool] = None
    created_after: Any = None
    created_before: Any = None
    sort_by: str = 'created_at'
    sort_order: str = 'desc'


@dataclass
class DeleteCheck:
    can_delete: bool
    reason: Optional[str] = None


@dataclass
class CleanupResult:
    cleaned_count: int = 0
    failed_count: int = 0
    results: BatchResult = field(default_factory=BatchResult)


def _parse_ids(ids: Iterable) -> Tuple[List[uuid.UUID], List[str]]:
    """Split ids into parsed UUIDs (deduplicated, order kept) and malformed values."""
    valid, invalid = [], []
    for value in ids or []:
        try:
            parsed = value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        except (ValueError, TypeError, AttributeError):
            invalid.append(str(value))
            continue
        if parsed not in valid:
            valid.append(parsed)
    return valid, invalid


def _dedupe_specs(permissions) -> List[Dict[str, str]]:
    """Validate permission specs and collapse duplicates by natural key (last wins)."""
    by_key = {}
    for spec in permissions or []:
        spec = validate_permission_spec(spec)
        by_key[(spec['entity'], spec['field'], spec['action'])] = spec
    return list(by_key.values())


class RoleService:
    """
    Service for role lifecycle operations.

    Every successful mutation writes exactly one audit row inside the same
    transaction as the state change.
    """

    @classmethod
    def _annotated(cls, role_id) -> Role:
        return Role.objects.with_counts().get(pk=role_id)

    @classmethod
    def _clean_name(cls, name) -> str:
        name = (name or '').strip()
        if not name:
            raise ValidationError('Role name is required', {'name': 'This field is required.'})
        if len(name) > 100:
            raise ValidationError('Role name is too long', {'name': 'At most 100 characters.'})
        return name

    @classmethod
    def _insert_role(cls, name, description, is_active, is_system, specs, context) -> Role:
        """Insert a role and its permissions. Caller owns the transaction."""
        if Role.objects.filter(name=name).exists():
            raise ConflictError('Role name already exists', {'name': name})
        try:
            with transaction.atomic():
                role = Role.objects.create(
                    name=name,
                    description=description or '',
                    is_active=is_active,
                    is_system=is_system,
                )
        except DjangoDatabaseError as exc:
            raise translate_integrity_error(exc, 'Role name already exists', {'name': name})

        Permission.objects.bulk_create([Permission(role=role, **spec) for spec in specs])

        AuditService.record_with_context(
            AuditAction.CREATED,
            context,
            role_id=role.id,
            new_value=role_snapshot(role, include_permissions=True),
        )
        return role

    # --- Creation ----------------------------------------------------------

    @classmethod
    def create_role(cls, name: str, description: str = '', is_active: bool = True,
                    is_system: bool = False, permissions: Optional[List[Dict]] = None,
                    context=None) -> Role:
        """
        Create a role, optionally with an initial permission set.

        Args:
            name: Unique role name
            description: Role description
            is_active: Initial active flag
            is_system: Whether the role is a protected built-in role
            permissions: List of {entity, field, action, mask_type} dicts
            context: AuditContext of the caller

        Returns:
            Role annotated with permission_count and user_count

        Raises:
            ConflictError: If the name is taken
            ValidationError: If the name or a permission is invalid
        """
        name = cls._clean_name(name)
        specs = _dedupe_specs(permissions)

        try:
            with transaction.atomic():
                role = cls._insert_role(name, description, is_active, is_system, specs, context)
        except ConflictError:
            logger.warning("Role creation blocked: name taken", extra={'role_name': name})
            raise

        logger.info(
            "Role created",
            extra={'role_id': str(role.id), 'role_name': name, 'permission_count': len(specs)},
        )
        return cls._annotated(role.id)

    @classmethod
    def create_roles_batch(cls, roles: List[Dict[str, Any]], context=None) -> List[Role]:
        """
        Create several roles in one all-or-nothing transaction.

        Raises:
            BadRequestError: If the batch names a role twice
            ConflictError: If any name already exists
            ValidationError: If any role or permission is invalid
        """
        prepared = []
        for item in roles:
            prepared.append({
                'name': cls._clean_name(item.get('name')),
                'description': item.get('description', ''),
                'is_active': item.get('is_active', True),
                'is_system': item.get('is_system', False),
                'specs': _dedupe_specs(item.get('permissions')),
            })

        names = [p['name'] for p in prepared]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise BadRequestError('Duplicate role names in batch', {'duplicate_names': duplicates})

        existing = sorted(Role.objects.filter(name__in=names).values_list('name', flat=True))
        if existing:
            logger.warning("Batch role creation blocked", extra={'existing_names': existing})
            raise ConflictError('Role names already exist', {'existing_names': existing})

        with transaction.atomic():
            created = [
                cls._insert_role(p['name'], p['description'], p['is_active'],
                                 p['is_system'], p['specs'], context)
                for p in prepared
            ]

        logger.info("Roles created in batch", extra={'count': len(created)})
        return list(Role.objects.with_counts().filter(pk__in=[r.id for r in created]).order_by('name'))

    @classmethod
    def create_role_from_template(cls, template_role_id, new_name: str,
                                  description: Optional[str] = None, context=None) -> Role:
        """
        Create a custom role carrying a copy of another role's permissions.

        Raises:
            NotFoundError: If the template role does not exist
            ConflictError: If new_name is taken
        """
        template = get_role_or_404(template_role_id)
        permissions = [
            {
                'entity': p.entity,
                'field': p.field,
                'action': p.action,
                'mask_type': p.mask_type,
            }
            for p in template.permissions.all()
        ]
        return cls.create_role(
            new_name,
            description=template.description if description is None else description,
            is_active=True,
            is_system=False,
            permissions=permissions,
            context=context,
        )

    # --- Updates -----------------------------------------------------------

    @classmethod
    def _replace_permissions(cls, role: Role, permissions) -> bool:
        """
        Make the role's permission set equal to `permissions`.

        Rows whose natural key survives keep their ids; only their mask is
        updated when it changed.

        Returns:
            True if anything changed
        """
        desired = {
            (s['entity'], s['field'], s['action']): s for s in _dedupe_specs(permissions)
        }
        existing = {p.natural_key(): p for p in role.permissions.all()}
        changed = False

        stale = [p.pk for key, p in existing.items() if key not in desired]
        if stale:
            Permission.objects.filter(pk__in=stale).delete()
            changed = True

        for key, spec in desired.items():
            current = existing.get(key)
            if current is None:
                Permission.objects.create(role=role, **spec)
                changed = True
            elif current.mask_type != spec['mask_type']:
                current.mask_type = spec['mask_type']
                current.save(update_fields=['mask_type', 'updated_at'])
                changed = True
        return changed

    @classmethod
    def update_role(cls, role_id, patch: Dict[str, Any], context=None) -> Role:
        """
        Update name, description, flags and/or replace the permission set.

        Raises:
            NotFoundError: If the role does not exist
            ConflictError: If the new name belongs to another role
            ForbiddenError: If the patch clears is_system on a system role
            ValidationError: If the name or a permission is invalid
        """
        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            old_value = role_snapshot(role, include_permissions=True)

            if role.is_system and 'is_system' in patch and not patch['is_system']:
                SecurityLogger.log_system_role_tampering(
                    role.id, 'clear_is_system',
                    user_id=getattr(context, 'user_id', None),
                    ip_address=getattr(context, 'ip_address', None),
                )
                raise ForbiddenError('System roles cannot be demoted', {'role_id': str(role.id)})

            if 'name' in patch:
                name = cls._clean_name(patch['name'])
                if name != role.name and Role.objects.filter(name=name).exclude(pk=role.pk).exists():
                    logger.warning("Role update blocked: name taken", extra={'role_id': str(role.id)})
                    raise ConflictError('Role name already exists', {'name': name})
                role.name = name
            if 'description' in patch:
                role.description = patch['description'] or ''
            if 'is_active' in patch:
                role.is_active = bool(patch['is_active'])
            if 'is_system' in patch:
                role.is_system = bool(patch['is_system'])

            try:
                with transaction.atomic():
                    role.save()
            except DjangoDatabaseError as exc:
                raise translate_integrity_error(exc, 'Role name already exists', {'name': role.name})

            if patch.get('permissions') is not None:
                cls._replace_permissions(role, patch['permissions'])

            AuditService.record_with_context(
                AuditAction.UPDATED,
                context,
                role_id=role.id,
                old_value=old_value,
                new_value=role_snapshot(role, include_permissions=True),
            )

        logger.info("Role updated", extra={'role_id': str(role.id), 'fields': sorted(patch.keys())})
        return cls._annotated(role.id)

    @classmethod
    def bulk_update_roles(cls, updates: List[Dict[str, Any]], context=None) -> BatchResult:
        """
        Apply several updates, each in its own transaction.

        Args:
            updates: List of dicts with 'id' plus the patch fields
        """
        result = BatchResult()
        for item in updates:
            item = dict(item)
            role_id = item.pop('id', None)
            try:
                role = cls.update_role(role_id, item, context=context)
                result.add_success(role_id, role)
            except WardenException as exc:
                result.add_failure(role_id, exc)
        logger.info(
            "Bulk role update finished",
            extra={'succeeded': result.success_count, 'failed': result.failure_count},
        )
        return result

    @classmethod
    def add_permissions_to_role(cls, role_id, permission_ids: Iterable, context=None) -> Role:
        """
        Attach permissions by id.

        Ids already on the role are skipped. Ids owned by another role are
        copied onto this role by natural key, so repeated adds never
        duplicate rows.

        Raises:
            NotFoundError: If the role or any new permission id does not exist
        """
        valid, invalid = _parse_ids(permission_ids)

        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            on_role = set(role.permissions.filter(pk__in=valid).values_list('id', flat=True))
            new_ids = [pid for pid in valid if pid not in on_role]
            sources = {p.id: p for p in Permission.objects.filter(pk__in=new_ids)}

            missing = invalid + [str(pid) for pid in new_ids if pid not in sources]
            if missing:
                raise NotFoundError('Permissions not found', {'missing_ids': missing})

            added = []
            for pid in new_ids:
                source = sources[pid]
                permission, created = Permission.objects.get_or_create(
                    role=role,
                    entity=source.entity,
                    field=source.field,
                    action=source.action,
                    defaults={
                        'mask_type': source.mask_type,
                        'display_name': source.display_name,
                        'description': source.description,
                    },
                )
                if created:
                    added.append(permission_snapshot(permission))

            if added:
                AuditService.record_with_context(
                    AuditAction.PERMISSION_GRANTED,
                    context,
                    role_id=role.id,
                    new_value={'added': added},
                )

        logger.info("Permissions added to role", extra={'role_id': str(role.id), 'added': len(added)})
        return cls._annotated(role.id)

    @classmethod
    def remove_permissions_from_role(cls, role_id, permission_ids: Iterable, context=None) -> Role:
        """
        Detach permissions by id. Unknown or foreign ids are ignored.

        Raises:
            NotFoundError: If the role does not exist
        """
        valid, _ = _parse_ids(permission_ids)

        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            doomed = list(role.permissions.filter(pk__in=valid))
            removed = [permission_snapshot(p) for p in doomed]
            if doomed:
                Permission.objects.filter(pk__in=[p.pk for p in doomed]).delete()
                AuditService.record_with_context(
                    AuditAction.PERMISSION_REVOKED,
                    context,
                    role_id=role.id,
                    old_value={'removed': removed},
                )

        logger.info("Permissions removed from role", extra={'role_id': str(role.id), 'removed': len(removed)})
        return cls._annotated(role.id)

    # --- Lifecycle ---------------------------------------------------------

    @classmethod
    def _set_active(cls, role, is_active, action, context):
        old_value = role_snapshot(role)
        role.is_active = is_active
        role.save(update_fields=['is_active', 'updated_at'])
        AuditService.record_with_context(
            action, context, role_id=role.id,
            old_value=old_value, new_value=role_snapshot(role),
        )

    @classmethod
    def activate_role(cls, role_id, context=None) -> Role:
        """
        Raises:
            NotFoundError: If the role does not exist
        """
        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            cls._set_active(role, True, AuditAction.ACTIVATED, context)
        logger.info("Role activated", extra={'role_id': str(role.id)})
        return cls._annotated(role.id)

    @classmethod
    def deactivate_role(cls, role_id, context=None) -> Role:
        """
        Raises:
            NotFoundError: If the role does not exist
            ConflictError: If any user is assigned to the role
        """
        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            assigned = UserRole.objects.filter(role=role).count()
            if assigned:
                logger.warning(
                    "Role deactivation blocked by assignments",
                    extra={'role_id': str(role.id), 'active_user_roles': assigned},
                )
                raise ConflictError(
                    'Role is assigned to users and cannot be deactivated',
                    {'role_id': str(role.id), 'active_user_roles': assigned},
                )
            cls._set_active(role, False, AuditAction.DEACTIVATED, context)
        logger.info("Role deactivated", extra={'role_id': str(role.id)})
        return cls._annotated(role.id)

    @classmethod
    def _guard_system(cls, role, operation, context):
        if role.is_system:
            SecurityLogger.log_system_role_tampering(
                role.id, operation,
                user_id=getattr(context, 'user_id', None),
                ip_address=getattr(context, 'ip_address', None),
            )
            raise ForbiddenError('System roles cannot be deleted', {'role_id': str(role.id)})

    @classmethod
    def soft_delete_role(cls, role_id, context=None) -> Role:
        """
        Mark a role inactive.

        Raises:
            NotFoundError: If the role does not exist
            ForbiddenError: If the role is a system role
            ConflictError: If any user is assigned to the role
        """
        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            cls._guard_system(role, 'soft_delete', context)
            user_count = UserRole.objects.filter(role=role).count()
            if user_count:
                logger.warning(
                    "Role soft delete blocked by assignments",
                    extra={'role_id': str(role.id), 'user_count': user_count},
                )
                raise ConflictError(
                    'Role is assigned to users',
                    {'role_id': str(role.id), 'user_count': user_count},
                )
            cls._set_active(role, False, AuditAction.DELETED, context)
        logger.info("Role soft deleted", extra={'role_id': str(role.id)})
        return cls._annotated(role.id)

    @classmethod
    def hard_delete_role(cls, role_id, context=None) -> None:
        """
        Physically remove a role with its permissions and resource overrides.

        Raises:
            NotFoundError: If the role does not exist
            ForbiddenError: If the role is a system role
            ConflictError: If any assignment references the role
        """
        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            cls._guard_system(role, 'hard_delete', context)
            user_role_count = UserRole.objects.filter(role=role).count()
            if user_role_count:
                logger.warning(
                    "Role hard delete blocked by assignments",
                    extra={'role_id': str(role.id), 'user_role_count': user_role_count},
                )
                raise ConflictError(
                    'Role is assigned to users',
                    {'role_id': str(role.id), 'user_role_count': user_role_count},
                )

            snapshot = role_snapshot(role, include_permissions=True)
            deleted_id = role.id
            try:
                with transaction.atomic():
                    role.delete()
            except ProtectedError:
                raise ConflictError('Role is assigned to users', {'role_id': str(deleted_id)})

            AuditService.record_with_context(
                AuditAction.DELETED, context, role_id=deleted_id, old_value=snapshot,
            )
        logger.info("Role hard deleted", extra={'role_id': str(deleted_id)})

    @classmethod
    def force_delete_role(cls, role_id, context=None) -> List[str]:
        """
        Delete every assignment of a role, then the role itself.

        Returns:
            The user ids whose assignments were revoked

        Raises:
            NotFoundError: If the role does not exist
            ForbiddenError: If the role is a system role
        """
        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            cls._guard_system(role, 'force_delete', context)

            assignments = UserRole.objects.filter(role=role)
            revoked_user_ids = list(assignments.values_list('user_id', flat=True))
            assignments.delete()

            snapshot = role_snapshot(role, include_permissions=True)
            snapshot['revoked_user_ids'] = revoked_user_ids
            deleted_id = role.id
            role.delete()

            AuditService.record_with_context(
                AuditAction.DELETED, context, role_id=deleted_id, old_value=snapshot,
            )

        SecurityLogger.log_forced_deletion(
            deleted_id, snapshot['name'], revoked_user_ids,
            user_id=getattr(context, 'user_id', None),
        )
        logger.info(
            "Role force deleted",
            extra={'role_id': str(deleted_id), 'revoked_user_count': len(revoked_user_ids)},
        )
        return revoked_user_ids

    @classmethod
    def delete_roles(cls, role_ids: Iterable, permanent: bool = False, context=None) -> BatchResult:
        """Soft or hard delete several roles, each in its own transaction."""
        result = BatchResult()
        operation = cls.hard_delete_role if permanent else cls.soft_delete_role
        for role_id in role_ids:
            try:
                operation(role_id, context=context)
                result.add_success(role_id)
            except WardenException as exc:
                result.add_failure(role_id, exc)
        logger.info(
            "Batch role delete finished",
            extra={'permanent': permanent, 'succeeded': result.success_count, 'failed': result.failure_count},
        )
        return result

    @classmethod
    def restore_role(cls, role_id, context=None) -> Role:
        """
        Reactivate a soft-deleted role.

        Raises:
            NotFoundError: If the role does not exist
            ConflictError: If the role is already active
        """
        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            if role.is_active:
                raise ConflictError('Role is already active', {'role_id': str(role.id)})
            cls._set_active(role, True, AuditAction.ACTIVATED, context)
        logger.info("Role restored", extra={'role_id': str(role.id)})
        return cls._annotated(role.id)

    @classmethod
    def cleanup_inactive_roles(cls, older_than_days: Optional[int] = None, context=None) -> CleanupResult:
        """
        Hard delete inactive, non-system, unassigned roles not updated since the cutoff.

        Each role is deleted in its own transaction; failures are reported
        per role and never abort the run.
        """
        if older_than_days is None:
            older_than_days = getattr(settings, 'RBAC_CLEANUP_DEFAULT_DAYS', 30)
        if older_than_days < 0:
            raise ValidationError('older_than_days must not be negative', {'older_than_days': older_than_days})

        cutoff = timezone.now() - timedelta(days=older_than_days)
        candidates = list(
            Role.objects.inactive().deletable()
            .filter(updated_at__lt=cutoff)
            .values_list('id', flat=True)
        )

        outcome = CleanupResult()
        for role_id in candidates:
            try:
                cls.hard_delete_role(role_id, context=context)
                outcome.results.add_success(role_id)
                outcome.cleaned_count += 1
            except WardenException as exc:
                outcome.results.add_failure(role_id, exc)
                outcome.failed_count += 1

        logger.info(
            "Inactive role cleanup finished",
            extra={
                'cutoff': cutoff.isoformat(),
                'cleaned_count': outcome.cleaned_count,
                'failed_count': outcome.failed_count,
            },
        )
        return outcome

    @classmethod
    def can_delete_role(cls, role_id) -> DeleteCheck:
        """Pre-flight check for a delete; never mutates."""
        try:
            role = get_role_or_404(role_id)
        except NotFoundError:
            return DeleteCheck(can_delete=False, reason='Role not found')
        if role.is_system:
            return DeleteCheck(can_delete=False, reason='System roles cannot be deleted')
        user_count = UserRole.objects.filter(role=role).count()
        if user_count:
            return DeleteCheck(
                can_delete=False,
                reason=f'Role is assigned to {user_count} user(s)',
            )
        return DeleteCheck(can_delete=True)

    # --- Queries -----------------------------------------------------------

    @classmethod
    def get_role(cls, role_id) -> Role:
        """
        Raises:
            NotFoundError: If the role does not exist
        """
        return get_role_or_404(role_id, Role.objects.with_counts())

    @classmethod
    def get_role_by_name(cls, name: str) -> Optional[Role]:
        return Role.objects.with_counts().filter(name=name).first()

    @classmethod
    def role_exists(cls, name: str, exclude_id=None) -> bool:
        queryset = Role.objects.filter(name=name)
        if exclude_id is not None:
            queryset = queryset.exclude(pk=exclude_id)
        return queryset.exists()

    @classmethod
    def list_roles(cls, filters: Optional[RoleFilters] = None, page: int = 1,
                   page_size: Optional[int] = None) -> Page:
        """
        Raises:
            ValidationError: If sort_by or sort_order is not supported
        """
        filters = filters or RoleFilters()
        if filters.sort_by not in SORT_FIELDS:
            raise ValidationError(
                'Invalid sort field',
                {'sort_by': filters.sort_by, 'allowed': list(SORT_FIELDS)},
            )
        if filters.sort_order not in SORT_ORDERS:
            raise ValidationError(
                'Invalid sort order',
                {'sort_order': filters.sort_order, 'allowed': list(SORT_ORDERS)},
            )

        queryset = Role.objects.with_counts()
        if filters.search:
            queryset = queryset.filter(
                Q(name__icontains=filters.search) | Q(description__icontains=filters.search)
            )
        if filters.is_active is not None:
            queryset = queryset.filter(is_active=filters.is_active)
        if filters.is_system is not None:
            queryset = queryset.filter(is_system=filters.is_system)
        if filters.created_after:
            queryset = queryset.filter(created_at__gte=filters.created_after)
        if filters.created_before:
            queryset = queryset.filter(created_at__lte=filters.created_before)

        prefix = '-' if filters.sort_order == 'desc' else ''
        queryset = queryset.order_by(f'{prefix}{filters.sort_by}', 'id')
        return paginate(queryset, page, page_size)

    @classmethod
    def get_active_roles(cls):
        return Role.objects.with_counts().active().order_by('name')

    @classmethod
    def get_system_roles(cls):
        return Role.objects.with_counts().system().order_by('name')

    @classmethod
    def get_deletable_roles(cls):
        return Role.objects.deletable().with_counts().order_by('name')

    @classmethod
    def get_role_stats(cls) -> Dict[str, int]:
        return {
            'total_roles': Role.objects.count(),
            'active_roles': Role.objects.active().count(),
            'inactive_roles': Role.objects.inactive().count(),
            'system_roles': Role.objects.system().count(),
            'custom_roles': Role.objects.custom().count(),
            'total_assignments': UserRole.objects.count(),
            'total_permissions': Permission.objects.count(),
        }
