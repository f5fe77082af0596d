"""
Permission store: CRUD and projections over entity-level permissions.

Implements:
- Permission CRUD with natural-key conflict detection and audit
- Projections by role, entity and action
- Role permission checks (field wildcard rule, active-role guard)
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError as DjangoDatabaseError, transaction
from django.db.models import Count, Q

from apps.core.exceptions import (
    ConflictError, NotFoundError, ValidationError, translate_integrity_error,
)
from apps.core.pagination import Page, paginate
from apps.rbac.models import (
    AuditAction, MaskType, Permission, PermissionAction, WILDCARD_FIELD,
)
from apps.rbac.services.audit_service import AuditService, permission_snapshot
from apps.rbac.services.base import find_role, get_role_or_404

logger = logging.getLogger(__name__)


@dataclass
class PermissionFilters:
    search: Optional[str] = None
    entity: Optional[str] = None
    action: Optional[str] = None
    field: Optional[str] = None
    mask_type: Optional[str] = None
    role_id: Optional[str] = None


@dataclass
class PermissionValidation:
    is_valid: bool
    missing_permissions: List[str] = field(default_factory=list)
    reason: Optional[str] = None


def validate_permission_spec(spec: Dict[str, Any]) -> Dict[str, str]:
    """
    Normalise and validate a permission description.

    Args:
        spec: Dict with entity, action and optional field, mask_type

    Returns:
        Dict with entity, field, action, mask_type

    Raises:
        ValidationError: If entity is empty or action/mask_type is unknown
    """
    entity = (spec.get('entity') or '').strip()
    action = spec.get('action')
    field_name = (spec.get('field') or WILDCARD_FIELD).strip() or WILDCARD_FIELD
    mask_type = spec.get('mask_type') or MaskType.NONE

    errors = {}
    if not entity:
        errors['entity'] = 'This field is required.'
    if action not in PermissionAction.values:
        errors['action'] = f"Must be one of: {', '.join(PermissionAction.values)}"
    if mask_type not in MaskType.values:
        errors['mask_type'] = f"Must be one of: {', '.join(MaskType.values)}"
    if errors:
        raise ValidationError('Invalid permission', errors)

    return {
        'entity': entity,
        'field': field_name,
        'action': action,
        'mask_type': str(mask_type),
    }


class PermissionService:
    """
    Service for permission CRUD and role permission checks.
    """

    # --- Projections -------------------------------------------------------

    @classmethod
    def get_permissions_by_role(cls, role_id):
        """Unknown or malformed role ids yield an empty queryset."""
        role = find_role(role_id)
        if role is None:
            return Permission.objects.none()
        return Permission.objects.filter(role=role).order_by('entity', 'action', 'field')

    @classmethod
    def get_permissions_by_entity(cls, entity: str):
        return Permission.objects.filter(entity=entity).order_by('action', 'field')

    @classmethod
    def get_permissions_by_action(cls, action: str):
        return Permission.objects.filter(action=action).order_by('entity', 'field')

    @classmethod
    def list_permissions(cls, filters: Optional[PermissionFilters] = None,
                         page: int = 1, page_size: Optional[int] = None) -> Page:
        filters = filters or PermissionFilters()
        queryset = Permission.objects.select_related('role')

        if filters.search:
            queryset = queryset.filter(
                Q(entity__icontains=filters.search)
                | Q(field__icontains=filters.search)
                | Q(action__icontains=filters.search)
                | Q(display_name__icontains=filters.search)
                | Q(description__icontains=filters.search)
            )
        if filters.entity:
            queryset = queryset.filter(entity=filters.entity)
        if filters.action:
            queryset = queryset.filter(action=filters.action)
        if filters.field:
            queryset = queryset.filter(field=filters.field)
        if filters.mask_type:
            queryset = queryset.filter(mask_type=filters.mask_type)
        if filters.role_id:
            queryset = queryset.filter(role_id=filters.role_id)

        return paginate(queryset.order_by('entity', 'action', 'field'), page, page_size)

    @classmethod
    def get_permission(cls, permission_id) -> Permission:
        """
        Raises:
            NotFoundError: If the permission does not exist
        """
        try:
            return Permission.objects.select_related('role').get(pk=permission_id)
        except (Permission.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise NotFoundError('Permission not found', {'permission_id': str(permission_id)})

    # --- Mutations ---------------------------------------------------------

    @classmethod
    def create_permission(cls, role_id, entity: str, field: str = WILDCARD_FIELD,
                          action: str = None, mask_type: str = MaskType.NONE,
                          display_name: str = '', description: str = '',
                          context=None) -> Permission:
        """
        Create a permission on a role.

        Raises:
            NotFoundError: If the role does not exist
            ConflictError: If the role already has this (entity, field, action)
            ValidationError: If the permission description is invalid
        """
        spec = validate_permission_spec({
            'entity': entity, 'field': field, 'action': action, 'mask_type': mask_type,
        })

        with transaction.atomic():
            role = get_role_or_404(role_id)
            if Permission.objects.filter(role=role, entity=spec['entity'],
                                         field=spec['field'], action=spec['action']).exists():
                raise ConflictError(
                    'Permission already exists on this role',
                    {'role_id': str(role.id), **{k: spec[k] for k in ('entity', 'field', 'action')}},
                )
            try:
                with transaction.atomic():
                    permission = Permission.objects.create(
                        role=role,
                        display_name=display_name or '',
                        description=description or '',
                        **spec,
                    )
            except DjangoDatabaseError as exc:
                raise translate_integrity_error(
                    exc,
                    'Permission already exists on this role',
                    {'role_id': str(role.id), **{k: spec[k] for k in ('entity', 'field', 'action')}},
                )

            AuditService.record_with_context(
                AuditAction.PERMISSION_GRANTED,
                context,
                role_id=role.id,
                new_value=permission_snapshot(permission),
            )

        logger.info(
            "Permission created",
            extra={'permission_id': str(permission.id), 'role_id': str(role.id)},
        )
        return permission

    @classmethod
    def update_permission(cls, permission_id, patch: Dict[str, Any], context=None) -> Permission:
        """
        Update entity, field, action, mask_type, display_name or description.

        Raises:
            NotFoundError: If the permission does not exist
            ConflictError: If the new natural key collides on the same role
            ValidationError: If the result is not a valid permission
        """
        with transaction.atomic():
            permission = cls.get_permission(permission_id)
            old_value = permission_snapshot(permission)

            merged = {
                'entity': patch.get('entity', permission.entity),
                'field': patch.get('field', permission.field),
                'action': patch.get('action', permission.action),
                'mask_type': patch.get('mask_type', permission.mask_type),
            }
            spec = validate_permission_spec(merged)

            key_changed = (spec['entity'], spec['field'], spec['action']) != permission.natural_key()
            if key_changed and Permission.objects.filter(
                role_id=permission.role_id, entity=spec['entity'],
                field=spec['field'], action=spec['action'],
            ).exclude(pk=permission.pk).exists():
                raise ConflictError(
                    'Permission already exists on this role',
                    {'role_id': str(permission.role_id), **{k: spec[k] for k in ('entity', 'field', 'action')}},
                )

            for key, value in spec.items():
                setattr(permission, key, value)
            for key in ('display_name', 'description'):
                if key in patch:
                    setattr(permission, key, patch[key] or '')

            try:
                with transaction.atomic():
                    permission.save()
            except DjangoDatabaseError as exc:
                raise translate_integrity_error(
                    exc,
                    'Permission already exists on this role',
                    {'role_id': str(permission.role_id)},
                )

            AuditService.record_with_context(
                AuditAction.UPDATED,
                context,
                role_id=permission.role_id,
                old_value=old_value,
                new_value=permission_snapshot(permission),
            )

        logger.info("Permission updated", extra={'permission_id': str(permission.id)})
        return permission

    @classmethod
    def delete_permission(cls, permission_id, context=None) -> None:
        """
        Raises:
            NotFoundError: If the permission does not exist
        """
        with transaction.atomic():
            permission = cls.get_permission(permission_id)
            snapshot = permission_snapshot(permission)
            role_id = permission.role_id
            permission.delete()

            AuditService.record_with_context(
                AuditAction.PERMISSION_REVOKED,
                context,
                role_id=role_id,
                old_value=snapshot,
            )

        logger.info("Permission deleted", extra={'permission_id': snapshot['id'], 'role_id': str(role_id)})

    # --- Queries -----------------------------------------------------------

    @classmethod
    def permission_exists(cls, entity: str, field: str, action: str, role_id) -> bool:
        return Permission.objects.filter(
            role_id=role_id, entity=entity, field=field, action=action
        ).exists()

    @classmethod
    def get_unique_entities(cls) -> List[str]:
        return list(
            Permission.objects.order_by('entity').values_list('entity', flat=True).distinct()
        )

    @classmethod
    def get_unique_actions(cls) -> List[str]:
        return list(
            Permission.objects.order_by('action').values_list('action', flat=True).distinct()
        )

    @classmethod
    def get_permissions_grouped_by_entity(cls) -> Dict[str, List[Permission]]:
        grouped = defaultdict(list)
        for permission in Permission.objects.order_by('entity', 'action', 'field'):
            grouped[permission.entity].append(permission)
        return dict(grouped)

    @classmethod
    def get_permissions_grouped_by_role(cls) -> Dict[str, List[Permission]]:
        grouped = defaultdict(list)
        for permission in Permission.objects.select_related('role').order_by('role__name', 'entity'):
            grouped[permission.role.name].append(permission)
        return dict(grouped)

    @classmethod
    def get_permission_stats(cls) -> Dict[str, Any]:
        by_action = dict(
            Permission.objects.values_list('action').annotate(n=Count('id')).order_by()
        )
        by_mask_type = dict(
            Permission.objects.values_list('mask_type').annotate(n=Count('id')).order_by()
        )
        return {
            'total_permissions': Permission.objects.count(),
            'unique_entities': len(cls.get_unique_entities()),
            'unique_actions': len(cls.get_unique_actions()),
            'by_action': by_action,
            'by_mask_type': by_mask_type,
        }

    # --- Role checks -------------------------------------------------------

    @classmethod
    def role_has_permission(cls, role_id, entity: str, field: str, action: str) -> bool:
        """
        True iff the role owns a row for entity/action whose field is the
        requested one or the wildcard.
        """
        role = find_role(role_id)
        if role is None:
            return False
        return Permission.objects.filter(role=role).matching(entity, field, action).exists()

    @classmethod
    def check_role_access(cls, role_id, entity: str, action: str) -> bool:
        """Field-agnostic check. Inactive or unknown roles always deny."""
        role = find_role(role_id)
        if role is None or not role.is_active:
            return False
        return Permission.objects.filter(role=role, entity=entity, action=action).exists()

    @classmethod
    def validate_role_permissions(cls, role_id, required: Iterable[str]) -> PermissionValidation:
        """
        Check a role against required "entity:action" codes.

        Returns:
            PermissionValidation with the codes the role is missing
        """
        role = find_role(role_id)
        if role is None:
            return PermissionValidation(is_valid=False, reason='Role not found')
        if not role.is_active:
            return PermissionValidation(is_valid=False, reason='Role is inactive')

        granted = {p.code for p in role.permissions.all()}
        missing = [code for code in required if code not in granted]
        return PermissionValidation(
            is_valid=not missing,
            missing_permissions=missing,
            reason='Missing required permissions' if missing else None,
        )
