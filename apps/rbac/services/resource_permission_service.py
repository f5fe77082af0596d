"""
Resource override store: per-instance grant/deny rows.

An explicit ResourcePermission row overrides the entity-level Permission
for the same (role, resource, action) in either direction.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError as DjangoDatabaseError, transaction
from django.db.models import Count, Q
from django.utils import timezone

from apps.core.exceptions import (
    ConflictError, NotFoundError, ValidationError, translate_integrity_error,
)
from apps.core.pagination import Page, paginate
from apps.rbac.models import AuditAction, ResourcePermission
from apps.rbac.services.audit_service import AuditService, resource_permission_snapshot
from apps.rbac.services.base import get_role_or_404

logger = logging.getLogger(__name__)


@dataclass
class ResourcePermissionFilters:
    search: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    action: Optional[str] = None
    granted: Optional[bool] = None
    role_id: Optional[str] = None
    created_after: Any = None
    created_before: Any = None


def _audit_action(granted: bool) -> str:
    return AuditAction.PERMISSION_GRANTED if granted else AuditAction.PERMISSION_REVOKED


def _clean_key(resource_type, resource_id, action) -> Dict[str, str]:
    key = {
        'resource_type': (resource_type or '').strip(),
        'resource_id': str(resource_id).strip() if resource_id is not None else '',
        'action': (action or '').strip(),
    }
    missing = {name: 'This field is required.' for name, value in key.items() if not value}
    if missing:
        raise ValidationError('Invalid resource permission', missing)
    return key


class ResourcePermissionService:
    """
    Service for resource-level permission overrides.
    """

    @classmethod
    def get_resource_permission(cls, resource_permission_id) -> ResourcePermission:
        """
        Raises:
            NotFoundError: If the row does not exist
        """
        try:
            return ResourcePermission.objects.select_related('role').get(pk=resource_permission_id)
        except (ResourcePermission.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise NotFoundError(
                'Resource permission not found',
                {'resource_permission_id': str(resource_permission_id)},
            )

    @classmethod
    def _insert(cls, role, key, granted, granted_by, context) -> ResourcePermission:
        if ResourcePermission.objects.filter(role=role, **key).exists():
            raise ConflictError('Resource permission already exists', {'role_id': str(role.id), **key})
        try:
            with transaction.atomic():
                resource_permission = ResourcePermission.objects.create(
                    role=role,
                    granted=granted,
                    granted_by=granted_by if granted_by is not None else getattr(context, 'user_id', None),
                    **key,
                )
        except DjangoDatabaseError as exc:
            raise translate_integrity_error(
                exc, 'Resource permission already exists', {'role_id': str(role.id), **key},
            )

        AuditService.record_with_context(
            _audit_action(granted), context, role_id=role.id,
            new_value=resource_permission_snapshot(resource_permission),
        )
        return resource_permission

    @classmethod
    def create_resource_permission(cls, role_id, resource_type: str, resource_id, action: str,
                                   granted: bool = True, granted_by=None,
                                   context=None) -> ResourcePermission:
        """
        Create one override.

        Args:
            granted: True to allow, False for an explicit deny
            granted_by: Actor id; defaults to the context's user

        Raises:
            NotFoundError: If the role does not exist
            ConflictError: If the role already has an override for this key
        """
        key = _clean_key(resource_type, resource_id, action)
        with transaction.atomic():
            role = get_role_or_404(role_id)
            resource_permission = cls._insert(role, key, granted, granted_by, context)
        logger.info(
            "Resource permission created",
            extra={'resource_permission_id': str(resource_permission.id), 'granted': granted, **key},
        )
        return resource_permission

    @classmethod
    def create_resource_permissions(cls, role_id, resource_type: str, resource_id,
                                    actions: Iterable[str], granted: bool = True,
                                    granted_by=None, context=None) -> List[ResourcePermission]:
        """One override per action, all or nothing."""
        actions = list(dict.fromkeys(actions))
        if not actions:
            raise ValidationError('At least one action is required', {'actions': 'This field is required.'})
        keys = [_clean_key(resource_type, resource_id, action) for action in actions]
        with transaction.atomic():
            role = get_role_or_404(role_id)
            created = [cls._insert(role, key, granted, granted_by, context) for key in keys]
        logger.info(
            "Resource permissions created",
            extra={'role_id': str(role_id), 'count': len(created), 'granted': granted},
        )
        return created

    @classmethod
    def update_resource_permission(cls, resource_permission_id, patch: Dict[str, Any],
                                   context=None) -> ResourcePermission:
        """
        Change the decision and/or the key of an override.

        Raises:
            NotFoundError: If the row does not exist
            ConflictError: If the new key collides with another row of the role
        """
        with transaction.atomic():
            resource_permission = cls.get_resource_permission(resource_permission_id)
            old_value = resource_permission_snapshot(resource_permission)

            key = _clean_key(
                patch.get('resource_type', resource_permission.resource_type),
                patch.get('resource_id', resource_permission.resource_id),
                patch.get('action', resource_permission.action),
            )
            if ResourcePermission.objects.filter(role_id=resource_permission.role_id, **key) \
                    .exclude(pk=resource_permission.pk).exists():
                raise ConflictError(
                    'Resource permission already exists',
                    {'role_id': str(resource_permission.role_id), **key},
                )

            for name, value in key.items():
                setattr(resource_permission, name, value)
            if 'granted' in patch:
                resource_permission.granted = bool(patch['granted'])
            if 'granted_by' in patch:
                resource_permission.granted_by = patch['granted_by']
            elif context is not None and context.user_id:
                resource_permission.granted_by = context.user_id
            resource_permission.granted_at = timezone.now()

            try:
                with transaction.atomic():
                    resource_permission.save()
            except DjangoDatabaseError as exc:
                raise translate_integrity_error(
                    exc,
                    'Resource permission already exists',
                    {'role_id': str(resource_permission.role_id), **key},
                )

            AuditService.record_with_context(
                _audit_action(resource_permission.granted), context,
                role_id=resource_permission.role_id,
                old_value=old_value,
                new_value=resource_permission_snapshot(resource_permission),
            )

        logger.info(
            "Resource permission updated",
            extra={'resource_permission_id': str(resource_permission.id)},
        )
        return resource_permission

    @classmethod
    def set_resource_permission(cls, role_id, resource_type: str, resource_id, action: str,
                                granted: bool = True, granted_by=None,
                                context=None) -> ResourcePermission:
        """Create or update the override for a key."""
        key = _clean_key(resource_type, resource_id, action)
        with transaction.atomic():
            role = get_role_or_404(role_id)
            existing = ResourcePermission.objects.select_for_update().filter(role=role, **key).first()
            if existing is None:
                return cls._insert(role, key, granted, granted_by, context)
            patch = {'granted': granted}
            if granted_by is not None:
                patch['granted_by'] = granted_by
            return cls.update_resource_permission(existing.id, patch, context=context)

    @classmethod
    def delete_resource_permission(cls, resource_permission_id, context=None) -> None:
        """
        Raises:
            NotFoundError: If the row does not exist
        """
        with transaction.atomic():
            resource_permission = cls.get_resource_permission(resource_permission_id)
            snapshot = resource_permission_snapshot(resource_permission)
            role_id = resource_permission.role_id
            resource_permission.delete()
            AuditService.record_with_context(
                AuditAction.PERMISSION_REVOKED, context, role_id=role_id, old_value=snapshot,
            )
        logger.info("Resource permission deleted", extra={'resource_permission_id': snapshot['id']})

    @classmethod
    def delete_by_key(cls, role_id, resource_type: str, resource_id, action: str, context=None) -> None:
        """
        Raises:
            NotFoundError: If no override exists for the key
        """
        existing = cls.get_override(role_id, resource_type, resource_id, action)
        if existing is None:
            raise NotFoundError(
                'Resource permission not found',
                {'role_id': str(role_id), 'resource_type': resource_type,
                 'resource_id': str(resource_id), 'action': action},
            )
        cls.delete_resource_permission(existing.id, context=context)

    @classmethod
    def get_override(cls, role_id, resource_type: str, resource_id, action: str) -> Optional[ResourcePermission]:
        try:
            return ResourcePermission.objects.filter(
                role_id=role_id,
                resource_type=resource_type,
                resource_id=str(resource_id),
                action=action,
            ).first()
        except (DjangoValidationError, ValueError):
            return None

    @classmethod
    def list_resource_permissions(cls, filters: Optional[ResourcePermissionFilters] = None,
                                  page: int = 1, page_size: Optional[int] = None) -> Page:
        filters = filters or ResourcePermissionFilters()
        queryset = ResourcePermission.objects.select_related('role')
        if filters.search:
            queryset = queryset.filter(
                Q(resource_type__icontains=filters.search)
                | Q(resource_id__icontains=filters.search)
                | Q(action__icontains=filters.search)
                | Q(role__name__icontains=filters.search)
            )
        if filters.resource_type:
            queryset = queryset.filter(resource_type=filters.resource_type)
        if filters.resource_id:
            queryset = queryset.filter(resource_id=filters.resource_id)
        if filters.action:
            queryset = queryset.filter(action=filters.action)
        if filters.granted is not None:
            queryset = queryset.filter(granted=filters.granted)
        if filters.role_id:
            queryset = queryset.filter(role_id=filters.role_id)
        if filters.created_after:
            queryset = queryset.filter(created_at__gte=filters.created_after)
        if filters.created_before:
            queryset = queryset.filter(created_at__lte=filters.created_before)
        return paginate(queryset.order_by('resource_type', 'resource_id', 'action', 'id'), page, page_size)

    @classmethod
    def get_resource_permission_stats(cls) -> Dict[str, Any]:
        by_type = dict(
            ResourcePermission.objects.values_list('resource_type')
            .annotate(n=Count('id')).order_by()
        )
        return {
            'total': ResourcePermission.objects.count(),
            'granted': ResourcePermission.objects.grants().count(),
            'denied': ResourcePermission.objects.denies().count(),
            'by_resource_type': by_type,
        }
