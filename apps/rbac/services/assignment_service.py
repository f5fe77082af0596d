"""
User-role assignment store.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from django.db import DatabaseError as DjangoDatabaseError, transaction

from apps.core.exceptions import (
    ConflictError, NotFoundError, WardenException, translate_integrity_error,
)
from apps.core.pagination import Page, paginate
from apps.rbac.models import AuditAction, Role, UserRole
from apps.rbac.services.audit_service import AuditService
from apps.rbac.services.base import BatchResult, get_role_or_404

logger = logging.getLogger(__name__)


@dataclass
class AssignmentFilters:
    user_id: Optional[str] = None
    role_id: Optional[str] = None
    created_after: Any = None
    created_before: Any = None


def _assignment_snapshot(user_role):
    return {
        'id': str(user_role.id),
        'user_id': user_role.user_id,
        'role_id': str(user_role.role_id),
        'assigned_by': user_role.assigned_by,
    }


class AssignmentService:
    """
    Service for assigning roles to users and revoking them.
    """

    @classmethod
    def _assign(cls, user_id, role_id, action, context) -> UserRole:
        user_id = str(user_id)
        with transaction.atomic():
            role = get_role_or_404(role_id, Role.objects.select_for_update())
            if not role.is_active:
                logger.warning(
                    "Assignment blocked: role inactive",
                    extra={'role_id': str(role.id), 'user_id': user_id},
                )
                raise ConflictError(
                    'Cannot assign an inactive role',
                    {'role_id': str(role.id), 'user_id': user_id},
                )
            if UserRole.objects.filter(user_id=user_id, role=role).exists():
                raise ConflictError(
                    'Role already assigned to user',
                    {'role_id': str(role.id), 'user_id': user_id},
                )
            try:
                with transaction.atomic():
                    user_role = UserRole.objects.create(
                        user_id=user_id,
                        role=role,
                        assigned_by=getattr(context, 'user_id', None),
                    )
            except DjangoDatabaseError as exc:
                raise translate_integrity_error(
                    exc,
                    'Role already assigned to user',
                    {'role_id': str(role.id), 'user_id': user_id},
                )

            AuditService.record_with_context(
                action, context, role_id=role.id,
                new_value=_assignment_snapshot(user_role),
            )
        return user_role

    @classmethod
    def _revoke(cls, user_id, role_id, action, context) -> None:
        user_id = str(user_id)
        with transaction.atomic():
            role = get_role_or_404(role_id)
            user_role = UserRole.objects.filter(user_id=user_id, role=role).first()
            if user_role is None:
                raise NotFoundError(
                    'Role assignment not found',
                    {'role_id': str(role.id), 'user_id': user_id},
                )
            snapshot = _assignment_snapshot(user_role)
            user_role.delete()
            AuditService.record_with_context(
                action, context, role_id=role.id, old_value=snapshot,
            )

    @classmethod
    def assign_role(cls, user_id, role_id, context=None) -> UserRole:
        """
        Assign a role to a user.

        Raises:
            NotFoundError: If the role does not exist
            ConflictError: If the role is inactive or already assigned
        """
        user_role = cls._assign(user_id, role_id, AuditAction.ASSIGNED, context)
        logger.info("Role assigned", extra={'role_id': str(role_id), 'user_id': str(user_id)})
        return user_role

    @classmethod
    def revoke_role(cls, user_id, role_id, context=None) -> None:
        """
        Raises:
            NotFoundError: If the role or the assignment does not exist
        """
        cls._revoke(user_id, role_id, AuditAction.REVOKED, context)
        logger.info("Role revoked", extra={'role_id': str(role_id), 'user_id': str(user_id)})

    @classmethod
    def _bulk(cls, operation, user_ids, role_ids, action, context) -> BatchResult:
        result = BatchResult()
        for user_id in user_ids:
            for role_id in role_ids:
                pair = f"{user_id}:{role_id}"
                try:
                    operation(user_id, role_id, action, context)
                    result.add_success(pair)
                except WardenException as exc:
                    result.add_failure(pair, exc)
        return result

    @classmethod
    def bulk_assign(cls, user_ids: Iterable, role_ids: Iterable, context=None) -> BatchResult:
        """Assign every role to every user, one transaction per pair."""
        result = cls._bulk(cls._assign, list(user_ids), list(role_ids),
                           AuditAction.BULK_ASSIGNED, context)
        logger.info(
            "Bulk assign finished",
            extra={'succeeded': result.success_count, 'failed': result.failure_count},
        )
        return result

    @classmethod
    def bulk_revoke(cls, user_ids: Iterable, role_ids: Iterable, context=None) -> BatchResult:
        """Revoke every role from every user, one transaction per pair."""
        result = cls._bulk(cls._revoke, list(user_ids), list(role_ids),
                           AuditAction.BULK_REVOKED, context)
        logger.info(
            "Bulk revoke finished",
            extra={'succeeded': result.success_count, 'failed': result.failure_count},
        )
        return result

    @classmethod
    def count_user_roles(cls, role_id) -> int:
        return UserRole.objects.filter(role_id=role_id).count()

    @classmethod
    def get_user_roles(cls, user_id):
        """Roles assigned to a user."""
        return Role.objects.with_counts().filter(user_roles__user_id=str(user_id)).order_by('name')

    @classmethod
    def get_role_users(cls, role_id) -> List[str]:
        """User ids assigned to a role."""
        return list(
            UserRole.objects.filter(role_id=role_id).order_by('user_id').values_list('user_id', flat=True)
        )

    @classmethod
    def list_assignments(cls, filters: Optional[AssignmentFilters] = None,
                         page: int = 1, page_size: Optional[int] = None) -> Page:
        filters = filters or AssignmentFilters()
        queryset = UserRole.objects.select_related('role')
        if filters.user_id:
            queryset = queryset.filter(user_id=filters.user_id)
        if filters.role_id:
            queryset = queryset.filter(role_id=filters.role_id)
        if filters.created_after:
            queryset = queryset.filter(created_at__gte=filters.created_after)
        if filters.created_before:
            queryset = queryset.filter(created_at__lte=filters.created_before)
        return paginate(queryset.order_by('-created_at', 'id'), page, page_size)
