"""
Audit recorder for RBAC mutations.

Every successful mutation in the engine appends exactly one RoleAuditLog
row inside the same transaction as the state change. Recording failures
propagate so the surrounding transaction rolls back.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db.models import Q

from apps.core.exceptions import ValidationError
from apps.core.pagination import Page, paginate
from apps.rbac.models import RoleAuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def get_request_user_id(request) -> Optional[str]:
    """Opaque actor id for the authenticated caller, or None."""
    user = getattr(request, 'user', None)
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return str(user.pk)


@dataclass
class AuditContext:
    """Who performed a mutation and from where."""
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request):
        return cls(
            user_id=get_request_user_id(request),
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT') or None,
        )

    @classmethod
    def system(cls):
        """Context for mutations made by the system itself (seeding, cleanup)."""
        return cls()


def _normalise(value):
    if value is None:
        return None
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def permission_snapshot(permission) -> Dict[str, Any]:
    return {
        'id': str(permission.id),
        'entity': permission.entity,
        'field': permission.field,
        'action': permission.action,
        'mask_type': permission.mask_type,
    }


def role_snapshot(role, include_permissions=False) -> Dict[str, Any]:
    """
    JSON-ready snapshot of a role.

    Args:
        role: Role instance
        include_permissions: Also embed the role's permission rows
    """
    snapshot = {
        'id': str(role.id),
        'name': role.name,
        'description': role.description,
        'is_active': role.is_active,
        'is_system': role.is_system,
    }
    if include_permissions:
        snapshot['permissions'] = [
            permission_snapshot(p) for p in role.permissions.all()
        ]
    return snapshot


def resource_permission_snapshot(resource_permission) -> Dict[str, Any]:
    return {
        'id': str(resource_permission.id),
        'role_id': str(resource_permission.role_id),
        'resource_type': resource_permission.resource_type,
        'resource_id': resource_permission.resource_id,
        'action': resource_permission.action,
        'granted': resource_permission.granted,
        'granted_by': resource_permission.granted_by,
    }


class AuditService:
    """
    Append-only audit trail for roles, permissions, assignments and overrides.
    """

    @classmethod
    def record(cls, action: str, user_id=None, role_id=None, old_value=None,
               new_value=None, ip_address=None, user_agent=None) -> RoleAuditLog:
        """
        Append one audit row.

        Args:
            action: AuditAction value
            user_id: Actor id (None for system)
            role_id: Subject role id
            old_value: State before the mutation
            new_value: State after the mutation
            ip_address: Request IP address
            user_agent: Request user agent

        Returns:
            RoleAuditLog instance
        """
        entry = RoleAuditLog.objects.create(
            action=action,
            user_id=str(user_id) if user_id is not None else None,
            role_id=role_id,
            old_value=_normalise(old_value),
            new_value=_normalise(new_value),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.debug(
            "Audit row recorded",
            extra={'audit_action': action, 'role_id': str(role_id) if role_id else None},
        )
        return entry

    @classmethod
    def record_with_context(cls, action: str, context: Optional[AuditContext] = None,
                            role_id=None, old_value=None, new_value=None) -> RoleAuditLog:
        context = context or AuditContext.system()
        return cls.record(
            action,
            user_id=context.user_id,
            role_id=role_id,
            old_value=old_value,
            new_value=new_value,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

    @classmethod
    def _filtered(cls, role_id=None, user_id=None, actions: Optional[Iterable[str]] = None,
                  date_from=None, date_to=None, search=None):
        """
        Raises:
            ValidationError: If role_id or a date bound is malformed
        """
        queryset = RoleAuditLog.objects.all()
        try:
            if role_id:
                queryset = queryset.for_role(role_id)
            queryset = queryset.between(date_from, date_to)
        except DjangoValidationError as exc:
            raise ValidationError(
                'Invalid audit log filter',
                {'role_id': str(role_id) if role_id else None, 'errors': exc.messages},
            )
        if user_id:
            queryset = queryset.for_user(user_id)
        if actions:
            queryset = queryset.by_action(*actions)
        if search:
            queryset = queryset.filter(
                Q(action__icontains=search) | Q(user_id__icontains=search)
            )
        return queryset.order_by('-timestamp')

    @classmethod
    def query(cls, role_id=None, user_id=None, actions=None, date_from=None,
              date_to=None, search=None, page=1, page_size=None) -> Page:
        """Paginated, newest-first view of the audit trail."""
        queryset = cls._filtered(role_id, user_id, actions, date_from, date_to, search)
        return paginate(queryset, page, page_size)

    @classmethod
    def stream(cls, role_id=None, user_id=None, actions=None, date_from=None,
               date_to=None, search=None):
        """Oldest-first iterator over matching rows for reporting consumers."""
        queryset = cls._filtered(role_id, user_id, actions, date_from, date_to, search)
        return queryset.order_by('timestamp').iterator()
