"""
DRF permission classes and decorators for RBAC access enforcement.

This module provides:
- RequiresAccess: DRF permission class that checks the caller's own roles
- @requires_access: Decorator to declare the (entity, action) a view needs
"""
import logging

from django.conf import settings
from rest_framework.permissions import BasePermission

from apps.core.logging import SecurityLogger

logger = logging.getLogger(__name__)


def _normalise_requirement(requirement):
    if requirement is None:
        return None
    if isinstance(requirement, str):
        entity, _, action = requirement.partition(':')
        return entity, action
    return tuple(requirement)


class RequiresAccess(BasePermission):
    """
    DRF permission class that enforces RBAC access on API endpoints.

    The requirement is an (entity, action) pair, or an "entity:action"
    string, looked up in this order:
    1. `required_access` on the handler method (set by @requires_access)
    2. `required_access` on the view, either one pair or a dict keyed by
       HTTP method

    The caller passes when any of their assigned roles is allowed the
    action by the access evaluator. Superusers always pass so that a fresh
    installation can be bootstrapped. Enforcement is switched off with
    RBAC_ENFORCE_API_ACCESS = False.

    Usage in views:
        class RoleListView(APIView):
            permission_classes = [IsAuthenticated, RequiresAccess]
            required_access = {'GET': ('role', 'read'), 'POST': ('role', 'create')}
    """

    message = 'You do not have access to perform this action.'

    def get_requirement(self, request, view):
        handler = getattr(view, request.method.lower(), None)
        requirement = getattr(handler, 'required_access', None)
        if requirement is None:
            requirement = getattr(view, 'required_access', None)
            if isinstance(requirement, dict):
                requirement = requirement.get(request.method)
        return _normalise_requirement(requirement)

    def has_permission(self, request, view):
        """
        Check the caller's roles against the view's requirement.

        Returns:
            bool: True if no requirement is declared or access is allowed
        """
        if not getattr(settings, 'RBAC_ENFORCE_API_ACCESS', True):
            return True

        requirement = self.get_requirement(request, view)
        if not requirement:
            return True

        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            return False
        if user.is_superuser:
            return True

        # Imported here: apps.core must not depend on apps.rbac at import time
        from apps.rbac.services.access_evaluator import AccessEvaluator

        entity, action = requirement
        user_id = str(user.pk)
        decision = AccessEvaluator.evaluate_for_user(user_id, entity, action)
        if decision.allowed:
            return True

        logger.warning(
            f"Access denied: {entity}:{action}",
            extra={
                'user_id': user_id,
                'entity': entity,
                'action': action,
                'reason': decision.reason,
                'view': view.__class__.__name__,
                'method': request.method,
                'path': request.path,
                'request_id': getattr(request, 'request_id', None),
            }
        )
        SecurityLogger.log_access_denied(
            user_id, entity, action,
            reason=decision.reason,
            ip_address=request.META.get('REMOTE_ADDR'),
        )
        return False


def requires_access(entity, action):
    """
    Decorator to declare the access a view class or handler method needs.

    Usage:
        @requires_access('role', 'read')
        class RoleStatsView(APIView):
            permission_classes = [IsAuthenticated, RequiresAccess]

    Or on individual methods:
        class RoleDetailView(APIView):
            @requires_access('role', 'update')
            def patch(self, request, role_id):
                pass
    """
    def decorator(view_or_method):
        view_or_method.required_access = (entity, action)
        return view_or_method

    return decorator
