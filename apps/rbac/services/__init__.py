"""
RBAC services.
"""
from apps.rbac.services.access_evaluator import (
    AccessDecision, AccessEvaluator, ChainLink, DecisionSource, FieldPermission,
)
from apps.rbac.services.assignment_service import AssignmentFilters, AssignmentService
from apps.rbac.services.audit_service import AuditContext, AuditService
from apps.rbac.services.base import BatchResult
from apps.rbac.services.permission_service import (
    PermissionFilters, PermissionService, PermissionValidation,
)
from apps.rbac.services.resource_permission_service import (
    ResourcePermissionFilters, ResourcePermissionService,
)
from apps.rbac.services.role_service import (
    CleanupResult, DeleteCheck, RoleFilters, RoleService,
)

__all__ = [
    'AccessDecision',
    'AccessEvaluator',
    'AssignmentFilters',
    'AssignmentService',
    'AuditContext',
    'AuditService',
    'BatchResult',
    'ChainLink',
    'CleanupResult',
    'DecisionSource',
    'DeleteCheck',
    'FieldPermission',
    'PermissionFilters',
    'PermissionService',
    'PermissionValidation',
    'ResourcePermissionFilters',
    'ResourcePermissionService',
    'RoleFilters',
    'RoleService',
]
