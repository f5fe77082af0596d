# Export RBAC permission classes and decorators for easy importing
from apps.core.permissions import RequiresAccess, requires_access

__all__ = ['RequiresAccess', 'requires_access']
