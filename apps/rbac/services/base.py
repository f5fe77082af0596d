"""
Helpers shared by the RBAC services.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError

from apps.core.exceptions import NotFoundError, WardenException
from apps.rbac.models import Role


@dataclass
class BatchItemResult:
    """Outcome of one item in a batch operation."""
    id: Any
    success: bool
    error: Optional[Dict[str, Any]] = None
    data: Any = None

    def to_dict(self):
        result = {'id': str(self.id) if self.id is not None else None, 'success': self.success}
        if self.error:
            result['error'] = self.error
        return result


@dataclass
class BatchResult:
    """
    Per-item results of a batch operation.

    Batch operations never raise for a single failing item; the failure is
    recorded on that item with the error kind, message and details.
    """
    results: List[BatchItemResult] = field(default_factory=list)

    def add_success(self, item_id, data=None):
        self.results.append(BatchItemResult(id=item_id, success=True, data=data))

    def add_failure(self, item_id, exc: WardenException):
        self.results.append(BatchItemResult(
            id=item_id,
            success=False,
            error={
                'kind': exc.kind.value,
                'message': exc.message,
                'details': exc.details,
            },
        ))

    @property
    def success_count(self):
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self):
        return sum(1 for r in self.results if not r.success)

    def to_dict(self):
        return {
            'results': [r.to_dict() for r in self.results],
            'success_count': self.success_count,
            'failure_count': self.failure_count,
        }


def get_role_or_404(role_id, queryset=None) -> Role:
    """
    Fetch a role by id.

    Malformed ids are treated like unknown ids.

    Raises:
        NotFoundError: If no role has this id
    """
    queryset = queryset if queryset is not None else Role.objects.all()
    try:
        return queryset.get(pk=role_id)
    except (Role.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFoundError('Role not found', {'role_id': str(role_id)})


def find_role(role_id) -> Optional[Role]:
    """Like get_role_or_404 but returns None for unknown ids."""
    try:
        return Role.objects.filter(pk=role_id).first()
    except (DjangoValidationError, ValueError, TypeError):
        return None
