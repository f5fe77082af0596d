"""
End-to-end walk through an editor role's life.
"""
import pytest

from apps.core.exceptions import ConflictError
from apps.rbac.models import AuditAction, RoleAuditLog
from apps.rbac.services import AssignmentService, PermissionService, RoleService


@pytest.mark.django_db
def test_editor_role_lifecycle(audit_context):
    editor = RoleService.create_role(
        'editor',
        is_system=False,
        permissions=[{'entity': 'post', 'field': '*', 'action': 'update'}],
        context=audit_context,
    )
    assert PermissionService.role_has_permission(editor.id, 'post', 'title', 'update')

    AssignmentService.assign_role('u1', editor.id, context=audit_context)

    with pytest.raises(ConflictError) as exc_info:
        RoleService.soft_delete_role(editor.id, context=audit_context)
    assert exc_info.value.details['user_count'] == 1

    AssignmentService.revoke_role('u1', editor.id, context=audit_context)
    deleted = RoleService.soft_delete_role(editor.id, context=audit_context)

    assert deleted.is_active is False
    assert sorted(RoleAuditLog.objects.for_role(editor.id).values_list('action', flat=True)) == sorted([
        AuditAction.CREATED, AuditAction.ASSIGNED, AuditAction.REVOKED, AuditAction.DELETED,
    ])
