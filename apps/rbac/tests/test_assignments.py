"""
Tests for AssignmentService.
"""
from unittest import mock

import pytest
from django.db import OperationalError
from django.db.models import QuerySet

from apps.core.exceptions import ConflictError, DatabaseError, ErrorKind, NotFoundError
from apps.rbac.models import AuditAction, RoleAuditLog, UserRole
from apps.rbac.services import AssignmentFilters, AssignmentService, RoleService


@pytest.mark.django_db
class TestAssignRole:
    """Test single assignments."""

    def test_assign(self, role, audit_context):
        user_role = AssignmentService.assign_role('u1', role.id, context=audit_context)

        assert user_role.user_id == 'u1'
        assert user_role.assigned_by == 'admin-1'
        entry = RoleAuditLog.objects.for_role(role.id).by_action(AuditAction.ASSIGNED).get()
        assert entry.new_value == {
            'id': str(user_role.id),
            'user_id': 'u1',
            'role_id': str(role.id),
            'assigned_by': 'admin-1',
        }

    def test_user_id_is_stringified(self, role):
        assert AssignmentService.assign_role(17, role.id).user_id == '17'

    def test_assign_twice_conflicts(self, role):
        AssignmentService.assign_role('u1', role.id)
        with pytest.raises(ConflictError):
            AssignmentService.assign_role('u1', role.id)
        assert UserRole.objects.count() == 1

    def test_assign_inactive_role_conflicts(self, role):
        RoleService.deactivate_role(role.id)
        with pytest.raises(ConflictError) as exc_info:
            AssignmentService.assign_role('u1', role.id)
        assert exc_info.value.message == 'Cannot assign an inactive role'

    def test_unique_constraint_backs_the_duplicate_check(self, role):
        AssignmentService.assign_role('u1', role.id)
        audit_count = RoleAuditLog.objects.count()

        with mock.patch.object(QuerySet, 'exists', return_value=False):
            with pytest.raises(ConflictError) as exc_info:
                AssignmentService.assign_role('u1', role.id)

        assert exc_info.value.details == {'role_id': str(role.id), 'user_id': 'u1'}
        assert UserRole.objects.count() == 1
        assert RoleAuditLog.objects.count() == audit_count

    def test_store_failure_is_a_database_error(self, role):
        with mock.patch.object(UserRole.objects, 'create', side_effect=OperationalError('database is locked')):
            with pytest.raises(DatabaseError) as exc_info:
                AssignmentService.assign_role('u1', role.id)

        assert exc_info.value.kind == ErrorKind.DATABASE_ERROR
        assert not RoleAuditLog.objects.by_action(AuditAction.ASSIGNED).exists()

    def test_assign_unknown_role(self):
        with pytest.raises(NotFoundError):
            AssignmentService.assign_role('u1', '00000000-0000-0000-0000-000000000000')

    def test_revoke(self, role):
        AssignmentService.assign_role('u1', role.id)

        AssignmentService.revoke_role('u1', role.id)

        assert not UserRole.objects.exists()
        entry = RoleAuditLog.objects.for_role(role.id).by_action(AuditAction.REVOKED).get()
        assert entry.old_value['user_id'] == 'u1'

    def test_revoke_missing_assignment(self, role):
        with pytest.raises(NotFoundError) as exc_info:
            AssignmentService.revoke_role('u1', role.id)
        assert exc_info.value.message == 'Role assignment not found'


@pytest.mark.django_db
class TestBulkAssignments:
    """Test per-pair bulk operations."""

    def test_bulk_assign_reports_each_pair(self, role, make_role):
        viewer = make_role('viewer')
        AssignmentService.assign_role('u1', role.id)

        result = AssignmentService.bulk_assign(['u1', 'u2'], [role.id, viewer.id])

        assert result.success_count == 3
        assert result.failure_count == 1
        failure = [r for r in result.results if not r.success][0]
        assert failure.id == f'u1:{role.id}'
        assert failure.error['kind'] == 'CONFLICT'
        assert UserRole.objects.count() == 4
        assert RoleAuditLog.objects.by_action(AuditAction.BULK_ASSIGNED).count() == 3

    def test_bulk_revoke(self, role):
        AssignmentService.assign_role('u1', role.id)

        result = AssignmentService.bulk_revoke(['u1', 'u2'], [role.id])

        assert result.to_dict() == {
            'results': [
                {'id': f'u1:{role.id}', 'success': True},
                {
                    'id': f'u2:{role.id}',
                    'success': False,
                    'error': {
                        'kind': 'NOT_FOUND',
                        'message': 'Role assignment not found',
                        'details': {'role_id': str(role.id), 'user_id': 'u2'},
                    },
                },
            ],
            'success_count': 1,
            'failure_count': 1,
        }
        assert RoleAuditLog.objects.by_action(AuditAction.BULK_REVOKED).count() == 1


@pytest.mark.django_db
class TestAssignmentQueries:

    def test_queries(self, role, make_role):
        viewer = make_role('viewer')
        AssignmentService.assign_role('u2', role.id)
        AssignmentService.assign_role('u1', role.id)
        AssignmentService.assign_role('u1', viewer.id)

        assert [r.name for r in AssignmentService.get_user_roles('u1')] == ['editor', 'viewer']
        assert AssignmentService.get_role_users(role.id) == ['u1', 'u2']
        assert AssignmentService.count_user_roles(role.id) == 2
        assert AssignmentService.list_assignments().total == 3
        assert AssignmentService.list_assignments(AssignmentFilters(user_id='u1')).total == 2
        assert AssignmentService.list_assignments(AssignmentFilters(role_id=viewer.id)).total == 1
