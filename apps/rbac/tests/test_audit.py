"""
Tests for the audit trail: completeness, actor context and queries.
"""
from datetime import timedelta

import pytest
from django.test import RequestFactory
from django.utils import timezone

from apps.core.exceptions import ConflictError, ErrorKind, ValidationError
from apps.rbac.models import AuditAction, Permission, RoleAuditLog
from apps.rbac.services import (
    AccessEvaluator, AssignmentService, AuditContext, AuditService,
    PermissionService, ResourcePermissionService, RoleService,
)


class TestAuditContext:

    def test_from_request_prefers_forwarded_for(self):
        request = RequestFactory().get(
            '/', HTTP_X_FORWARDED_FOR='203.0.113.5, 10.0.0.1', HTTP_USER_AGENT='curl/8',
        )
        context = AuditContext.from_request(request)
        assert context.ip_address == '203.0.113.5'
        assert context.user_agent == 'curl/8'
        assert context.user_id is None

    def test_system_context_is_anonymous(self):
        assert AuditContext.system() == AuditContext(None, None, None)


@pytest.mark.django_db
class TestAuditCompleteness:
    """Every successful mutation writes exactly one row; failures write none."""

    def test_one_row_per_mutation(self, audit_context):
        def count():
            return RoleAuditLog.objects.count()

        role = RoleService.create_role('auditor', context=audit_context)
        assert count() == 1

        permission = PermissionService.create_permission(role.id, 'report', action='read', context=audit_context)
        assert count() == 2

        PermissionService.update_permission(permission.id, {'mask_type': 'partial'}, context=audit_context)
        assert count() == 3

        override = ResourcePermissionService.create_resource_permission(
            role.id, 'report', 'r1', 'read', context=audit_context,
        )
        assert count() == 4

        AssignmentService.assign_role('u1', role.id, context=audit_context)
        assert count() == 5

        AccessEvaluator.evaluate_for_user('u1', 'report', 'read')
        assert count() == 5

        AssignmentService.revoke_role('u1', role.id, context=audit_context)
        ResourcePermissionService.delete_resource_permission(override.id, context=audit_context)
        RoleService.deactivate_role(role.id, context=audit_context)
        RoleService.hard_delete_role(role.id, context=audit_context)
        assert count() == 9

        assert set(RoleAuditLog.objects.values_list('user_id', flat=True)) == {'admin-1'}
        assert set(RoleAuditLog.objects.values_list('ip_address', flat=True)) == {'10.0.0.1'}
        assert set(RoleAuditLog.objects.values_list('role_id', flat=True)) == {role.id}

    def test_failed_mutation_writes_nothing(self, role):
        before = RoleAuditLog.objects.count()
        with pytest.raises(ConflictError):
            RoleService.create_role('editor')
        with pytest.raises(ConflictError):
            PermissionService.create_permission(role.id, 'article', action='read')
        assert RoleAuditLog.objects.count() == before
        assert Permission.objects.filter(role=role).count() == 2

    def test_system_actions_have_no_actor(self, make_role):
        role = make_role('seeded')
        entry = RoleAuditLog.objects.for_role(role.id).get()
        assert entry.user_id is None
        assert entry.ip_address is None


@pytest.mark.django_db
class TestAuditQueries:
    """Test filtering, pagination and streaming."""

    @pytest.fixture
    def trail(self, make_role, audit_context):
        editor = make_role('editor', context=audit_context)
        viewer = make_role('viewer')
        AssignmentService.assign_role('u1', editor.id, context=audit_context)
        return editor, viewer

    def test_filters(self, trail):
        editor, viewer = trail

        assert AuditService.query().total == 3
        assert AuditService.query(role_id=editor.id).total == 2
        assert AuditService.query(user_id='admin-1').total == 2
        assert AuditService.query(actions=[AuditAction.ASSIGNED]).total == 1
        assert AuditService.query(actions=['CREATED', 'ASSIGNED']).total == 3
        assert AuditService.query(search='assign').total == 1
        assert AuditService.query(date_from=timezone.now() + timedelta(minutes=1)).total == 0
        assert AuditService.query(date_to=timezone.now() + timedelta(minutes=1)).total == 3

    def test_pagination(self, trail):
        page = AuditService.query(page=2, page_size=2)
        assert len(page.items) == 1
        assert page.pagination == {'page': 2, 'page_size': 2, 'total': 3, 'total_pages': 2}

    def test_stream_matches_query(self, trail):
        editor, _ = trail
        streamed = list(AuditService.stream(role_id=editor.id))
        assert len(streamed) == 2
        assert {entry.action for entry in streamed} == {'CREATED', 'ASSIGNED'}

    @pytest.mark.parametrize('filters', [
        {'role_id': 'not-a-uuid'},
        {'date_from': 'yesterday'},
        {'date_to': '2024-13-45'},
    ])
    def test_malformed_filters_are_validation_errors(self, trail, filters):
        with pytest.raises(ValidationError) as exc_info:
            AuditService.query(**filters)
        assert exc_info.value.kind == ErrorKind.VALIDATION_ERROR
