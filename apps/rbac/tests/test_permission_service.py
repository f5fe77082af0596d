"""
Tests for PermissionService.
"""
import pytest

from apps.core.exceptions import ConflictError, NotFoundError, ValidationError
from apps.rbac.models import AuditAction, MaskType, Permission, RoleAuditLog
from apps.rbac.services import PermissionFilters, PermissionService, RoleService
from apps.rbac.services.permission_service import validate_permission_spec


class TestValidatePermissionSpec:
    """Normalisation of permission descriptions."""

    def test_defaults(self):
        spec = validate_permission_spec({'entity': ' article ', 'action': 'read'})
        assert spec == {'entity': 'article', 'field': '*', 'action': 'read', 'mask_type': 'none'}

    def test_blank_field_becomes_wildcard(self):
        spec = validate_permission_spec({'entity': 'article', 'field': '  ', 'action': 'read'})
        assert spec['field'] == '*'

    def test_collects_all_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_permission_spec({'entity': '', 'action': 'fly', 'mask_type': 'blur'})
        assert set(exc_info.value.details) == {'entity', 'action', 'mask_type'}


@pytest.mark.django_db
class TestPermissionCrud:
    """Test create/update/delete with audit."""

    def test_create(self, role, audit_context):
        permission = PermissionService.create_permission(
            role.id, 'user', field='email', action='read', mask_type=MaskType.PARTIAL,
            display_name='Read email', context=audit_context,
        )

        assert permission.role_id == role.id
        assert permission.mask_type == 'partial'
        assert permission.code == 'user:read'
        entry = RoleAuditLog.objects.for_role(role.id).by_action(AuditAction.PERMISSION_GRANTED).get()
        assert entry.new_value['field'] == 'email'
        assert entry.user_id == 'admin-1'

    def test_create_duplicate_conflicts(self, role):
        with pytest.raises(ConflictError) as exc_info:
            PermissionService.create_permission(role.id, 'article', action='read')
        assert exc_info.value.details['entity'] == 'article'
        assert Permission.objects.filter(role=role).count() == 2

    def test_create_on_unknown_role(self):
        with pytest.raises(NotFoundError):
            PermissionService.create_permission('00000000-0000-0000-0000-000000000000', 'article', action='read')

    def test_create_invalid(self, role):
        with pytest.raises(ValidationError):
            PermissionService.create_permission(role.id, 'article', action='publish')

    def test_update(self, role):
        permission = Permission.objects.get(role=role, action='read')

        updated = PermissionService.update_permission(
            permission.id, {'field': 'title', 'mask_type': 'hidden', 'description': 'Title only'},
        )

        assert updated.field == 'title'
        assert updated.mask_type == 'hidden'
        assert updated.description == 'Title only'
        entry = RoleAuditLog.objects.for_role(role.id).by_action(AuditAction.UPDATED).get()
        assert entry.old_value['field'] == '*'
        assert entry.new_value['field'] == 'title'

    def test_update_into_existing_key_conflicts(self, role):
        permission = Permission.objects.get(role=role, action='read')
        with pytest.raises(ConflictError):
            PermissionService.update_permission(permission.id, {'action': 'update'})
        permission.refresh_from_db()
        assert permission.action == 'read'

    def test_update_unknown(self):
        with pytest.raises(NotFoundError):
            PermissionService.update_permission('nope', {'field': 'x'})

    def test_delete(self, role):
        permission = Permission.objects.get(role=role, action='read')

        PermissionService.delete_permission(permission.id)

        assert not Permission.objects.filter(pk=permission.pk).exists()
        entry = RoleAuditLog.objects.for_role(role.id).by_action(AuditAction.PERMISSION_REVOKED).get()
        assert entry.old_value['id'] == str(permission.id)

    def test_delete_unknown(self):
        with pytest.raises(NotFoundError):
            PermissionService.delete_permission('00000000-0000-0000-0000-000000000000')


@pytest.mark.django_db
class TestPermissionQueries:
    """Test projections, listing and stats."""

    @pytest.fixture
    def catalog(self, role, make_role):
        viewer = make_role('viewer', permissions=[
            {'entity': 'article', 'action': 'read'},
            {'entity': 'user', 'field': 'email', 'action': 'read', 'mask_type': 'partial'},
        ])
        return role, viewer

    def test_projections(self, catalog):
        editor, viewer = catalog
        assert PermissionService.get_permissions_by_role(editor.id).count() == 2
        assert PermissionService.get_permissions_by_entity('article').count() == 3
        assert PermissionService.get_permissions_by_action('update').count() == 1
        assert PermissionService.get_unique_entities() == ['article', 'user']
        assert PermissionService.get_unique_actions() == ['read', 'update']
        assert PermissionService.permission_exists('user', 'email', 'read', viewer.id)
        assert not PermissionService.permission_exists('user', 'email', 'read', editor.id)

    def test_grouping(self, catalog):
        by_entity = PermissionService.get_permissions_grouped_by_entity()
        assert {k: len(v) for k, v in by_entity.items()} == {'article': 3, 'user': 1}

        by_role = PermissionService.get_permissions_grouped_by_role()
        assert {k: len(v) for k, v in by_role.items()} == {'editor': 2, 'viewer': 2}

    def test_list_filters(self, catalog):
        editor, viewer = catalog
        assert PermissionService.list_permissions().total == 4
        assert PermissionService.list_permissions(PermissionFilters(entity='user')).total == 1
        assert PermissionService.list_permissions(PermissionFilters(mask_type='partial')).total == 1
        assert PermissionService.list_permissions(PermissionFilters(role_id=editor.id)).total == 2
        assert PermissionService.list_permissions(PermissionFilters(search='mail')).total == 1

    def test_stats(self, catalog):
        stats = PermissionService.get_permission_stats()
        assert stats['total_permissions'] == 4
        assert stats['unique_entities'] == 2
        assert stats['unique_actions'] == 2
        assert stats['by_action'] == {'read': 3, 'update': 1}
        assert stats['by_mask_type'] == {'none': 3, 'partial': 1}


@pytest.mark.django_db
class TestRolePermissionChecks:
    """Test role-level permission checks."""

    def test_field_wildcard_rule(self, make_role):
        role = make_role('support', permissions=[
            {'entity': 'user', 'field': '*', 'action': 'read'},
            {'entity': 'user', 'field': 'email', 'action': 'update'},
        ])
        assert PermissionService.role_has_permission(role.id, 'user', 'phone', 'read')
        assert PermissionService.role_has_permission(role.id, 'user', 'email', 'update')
        assert not PermissionService.role_has_permission(role.id, 'user', 'phone', 'update')

    def test_malformed_role_ids_deny(self, role):
        assert not PermissionService.role_has_permission('editor', 'article', 'title', 'read')
        assert not PermissionService.role_has_permission(None, 'article', 'title', 'read')
        assert list(PermissionService.get_permissions_by_role('editor')) == []
        assert list(PermissionService.get_permissions_by_role('00000000-0000-0000-0000-000000000000')) == []

    def test_check_role_access(self, role):
        assert PermissionService.check_role_access(role.id, 'article', 'read')
        assert not PermissionService.check_role_access(role.id, 'article', 'delete')
        assert not PermissionService.check_role_access('missing', 'article', 'read')

        RoleService.deactivate_role(role.id)
        assert not PermissionService.check_role_access(role.id, 'article', 'read')

    def test_validate_role_permissions(self, role):
        result = PermissionService.validate_role_permissions(role.id, ['article:read', 'article:delete'])
        assert result.is_valid is False
        assert result.missing_permissions == ['article:delete']

        assert PermissionService.validate_role_permissions(role.id, ['article:read']).is_valid is True
        assert PermissionService.validate_role_permissions('missing', []).reason == 'Role not found'

        RoleService.deactivate_role(role.id)
        assert PermissionService.validate_role_permissions(role.id, []).reason == 'Role is inactive'
