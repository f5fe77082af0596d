"""
Tests for RBAC models.

Covers uniqueness constraints, field wildcard matching, delete behaviour
of the role relations, and audit log immutability.
"""
import pytest
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError
from hypothesis import given, strategies as st

from apps.rbac.models import (
    WILDCARD_FIELD, AuditLogImmutable, MaskType, Permission, ResourcePermission,
    Role, RoleAuditLog, UserRole,
)


@pytest.mark.django_db
class TestRoleModel:
    """Test Role model constraints and querysets."""

    def test_name_is_unique(self):
        """Test two roles cannot share a name."""
        Role.objects.create(name='editor')
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Role.objects.create(name='editor')

    def test_name_is_unique_across_inactive_roles(self):
        """Test an inactive role still reserves its name."""
        Role.objects.create(name='editor', is_active=False)
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Role.objects.create(name='editor')

    def test_defaults(self):
        role = Role.objects.create(name='viewer')
        assert role.is_active is True
        assert role.is_system is False
        assert role.description == ''
        assert role.created_at is not None

    def test_querysets(self):
        """Test active/system/custom/deletable querysets."""
        active = Role.objects.create(name='active')
        inactive = Role.objects.create(name='inactive', is_active=False)
        system = Role.objects.create(name='system', is_system=True)
        assigned = Role.objects.create(name='assigned')
        UserRole.objects.create(user_id='u1', role=assigned)

        assert set(Role.objects.active()) == {active, system, assigned}
        assert list(Role.objects.inactive()) == [inactive]
        assert list(Role.objects.system()) == [system]
        assert set(Role.objects.deletable()) == {active, inactive}
        assert Role.objects.by_name('system') == system

    def test_with_counts(self):
        role = Role.objects.create(name='counted')
        Permission.objects.create(role=role, entity='article', action='read')
        Permission.objects.create(role=role, entity='article', action='update')
        UserRole.objects.create(user_id='u1', role=role)

        annotated = Role.objects.with_counts().get(pk=role.pk)

        assert annotated.permission_count == 2
        assert annotated.user_count == 1


@pytest.mark.django_db
class TestPermissionModel:
    """Test Permission natural key and relations."""

    def test_natural_key_is_unique_per_role(self):
        role = Role.objects.create(name='editor')
        Permission.objects.create(role=role, entity='article', field='title', action='read')
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Permission.objects.create(role=role, entity='article', field='title', action='read')

    def test_same_key_allowed_on_different_roles(self):
        first = Role.objects.create(name='first')
        second = Role.objects.create(name='second')
        Permission.objects.create(role=first, entity='article', action='read')
        Permission.objects.create(role=second, entity='article', action='read')
        assert Permission.objects.count() == 2

    def test_defaults_and_code(self):
        role = Role.objects.create(name='editor')
        permission = Permission.objects.create(role=role, entity='article', action='read')
        assert permission.field == WILDCARD_FIELD
        assert permission.mask_type == MaskType.NONE
        assert permission.code == 'article:read'
        assert permission.natural_key() == ('article', '*', 'read')

    def test_matching_queryset_includes_wildcard(self):
        role = Role.objects.create(name='editor')
        wildcard = Permission.objects.create(role=role, entity='user', field='*', action='read')
        exact = Permission.objects.create(role=role, entity='user', field='email', action='update')

        assert list(Permission.objects.matching('user', 'email', 'read')) == [wildcard]
        assert list(Permission.objects.matching('user', 'email', 'update')) == [exact]
        assert list(Permission.objects.matching('user', 'phone', 'update')) == []

    def test_permissions_cascade_with_role(self):
        role = Role.objects.create(name='editor')
        Permission.objects.create(role=role, entity='article', action='read')
        role.delete()
        assert Permission.objects.count() == 0


class TestPermissionMatches:
    """Field wildcard rule on unsaved rows."""

    @given(
        entity=st.text(min_size=1, max_size=20),
        field=st.text(min_size=1, max_size=20).filter(lambda f: f != WILDCARD_FIELD),
        action=st.sampled_from(['create', 'read', 'update', 'delete', 'admin']),
    )
    def test_wildcard_matches_every_field(self, entity, field, action):
        permission = Permission(entity=entity, field=WILDCARD_FIELD, action=action)
        assert permission.matches(entity, field, action)
        assert permission.matches(entity, WILDCARD_FIELD, action)

    @given(
        field=st.text(min_size=1, max_size=20).filter(lambda f: f != WILDCARD_FIELD),
        other=st.text(min_size=1, max_size=20).filter(lambda f: f != WILDCARD_FIELD),
    )
    def test_specific_field_matches_only_itself(self, field, other):
        permission = Permission(entity='user', field=field, action='read')
        assert permission.matches('user', field, 'read')
        assert permission.matches('user', other, 'read') == (field == other)
        assert not permission.matches('user', field, 'update')
        assert not permission.matches('account', field, 'read')


@pytest.mark.django_db
class TestUserRoleModel:
    """Test assignment constraints."""

    def test_assignment_is_unique(self):
        role = Role.objects.create(name='editor')
        UserRole.objects.create(user_id='u1', role=role)
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                UserRole.objects.create(user_id='u1', role=role)

    def test_role_with_assignments_cannot_be_deleted(self):
        """Test the PROTECT relation blocks orphaning assignments."""
        role = Role.objects.create(name='editor')
        UserRole.objects.create(user_id='u1', role=role)
        with pytest.raises(ProtectedError):
            role.delete()


@pytest.mark.django_db
class TestResourcePermissionModel:

    def test_key_is_unique_per_role(self):
        role = Role.objects.create(name='editor')
        ResourcePermission.objects.create(role=role, resource_type='article', resource_id='1', action='read')
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                ResourcePermission.objects.create(
                    role=role, resource_type='article', resource_id='1', action='read', granted=False,
                )

    def test_overrides_cascade_with_role(self):
        role = Role.objects.create(name='editor')
        ResourcePermission.objects.create(role=role, resource_type='article', resource_id='1', action='read')
        role.delete()
        assert ResourcePermission.objects.count() == 0

    def test_str_and_actions(self):
        role = Role.objects.create(name='editor')
        deny = ResourcePermission.objects.create(
            role=role, resource_type='article', resource_id='7', action='update', granted=False,
        )
        assert str(deny) == 'DENY update on article/7'
        assert deny.actions == ['update']
        assert ResourcePermission.objects.denies().count() == 1
        assert ResourcePermission.objects.grants().count() == 0


@pytest.mark.django_db
class TestRoleAuditLogImmutability:
    """Audit rows can be appended but never changed or removed."""

    def _entry(self):
        return RoleAuditLog.objects.create(action='CREATED', user_id='admin', new_value={'name': 'x'})

    def test_create_is_allowed(self):
        entry = self._entry()
        assert RoleAuditLog.objects.filter(pk=entry.pk).exists()

    def test_save_existing_row_raises(self):
        entry = self._entry()
        entry.action = 'UPDATED'
        with pytest.raises(AuditLogImmutable):
            entry.save()
        assert RoleAuditLog.objects.get(pk=entry.pk).action == 'CREATED'

    def test_delete_row_raises(self):
        entry = self._entry()
        with pytest.raises(AuditLogImmutable):
            entry.delete()
        assert RoleAuditLog.objects.filter(pk=entry.pk).exists()

    def test_queryset_update_and_delete_raise(self):
        self._entry()
        with pytest.raises(AuditLogImmutable):
            RoleAuditLog.objects.all().update(action='UPDATED')
        with pytest.raises(AuditLogImmutable):
            RoleAuditLog.objects.all().delete()
        assert RoleAuditLog.objects.count() == 1

    def test_audit_rows_survive_role_deletion(self):
        role = Role.objects.create(name='gone')
        role_id = role.id
        RoleAuditLog.objects.create(action='CREATED', role_id=role_id)
        role.delete()
        assert RoleAuditLog.objects.for_role(role_id).count() == 1
