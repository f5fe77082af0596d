"""
Pytest configuration and fixtures.
"""
import pytest
from django.conf import settings


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    settings.RBAC_ENFORCE_API_ACCESS = True
    settings.RBAC_DEFAULT_PAGE_SIZE = 50
    settings.RBAC_MAX_PAGE_SIZE = 100
    settings.RBAC_CLEANUP_DEFAULT_DAYS = 30
    settings.SENTRY_DSN = None


@pytest.fixture
def audit_context():
    """Audit context of an admin acting from a known address."""
    from apps.rbac.services import AuditContext
    return AuditContext(user_id='admin-1', ip_address='10.0.0.1', user_agent='pytest')


@pytest.fixture
def make_role(db):
    """Factory creating roles through the service layer."""
    from apps.rbac.services import RoleService

    def _make_role(name='editor', permissions=None, **kwargs):
        return RoleService.create_role(name, permissions=permissions, **kwargs)

    return _make_role


@pytest.fixture
def role(make_role):
    """Active custom role with read/update on articles."""
    return make_role(
        'editor',
        description='Edits articles',
        permissions=[
            {'entity': 'article', 'field': '*', 'action': 'read'},
            {'entity': 'article', 'field': '*', 'action': 'update'},
        ],
    )


@pytest.fixture
def system_role(make_role):
    """Protected built-in role."""
    return make_role(
        'admin',
        is_system=True,
        permissions=[{'entity': 'role', 'field': '*', 'action': 'read'}],
    )


@pytest.fixture
def user_factory(db):
    """Factory for Django users used as REST callers."""
    from django.contrib.auth import get_user_model
    User = get_user_model()
    counter = {'n': 0}

    def _make_user(superuser=False, **kwargs):
        counter['n'] += 1
        username = kwargs.pop('username', f'user{counter["n"]}')
        if superuser:
            return User.objects.create_superuser(username=username, password='pass-1234', **kwargs)
        return User.objects.create_user(username=username, password='pass-1234', **kwargs)

    return _make_user


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def admin_client(api_client, user_factory):
    """API client authenticated as a superuser."""
    user = user_factory(superuser=True, email='root@example.com')
    api_client.force_authenticate(user=user)
    api_client.user = user
    return api_client
