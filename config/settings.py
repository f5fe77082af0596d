"""
Django settings for Warden, the role-based access control service.
"""
import os
from pathlib import Path
import environ
import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Initialize environment variables
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, ['localhost', '127.0.0.1']),
    DB_CONN_MAX_AGE=(int, 600),
    JSON_LOGS=(bool, False),
    LOG_LEVEL=(str, 'INFO'),
    RBAC_ENFORCE_API_ACCESS=(bool, True),
    RBAC_CLEANUP_DEFAULT_DAYS=(int, 30),
    RBAC_DEFAULT_PAGE_SIZE=(int, 50),
    RBAC_MAX_PAGE_SIZE=(int, 100),
)

# Read .env file if it exists
environ.Env.read_env(os.path.join(BASE_DIR, '.env'))

# SECURITY WARNING: keep the secret key used in production secret!
# The default only serves local development; apps.core refuses to serve with it.
SECRET_KEY = env('SECRET_KEY', default='django-insecure-warden-local-development-key-change-me')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env('DEBUG')

ALLOWED_HOSTS = env('ALLOWED_HOSTS')

SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

# Application definition
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third-party apps
    'rest_framework',
    'drf_spectacular',

    # Warden apps
    'apps.core',
    'apps.rbac',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',

    # Custom middleware
    'apps.core.middleware.RequestIDMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# Database
DATABASES = {
    'default': env.db('DATABASE_URL', default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}
DATABASES['default']['CONN_MAX_AGE'] = env('DB_CONN_MAX_AGE')

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# REST Framework
REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 50,
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
    # Identity is Django's own; Warden only decides what an identified caller may do
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'EXCEPTION_HANDLER': 'apps.core.exceptions.custom_exception_handler',
}

# DRF Spectacular (OpenAPI)
SPECTACULAR_SETTINGS = {
    'TITLE': 'Warden RBAC API',
    'DESCRIPTION': '''
Role-based access control: roles, entity and field permissions,
resource-level overrides, user-role assignments and an immutable audit trail.

## Access

Every endpoint requires an authenticated caller. The caller's own roles are
checked against the endpoint's `entity:action` requirement (for example
`role:update`) unless `RBAC_ENFORCE_API_ACCESS` is disabled. Superusers are
always allowed so that a new installation can be bootstrapped.

## Errors

Errors are returned as `{"error": ..., "code": ..., "details": {...}}` where
`code` is one of BAD_REQUEST, UNAUTHORIZED, FORBIDDEN, NOT_FOUND, CONFLICT,
VALIDATION_ERROR, INTERNAL_ERROR or DATABASE_ERROR.
    ''',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
    'COMPONENT_SPLIT_REQUEST': True,
    'TAGS': [
        {'name': 'RBAC - Roles', 'description': 'Role lifecycle and role permissions'},
        {'name': 'RBAC - Permissions', 'description': 'Entity and field level permissions'},
        {'name': 'RBAC - Resource Permissions', 'description': 'Per-resource grant and deny overrides'},
        {'name': 'RBAC - Assignments', 'description': 'User-role assignments'},
        {'name': 'RBAC - Access', 'description': 'Access evaluation'},
        {'name': 'RBAC - Audit', 'description': 'Audit trail of policy changes'},
        {'name': 'Health', 'description': 'Service health'},
    ],
}

# Security headers
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# RBAC engine
RBAC_ENFORCE_API_ACCESS = env('RBAC_ENFORCE_API_ACCESS')
RBAC_CLEANUP_DEFAULT_DAYS = env('RBAC_CLEANUP_DEFAULT_DAYS')
RBAC_DEFAULT_PAGE_SIZE = env('RBAC_DEFAULT_PAGE_SIZE')
RBAC_MAX_PAGE_SIZE = env('RBAC_MAX_PAGE_SIZE')

# Entities managed through the REST API itself
RBAC_API_ENTITIES = ['role', 'permission', 'resource_permission', 'user_role', 'audit_log']

# System roles created by `manage.py seed_default_roles`
RBAC_DEFAULT_ROLES = {
    'admin': {
        'description': 'Full access to roles, permissions, assignments and audit logs',
        'permissions': [
            {'entity': entity, 'field': '*', 'action': action}
            for entity in RBAC_API_ENTITIES
            for action in ('create', 'read', 'update', 'delete')
        ],
    },
    'moderator': {
        'description': 'Read access to roles and the audit trail',
        'permissions': [
            {'entity': 'role', 'field': '*', 'action': 'read'},
            {'entity': 'permission', 'field': '*', 'action': 'read'},
            {'entity': 'user_role', 'field': '*', 'action': 'read'},
            {'entity': 'audit_log', 'field': '*', 'action': 'read'},
        ],
    },
    'user': {
        'description': 'Basic read access to roles',
        'permissions': [
            {'entity': 'role', 'field': '*', 'action': 'read'},
        ],
    },
}

# Logging Configuration
LOG_LEVEL = env('LOG_LEVEL')
JSON_LOGS = env('JSON_LOGS')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            '()': 'apps.core.logging.JSONFormatter',
        },
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'filters': {
        'request_id': {
            '()': 'apps.core.middleware.RequestIDFilter',
        },
    },
    'handlers': {
        'console': {
            'level': LOG_LEVEL,
            'class': 'logging.StreamHandler',
            'formatter': 'json' if JSON_LOGS else 'verbose',
            'filters': ['request_id'],
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'security': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# Sentry Configuration
SENTRY_DSN = env('SENTRY_DSN', default=None)
SENTRY_ENVIRONMENT = env('SENTRY_ENVIRONMENT', default='development')
SENTRY_RELEASE = env('SENTRY_RELEASE', default=None)

if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(),
        ],
        environment=SENTRY_ENVIRONMENT,
        release=SENTRY_RELEASE,
        traces_sample_rate=0.1 if not DEBUG else 1.0,
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )
