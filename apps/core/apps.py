from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
import logging

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Perform startup validation checks when Django initializes.

        Only the serving processes are checked so that migrations and
        other management commands run without production configuration.
        """
        import sys
        if 'runserver' not in sys.argv and 'gunicorn' not in sys.argv[0]:
            return

        self._validate_security_settings()
        logger.info("Startup security validations passed")

    def _validate_security_settings(self):
        """Validate general security settings."""
        debug = getattr(settings, 'DEBUG', False)
        secret_key = getattr(settings, 'SECRET_KEY', None)

        if not secret_key:
            raise ImproperlyConfigured("SECRET_KEY must be set in environment variables.")

        if len(secret_key) < 50:
            logger.warning(
                f"SECRET_KEY is shorter than recommended (current: {len(secret_key)}, recommended: 50+)."
            )

        if not debug:
            weak_patterns = ['change-me', 'insecure', 'django-insecure', '12345', 'password']
            secret_lower = secret_key.lower()
            for pattern in weak_patterns:
                if pattern in secret_lower:
                    raise ImproperlyConfigured(
                        f"SECRET_KEY appears to be a default or weak value (contains '{pattern}')."
                    )

            if not getattr(settings, 'RBAC_ENFORCE_API_ACCESS', True):
                logger.warning("RBAC_ENFORCE_API_ACCESS is disabled in production.")
