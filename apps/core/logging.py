"""
Structured JSON logging and security event logging.
"""
import json
import logging
import re
import traceback
from datetime import datetime, timezone as dt_timezone

from django.utils import timezone
import sentry_sdk


class PIIMasker:
    """
    Utility class to mask sensitive data in logs.

    Actor identifiers and role ids are safe to log; request provenance
    (IP addresses, user agents) and credentials are not.
    """

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    IPV4_PATTERN = re.compile(r'\b(\d{1,3})\.(\d{1,3})\.\d{1,3}\.\d{1,3}\b')
    SECRET_PATTERN = re.compile(
        r'(api[_-]?key|token|secret|password|authorization)["\']?\s*[:=]\s*["\']?([^"\'\s,}]+)',
        re.IGNORECASE
    )

    SENSITIVE_FIELDS = {
        'password', 'password_hash', 'secret', 'token', 'api_key',
        'authorization', 'cookie', 'user_agent',
    }

    @classmethod
    def mask_email(cls, text):
        """Mask email addresses in text, keeping the first character and the domain."""
        def _mask(match):
            local, _, domain = match.group(0).partition('@')
            return f"{local[0]}{'*' * (len(local) - 1)}@{domain}"
        return cls.EMAIL_PATTERN.sub(_mask, text)

    @classmethod
    def mask_ip(cls, text):
        """Keep the network prefix of IPv4 addresses only."""
        return cls.IPV4_PATTERN.sub(r'\1.\2.*.*', text)

    @classmethod
    def mask_text(cls, text):
        """Apply all masking patterns to text."""
        if not isinstance(text, str):
            return text
        text = cls.SECRET_PATTERN.sub(r'\1: ********', text)
        text = cls.mask_email(text)
        return cls.mask_ip(text)

    @classmethod
    def mask_dict(cls, data):
        """Recursively mask sensitive data in dictionaries."""
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            if key.lower() in cls.SENSITIVE_FIELDS and value and not isinstance(value, (dict, list)):
                masked[key] = '********'
            elif isinstance(value, dict):
                masked[key] = cls.mask_dict(value)
            elif isinstance(value, list):
                masked[key] = [
                    cls.mask_dict(item) if isinstance(item, dict) else cls.mask_text(item)
                    for item in value
                ]
            else:
                masked[key] = cls.mask_text(value)
        return masked


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.
    Includes request_id, role_id and actor ids from extra fields if available.
    """

    RESERVED_ATTRS = frozenset({
        'name', 'msg', 'args', 'created', 'filename', 'funcName',
        'levelname', 'levelno', 'lineno', 'module', 'msecs', 'message',
        'pathname', 'process', 'processName', 'relativeCreated',
        'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
        'taskName',
    })

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(dt_timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': PIIMasker.mask_text(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': PIIMasker.mask_text(str(record.exc_info[1])),
                'traceback': traceback.format_exception(*record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key in self.RESERVED_ATTRS or key.startswith('_'):
                continue
            if isinstance(value, dict):
                value = PIIMasker.mask_dict(value)
            else:
                value = PIIMasker.mask_text(value)
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = PIIMasker.mask_text(str(value))

        return json.dumps(log_data)


class SecurityLogger:
    """
    Centralized logging for security-relevant authorization events.

    Events are written to the 'security' logger with structured context.
    Critical events are also sent to Sentry for alerting.
    """

    CRITICAL_EVENTS = {
        'system_role_tampering',
        'forced_role_deletion',
    }

    @staticmethod
    def log_event(event_type: str, level: str = 'warning', **context):
        """
        Log a security event with structured data.

        Args:
            event_type: Type of security event (e.g., 'system_role_tampering')
            level: Log level ('info', 'warning', 'error', 'critical')
            **context: Additional context data (role_id, user_id, ip_address, etc.)
        """
        logger = logging.getLogger('security')

        log_data = {
            'event_type': event_type,
            'event_at': timezone.now().isoformat(),
        }
        log_data.update(context)
        log_data = PIIMasker.mask_dict(log_data)

        log_method = getattr(logger, level, logger.warning)
        log_method(f"Security event: {event_type}", extra=log_data)

        if event_type in SecurityLogger.CRITICAL_EVENTS:
            sentry_sdk.capture_message(
                f"Critical security event: {event_type}",
                level='error',
            )

    @staticmethod
    def log_system_role_tampering(role_id, operation: str, user_id=None, ip_address=None):
        """
        Log an attempt to delete or demote a system role.

        Args:
            role_id: Protected role that was targeted
            operation: Operation that was blocked (e.g., 'hard_delete')
            user_id: Actor who attempted it (None for system)
            ip_address: Request IP address
        """
        SecurityLogger.log_event(
            'system_role_tampering',
            level='error',
            role_id=str(role_id),
            operation=operation,
            user_id=user_id,
            ip_address=ip_address,
        )

    @staticmethod
    def log_forced_deletion(role_id, role_name: str, revoked_user_ids, user_id=None):
        """Log a force delete that cascaded through existing assignments."""
        SecurityLogger.log_event(
            'forced_role_deletion',
            level='warning',
            role_id=str(role_id),
            role_name=role_name,
            revoked_user_count=len(revoked_user_ids),
            user_id=user_id,
        )

    @staticmethod
    def log_access_denied(user_id, entity: str, action: str, reason: str = None, ip_address=None):
        """Log an access denial raised by the REST layer."""
        SecurityLogger.log_event(
            'access_denied',
            level='warning',
            user_id=user_id,
            entity=entity,
            action=action,
            reason=reason,
            ip_address=ip_address,
        )
