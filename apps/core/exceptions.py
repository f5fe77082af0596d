"""
Warden exception taxonomy and DRF exception handler.

Every fallible engine operation raises exactly one of the exceptions below.
Each carries an ErrorKind, a human-readable message and structured details,
so callers can branch on the kind without parsing message text.
"""
import enum
import logging

from django.db import IntegrityError, DatabaseError as DjangoDatabaseError
from rest_framework import status
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    """Error kinds exposed by the engine."""
    BAD_REQUEST = 'BAD_REQUEST'
    UNAUTHORIZED = 'UNAUTHORIZED'
    FORBIDDEN = 'FORBIDDEN'
    NOT_FOUND = 'NOT_FOUND'
    CONFLICT = 'CONFLICT'
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    INTERNAL_ERROR = 'INTERNAL_ERROR'
    DATABASE_ERROR = 'DATABASE_ERROR'


class WardenException(Exception):
    """Base exception for Warden-specific errors."""

    kind = ErrorKind.INTERNAL_ERROR
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Serializable form used by batch results and the REST layer."""
        return {
            'error': self.message,
            'code': self.kind.value,
            'details': self.details,
        }

    def __repr__(self):
        return f"{self.__class__.__name__}({self.message!r}, details={self.details!r})"


class BadRequestError(WardenException):
    """Raised for malformed or contradictory input (e.g. duplicate names in a batch)."""
    kind = ErrorKind.BAD_REQUEST
    status_code = 400
    default_message = 'Bad request'


class UnauthorizedError(WardenException):
    """Raised when the caller could not be identified."""
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401
    default_message = 'Authorization required'


class ForbiddenError(WardenException):
    """Raised when the caller lacks rights or the target is protected."""
    kind = ErrorKind.FORBIDDEN
    status_code = 403
    default_message = 'Access denied'


class NotFoundError(WardenException):
    """Raised when a referenced Role/Permission/UserRole does not exist."""
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = 'Resource not found'


class ConflictError(WardenException):
    """Raised on uniqueness violations or when dependent state blocks an operation."""
    kind = ErrorKind.CONFLICT
    status_code = 409
    default_message = 'Data conflict'


class ValidationError(WardenException):
    """Raised when input is structurally invalid before reaching persistence."""
    kind = ErrorKind.VALIDATION_ERROR
    status_code = 422
    default_message = 'Validation error'


class InternalError(WardenException):
    """Raised for unexpected failures."""
    kind = ErrorKind.INTERNAL_ERROR
    status_code = 500
    default_message = 'Internal server error'


class DatabaseError(WardenException):
    """Raised when the persistence layer fails unexpectedly."""
    kind = ErrorKind.DATABASE_ERROR
    status_code = 500
    default_message = 'Database error'


def translate_integrity_error(exc, message, details=None):
    """
    Map a store-level error onto the engine taxonomy.

    Unique constraint violations become ConflictError; anything else the
    database raised becomes DatabaseError.
    """
    if isinstance(exc, IntegrityError):
        return ConflictError(message, details)
    if isinstance(exc, DjangoDatabaseError):
        return DatabaseError(str(exc), details)
    return InternalError(str(exc), details)


def custom_exception_handler(exc, context):
    """
    Custom exception handler that logs errors and returns consistent format.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, WardenException):
        log_method = logger.error if exc.status_code >= 500 else logger.warning
        log_method(
            f"Engine error: {exc.kind.value}",
            extra={
                'error_kind': exc.kind.value,
                'error_message': exc.message,
                'details': exc.details,
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            },
        )
        data = exc.to_dict()
        if request_id:
            data['request_id'] = request_id
        return Response(data, status=exc.status_code)

    if isinstance(exc, DRFValidationError):
        data = {
            'error': 'Validation error',
            'code': ErrorKind.VALIDATION_ERROR.value,
            'details': exc.detail,
        }
        if request_id:
            data['request_id'] = request_id
        return Response(data, status=status.HTTP_422_UNPROCESSABLE_ENTITY)

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    logger.error(
        f"API Exception: {exc.__class__.__name__}",
        extra={
            'exception': str(exc),
            'request_id': request_id,
            'path': request.path if request else None,
            'method': request.method if request else None,
        },
        exc_info=response is None,
    )

    # If DRF didn't handle it, return a generic 500 error
    if response is None:
        return Response(
            {
                'error': 'Internal server error',
                'code': ErrorKind.INTERNAL_ERROR.value,
                'request_id': request_id,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    # Add request_id to all error responses
    if request_id and isinstance(response.data, dict):
        response.data['request_id'] = request_id

    return response
