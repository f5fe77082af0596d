"""
Tests for the exception taxonomy and the DRF exception handler.
"""
import pytest
from django.db import IntegrityError, OperationalError
from rest_framework.exceptions import NotFound, ValidationError as DRFValidationError
from rest_framework.test import APIRequestFactory

from apps.core.exceptions import (
    BadRequestError, ConflictError, DatabaseError, ErrorKind, ForbiddenError, InternalError,
    NotFoundError, UnauthorizedError, ValidationError, WardenException,
    custom_exception_handler, translate_integrity_error,
)


class TestExceptionTaxonomy:
    """Each exception carries a kind, status and structured details."""

    @pytest.mark.parametrize('exc_class, kind, status_code', [
        (BadRequestError, ErrorKind.BAD_REQUEST, 400),
        (UnauthorizedError, ErrorKind.UNAUTHORIZED, 401),
        (ForbiddenError, ErrorKind.FORBIDDEN, 403),
        (NotFoundError, ErrorKind.NOT_FOUND, 404),
        (ConflictError, ErrorKind.CONFLICT, 409),
        (ValidationError, ErrorKind.VALIDATION_ERROR, 422),
        (InternalError, ErrorKind.INTERNAL_ERROR, 500),
        (DatabaseError, ErrorKind.DATABASE_ERROR, 500),
    ])
    def test_kinds(self, exc_class, kind, status_code):
        exc = exc_class('boom', {'id': 1})
        assert isinstance(exc, WardenException)
        assert exc.kind == kind
        assert exc.status_code == status_code
        assert exc.to_dict() == {'error': 'boom', 'code': kind.value, 'details': {'id': 1}}

    def test_defaults(self):
        exc = NotFoundError()
        assert exc.message == 'Resource not found'
        assert exc.details == {}
        assert str(exc) == 'Resource not found'

    def test_translate_integrity_error(self):
        assert isinstance(translate_integrity_error(IntegrityError('dup'), 'Taken'), ConflictError)
        assert isinstance(translate_integrity_error(OperationalError('locked'), 'x'), DatabaseError)
        assert isinstance(translate_integrity_error(RuntimeError('?'), 'x'), InternalError)


class TestExceptionHandler:
    """Responses produced by custom_exception_handler."""

    def _context(self, request_id=None):
        request = APIRequestFactory().get('/v1/roles')
        if request_id:
            request.request_id = request_id
        return {'request': request, 'view': None}

    def test_engine_error(self):
        response = custom_exception_handler(
            ConflictError('Role name already exists', {'name': 'editor'}), self._context('req-1'),
        )
        assert response.status_code == 409
        assert response.data == {
            'error': 'Role name already exists',
            'code': 'CONFLICT',
            'details': {'name': 'editor'},
            'request_id': 'req-1',
        }

    def test_drf_validation_error_becomes_422(self):
        response = custom_exception_handler(
            DRFValidationError({'name': ['This field is required.']}), self._context(),
        )
        assert response.status_code == 422
        assert response.data['code'] == 'VALIDATION_ERROR'
        assert response.data['details'] == {'name': ['This field is required.']}

    def test_other_drf_errors_keep_their_status(self):
        response = custom_exception_handler(NotFound(), self._context('req-2'))
        assert response.status_code == 404
        assert response.data['request_id'] == 'req-2'

    def test_unhandled_error_becomes_500(self):
        response = custom_exception_handler(RuntimeError('kaboom'), self._context())
        assert response.status_code == 500
        assert response.data['code'] == 'INTERNAL_ERROR'
