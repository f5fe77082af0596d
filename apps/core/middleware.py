"""
Core middleware for request processing.
"""
import logging
import threading
import uuid

from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)

_local = threading.local()


def get_current_request_id():
    return getattr(_local, 'request_id', None)


class RequestIDMiddleware(MiddlewareMixin):
    """
    Inject a request_id into each request for tracing.

    An incoming X-Request-ID header is reused; otherwise a UUID is generated.
    The id is echoed on the response and attached to log records through
    RequestIDFilter.
    """

    def process_request(self, request):
        request_id = request.META.get('HTTP_X_REQUEST_ID') or str(uuid.uuid4())
        request.request_id = request_id
        _local.request_id = request_id

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id
        _local.request_id = None
        return response


class RequestIDFilter(logging.Filter):
    """Add the current request_id to log records."""

    def filter(self, record):
        if not getattr(record, 'request_id', None):
            record.request_id = get_current_request_id()
        return True
