"""
API error envelope.

Every error response has the shape:
    {"error": {"code": "...", "message": "...", "fields": {...}?}}
"""
import logging

from django.db import DatabaseError
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.core.errors import DomainError, PersistenceFailure
from apps.core.observability import metrics

logger = logging.getLogger(__name__)

# DRF/Django exceptions reported with the same codes as DomainError
_STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: 'UNAUTHENTICATED',
    status.HTTP_403_FORBIDDEN: 'FORBIDDEN',
    status.HTTP_404_NOT_FOUND: 'NOT_FOUND',
}


def _error_body(code, message, fields=None):
    body = {'error': {'code': code, 'message': message}}
    if fields:
        body['error']['fields'] = fields
    return body


def api_exception_handler(exc, context):
    """
    DRF exception handler mapping domain and framework errors to the envelope.

    - DomainError subclasses carry their own code/status.
    - DatabaseError is reported as PersistenceFailure (500).
    - DRF exceptions keep their status and headers (WWW-Authenticate on 401).
    """
    view = context.get('view')
    location = view.__class__.__name__ if view else 'unknown'

    if isinstance(exc, DatabaseError):
        logger.error(
            'Persistence failure',
            exc_info=exc,
            extra={'event': 'persistence_failure', 'location': location}
        )
        exc = PersistenceFailure()

    if isinstance(exc, DomainError):
        metrics.api_errors_total.labels(code=exc.code, status=str(exc.status_code)).inc()
        if exc.status_code >= 500:
            metrics.exceptions_total.labels(
                exception_type=exc.__class__.__name__,
                location=location
            ).inc()
        return Response(_error_body(exc.code, exc.message), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None

    code = _STATUS_CODES.get(response.status_code) or getattr(exc, 'default_code', 'error').upper()
    if isinstance(exc, exceptions.ValidationError):
        response.data = _error_body('VALIDATION_ERROR', 'Invalid request', fields=response.data)
    else:
        detail = response.data.get('detail', '') if isinstance(response.data, dict) else response.data
        response.data = _error_body(code, str(detail))

    metrics.api_errors_total.labels(code=code, status=str(response.status_code)).inc()
    if response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error('API error', extra={'event': 'api_error', 'location': location, 'code': code})

    return response
