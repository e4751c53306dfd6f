"""
Project-wide DRF exception handler.

Every error leaves the API as ``{'error': <message>, 'code': <code>}``;
validation errors carry the field breakdown under ``details``. Storage
failures are reported as retryable 503s instead of bubbling up as 500s.
"""
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.db import DatabaseError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)


def _first_message(detail):
    if isinstance(detail, dict):
        for value in detail.values():
            return _first_message(value)
        return 'Invalid input.'
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else 'Invalid input.'
    return str(detail)


def api_exception_handler(exc, context):
    if isinstance(exc, Http404):
        exc = NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = PermissionDenied()

    response = exception_handler(exc, context)

    if response is None:
        if isinstance(exc, DatabaseError):
            set_rollback()
            view = context.get('view')
            logger.error(f"[STORAGE] {type(exc).__name__} in {type(view).__name__ if view else 'unknown view'}: {exc}")
            return Response(
                {
                    'error': 'Storage temporarily unavailable, please retry',
                    'code': 'storage_unavailable',
                    'retryable': True,
                },
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return None

    detail = getattr(exc, 'detail', None)
    payload = {
        'error': _first_message(detail) if detail is not None else str(exc),
        'code': getattr(exc, 'default_code', 'error'),
    }
    if isinstance(exc, ValidationError):
        payload['code'] = 'validation_error'
        payload['details'] = detail
    if getattr(exc, 'retryable', False):
        payload['retryable'] = True
    extra = getattr(exc, 'extra', None)
    if extra:
        payload.update(extra)

    response.data = payload
    return response
