"""
Custom middleware for request logging
"""
import logging
import time

logger = logging.getLogger(__name__)


class RequestLogMiddleware:
    """
    Log one line per API request with method, path, status and duration.
    Non-API paths (admin, static) are passed through silently.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not request.path.startswith('/api/'):
            return self.get_response(request)

        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = (time.monotonic() - started) * 1000

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            f"[REQUEST] {request.method} {request.path} -> {response.status_code} ({elapsed_ms:.1f} ms)"
        )
        return response
