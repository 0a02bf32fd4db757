"""
Core middleware.
"""

from collections.abc import Callable
from uuid import uuid4

from django.http import HttpRequest, HttpResponse

from apps.core.logging import bind_contextvars, clear_contextvars

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIdMiddleware:
    """
    Binds a correlation ID to the structlog context for the lifetime of a request.

    Honors an incoming ``X-Correlation-ID`` header and echoes it on the response,
    so notification and charge logs from one request can be joined.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid4())

        clear_contextvars()
        bind_contextvars(
            correlation_id=correlation_id,
            **{
                "http.method": request.method,
                "http.url_details.path": request.path,
            },
        )
        try:
            response = self.get_response(request)
        finally:
            clear_contextvars()

        response[CORRELATION_HEADER] = correlation_id
        return response
