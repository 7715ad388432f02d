"""Structlog configuration and request logging middleware.

configure_structlog() routes structlog through the stdlib logging module and
merges contextvars into every event, so ids bound by the request middleware
(request_id) or by the pipeline (session_id) appear on all log lines emitted
while they are bound. Production renders JSON, other environments render
console output.

LoggingMiddleware logs every request with method, path, status_code,
duration_ms and request_id. Probe and scrape paths are logged at debug.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.meetcoach.config import Environment, Settings

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/health", "/health/ready", "/metrics"})


def configure_structlog(settings: Settings) -> None:
    """Configure stdlib logging and structlog processors for ``settings``."""
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request and echoes its request id.

    The caller's X-Request-ID is reused when present, otherwise a UUID is
    generated. The id is bound to structlog contextvars for the duration of
    the request and returned in the response headers.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        path = request.url.path
        start_time = time.monotonic()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                logger.error(
                    "http.request_failed",
                    method=request.method,
                    path=path,
                    duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                    exc_info=True,
                )
                raise

            response.headers[REQUEST_ID_HEADER] = request_id
            status_code = response.status_code

            if status_code >= 500:
                log_method = logger.error
            elif status_code >= 400:
                log_method = logger.warning
            elif path in QUIET_PATHS:
                log_method = logger.debug
            else:
                log_method = logger.info

            log_method(
                "http.request_completed",
                method=request.method,
                path=path,
                status_code=status_code,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            )

        return response
