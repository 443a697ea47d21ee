"""Request-scoped logging for the API."""

import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from modelnest.utils.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
EVENT_STREAM_TYPE = "text/event-stream"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every log line of a request with its request id.

    The id is bound to structlog's context variables, so deployment runs
    started by the request carry it too. For event streams the completion
    entry marks when the stream opened; the stream logs its own close.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        logger.info("request.started")
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        streaming = response.headers.get("content-type", "").startswith(EVENT_STREAM_TYPE)
        logger.info(
            "request.stream_opened" if streaming else "request.completed",
            status_code=response.status_code,
            duration_ms=elapsed_ms,
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
