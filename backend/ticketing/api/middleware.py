"""
Per-request log context for ticket and queue traffic.

Queue clients identify themselves with X-Session-ID; binding it next to the
request id lets one grep follow a session from join to promotion to expiry.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from ticketing.core.logging import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds request_id (the caller's X-Request-ID, or a fresh one) and the
    queue session and user to structlog, then logs request_completed or
    request_failed with the duration. Domain errors such as NoCapacity are
    already rendered by the exception handler and log as completed.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        session_id = request.headers.get("x-session-id")
        if session_id:
            structlog.contextvars.bind_contextvars(queue_session=session_id)
        user_id = request.headers.get("x-user-id")
        if user_id:
            structlog.contextvars.bind_contextvars(queue_user=user_id)

        try:
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms}ms"

            return response

        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.error(
                "request_failed",
                error=str(e),
                duration_ms=duration_ms,
            )
            raise
