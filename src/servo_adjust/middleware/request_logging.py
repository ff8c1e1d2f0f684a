"""Request logging middleware for FastAPI.

Logs one structured event per HTTP request with method, path, status code and
duration.

Usage:
    app.add_middleware(RequestLoggingMiddleware)
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from servo_adjust.logger import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware emitting a log event for every handled request.

    Args:
        app: The ASGI application
        skip_paths: Paths that are not logged (health checks)
    """

    def __init__(self, app: ASGIApp, skip_paths: tuple[str, ...] = ("/healthz",)) -> None:
        super().__init__(app)
        self.skip_paths = skip_paths

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        """Time the request and log its outcome.

        Args:
            request: The incoming request
            call_next: The next middleware/handler in the chain

        Returns:
            Response from the handler
        """
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request failed", method=request.method, path=request.url.path)
            raise

        if request.url.path not in self.skip_paths:
            logger.info(
                "request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
        return response
