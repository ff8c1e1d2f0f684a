"""Middleware package for servo-adjust."""

from servo_adjust.middleware.request_logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
