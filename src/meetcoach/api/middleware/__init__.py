"""API middleware package."""

from src.meetcoach.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
