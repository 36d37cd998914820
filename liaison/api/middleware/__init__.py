"""API middleware."""

from liaison.api.middleware.context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
