"""API package exports."""

from gatehouse.api.middleware import CorrelationIdMiddleware
from gatehouse.api.routes import router

__all__ = ["router", "CorrelationIdMiddleware"]
