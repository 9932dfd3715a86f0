"""API package exports."""

from fleetauth.api.auth import router as auth_router
from fleetauth.api.middleware import CorrelationIdMiddleware
from fleetauth.api.routes import router

__all__ = ["auth_router", "router", "CorrelationIdMiddleware"]
