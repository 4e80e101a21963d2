"""
API route modules.

Provides FastAPI routers for different API endpoints.
"""

from formzilla.api.routes.analyze import router as analyze_router
from formzilla.api.routes.documents import router as documents_router
from formzilla.api.routes.health import router as health_router
from formzilla.api.routes.profile import router as profile_router
from formzilla.api.routes.review import router as review_router


__all__ = [
    "analyze_router",
    "documents_router",
    "health_router",
    "profile_router",
    "review_router",
]
