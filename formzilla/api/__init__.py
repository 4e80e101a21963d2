"""
API module for Formzilla.

Provides FastAPI REST endpoints for:
- Stateless form analysis
- Document upload and download
- Profile and knowledge base management
- Analysis rounds and suggestion review
- Health checks
"""

from formzilla.api.app import app, create_app
from formzilla.api.middleware import SecurityHeadersMiddleware
from formzilla.api.models import (
    AnalyzeRequest,
    ErrorResponse,
    HealthResponse,
    ReviewResponse,
    RoundResponse,
)


__all__ = [
    # App
    "create_app",
    "app",
    # Middleware
    "SecurityHeadersMiddleware",
    # Models
    "AnalyzeRequest",
    "ErrorResponse",
    "HealthResponse",
    "ReviewResponse",
    "RoundResponse",
]
