"""
FastAPI application for Formzilla.

Wires the routers, request tracking, security headers and the exception
handlers that turn domain errors into the standard error response.
"""

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from formzilla.api.dependencies import shutdown_dependencies
from formzilla.api.middleware import SecurityHeadersMiddleware
from formzilla.api.routes import (
    analyze_router,
    documents_router,
    health_router,
    profile_router,
    review_router,
)
from formzilla.config import configure_logging, get_logger, get_settings
from formzilla.review import ReviewNotActiveError, RoundInProgressError, SuggestionNotFoundError
from formzilla.storage import DocumentNotFoundError


logger = get_logger(__name__)


API_VERSION = "1.0.0"
API_TITLE = "Formzilla API"
API_DESCRIPTION = """
## Formzilla API

Fills PDF forms from a personal knowledge base with a vision model.

### Workflow

1. Keep your details in the profile (`/profile`).
2. Upload a PDF form (`/documents`).
3. Start a round (`/documents/{id}/rounds`). Fields are tagged, rendered,
   analyzed and filled.
4. Review the suggestions: hide them, highlight their widgets, or accept
   them into your knowledge base.

The stateless `/analyze` endpoint runs the model on pre-rendered pages.

### Authentication

Bearer token: `Authorization: Bearer <token>`

### Error Handling

All errors return a standard error response with:
- `error`: Error type
- `message`: Human-readable message
- `request_id`: Request tracking ID
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Configures logging on startup and closes open reviews and the
    inference client on shutdown.
    """
    configure_logging()
    settings = get_settings()
    logger.info(
        "api_startup",
        version=API_VERSION,
        environment=settings.app_env.value,
        vision_configured=settings.vision.is_configured,
    )

    yield

    logger.info("api_shutdown")
    await shutdown_dependencies()


def _error_response(request: Request, status_code: int, error: str, message: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "request_id": request_id,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error_response(request, 400, "validation_error", str(exc))

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(request: Request, exc: FileNotFoundError) -> JSONResponse:
        return _error_response(request, 404, "file_not_found", str(exc))

    @app.exception_handler(PermissionError)
    async def permission_error_handler(request: Request, exc: PermissionError) -> JSONResponse:
        return _error_response(request, 403, "permission_denied", str(exc))

    @app.exception_handler(DocumentNotFoundError)
    async def document_not_found_handler(
        request: Request,
        exc: DocumentNotFoundError,
    ) -> JSONResponse:
        return _error_response(request, 404, "document_not_found", str(exc))

    @app.exception_handler(SuggestionNotFoundError)
    async def suggestion_not_found_handler(
        request: Request,
        exc: SuggestionNotFoundError,
    ) -> JSONResponse:
        return _error_response(request, 404, "suggestion_not_found", str(exc.args[0]) if exc.args else "")

    @app.exception_handler(RoundInProgressError)
    async def round_in_progress_handler(
        request: Request,
        exc: RoundInProgressError,
    ) -> JSONResponse:
        return _error_response(request, 409, "round_in_progress", str(exc))

    @app.exception_handler(ReviewNotActiveError)
    async def review_not_active_handler(
        request: Request,
        exc: ReviewNotActiveError,
    ) -> JSONResponse:
        return _error_response(request, 409, "review_not_active", str(exc))


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    settings = get_settings()

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    cors_origins = settings.api.cors_origins
    if not cors_origins:
        cors_origins = ["http://localhost:3000", "http://localhost:8000"]
        logger.warning("cors_origins_not_configured", using_defaults=cors_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    @app.middleware("http")
    async def request_middleware(request: Request, call_next: Any) -> Response:
        """Add request ID and timing to all requests."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        start_time = time.perf_counter()
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_error",
                request_id=request_id,
                path=request.url.path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return _error_response(request, 500, "internal_error", "An unexpected error occurred")

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"

        logger.info(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response

    _register_exception_handlers(app)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analyze_router, prefix="/api/v1", tags=["Analyze"])
    app.include_router(documents_router, prefix="/api/v1", tags=["Documents"])
    app.include_router(profile_router, prefix="/api/v1", tags=["Profile"])
    app.include_router(review_router, prefix="/api/v1", tags=["Review"])

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {
            "message": "Formzilla API",
            "version": API_VERSION,
            "docs": "/docs",
        }

    return app


# Create default app instance
app = create_app()
