"""
Health check API routes.

Provides endpoints for service health, liveness and readiness probes.
"""

import os
import platform
import sys
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from formzilla.api.dependencies import vision_client
from formzilla.api.models import HealthResponse
from formzilla.client import VisionAnalysisClient
from formzilla.config import get_logger, get_settings


logger = get_logger(__name__)
router = APIRouter()

API_VERSION = "1.0.0"


def _check_storage_health() -> dict[str, Any]:
    """Check that the data directory is writable."""
    data_dir = get_settings().storage.data_dir
    if data_dir.is_dir() and os.access(data_dir, os.W_OK):
        return {"status": "healthy", "path": str(data_dir)}
    return {"status": "unhealthy", "path": str(data_dir), "error": "not writable"}


async def _check_vision_health(client: VisionAnalysisClient) -> dict[str, Any]:
    """Check the inference endpoint."""
    settings = get_settings().vision
    if not settings.is_configured:
        return {"status": "not_configured", "model": settings.model}

    reachable = await client.health_check()
    return {
        "status": "healthy" if reachable else "unhealthy",
        "model": settings.model,
        "connected": reachable,
    }


def _get_system_info() -> dict[str, Any]:
    return {
        "python_version": sys.version.split()[0],
        "platform": platform.platform(),
    }


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and its dependencies.",
)
async def health_check(
    deep: bool = False,
    client: VisionAnalysisClient = Depends(vision_client),
) -> HealthResponse:
    """
    Health check endpoint.

    Args:
        deep: Whether to probe the inference endpoint.
        client: Vision analysis client.

    Returns:
        Health status of the API and dependencies.
    """
    components: dict[str, dict[str, Any]] = {
        "api": {
            "status": "healthy",
            "version": API_VERSION,
        },
        "storage": _check_storage_health(),
    }

    if deep:
        components["vision"] = await _check_vision_health(client)
        components["system"] = _get_system_info()

    # "not_configured" is acceptable in development
    all_healthy = all(
        c.get("status") in ("healthy", "not_configured")
        for c in components.values()
        if "status" in c
    )

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        version=API_VERSION,
        timestamp=datetime.now(UTC).isoformat(),
        components=components,
    )


@router.get(
    "/health/live",
    summary="Liveness probe",
)
async def liveness() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/health/ready",
    summary="Readiness probe",
)
async def readiness() -> dict[str, Any]:
    """
    Readiness probe.

    Ready once storage is writable and the inference endpoint has a key.
    """
    settings = get_settings()
    issues: list[str] = []

    if _check_storage_health()["status"] != "healthy":
        issues.append("Data directory is not writable")
    if not settings.vision.is_configured:
        issues.append("No inference API key configured")

    if issues:
        return {"status": "not_ready", "issues": issues}
    return {"status": "ready"}
