"""
FastAPI dependencies.

Module-level singletons for the stores, the vision client and the review
registry. Tests replace them through app.dependency_overrides.
"""

import threading

from formzilla.client import VisionAnalysisClient
from formzilla.config import get_logger
from formzilla.knowledge import ProfileStore, get_profile_store
from formzilla.review import ReviewRegistry
from formzilla.storage import DocumentStore, get_document_store


logger = get_logger(__name__)

_vision_client: VisionAnalysisClient | None = None
_review_registry: ReviewRegistry | None = None
_lock = threading.Lock()


def document_store() -> DocumentStore:
    return get_document_store()


def profile_store() -> ProfileStore:
    return get_profile_store()


def vision_client() -> VisionAnalysisClient:
    global _vision_client

    with _lock:
        if _vision_client is None:
            _vision_client = VisionAnalysisClient()
    return _vision_client


def review_registry() -> ReviewRegistry:
    global _review_registry

    analyzer = vision_client()
    with _lock:
        if _review_registry is None:
            _review_registry = ReviewRegistry(
                document_store=get_document_store(),
                profile_store=get_profile_store(),
                analyzer=analyzer,
            )
    return _review_registry


async def shutdown_dependencies() -> None:
    """Close open reviews and the vision client, if they were created."""
    global _vision_client, _review_registry

    if _review_registry is not None:
        await _review_registry.close_all()
        _review_registry = None
    if _vision_client is not None:
        await _vision_client.close()
        _vision_client = None
    logger.info("dependencies_shutdown")
