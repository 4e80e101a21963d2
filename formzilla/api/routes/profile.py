"""
Profile API routes.

Read and update the caller's profile and preview the knowledge base text
built from it.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from formzilla.api.dependencies import profile_store
from formzilla.api.models import KnowledgeBaseResponse, ProfileResponse, ProfileUpdateRequest
from formzilla.config import get_logger
from formzilla.knowledge import (
    PersistenceFailed,
    ProfileStore,
    UserProfile,
    build_knowledge_base,
    knowledge_base_entries,
)
from formzilla.security import CurrentUser, get_current_user


logger = get_logger(__name__)
router = APIRouter()


def _to_response(profile: UserProfile) -> ProfileResponse:
    return ProfileResponse.model_validate(profile.model_dump(exclude={"created_at"}))


@router.get("/profile", response_model=ProfileResponse, summary="Get profile")
async def get_profile(
    user: CurrentUser = Depends(get_current_user),
    store: ProfileStore = Depends(profile_store),
) -> ProfileResponse:
    profile = store.get(user.user_id)
    if profile is None:
        return ProfileResponse(user_id=user.user_id, email=user.email or "")
    return _to_response(profile)


@router.put("/profile", response_model=ProfileResponse, summary="Update profile")
async def update_profile(
    request: ProfileUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    store: ProfileStore = Depends(profile_store),
) -> ProfileResponse:
    """
    Update the caller's profile, creating it on first use.

    Raises:
        HTTPException: 500 if the profile cannot be saved.
    """
    changes = request.model_dump(exclude_none=True)
    try:
        profile = store.update(user.user_id, changes)
    except PersistenceFailed as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save profile",
        ) from e

    logger.info("profile_updated", user_id=user.user_id, fields=sorted(changes))
    return _to_response(profile)


@router.get(
    "/profile/knowledge-base",
    response_model=KnowledgeBaseResponse,
    summary="Get knowledge base text",
)
async def get_knowledge_base(
    user: CurrentUser = Depends(get_current_user),
    store: ProfileStore = Depends(profile_store),
) -> KnowledgeBaseResponse:
    profile = store.get(user.user_id)
    return KnowledgeBaseResponse(
        knowledge_base=build_knowledge_base(profile),
        entry_count=len(knowledge_base_entries(profile)),
    )
