"""
Review API routes.

Start analysis rounds on a stored document and act on the resulting
suggestions: hide, accept into the knowledge base, highlight, edit fields
and clear leftover tokens.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from formzilla.api.dependencies import profile_store, review_registry
from formzilla.api.models import (
    AcceptResponse,
    ClearMarkersResponse,
    FieldValuesRequest,
    HighlightResponse,
    ReviewResponse,
    RoundResponse,
    SuggestionResponse,
)
from formzilla.client import AnalysisFailed
from formzilla.config import get_logger
from formzilla.document import DocumentUnavailable, FieldWriteFailed, PDFValidationError
from formzilla.knowledge import ProfileStore, build_knowledge_base
from formzilla.review import (
    OpenDocument,
    ReviewController,
    ReviewRegistry,
    RoundInProgressError,
)
from formzilla.security import CurrentUser, get_current_user


logger = get_logger(__name__)
router = APIRouter()


def _open(registry: ReviewRegistry, user: CurrentUser, document_id: str) -> OpenDocument:
    try:
        return registry.open(user.user_id, document_id)
    except PDFValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Document cannot be opened",
        ) from e


def _review_response(document_id: str, controller: ReviewController) -> ReviewResponse:
    session = controller.session
    suggestions = session.visible_suggestions() if session is not None else []
    return ReviewResponse(
        document_id=document_id,
        state=controller.state.value,
        round_number=controller.round_number,
        suggestions=[SuggestionResponse(**s.to_dict()) for s in suggestions],
    )


@router.post(
    "/documents/{document_id}/rounds",
    response_model=RoundResponse,
    summary="Run an analysis round",
)
async def start_round(
    document_id: str,
    http_request: Request,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
    profiles: ProfileStore = Depends(profile_store),
) -> RoundResponse:
    """
    Mark, render, analyze and fill the document.

    Raises:
        HTTPException: 409 if a round is in flight or the document is not
            loaded, 502 if the analysis fails.
    """
    request_id = getattr(http_request.state, "request_id", "")
    opened = _open(registry, user, document_id)
    knowledge_base = build_knowledge_base(profiles.get(user.user_id))

    try:
        await opened.controller.start_round(knowledge_base)
    except RoundInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except DocumentUnavailable as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Document is not ready for analysis",
        ) from e
    except AnalysisFailed as e:
        logger.error("round_request_failed", request_id=request_id, document_id=document_id)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Analysis failed",
        ) from e

    registry.persist(user.user_id, document_id)

    result = opened.controller.last_result
    review = _review_response(document_id, opened.controller)
    return RoundResponse(
        **review.model_dump(),
        filled=result.filled if result else [],
        cleared=result.cleared if result else [],
        failed=result.failed if result else [],
        orphan_count=result.orphan_count if result else 0,
    )


@router.get(
    "/documents/{document_id}/review",
    response_model=ReviewResponse,
    summary="Get review state",
)
async def get_review(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
) -> ReviewResponse:
    opened = _open(registry, user, document_id)
    await opened.controller.refresh_current_values()
    return _review_response(document_id, opened.controller)


@router.put(
    "/documents/{document_id}/fields",
    response_model=ReviewResponse,
    summary="Edit field values",
)
async def set_field_values(
    document_id: str,
    request: FieldValuesRequest,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
) -> ReviewResponse:
    """
    Write values typed by the user.

    Raises:
        HTTPException: 409 during a round, 422 if a field rejects the value.
    """
    opened = _open(registry, user, document_id)
    try:
        await opened.controller.set_field_values(request.values)
    except RoundInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except FieldWriteFailed as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    registry.persist(user.user_id, document_id)
    return _review_response(document_id, opened.controller)


@router.post(
    "/documents/{document_id}/review/{token}/hide",
    response_model=ReviewResponse,
    summary="Hide a suggestion",
)
async def hide_suggestion(
    document_id: str,
    token: str,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
) -> ReviewResponse:
    opened = _open(registry, user, document_id)
    opened.controller.hide(token)
    return _review_response(document_id, opened.controller)


@router.post(
    "/documents/{document_id}/review/{token}/accept",
    response_model=AcceptResponse,
    summary="Accept a suggestion into the knowledge base",
)
async def accept_suggestion(
    document_id: str,
    token: str,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
) -> AcceptResponse:
    opened = _open(registry, user, document_id)
    persisted = await opened.controller.accept(token)
    state = opened.controller.session.get(token).state
    return AcceptResponse(token=token, state=state.value, persisted=persisted)


@router.post(
    "/documents/{document_id}/review/{token}/highlight",
    response_model=HighlightResponse,
    summary="Highlight a suggestion's widget",
)
async def highlight_suggestion(
    document_id: str,
    token: str,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
) -> HighlightResponse:
    opened = _open(registry, user, document_id)
    return HighlightResponse(token=token, applied=await opened.controller.highlight(token))


@router.post(
    "/documents/{document_id}/review/{token}/unhighlight",
    response_model=HighlightResponse,
    summary="Restore a suggestion's widget style",
)
async def unhighlight_suggestion(
    document_id: str,
    token: str,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
) -> HighlightResponse:
    opened = _open(registry, user, document_id)
    return HighlightResponse(token=token, applied=await opened.controller.unhighlight(token))


@router.post(
    "/documents/{document_id}/markers/clear",
    response_model=ClearMarkersResponse,
    summary="Clear leftover tokens",
)
async def clear_markers(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
) -> ClearMarkersResponse:
    opened = _open(registry, user, document_id)
    try:
        report = await opened.controller.clear_markers()
    except RoundInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    registry.persist(user.user_id, document_id)
    return ClearMarkersResponse(cleared=report.applied, failed=report.failed)


@router.delete(
    "/documents/{document_id}/review",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close the review",
)
async def close_review(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    registry: ReviewRegistry = Depends(review_registry),
) -> Response:
    await registry.close(user.user_id, document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
