"""
Analysis API route.

Direct access to the vision model: page images plus knowledge base in,
field suggestions out. Failures answer with a bare {"error": ...} body.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from formzilla.api.dependencies import vision_client
from formzilla.api.models import AnalyzeRequest, ErrorResponse, InferenceRecordResponse
from formzilla.client import AnalysisFailed, VisionAnalysisClient
from formzilla.config import get_logger
from formzilla.security import CurrentUser, get_current_user


logger = get_logger(__name__)
router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "/analyze",
    response_model=list[InferenceRecordResponse],
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Analyze page images",
    description="Ask the vision model to map idx_ tokens on the pages to knowledge base values.",
)
async def analyze(
    http_request: Request,
    user: CurrentUser = Depends(get_current_user),
    client: VisionAnalysisClient = Depends(vision_client),
) -> Any:
    """
    Run one analysis request.

    Args:
        http_request: HTTP request object.
        user: Authenticated caller.
        client: Vision analysis client.

    Returns:
        List of {field_id, value, name} records, or {"error"} on failure.
    """
    request_id = getattr(http_request.state, "request_id", "")

    try:
        body = AnalyzeRequest.model_validate(await http_request.json())
    except (ValueError, ValidationError) as e:
        logger.warning("analyze_invalid_body", request_id=request_id, error=str(e))
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request body")

    try:
        records = await client.analyze_base64(body.images, body.knowledge_base)
    except ValueError as e:
        logger.warning("analyze_invalid_image", request_id=request_id, error=str(e))
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request body")
    except AnalysisFailed as e:
        logger.error(
            "analyze_failed",
            request_id=request_id,
            user_id=user.user_id,
            error=str(e),
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Analysis failed")

    logger.info(
        "analyze_complete",
        request_id=request_id,
        user_id=user.user_id,
        page_count=len(body.images),
        record_count=len(records),
    )
    return [record.model_dump() for record in records]
