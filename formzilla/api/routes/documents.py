"""
Document API routes.

Upload, list, download and delete PDF forms. Every route is scoped to the
authenticated user.
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile, status

from formzilla.api.dependencies import document_store, review_registry
from formzilla.api.models import DocumentListResponse, DocumentResponse
from formzilla.config import get_logger
from formzilla.review import ReviewRegistry
from formzilla.security import CurrentUser, get_current_user
from formzilla.storage import (
    DocumentRecord,
    DocumentStore,
    DocumentStoreError,
    DocumentValidationError,
)


logger = get_logger(__name__)
router = APIRouter()


def _to_response(record: DocumentRecord) -> DocumentResponse:
    return DocumentResponse(
        id=record.id,
        file_name=record.file_name,
        file_size=record.file_size,
        page_count=record.page_count,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.post(
    "/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a PDF form",
)
async def upload_document(
    http_request: Request,
    file: UploadFile = File(..., description="PDF form"),
    user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(document_store),
) -> DocumentResponse:
    """
    Upload a PDF form.

    Raises:
        HTTPException: 400 if the file is not an acceptable PDF.
    """
    request_id = getattr(http_request.state, "request_id", "")
    data = await file.read()

    try:
        record = store.save(user.user_id, file.filename or "document.pdf", data)
    except DocumentValidationError as e:
        logger.warning("document_upload_rejected", request_id=request_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except DocumentStoreError as e:
        logger.error("document_upload_failed", request_id=request_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store document",
        ) from e

    return _to_response(record)


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List documents",
)
async def list_documents(
    user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(document_store),
) -> DocumentListResponse:
    records = store.list_documents(user.user_id)
    return DocumentListResponse(
        documents=[_to_response(record) for record in records],
        total=len(records),
    )


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    summary="Get document metadata",
)
async def get_document(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(document_store),
) -> DocumentResponse:
    return _to_response(store.get(user.user_id, document_id))


@router.get(
    "/documents/{document_id}/file",
    summary="Download the PDF",
    response_class=Response,
)
async def download_document(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(document_store),
) -> Response:
    record = store.get(user.user_id, document_id)
    return Response(
        content=store.read_bytes(record),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(record.file_name)}",
        },
    )


@router.delete(
    "/documents/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document",
)
async def delete_document(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(document_store),
    registry: ReviewRegistry = Depends(review_registry),
) -> Response:
    """Delete a document and close any review open on it."""
    await registry.close(user.user_id, document_id)
    store.delete(user.user_id, document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
