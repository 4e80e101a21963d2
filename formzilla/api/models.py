"""
API request and response models.

Pydantic models for the HTTP surface of Formzilla.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Analysis
# =============================================================================


class AnalyzeRequest(BaseModel):
    """
    Request body for a direct analysis call.

    Attributes:
        images: Base64 encoded PNG page images, in page order.
        knowledge_base: Knowledge base text.
    """

    model_config = ConfigDict(populate_by_name=True)

    images: list[str] = Field(..., min_length=1, description="Base64 page images")
    knowledge_base: str = Field(
        ...,
        min_length=1,
        alias="knowledgeBase",
        description="Knowledge base text",
    )


class InferenceRecordResponse(BaseModel):
    """One field suggestion as returned to clients."""

    field_id: str = Field(..., description="Correlation token")
    value: str = Field(..., description="Suggested value")
    name: str = Field(..., description="Human-readable label")


class ErrorResponse(BaseModel):
    """Bare error body used by the analysis endpoint."""

    error: str = Field(..., description="Error message")


# =============================================================================
# Documents
# =============================================================================


class DocumentResponse(BaseModel):
    """Metadata of a stored document."""

    id: str = Field(..., description="Document identifier")
    file_name: str = Field(..., description="Original file name")
    file_size: int = Field(..., ge=0, description="Size in bytes")
    page_count: int = Field(0, ge=0, description="Number of pages")
    created_at: datetime = Field(..., description="Upload time")
    updated_at: datetime = Field(..., description="Last modification time")


class DocumentListResponse(BaseModel):
    """List of a user's documents."""

    documents: list[DocumentResponse] = Field(default_factory=list)
    total: int = Field(0, ge=0, description="Number of documents")


# =============================================================================
# Profile
# =============================================================================


class ProfileUpdateRequest(BaseModel):
    """Partial profile update. Omitted fields are left unchanged."""

    first_name: str | None = Field(None, max_length=200)
    last_name: str | None = Field(None, max_length=200)
    email: str | None = Field(None, max_length=320)
    phone_number: str | None = Field(None, max_length=50)
    address: str | None = Field(None, max_length=1000)
    birthday: str | None = Field(None, max_length=50)
    custom_fields: dict[str, str | int | float] | None = Field(
        None,
        description="Replaces the stored custom fields when given",
    )


class ProfileResponse(BaseModel):
    """A user's profile."""

    user_id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_number: str = ""
    address: str = ""
    birthday: str = ""
    custom_fields: dict[str, str] = Field(default_factory=dict)
    updated_at: datetime | None = None


class KnowledgeBaseResponse(BaseModel):
    """Knowledge base text assembled from a profile."""

    knowledge_base: str = Field(..., description="Newline separated 'Label: value' lines")
    entry_count: int = Field(0, ge=0, description="Number of entries")


# =============================================================================
# Review
# =============================================================================


class SuggestionResponse(BaseModel):
    """One suggestion under review."""

    token: str
    label: str
    original_field_name: str
    inferred_value: str
    current_value: str | bool | None = None
    state: str
    orphaned: bool = False


class ReviewResponse(BaseModel):
    """Review state of a document."""

    document_id: str
    state: str = Field(..., description="Round state")
    round_number: int = Field(0, ge=0)
    suggestions: list[SuggestionResponse] = Field(default_factory=list)


class RoundResponse(ReviewResponse):
    """Outcome of a completed analysis round."""

    filled: list[str] = Field(default_factory=list, description="Fields written")
    cleared: list[str] = Field(default_factory=list, description="Tokens blanked")
    failed: list[str] = Field(default_factory=list, description="Fields that rejected writes")
    orphan_count: int = Field(0, ge=0, description="Suggestions with unknown tokens")


class FieldValuesRequest(BaseModel):
    """Manual field edits."""

    values: dict[str, str | bool] = Field(..., min_length=1)


class AcceptResponse(BaseModel):
    """Result of accepting a suggestion."""

    token: str
    state: str
    persisted: bool = Field(..., description="Whether the knowledge base was updated")


class HighlightResponse(BaseModel):
    """Result of a highlight request."""

    token: str
    applied: bool = Field(..., description="False when no widget was found")


class ClearMarkersResponse(BaseModel):
    """Result of clearing leftover tokens."""

    cleared: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """
    Response model for health check.

    Attributes:
        status: Overall health status.
        version: API version.
        timestamp: Current timestamp.
        components: Component health status.
    """

    status: str = Field(..., description="Overall health status")
    version: str = Field(..., description="API version")
    timestamp: str = Field(..., description="Current timestamp")
    components: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Component health",
    )
