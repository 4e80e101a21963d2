"""
User profile model and knowledge base assembly.

The knowledge base handed to the vision model is plain text: one
"Label: value" line per known fact, standard personal fields first and
free-form custom fields after them.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


# (label, attribute) pairs rendered ahead of the custom fields
STANDARD_FIELDS: list[tuple[str, str]] = [
    ("First Name", "first_name"),
    ("Last Name", "last_name"),
    ("Birthday", "birthday"),
    ("Phone Number", "phone_number"),
    ("Address", "address"),
    ("Email", "email"),
]


class UserProfile(BaseModel):
    """Personal data a user keeps for form filling."""

    user_id: str = Field(..., min_length=1, description="Owner of the profile")
    first_name: str = Field(default="", description="Given name")
    last_name: str = Field(default="", description="Family name")
    email: str = Field(default="", description="Contact email")
    phone_number: str = Field(default="", description="Contact phone number")
    address: str = Field(default="", description="Postal address")
    birthday: str = Field(default="", description="Date of birth")
    custom_fields: dict[str, str] = Field(
        default_factory=dict,
        description="Free-form label to value entries, unique by label",
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("custom_fields", mode="before")
    @classmethod
    def coerce_custom_values(cls, v: Any) -> Any:
        """Store numeric custom values as text."""
        if isinstance(v, dict):
            return {
                str(key).strip(): "" if value is None else str(value)
                for key, value in v.items()
                if str(key).strip()
            }
        return v


def knowledge_base_entries(profile: UserProfile | None) -> list[tuple[str, str]]:
    """List the (label, value) pairs of a profile, skipping empty values."""
    if profile is None:
        return []

    entries = [
        (label, getattr(profile, attribute))
        for label, attribute in STANDARD_FIELDS
        if getattr(profile, attribute)
    ]
    entries.extend((label, value) for label, value in profile.custom_fields.items() if value)
    return entries


def build_knowledge_base(profile: UserProfile | None) -> str:
    """
    Render a profile as knowledge base text.

    Args:
        profile: Profile to render, or None for an anonymous user.

    Returns:
        Newline separated "Label: value" lines.
    """
    return "\n".join(f"{label}: {value}" for label, value in knowledge_base_entries(profile))
