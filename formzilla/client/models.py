"""
Wire models for vision model responses.

The model must answer with a list of {field_id, value, name} objects. Each
element is validated strictly: every key is required and must be a string.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class InferenceRecord(BaseModel):
    """One field suggestion returned by the vision model."""

    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")

    field_id: str = Field(..., description="Correlation token, e.g. idx_3")
    value: str = Field(..., description="Suggested value, empty when unknown")
    name: str = Field(..., description="Human-readable label for the field")


INFERENCE_LIST_ADAPTER = TypeAdapter(list[InferenceRecord])

# Schema sent with the request; wrapped in an object because structured
# output modes require a top-level object.
RESPONSE_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "fields": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "field_id": {"type": "string"},
                    "value": {"type": "string"},
                    "name": {"type": "string"},
                },
                "required": ["field_id", "value", "name"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["fields"],
    "additionalProperties": False,
}
