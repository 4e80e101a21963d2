"""
Vision model client module.

Provides the schema-constrained analysis client and its wire models.
"""

from formzilla.client.models import InferenceRecord, RESPONSE_JSON_SCHEMA
from formzilla.client.vision_client import (
    AnalysisFailed,
    VisionAnalysisClient,
    VisionClientError,
    extract_json,
    parse_inference_response,
)


__all__ = [
    "VisionAnalysisClient",
    "InferenceRecord",
    "RESPONSE_JSON_SCHEMA",
    "VisionClientError",
    "AnalysisFailed",
    "extract_json",
    "parse_inference_response",
]
