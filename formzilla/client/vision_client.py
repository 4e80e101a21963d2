"""
Vision analysis client.

Sends every rendered page of a marked form plus the user's knowledge base
to an OpenAI-compatible vision model in a single request, with retry logic
for transient failures and strict validation of the structured answer.
"""

import base64
import binascii
import json
import re
import time
import uuid
from collections.abc import Sequence
from enum import Enum
from typing import Any

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    OpenAIError,
    RateLimitError,
)
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from formzilla.client.models import (
    INFERENCE_LIST_ADAPTER,
    RESPONSE_JSON_SCHEMA,
    InferenceRecord,
)
from formzilla.config import get_logger, get_settings
from formzilla.prompts import FORM_FILLING_SYSTEM_PROMPT, build_form_filling_user_prompt


logger = get_logger(__name__)

DATA_URI_PREFIX = "data:image/png;base64,"
_DATA_URI_RE = re.compile(r"^data:image/[a-z+.-]+;base64,", re.IGNORECASE)

_JSON_PATTERNS = [
    re.compile(r"```json\s*([\s\S]*?)\s*```", re.MULTILINE),
    re.compile(r"```\s*([\s\S]*?)\s*```", re.MULTILINE),
]


class VisionClientError(Exception):
    """Base exception for vision client errors."""


class AnalysisFailed(VisionClientError):
    """Raised when a round's analysis cannot produce a valid answer."""


class MessageRole(str, Enum):
    """Chat message roles."""

    SYSTEM = "system"
    USER = "user"


def extract_json(content: str) -> Any | None:
    """
    Extract a JSON document from model output.

    Handles bare JSON, markdown code fences and JSON embedded in text.

    Args:
        content: Raw response content.

    Returns:
        Parsed JSON value, or None if nothing parses.
    """
    if not content:
        return None

    content = content.strip()
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    for pattern in _JSON_PATTERNS:
        for match in pattern.findall(content):
            try:
                return json.loads(match.strip())
            except json.JSONDecodeError:
                continue

    # Outermost container first: whichever bracket opens earliest
    starts = [(content.find(opener), closer) for opener, closer in (("{", "}"), ("[", "]"))]
    for start, closer in sorted(s for s in starts if s[0] >= 0):
        end = content.rfind(closer) + 1
        if end > start:
            try:
                return json.loads(content[start:end])
            except json.JSONDecodeError:
                continue

    logger.debug("json_extraction_failed", content_length=len(content))
    return None


def parse_inference_response(content: str) -> list[InferenceRecord]:
    """
    Parse and validate the model's answer.

    Accepts either a bare array of records or an object wrapping the array
    under "fields". Any deviation from the record schema fails the whole
    response.

    Raises:
        AnalysisFailed: If the content is not JSON or violates the schema.
    """
    payload = extract_json(content)
    if payload is None:
        raise AnalysisFailed("Model response is not valid JSON")

    if isinstance(payload, dict):
        if "fields" not in payload:
            raise AnalysisFailed("Model response object has no 'fields' key")
        payload = payload["fields"]

    if not isinstance(payload, list):
        raise AnalysisFailed(f"Model response must be a list, got {type(payload).__name__}")

    try:
        return INFERENCE_LIST_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise AnalysisFailed(
            f"Model response violates schema ({e.error_count()} errors)"
        ) from e


def to_data_uri(image: bytes) -> str:
    """Encode PNG bytes as a data URI."""
    return DATA_URI_PREFIX + base64.b64encode(image).decode("ascii")


def normalize_base64_image(image_b64: str) -> str:
    """
    Turn a base64 string (optionally already a data URI) into a PNG data URI.

    Raises:
        ValueError: If the payload is not valid base64.
    """
    payload = _DATA_URI_RE.sub("", image_b64.strip())
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Image is not valid base64") from e
    if not payload:
        raise ValueError("Image is empty")
    return DATA_URI_PREFIX + payload


class VisionAnalysisClient:
    """
    Client for schema-constrained form analysis requests.

    Example:
        client = VisionAnalysisClient()
        records = await client.analyze(page_images, knowledge_base)
        for record in records:
            print(record.field_id, record.name, record.value)
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout: int | None = None,
        max_retries: int | None = None,
        retry_min_wait: int | None = None,
        retry_max_wait: int | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """
        Initialize the vision client.

        Args:
            base_url: OpenAI-compatible endpoint URL. Defaults to settings.
            api_key: Endpoint API key. Defaults to settings.
            model: Model identifier. Defaults to settings.
            max_tokens: Max tokens in the answer. Defaults to settings.
            temperature: Sampling temperature. Defaults to settings.
            timeout: Per-request timeout in seconds. Defaults to settings.
            max_retries: Retries for transient failures. Defaults to settings.
            retry_min_wait: Minimum retry wait in seconds. Defaults to settings.
            retry_max_wait: Maximum retry wait in seconds. Defaults to settings.
            client: Preconfigured AsyncOpenAI client.
        """
        settings = get_settings().vision

        self._base_url = base_url or str(settings.base_url)
        self._api_key = api_key if api_key is not None else settings.api_key.get_secret_value()
        self._model = model or settings.model
        self._max_tokens = max_tokens or settings.max_tokens
        self._temperature = temperature if temperature is not None else settings.temperature
        self._timeout = timeout or settings.timeout
        self._max_retries = max_retries if max_retries is not None else settings.max_retries
        self._retry_min_wait = retry_min_wait or settings.retry_min_wait
        self._retry_max_wait = retry_max_wait or settings.retry_max_wait

        self._client = client
        self._owns_client = client is None

        logger.info(
            "vision_client_initialized",
            base_url=self._base_url,
            model=self._model,
            timeout=self._timeout,
            max_retries=self._max_retries,
        )

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                base_url=self._base_url,
                api_key=self._api_key or "not-configured",
                timeout=float(self._timeout),
                max_retries=0,  # retries are handled by tenacity
            )
        return self._client

    def _build_retryer(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(
                multiplier=1,
                min=self._retry_min_wait,
                max=self._retry_max_wait,
            ),
            retry=retry_if_exception_type(
                (APIConnectionError, APITimeoutError, RateLimitError)
            ),
            before_sleep=self._log_retry,
            reraise=True,
        )

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "vision_request_retry",
            attempt=retry_state.attempt_number,
            error_type=type(exception).__name__ if exception else None,
            error=str(exception) if exception else None,
        )

    def _build_messages(self, image_uris: Sequence[str], knowledge_base: str) -> list[dict[str, Any]]:
        user_content: list[dict[str, Any]] = [
            {
                "type": "text",
                "text": build_form_filling_user_prompt(knowledge_base, len(image_uris)),
            }
        ]
        user_content.extend(
            {"type": "image_url", "image_url": {"url": uri}} for uri in image_uris
        )
        return [
            {"role": MessageRole.SYSTEM.value, "content": FORM_FILLING_SYSTEM_PROMPT},
            {"role": MessageRole.USER.value, "content": user_content},
        ]

    async def _create_completion(self, messages: list[dict[str, Any]]) -> Any:
        client = self._get_client()
        return await client.chat.completions.create(
            model=self._model,
            messages=messages,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "form_fields",
                    "strict": True,
                    "schema": RESPONSE_JSON_SCHEMA,
                },
            },
        )

    async def analyze(self, images: Sequence[bytes], knowledge_base: str) -> list[InferenceRecord]:
        """
        Ask the model to resolve the tokens visible on the pages.

        Args:
            images: PNG bytes of every page, in page order.
            knowledge_base: Knowledge base text.

        Returns:
            Validated inference records.

        Raises:
            ValueError: If no images are supplied.
            AnalysisFailed: On endpoint errors, timeouts or schema violations.
        """
        return await self._analyze_uris([to_data_uri(image) for image in images], knowledge_base)

    async def analyze_base64(
        self,
        images_b64: Sequence[str],
        knowledge_base: str,
    ) -> list[InferenceRecord]:
        """
        Same as analyze, for base64 encoded page images.

        Raises:
            ValueError: If an image is not valid base64 or none are supplied.
            AnalysisFailed: On endpoint errors, timeouts or schema violations.
        """
        return await self._analyze_uris(
            [normalize_base64_image(image) for image in images_b64], knowledge_base
        )

    async def _analyze_uris(
        self,
        image_uris: Sequence[str],
        knowledge_base: str,
    ) -> list[InferenceRecord]:
        if not image_uris:
            raise ValueError("At least one page image is required")

        request_id = str(uuid.uuid4())
        messages = self._build_messages(image_uris, knowledge_base)
        start_time = time.perf_counter()

        logger.info(
            "vision_request_started",
            request_id=request_id,
            model=self._model,
            page_count=len(image_uris),
            knowledge_base=knowledge_base,
        )

        try:
            response = await self._build_retryer()(self._create_completion, messages)
        except APITimeoutError as e:
            logger.error("vision_request_timeout", request_id=request_id, timeout=self._timeout)
            raise AnalysisFailed(f"Inference timed out after {self._timeout}s") from e
        except APIConnectionError as e:
            logger.error("vision_request_connection_failed", request_id=request_id, error=str(e))
            raise AnalysisFailed(f"Connection to inference endpoint failed: {e}") from e
        except APIStatusError as e:
            logger.error(
                "vision_request_rejected",
                request_id=request_id,
                status_code=e.status_code,
                error=str(e),
            )
            raise AnalysisFailed(f"Inference endpoint returned {e.status_code}") from e
        except OpenAIError as e:
            logger.error("vision_request_failed", request_id=request_id, error=str(e))
            raise AnalysisFailed(f"Inference request failed: {e}") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if not response.choices:
            raise AnalysisFailed("Model returned no choices")
        content = response.choices[0].message.content or ""

        try:
            records = parse_inference_response(content)
        except AnalysisFailed as e:
            logger.error(
                "vision_response_invalid",
                request_id=request_id,
                latency_ms=latency_ms,
                error=str(e),
            )
            raise

        logger.info(
            "vision_request_complete",
            request_id=request_id,
            latency_ms=latency_ms,
            record_count=len(records),
            tokens=response.usage.total_tokens if response.usage else 0,
        )
        return records

    async def health_check(self) -> bool:
        """
        Check whether the inference endpoint answers a model listing.

        Returns:
            True if the endpoint responds with 200, False otherwise.
        """
        url = self._base_url.rstrip("/") + "/models"
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            async with httpx.AsyncClient(timeout=5.0) as http_client:
                response = await http_client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("vision_health_check_failed", error=str(e))
            return False
        return response.status_code == 200

    async def close(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.close()
        self._client = None

    async def __aenter__(self) -> "VisionAnalysisClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
