"""
Gemini analysis client: one multimodal call per request.

Sends (prompt, inline media) to Gemini and turns the free-form text reply
into a JSON object.

Architecture:
- Single generate_content call, no retry, no streaming
- Hard timeout on the HTTP call (GEMINI_TIMEOUT_S)
- Missing API key is fatal for the request (ConfigurationError); there is
  no degraded mode for the AI call itself
- Reply parsing keeps the first-"{"-to-last-"}" contract and only then
  scans for the first decodable object inside it
"""
from __future__ import annotations

import json
import logging
import time
from functools import lru_cache
from typing import Any, Dict, Optional

from google import genai
from google.genai import types as genai_types

from core.config import settings
from core.exceptions import (
    AnalysisFailed,
    ConfigurationError,
    MalformedAIResponse,
    PayloadTooLarge,
)
from schemas import AnalysisResult
from services.metrics_mapper import map_analysis
from services.mime_sniffer import detect_video_mime
from services.prompt_catalog import get_analysis_prompt

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """Extract the JSON object embedded in a model reply.

    The candidate span runs from the first "{" to the last "}". If that span
    is not valid JSON on its own (prose braces, trailing commentary), the
    first object that decodes from a "{" inside the span is used instead.

    Raises MalformedAIResponse when there is no brace span or nothing in it
    decodes to a JSON object.
    """
    if not text:
        raise MalformedAIResponse("No JSON found in response")

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise MalformedAIResponse("No JSON found in response")

    span = text[start:end + 1]
    try:
        parsed = json.loads(span)
    except json.JSONDecodeError:
        parsed = _first_decodable_object(span)

    if not isinstance(parsed, dict):
        raise MalformedAIResponse("AI response JSON is not an object")
    return parsed


def _first_decodable_object(span: str) -> Dict[str, Any]:
    decoder = json.JSONDecoder()
    idx = span.find("{")
    while idx != -1:
        try:
            value, _ = decoder.raw_decode(span, idx)
        except json.JSONDecodeError:
            idx = span.find("{", idx + 1)
            continue
        if isinstance(value, dict):
            return value
        idx = span.find("{", idx + 1)
    logger.warning("AI response JSON parse failed. Raw: %s", span[:200])
    raise MalformedAIResponse("Failed to parse AI response")


def _response_text(response: Any) -> str:
    text = getattr(response, "text", None)
    if isinstance(text, str) and text:
        return text
    # Fall back to the first candidate part (blocked / multi-part replies)
    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []
        if parts:
            part_text = getattr(parts[0], "text", None)
            return part_text if isinstance(part_text, str) else ""
    return ""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GeminiAnalysisClient:
    """Thin wrapper around google-genai for media analysis prompts."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-1.5-flash",
        timeout_s: int = 60,
        max_media_bytes: int = 20 * 1024 * 1024,
        client: Any = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self.max_media_bytes = max_media_bytes
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise ConfigurationError(
                "Gemini API key not configured. Real AI analysis requires valid API key."
            )
        self._client = genai.Client(
            api_key=self.api_key,
            # HttpOptions.timeout is in milliseconds
            http_options=genai_types.HttpOptions(timeout=self.timeout_s * 1000),
        )
        return self._client

    def generate(self, prompt: str, media: Optional[bytes] = None, mime_type: Optional[str] = None) -> str:
        """Issue one generate_content call and return the reply text."""
        client = self._get_client()

        contents: list = [prompt]
        if media is not None:
            contents.append(genai_types.Part.from_bytes(data=media, mime_type=mime_type))

        start = time.monotonic()
        try:
            response = client.models.generate_content(model=self.model, contents=contents)
        except Exception as e:
            logger.error(
                f"Gemini call failed: {type(e).__name__}: {e}",
                extra={"extra_fields": {"model": self.model, "media_bytes": len(media or b"")}},
            )
            raise AnalysisFailed(f"Gemini AI analysis failed: {e}") from e

        latency_ms = int((time.monotonic() - start) * 1000)
        text = _response_text(response)
        logger.info(
            "Gemini call completed",
            extra={"extra_fields": {"model": self.model, "latency_ms": latency_ms, "chars": len(text)}},
        )
        return text

    def generate_json(self, prompt: str, media: Optional[bytes] = None, mime_type: Optional[str] = None) -> Dict[str, Any]:
        return extract_json_object(self.generate(prompt, media=media, mime_type=mime_type))

    def analyze(self, media: bytes, test_type: str) -> AnalysisResult:
        """Score one exercise video.

        Raises ConfigurationError, PayloadTooLarge, AnalysisFailed or
        MalformedAIResponse; never retries.
        """
        if not self.configured:
            raise ConfigurationError(
                "Gemini API key not configured. Real AI analysis requires valid API key."
            )
        if len(media) > self.max_media_bytes:
            raise PayloadTooLarge(len(media), self.max_media_bytes)

        prompt = get_analysis_prompt(test_type)
        mime_type = detect_video_mime(media)
        logger.info(
            f"Analyzing {test_type} video",
            extra={"extra_fields": {"test_type": test_type, "mime_type": mime_type, "bytes": len(media)}},
        )

        parsed = self.generate_json(prompt, media=media, mime_type=mime_type)
        return map_analysis(parsed, test_type)


@lru_cache(maxsize=1)
def get_analysis_client() -> GeminiAnalysisClient:
    """FastAPI dependency: process-wide client built from settings."""
    return GeminiAnalysisClient(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        timeout_s=settings.GEMINI_TIMEOUT_S,
        max_media_bytes=settings.MAX_ANALYSIS_BYTES,
    )
