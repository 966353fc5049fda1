# app/services/gemini_service.py
"""
Gemini Service for mail extraction.
Sends text prompts to the Gemini generateContent endpoint in JSON response
mode and reports rate limiting separately from other failures so the batch
can stop spending calls as soon as the quota is gone.
"""

from dataclasses import dataclass
from typing import Any

import httpx

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
RATE_LIMIT_MARKERS = ("quota", "rate limit", "resource_exhausted")


class GeminiServiceError(Exception):
    """Base exception for Gemini service errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


@dataclass(slots=True)
class GenerationResult:
    """Result of one generateContent call."""

    success: bool
    text: str | None = None
    is_rate_limited: bool = False
    status_code: int | None = None
    error: str | None = None


def is_rate_limit_response(status_code: int, body: str) -> bool:
    """HTTP 429, any 5xx, or a quota / rate-limit marker in the body."""
    if status_code == 429 or 500 <= status_code < 600:
        return True
    lowered = body.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def extract_candidate_text(payload: dict[str, Any]) -> str | None:
    """Pull candidates[0].content.parts[0].text out of a generateContent response."""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) and text else None


class GeminiService:
    """
    Thin client for Gemini generateContent.

    No retries: a rate-limited response is returned to the caller, which owns
    the circuit breaker for the batch.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise GeminiServiceError("GEMINI_API_KEY not configured", recoverable=False)

        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

        logger.info("Gemini service initialized", model=model, timeout=timeout_seconds)

    def _endpoint(self) -> str:
        return f"{GEMINI_API_BASE_URL}/models/{self.model}:generateContent"

    def _build_payload(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"response_mime_type": "application/json"},
        }

    async def generate_json(self, prompt: str) -> GenerationResult:
        """
        Run a prompt in JSON response mode.

        Args:
            prompt: Full prompt text

        Returns:
            GenerationResult with the candidate text on success, or the failure
            kind (rate limited or not) otherwise. Never raises for HTTP or
            network failures.
        """
        try:
            response = await self._client.post(
                self._endpoint(),
                params={"key": self.api_key},
                json=self._build_payload(prompt),
            )
        except httpx.HTTPError as e:
            logger.error(
                "Gemini API request failed",
                model=self.model,
                error=str(e),
                error_type=type(e).__name__,
            )
            return GenerationResult(success=False, error=f"{type(e).__name__}: {e}")

        body = response.text or ""

        if response.status_code == 200:
            try:
                text = extract_candidate_text(response.json())
            except ValueError:
                text = None

            if text:
                logger.debug(
                    "Gemini API call successful",
                    model=self.model,
                    response_length=len(text),
                )
                return GenerationResult(success=True, text=text, status_code=200)

        rate_limited = is_rate_limit_response(response.status_code, body)

        logger.error(
            "Gemini API error",
            model=self.model,
            status_code=response.status_code,
            rate_limited=rate_limited,
            response_preview=body[:200],
        )

        return GenerationResult(
            success=False,
            is_rate_limited=rate_limited,
            status_code=response.status_code,
            error=f"Gemini API returned {response.status_code}",
        )

    async def close(self) -> None:
        await self._client.aclose()

    def health_check(self) -> dict[str, Any]:
        """Report configuration without spending quota."""
        return {
            "healthy": bool(self.api_key),
            "service": "gemini_service",
            "configuration": {
                "model": self.model,
                "timeout_seconds": self.timeout_seconds,
                "response_mode": "application/json",
            },
        }
