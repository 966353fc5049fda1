"""
Single entry point for every Gemini call in a triage run.

Calls go through the throttle, and the first rate-limited response trips a
per-run circuit breaker: from then on no further call is issued until the
next run resets it.
"""

from typing import Protocol

from app.features.mail_triage.domain.models import RateLimitExceeded, RateLimitState
from app.features.mail_triage.services.throttle import Throttle
from app.infrastructure.observability.logging import get_logger
from app.services.gemini_service import GenerationResult

logger = get_logger(__name__)


class ModelClient(Protocol):
    async def generate_json(self, prompt: str) -> GenerationResult: ...


class LLMGate:
    def __init__(self, client: ModelClient, throttle: Throttle):
        self.client = client
        self.throttle = throttle
        self.state = RateLimitState()
        self.calls = 0

    def start_run(self) -> None:
        """Close the breaker and reset the call counter for a new batch."""
        self.state = RateLimitState()
        self.calls = 0

    async def generate(self, prompt: str, message_id: str) -> GenerationResult:
        """
        Throttled model call.

        Raises:
            RateLimitExceeded: If the breaker is already open, or this call was
            rate limited (which opens it).
        """
        if self.state.tripped:
            raise RateLimitExceeded(message_id, self.state.detail)

        await self.throttle.acquire()
        self.calls += 1
        result = await self.client.generate_json(prompt)

        if result.is_rate_limited:
            self.state.trip(result.error)
            logger.error(
                "LLM rate limit hit, stopping further calls this run",
                message_id=message_id,
                status_code=result.status_code,
                detail=result.error,
            )
            raise RateLimitExceeded(message_id, result.error)

        return result
