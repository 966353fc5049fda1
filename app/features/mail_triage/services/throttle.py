"""
Call pacing for the rate-limited LLM endpoint.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class Throttle(Protocol):
    async def acquire(self) -> None: ...


class FixedIntervalThrottle:
    """
    Enforces a minimum interval between consecutive calls.

    The first call passes immediately; each later call waits out whatever is
    left of the interval since the previous one.
    """

    def __init__(
        self,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    async def acquire(self) -> None:
        if self._last_call is not None:
            wait = self.interval_seconds - (self._clock() - self._last_call)
            if wait > 0:
                logger.debug("Throttling LLM call", wait_seconds=round(wait, 3))
                await self._sleep(wait)
        self._last_call = self._clock()

    def reset(self) -> None:
        """Forget the previous call so the next one passes immediately."""
        self._last_call = None
