"""
Dedup Gate - time-bounded idempotency marks for processed mail.

Lookups fail open: if the mark store cannot be read the message is treated
as not yet processed, trading a rare duplicate import for never dropping a
posting.
"""

from app.infrastructure.observability.logging import get_logger
from app.services.infrastructure.kv_store import KeyValueStore

logger = get_logger(__name__)

MARK_VALUE = "1"


class DedupGate:
    """Checks and records ProcessedMarks in a TTL key-value store."""

    def __init__(self, store: KeyValueStore, ttl_seconds: int, key_prefix: str = "processed_"):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, message_id: str) -> str:
        return f"{self.key_prefix}{message_id}"

    async def is_already_processed(self, message_id: str) -> bool:
        """True iff an unexpired mark exists for the message."""
        try:
            return await self.store.get(self._key(message_id)) is not None
        except Exception as e:
            logger.warning(
                "Processed-mark lookup failed, treating message as new",
                message_id=message_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def mark_as_processed(self, message_id: str) -> None:
        """Create or refresh the mark for the message."""
        try:
            await self.store.put(self._key(message_id), MARK_VALUE, self.ttl_seconds)
            logger.debug("Message marked as processed", message_id=message_id, ttl=self.ttl_seconds)
        except Exception as e:
            logger.error(
                "Failed to write processed mark",
                message_id=message_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def clear(self, message_id: str) -> None:
        """Remove a mark so the message is picked up again on the next run."""
        try:
            await self.store.remove(self._key(message_id))
        except Exception as e:
            logger.error("Failed to remove processed mark", message_id=message_id, error=str(e))
