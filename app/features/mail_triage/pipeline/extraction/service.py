"""
Extraction & submission orchestrator.

Turns a job mail into an ExtractedJobRecord with Gemini and submits it to the
Import API; forwards talent mail verbatim. Per-message failures come back as
ProcessOutcome values. RateLimitExceeded is the only exception that leaves
process_message, so the batch loop can stop.
"""

from typing import Any, Protocol

from app.features.mail_triage.domain.models import (
    ExtractedJobRecord,
    ImportResult,
    InboundMessage,
    ProcessOutcome,
    RateLimitExceeded,
)
from app.features.mail_triage.pipeline.extraction.parser import (
    ExtractionParseError,
    parse_job_record,
)
from app.features.mail_triage.pipeline.extraction.prompts import build_job_extraction_prompt
from app.features.mail_triage.services.dedup_gate import DedupGate
from app.features.mail_triage.services.llm_gate import LLMGate
from app.infrastructure.observability.logging import get_logger
from app.services.skill_normalizer import normalize_all

logger = get_logger(__name__)


class ImportClient(Protocol):
    async def submit_job(self, payload: dict[str, Any]) -> ImportResult: ...

    async def submit_talent(self, payload: dict[str, Any]) -> ImportResult: ...


class Mailbox(Protocol):
    async def mark_read(self, message: InboundMessage) -> None: ...

    async def apply_label(self, message: InboundMessage, label_name: str) -> None: ...


def original_mail_fields(message: InboundMessage) -> dict[str, Any]:
    """The raw-mail fields every import payload carries."""
    return {
        "originalTitle": message.subject,
        "originalBody": message.body,
        "senderEmail": message.sender,
        "receivedAt": message.received_at.isoformat(),
    }


def build_job_payload(record: ExtractedJobRecord, message: InboundMessage) -> dict[str, Any]:
    payload = record.model_dump(by_alias=True)
    payload.update(original_mail_fields(message))
    return payload


class ExtractionOrchestrator:
    def __init__(
        self,
        llm: LLMGate,
        import_client: ImportClient,
        mailbox: Mailbox,
        dedup: DedupGate,
        job_label: str,
        talent_label: str,
    ):
        self.llm = llm
        self.import_client = import_client
        self.mailbox = mailbox
        self.dedup = dedup
        self.job_label = job_label
        self.talent_label = talent_label

    async def process_message(self, message: InboundMessage) -> ProcessOutcome:
        """
        Extract and submit one job mail.

        Raises:
            RateLimitExceeded: The extraction call was rate limited (or the
            breaker was already open); the caller must stop the batch.
        """
        try:
            return await self._process_job(message)
        except RateLimitExceeded:
            raise
        except Exception as e:
            logger.error(
                "Unexpected error processing job mail",
                message_id=message.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ProcessOutcome.ERROR

    async def _process_job(self, message: InboundMessage) -> ProcessOutcome:
        if not message.body or not message.body.strip():
            logger.info("Empty body, skipping extraction", message_id=message.id)
            await self.dedup.mark_as_processed(message.id)
            return ProcessOutcome.SKIP

        result = await self.llm.generate(
            build_job_extraction_prompt(message.subject, message.body), message.id
        )
        if not result.success or not result.text:
            logger.error("Extraction call failed", message_id=message.id, error=result.error)
            return ProcessOutcome.ERROR

        try:
            record = parse_job_record(result.text)
        except ExtractionParseError as e:
            logger.error(
                "Could not decode extraction output",
                message_id=message.id,
                error=str(e),
                raw_preview=(e.raw_text or "")[:200],
            )
            return ProcessOutcome.ERROR

        if not record.title:
            logger.info("No job posting found in mail", message_id=message.id)
            await self.dedup.mark_as_processed(message.id)
            return ProcessOutcome.SKIP

        record.skills = normalize_all(record.skills)

        submission = await self.import_client.submit_job(build_job_payload(record, message))
        if not submission.success:
            logger.error(
                "Job import rejected",
                message_id=message.id,
                title=record.title,
                error=submission.error,
            )
            return ProcessOutcome.ERROR

        logger.info(
            "Job imported",
            message_id=message.id,
            job_id=submission.record_id,
            title=record.title,
            grade=record.grade,
            unit_price=record.unit_price,
            skills=len(record.skills),
        )
        await self._finalize(message, self.job_label)
        return ProcessOutcome.SUCCESS

    async def forward_talent(self, message: InboundMessage) -> ProcessOutcome:
        """Post a talent mail verbatim to the talent import endpoint (no LLM call)."""
        try:
            if not message.body or not message.body.strip():
                logger.info("Empty talent mail body, skipping", message_id=message.id)
                await self.dedup.mark_as_processed(message.id)
                return ProcessOutcome.SKIP

            submission = await self.import_client.submit_talent(original_mail_fields(message))
            if not submission.success:
                logger.error(
                    "Talent import rejected", message_id=message.id, error=submission.error
                )
                return ProcessOutcome.ERROR

            logger.info("Talent mail imported", message_id=message.id, talent_id=submission.record_id)
            await self._finalize(message, self.talent_label)
            return ProcessOutcome.SUCCESS

        except Exception as e:
            logger.error(
                "Unexpected error forwarding talent mail",
                message_id=message.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ProcessOutcome.ERROR

    async def _finalize(self, message: InboundMessage, label_name: str) -> None:
        """Mark processed, label and mark read; mailbox failures do not undo the import."""
        await self.dedup.mark_as_processed(message.id)
        try:
            await self.mailbox.apply_label(message, label_name)
        except Exception as e:
            logger.warning(
                "Imported mail could not be labelled",
                message_id=message.id,
                label=label_name,
                error=str(e),
            )
        try:
            await self.mailbox.mark_read(message)
        except Exception as e:
            logger.warning(
                "Imported mail could not be marked read", message_id=message.id, error=str(e)
            )
