"""
Mail triage batch job.
Fetches unread mail, drops already-processed messages, classifies the rest
and hands job / talent mail to the orchestrator. Runs on a fixed interval
from the worker, or once on demand from the API.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog

from app.config import Settings, get_settings
from app.features.mail_triage.domain.models import (
    ClassificationResult,
    InboundMessage,
    ProcessOutcome,
    RateLimitExceeded,
)
from app.features.mail_triage.pipeline.classification.service import (
    ClassificationError,
    ClassificationStrategy,
    build_classifier,
)
from app.features.mail_triage.pipeline.extraction.service import ExtractionOrchestrator
from app.features.mail_triage.services.dedup_gate import DedupGate
from app.features.mail_triage.services.llm_gate import LLMGate
from app.features.mail_triage.services.throttle import FixedIntervalThrottle
from app.infrastructure.observability.logging import get_logger, log_triage_summary
from app.services.gemini_service import GeminiService
from app.services.google_gmail_service import GoogleGmailError
from app.services.google_oauth_service import GoogleOAuthError
from app.services.import_api_client import ImportApiClient
from app.services.infrastructure.kv_store import KeyValueStore, build_store
from app.services.mailbox_service import MailboxService, build_mailbox_service

logger = get_logger(__name__)

SCHEDULER_ERROR_BACKOFF_SECONDS = 60


class MailTriageJobError(Exception):
    """Custom exception for mail triage job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class TriageRunMetrics:
    """Per-run tallies for the triage batch."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all metrics for new job run."""
        self.run_id = uuid.uuid4().hex[:12]
        self.start_time = datetime.now(UTC)
        self.messages_fetched = 0
        self.already_processed = 0
        self.classified_job = 0
        self.classified_talent = 0
        self.classified_excluded = 0
        self.classification_errors = 0
        self.job_success = 0
        self.job_skipped = 0
        self.job_errors = 0
        self.talent_success = 0
        self.talent_skipped = 0
        self.talent_errors = 0
        self.llm_calls = 0
        self.aborted = False
        self.abort_message_id: str | None = None
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_classification(self, result: ClassificationResult):
        if result.is_job:
            self.classified_job += 1
        elif result.is_talent:
            self.classified_talent += 1
        else:
            self.classified_excluded += 1

        logger.info(
            "Message classified",
            message_id=result.message_id,
            decision=result.decision.value,
            reason=result.reason.value,
            job_score=result.job_score,
            talent_score=result.talent_score,
            strategy=result.strategy,
        )

    def record_classification_error(self, message_id: str, error: str):
        self.classification_errors += 1
        self._record_error(message_id, error, "classification")

    def record_job_outcome(self, message_id: str, outcome: ProcessOutcome):
        if outcome is ProcessOutcome.SUCCESS:
            self.job_success += 1
        elif outcome is ProcessOutcome.SKIP:
            self.job_skipped += 1
        else:
            self.job_errors += 1
            self._record_error(message_id, "job extraction or import failed", "job")

    def record_talent_outcome(self, message_id: str, outcome: ProcessOutcome):
        if outcome is ProcessOutcome.SUCCESS:
            self.talent_success += 1
        elif outcome is ProcessOutcome.SKIP:
            self.talent_skipped += 1
        else:
            self.talent_errors += 1
            self._record_error(message_id, "talent import failed", "talent")

    def record_abort(self, exc: RateLimitExceeded):
        self.aborted = True
        self.abort_message_id = exc.message_id
        self._record_error(exc.message_id or "", exc.detail or "rate limited", "rate_limit")

    def _record_error(self, message_id: str, error: str, error_type: str):
        self.errors.append(
            {
                "message_id": message_id,
                "error": error,
                "error_type": error_type,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def finalize(self):
        """Finalize metrics and calculate totals."""
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging and the status endpoint."""
        return {
            "job_run": "mail_triage",
            "run_id": self.run_id,
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "messages_fetched": self.messages_fetched,
            "already_processed": self.already_processed,
            "classified_job": self.classified_job,
            "classified_talent": self.classified_talent,
            "classified_excluded": self.classified_excluded,
            "classification_errors": self.classification_errors,
            "job_success": self.job_success,
            "job_skipped": self.job_skipped,
            "job_errors": self.job_errors,
            "talent_success": self.talent_success,
            "talent_skipped": self.talent_skipped,
            "talent_errors": self.talent_errors,
            "llm_calls": self.llm_calls,
            "aborted": self.aborted,
            "abort_message_id": self.abort_message_id,
            "errors_count": len(self.errors),
            "errors": list(self.errors),
        }


class MailTriageJob:
    """
    One sequential pass over the unread sales inbox.

    Only one run may be in flight; a second trigger while running is skipped.
    A rate-limited LLM response stops the pass immediately and the remaining
    messages are left for the next run.
    """

    def __init__(
        self,
        mailbox: MailboxService,
        dedup: DedupGate,
        classifier: ClassificationStrategy,
        orchestrator: ExtractionOrchestrator,
        llm: LLMGate,
        max_messages: int = 200,
        forward_talent: bool = True,
        interval_minutes: int = 5,
        closers: list[Callable[[], Awaitable[None]]] | None = None,
    ):
        self.mailbox = mailbox
        self.dedup = dedup
        self.classifier = classifier
        self.orchestrator = orchestrator
        self.llm = llm
        self.max_messages = max_messages
        self.forward_talent = forward_talent
        self.interval_minutes = interval_minutes
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = TriageRunMetrics()
        self._closers = closers or []

    async def run_once(self) -> dict:
        """
        Run a single triage pass.

        Returns:
            Dict: Run metrics

        Raises:
            MailTriageJobError: If the mailbox cannot be searched
        """
        if self.is_running:
            logger.warning("Mail triage job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()
            self.llm.start_run()
            structlog.contextvars.bind_contextvars(run_id=self.job_metrics.run_id)

            logger.info("Starting mail triage job", max_messages=self.max_messages)

            messages = await self._fetch_messages()
            self.job_metrics.messages_fetched = len(messages)

            for index, message in enumerate(messages):
                try:
                    await self._triage_message(message)
                except RateLimitExceeded as e:
                    self.job_metrics.record_abort(e)
                    logger.error(
                        "Rate limit exceeded, stopping triage run",
                        message_id=e.message_id,
                        remaining=len(messages) - index,
                    )
                    break

            self.job_metrics.llm_calls = self.llm.calls
            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)

            metrics = self.job_metrics.to_dict()
            log_triage_summary(metrics)
            return metrics

        except MailTriageJobError:
            self.job_metrics.finalize()
            raise
        except Exception as e:
            logger.error("Mail triage job failed", error=str(e), error_type=type(e).__name__)
            self.job_metrics.finalize()
            raise MailTriageJobError(f"Mail triage job failed: {e}", operation="run_once") from e

        finally:
            self.is_running = False
            structlog.contextvars.unbind_contextvars("run_id")

    async def _fetch_messages(self) -> list[InboundMessage]:
        try:
            return await self.mailbox.fetch_unread(self.max_messages)
        except (GoogleGmailError, GoogleOAuthError) as e:
            logger.error("Mailbox search failed", error=str(e), error_type=type(e).__name__)
            raise MailTriageJobError(f"Mailbox search failed: {e}", operation="fetch") from e

    async def _triage_message(self, message: InboundMessage) -> None:
        """
        Raises:
            RateLimitExceeded: Propagated from classification or extraction
        """
        if await self.dedup.is_already_processed(message.id):
            self.job_metrics.already_processed += 1
            logger.debug("Message already processed", message_id=message.id)
            return

        try:
            classification = await self.classifier.evaluate(message)
        except ClassificationError as e:
            self.job_metrics.record_classification_error(message.id, str(e))
            logger.warning("Message could not be classified", message_id=message.id, error=str(e))
            return

        self.job_metrics.record_classification(classification)

        if classification.is_job:
            outcome = await self.orchestrator.process_message(message)
            self.job_metrics.record_job_outcome(message.id, outcome)
        elif classification.is_talent and self.forward_talent:
            outcome = await self.orchestrator.forward_talent(message)
            self.job_metrics.record_talent_outcome(message.id, outcome)
        else:
            await self.dedup.mark_as_processed(message.id)

    def get_job_status(self) -> dict:
        """Get current job status and metrics."""
        return {
            "job_name": "mail_triage",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_minutes": self.interval_minutes,
            "max_messages": self.max_messages,
            "classifier_strategy": getattr(self.classifier, "name", "keyword"),
            "forward_talent": self.forward_talent,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    async def close(self) -> None:
        """Release HTTP clients and stores built for this job."""
        for closer in self._closers:
            try:
                await closer()
            except Exception as e:
                logger.warning("Error releasing mail triage resource", error=str(e))


def build_mail_triage_job(
    settings: Settings | None = None, store: KeyValueStore | None = None
) -> MailTriageJob:
    """
    Wire the job from settings.

    Raises:
        MailTriageJobError: If required settings are missing (not recoverable)
    """
    settings = settings or get_settings()

    missing = settings.missing_pipeline_settings()
    if missing:
        raise MailTriageJobError(
            f"Missing required settings: {', '.join(missing)}",
            operation="configure",
            recoverable=False,
        )

    closers: list[Callable[[], Awaitable[None]]] = []
    if store is None:
        store = build_store(settings.redis_url())
        closers.append(store.close)

    gemini = GeminiService(
        settings.GEMINI_API_KEY, settings.GEMINI_MODEL, settings.GEMINI_TIMEOUT_SECONDS
    )
    import_client = ImportApiClient(
        settings.IMPORT_API_URL, settings.IMPORT_API_KEY, settings.IMPORT_API_TIMEOUT_SECONDS
    )
    closers.extend([gemini.close, import_client.close])

    llm = LLMGate(gemini, FixedIntervalThrottle(settings.API_CALL_DELAY_SECONDS))
    dedup = DedupGate(store, settings.PROCESSED_MARK_TTL_SECONDS, settings.PROCESSED_KEY_PREFIX)
    mailbox = build_mailbox_service(settings)

    classifier = build_classifier(
        settings.CLASSIFIER_STRATEGY, llm=llm, rules_path=settings.KEYWORD_RULES_PATH
    )
    orchestrator = ExtractionOrchestrator(
        llm=llm,
        import_client=import_client,
        mailbox=mailbox,
        dedup=dedup,
        job_label=settings.job_label_name(),
        talent_label=settings.talent_label_name(),
    )

    logger.info(
        "Mail triage job configured",
        classifier_strategy=settings.CLASSIFIER_STRATEGY,
        max_messages=settings.MAX_MESSAGES_PER_RUN,
        api_call_delay_seconds=settings.API_CALL_DELAY_SECONDS,
        mark_ttl_seconds=settings.PROCESSED_MARK_TTL_SECONDS,
        forward_talent=settings.FORWARD_TALENT_MAILS,
    )

    return MailTriageJob(
        mailbox=mailbox,
        dedup=dedup,
        classifier=classifier,
        orchestrator=orchestrator,
        llm=llm,
        max_messages=settings.MAX_MESSAGES_PER_RUN,
        forward_talent=settings.FORWARD_TALENT_MAILS,
        interval_minutes=settings.JOB_INTERVAL_MINUTES,
        closers=closers,
    )


async def run_mail_triage_once() -> None:
    """Single run for cron-style invocation."""
    job = build_mail_triage_job()
    try:
        await job.run_once()
    finally:
        await job.close()


async def start_mail_triage_scheduler():
    """
    Start the mail triage scheduler.

    Runs one pass every JOB_INTERVAL_MINUTES in this process until cancelled.
    """
    job = build_mail_triage_job()
    interval_seconds = job.interval_minutes * 60
    logger.info("Starting mail triage scheduler", interval_minutes=job.interval_minutes)

    try:
        while True:
            try:
                await job.run_once()
                await asyncio.sleep(interval_seconds)

            except MailTriageJobError as e:
                logger.error(
                    "Error in mail triage scheduler",
                    error=str(e),
                    operation=e.operation,
                    recoverable=e.recoverable,
                )
                if not e.recoverable:
                    raise
                await asyncio.sleep(SCHEDULER_ERROR_BACKOFF_SECONDS)
    finally:
        await job.close()
