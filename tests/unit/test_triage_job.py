import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.config import Settings
from app.features.mail_triage.jobs import triage_job
from app.features.mail_triage.jobs.triage_job import (
    MailTriageJob,
    MailTriageJobError,
    build_mail_triage_job,
)
from app.features.mail_triage.pipeline.classification.service import (
    ClassificationError,
    KeywordClassifier,
)
from app.features.mail_triage.pipeline.extraction.service import ExtractionOrchestrator
from app.features.mail_triage.services.dedup_gate import DedupGate
from app.features.mail_triage.services.llm_gate import LLMGate
from app.features.mail_triage.services.throttle import FixedIntervalThrottle
from app.services.gemini_service import GenerationResult
from app.services.google_gmail_service import GoogleGmailError
from app.services.infrastructure.kv_store import InMemoryTTLStore

JOB_SUBJECT = "【案件】Java開発 単価70万"
JOB_BODY = "業務内容: 基幹システム開発\n勤務地: 東京\n必須スキル: Java"
TALENT_SUBJECT = "【要員】スキルシート送付"
TALENT_BODY = "年齢: 30歳\n希望単価: 65万\n最寄駅: 品川"
NOISE_SUBJECT = "セミナーのご案内"
NOISE_BODY = "オンラインセミナーを開催します。"


def _extracted(title: str) -> GenerationResult:
    return GenerationResult(
        success=True, text=json.dumps({"title": title, "grade": "SE"}, ensure_ascii=False), status_code=200
    )


def _rate_limited() -> GenerationResult:
    return GenerationResult(success=False, is_rate_limited=True, status_code=429, error="HTTP 429")


@pytest.fixture
def dedup():
    return DedupGate(InMemoryTTLStore(), ttl_seconds=21600)


@pytest.fixture
def llm(model_client):
    return LLMGate(model_client, FixedIntervalThrottle(0))


@pytest.fixture
def job(mailbox, dedup, llm, import_client):
    orchestrator = ExtractionOrchestrator(
        llm=llm,
        import_client=import_client,
        mailbox=mailbox,
        dedup=dedup,
        job_label="INBOX/案件",
        talent_label="INBOX/人材",
    )
    return MailTriageJob(
        mailbox=mailbox,
        dedup=dedup,
        classifier=KeywordClassifier(),
        orchestrator=orchestrator,
        llm=llm,
        max_messages=50,
    )


@pytest.mark.asyncio
async def test_run_routes_job_talent_and_noise(job, mailbox, model_client, import_client, dedup, make_message):
    job_mail = make_message(subject=JOB_SUBJECT, body=JOB_BODY)
    talent_mail = make_message(subject=TALENT_SUBJECT, body=TALENT_BODY)
    noise_mail = make_message(subject=NOISE_SUBJECT, body=NOISE_BODY)
    mailbox.messages = [job_mail, talent_mail, noise_mail]
    model_client.queue(_extracted("Java基幹開発"))

    metrics = await job.run_once()

    assert metrics["messages_fetched"] == 3
    assert metrics["classified_job"] == 1
    assert metrics["classified_talent"] == 1
    assert metrics["classified_excluded"] == 1
    assert metrics["job_success"] == 1
    assert metrics["talent_success"] == 1
    assert metrics["llm_calls"] == 1
    assert metrics["aborted"] is False
    assert mailbox.fetch_limits == [50]
    assert [payload["title"] for payload in import_client.jobs] == ["Java基幹開発"]
    assert [payload["originalTitle"] for payload in import_client.talents] == [TALENT_SUBJECT]
    for message in (job_mail, talent_mail, noise_mail):
        assert await dedup.is_already_processed(message.id) is True
    # noise is marked so it is not rescored, but never labelled or marked read
    assert noise_mail.id not in mailbox.read


@pytest.mark.asyncio
async def test_second_run_skips_processed_messages(job, mailbox, model_client, make_message):
    mailbox.messages = [make_message(subject=JOB_SUBJECT, body=JOB_BODY)]
    model_client.queue(_extracted("Java基幹開発"))
    await job.run_once()

    metrics = await job.run_once()

    assert metrics["already_processed"] == 1
    assert metrics["classified_job"] == 0
    assert model_client.calls == 1


@pytest.mark.asyncio
async def test_rate_limit_aborts_run_and_leaves_rest_unmarked(
    job, mailbox, model_client, import_client, dedup, make_message
):
    messages = [make_message(subject=JOB_SUBJECT, body=JOB_BODY) for _ in range(4)]
    mailbox.messages = messages
    model_client.queue(_extracted("一件目"), _rate_limited())

    metrics = await job.run_once()

    assert metrics["aborted"] is True
    assert metrics["abort_message_id"] == messages[1].id
    assert metrics["job_success"] == 1
    assert metrics["llm_calls"] == 2
    assert model_client.calls == 2
    assert len(import_client.jobs) == 1
    assert await dedup.is_already_processed(messages[0].id) is True
    for message in messages[1:]:
        assert await dedup.is_already_processed(message.id) is False
    assert metrics["errors"][-1]["error_type"] == "rate_limit"


@pytest.mark.asyncio
async def test_breaker_is_reset_for_the_next_run(job, mailbox, model_client, make_message):
    mailbox.messages = [make_message(subject=JOB_SUBJECT, body=JOB_BODY)]
    model_client.queue(_rate_limited())
    first = await job.run_once()

    model_client.queue(_extracted("再実行"))
    second = await job.run_once()

    assert first["aborted"] is True
    assert second["aborted"] is False
    assert second["job_success"] == 1


@pytest.mark.asyncio
async def test_failed_extraction_is_retried_next_run(job, mailbox, model_client, dedup, make_message):
    message = make_message(subject=JOB_SUBJECT, body=JOB_BODY)
    mailbox.messages = [message]
    model_client.queue(GenerationResult(success=True, text="not json", status_code=200))

    metrics = await job.run_once()

    assert metrics["job_errors"] == 1
    assert metrics["errors_count"] == 1
    assert await dedup.is_already_processed(message.id) is False


@pytest.mark.asyncio
async def test_talent_not_forwarded_when_disabled(job, mailbox, import_client, dedup, make_message):
    job.forward_talent = False
    message = make_message(subject=TALENT_SUBJECT, body=TALENT_BODY)
    mailbox.messages = [message]

    metrics = await job.run_once()

    assert metrics["classified_talent"] == 1
    assert metrics["talent_success"] == 0
    assert import_client.talents == []
    assert await dedup.is_already_processed(message.id) is True


@pytest.mark.asyncio
async def test_classification_error_is_counted_and_not_marked(job, mailbox, dedup, make_message):
    message = make_message(subject="x", body="y")
    mailbox.messages = [message]
    job.classifier = MagicMock()
    job.classifier.evaluate = AsyncMock(side_effect=ClassificationError("bad type", message.id))

    metrics = await job.run_once()

    assert metrics["classification_errors"] == 1
    assert await dedup.is_already_processed(message.id) is False


@pytest.mark.asyncio
async def test_concurrent_trigger_is_skipped(job):
    job.is_running = True

    result = await job.run_once()

    assert result == {"skipped": True, "reason": "already_running"}


@pytest.mark.asyncio
async def test_mailbox_search_failure_raises_job_error(job, mailbox):
    mailbox.fetch_unread = AsyncMock(side_effect=GoogleGmailError("down", status_code=503))

    with pytest.raises(MailTriageJobError) as exc_info:
        await job.run_once()

    assert exc_info.value.operation == "fetch"
    assert job.is_running is False


@pytest.mark.asyncio
async def test_status_reports_last_run(job, mailbox):
    assert job.get_job_status()["last_run_metrics"] is None

    await job.run_once()
    status = job.get_job_status()

    assert status["job_name"] == "mail_triage"
    assert status["is_running"] is False
    assert status["classifier_strategy"] == "keyword"
    assert status["last_run_metrics"]["messages_fetched"] == 0


def test_build_requires_pipeline_settings():
    settings = Settings(
        _env_file=None,
        GEMINI_API_KEY=None,
        IMPORT_API_URL="https://backoffice.example.jp",
        IMPORT_API_KEY="k",
        TARGET_EMAIL_ADDRESS="sales@ses.example.jp",
        GOOGLE_CLIENT_ID="id",
        GOOGLE_CLIENT_SECRET="secret",
        GOOGLE_REFRESH_TOKEN="refresh",
    )

    with pytest.raises(MailTriageJobError) as exc_info:
        build_mail_triage_job(settings, store=InMemoryTTLStore())

    assert exc_info.value.recoverable is False
    assert "GEMINI_API_KEY" in str(exc_info.value)


@pytest.mark.asyncio
async def test_build_wires_job_from_settings():
    settings = Settings(
        _env_file=None,
        GEMINI_API_KEY="g",
        IMPORT_API_URL="https://backoffice.example.jp",
        IMPORT_API_KEY="k",
        TARGET_EMAIL_ADDRESS="sales@ses.example.jp",
        GOOGLE_CLIENT_ID="id",
        GOOGLE_CLIENT_SECRET="secret",
        GOOGLE_REFRESH_TOKEN="refresh",
        CLASSIFIER_STRATEGY="hybrid",
        MAX_MESSAGES_PER_RUN=25,
        JOB_LABEL_NAME="INBOX/案件",
    )

    job = build_mail_triage_job(settings, store=InMemoryTTLStore())
    try:
        assert job.max_messages == 25
        assert job.classifier.name == "hybrid"
        assert job.orchestrator.job_label == "INBOX/案件"
        assert job.dedup.ttl_seconds == 21600
    finally:
        await job.close()


@pytest.mark.asyncio
async def test_scheduler_stops_on_unrecoverable_error(monkeypatch):
    fake_job = MagicMock()
    fake_job.interval_minutes = 5
    fake_job.run_once = AsyncMock(
        side_effect=MailTriageJobError("bad config", operation="configure", recoverable=False)
    )
    fake_job.close = AsyncMock()
    monkeypatch.setattr(triage_job, "build_mail_triage_job", lambda: fake_job)

    with pytest.raises(MailTriageJobError):
        await triage_job.start_mail_triage_scheduler()

    fake_job.close.assert_awaited_once()
