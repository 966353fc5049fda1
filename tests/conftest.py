from datetime import UTC, datetime
from typing import Any

import pytest

from app.config import get_settings
from app.features.mail_triage.domain.models import ImportResult, InboundMessage
from app.services.gemini_service import GenerationResult


class FakeRedis:
    """Stands in for FastRedisClient."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.closed = False

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedModelClient:
    """Returns queued GenerationResults and records every prompt it receives."""

    def __init__(self, results: list[GenerationResult] | None = None):
        self.results = list(results or [])
        self.prompts: list[str] = []

    def queue(self, *results: GenerationResult) -> None:
        self.results.extend(results)

    async def generate_json(self, prompt: str) -> GenerationResult:
        self.prompts.append(prompt)
        if not self.results:
            raise AssertionError("Unexpected model call")
        return self.results.pop(0)

    @property
    def calls(self) -> int:
        return len(self.prompts)


class RecordingImportClient:
    def __init__(self, job_result: ImportResult | None = None, talent_result: ImportResult | None = None):
        self.job_result = job_result or ImportResult(success=True, record_id="job-1")
        self.talent_result = talent_result or ImportResult(success=True, record_id="talent-1")
        self.jobs: list[dict[str, Any]] = []
        self.talents: list[dict[str, Any]] = []

    async def submit_job(self, payload: dict[str, Any]) -> ImportResult:
        self.jobs.append(payload)
        return self.job_result

    async def submit_talent(self, payload: dict[str, Any]) -> ImportResult:
        self.talents.append(payload)
        return self.talent_result


class FakeMailbox:
    def __init__(self, messages: list[InboundMessage] | None = None):
        self.messages = list(messages or [])
        self.read: list[str] = []
        self.labels: list[tuple[str, str]] = []
        self.fetch_limits: list[int] = []

    async def fetch_unread(self, limit: int) -> list[InboundMessage]:
        self.fetch_limits.append(limit)
        return self.messages[:limit]

    async def get_message(self, message_id: str) -> InboundMessage:
        for message in self.messages:
            if message.id == message_id:
                return message
        raise KeyError(message_id)

    async def mark_read(self, message: InboundMessage) -> None:
        self.read.append(message.id)

    async def apply_label(self, message: InboundMessage, label_name: str) -> None:
        self.labels.append((message.id, label_name))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_message():
    counter = {"n": 0}

    def _make(subject: str = "", body: str = "", **overrides) -> InboundMessage:
        counter["n"] += 1
        fields = {
            "id": f"msg-{counter['n']}",
            "thread_id": f"thread-{counter['n']}",
            "subject": subject,
            "body": body,
            "sender": "営業部 <sales@partner.example.jp>",
            "received_at": datetime(2025, 3, 3, 9, 30, tzinfo=UTC),
        }
        fields.update(overrides)
        return InboundMessage(**fields)

    return _make


@pytest.fixture
def settings_env(monkeypatch):
    """Set environment variables for Settings and rebuild the cached instance."""

    def _apply(**values):
        for key, value in values.items():
            monkeypatch.setenv(key, str(value))
        get_settings.cache_clear()
        return get_settings()

    yield _apply
    get_settings.cache_clear()


@pytest.fixture
def model_client():
    return ScriptedModelClient()


@pytest.fixture
def import_client():
    return RecordingImportClient()


@pytest.fixture
def mailbox():
    return FakeMailbox()
