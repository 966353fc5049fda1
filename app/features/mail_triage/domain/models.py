"""
Domain models for the mail triage feature.

These lightweight dataclasses describe what flows between the fetcher, the
classifier and the extraction orchestrator. Only ExtractedJobRecord carries
validation because it is built from untrusted LLM output.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

GRADES = ("SE", "チームリーダー", "テックリード", "PMO", "PM")
DEFAULT_GRADE = "SE"
SUMMARY_MAX_LENGTH = 200

# Spellings the LLM returns instead of the canonical grade names
GRADE_ALIASES = {
    "se": "SE",
    "エンジニア": "SE",
    "リーダー": "チームリーダー",
    "チームリーダー": "チームリーダー",
    "tl": "チームリーダー",
    "テックリード": "テックリード",
    "技術責任者": "テックリード",
    "pmo": "PMO",
    "pm": "PM",
    "pl/pm": "PM",
    "プロジェクトマネージャー": "PM",
    "マネージャー": "PM",
}


class Decision(str, Enum):
    JOB = "job"
    EXCLUDED = "excluded"


class DecisionReason(str, Enum):
    JOB_SIGNAL = "job_signal"
    EXCLUSION_KEYWORD = "exclusion_keyword"
    TALENT_SIGNAL = "talent_signal"
    INSUFFICIENT_JOB_SIGNAL = "insufficient_job_signal"
    MODEL_JOB = "model_job"
    MODEL_TALENT = "model_talent"
    MODEL_OTHER = "model_other"
    EMPTY_BODY = "empty_body"


class ProcessOutcome(str, Enum):
    SUCCESS = "success"
    SKIP = "skip"
    ERROR = "error"


@dataclass(slots=True)
class InboundMessage:
    """A mailbox message as seen by the triage pipeline (read-only)."""

    id: str
    thread_id: str | None
    subject: str
    body: str
    sender: str
    received_at: datetime


@dataclass(slots=True)
class ClassificationResult:
    """Outcome of classifying one message; recomputed every run, never stored."""

    message_id: str
    job_score: int
    talent_score: int
    decision: Decision
    reason: DecisionReason
    strategy: str = "keyword"

    @property
    def is_job(self) -> bool:
        return self.decision is Decision.JOB

    @property
    def is_talent(self) -> bool:
        return self.reason in (DecisionReason.TALENT_SIGNAL, DecisionReason.MODEL_TALENT)


@dataclass(slots=True)
class RateLimitState:
    """Per-run circuit breaker for the rate-limited extraction call."""

    tripped: bool = False
    trips: int = 0
    detail: str | None = None

    def trip(self, detail: str | None = None) -> None:
        self.tripped = True
        self.trips += 1
        self.detail = detail


class ExtractedJobRecord(BaseModel):
    """Job record extracted from a job mail by the LLM."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = ""
    company: str | None = None
    grade: str = DEFAULT_GRADE
    location: str | None = None
    unit_price: float | None = Field(default=None, alias="unitPrice")
    recruitment_count: int | None = Field(default=None, alias="recruitmentCount")
    summary: str | None = None
    description: str | None = None
    skills: list[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("company", "location", "description", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("grade", mode="before")
    @classmethod
    def _coerce_grade(cls, value: Any) -> str:
        if not value:
            return DEFAULT_GRADE
        text = str(value).strip()
        if text in GRADES:
            return text
        return GRADE_ALIASES.get(text.lower(), DEFAULT_GRADE)

    @field_validator("summary", mode="before")
    @classmethod
    def _truncate_summary(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text[:SUMMARY_MAX_LENGTH] or None

    @field_validator("recruitment_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int | None:
        if value in (None, ""):
            return None
        try:
            return int(float(str(value).replace("名", "").replace("人", "").strip()))
        except ValueError:
            return None

    @field_validator("skills", mode="before")
    @classmethod
    def _coerce_skills(cls, value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(item).strip() for item in value if item is not None and str(item).strip()]


@dataclass(slots=True)
class ImportResult:
    """Response of the back-office Import API."""

    success: bool
    record_id: str | None = None
    error: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class RateLimitExceeded(Exception):
    """The LLM quota is exhausted; the current batch must stop."""

    def __init__(self, message_id: str | None = None, detail: str | None = None):
        super().__init__(f"Rate limit exceeded while processing {message_id}: {detail}")
        self.message_id = message_id
        self.detail = detail
