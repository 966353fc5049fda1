"""
Mail classification strategies.

KeywordClassifier is the rule-based scorer. ModelClassifier asks the LLM for
the mail type, and HybridClassifier only spends a model call on mail whose
keyword signal is too weak to decide. All three share the async evaluate()
interface the triage job calls.
"""

from typing import Protocol

from app.features.mail_triage.domain.models import (
    ClassificationResult,
    Decision,
    DecisionReason,
    InboundMessage,
)
from app.features.mail_triage.pipeline.classification.keywords import (
    KeywordRules,
    load_keyword_rules,
)
from app.features.mail_triage.pipeline.extraction.parser import (
    ExtractionParseError,
    decode_json_object,
)
from app.features.mail_triage.pipeline.extraction.prompts import build_type_detection_prompt
from app.features.mail_triage.services.llm_gate import LLMGate
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STRATEGIES = ("keyword", "model", "hybrid")


class ClassificationError(Exception):
    """The model could not classify a message; it is retried next run."""

    def __init__(self, message: str, message_id: str | None = None):
        super().__init__(message)
        self.message_id = message_id


class ClassificationStrategy(Protocol):
    name: str

    async def evaluate(self, message: InboundMessage) -> ClassificationResult: ...


class KeywordClassifier:
    """
    Weighted keyword scoring.

    Decision order: exclusion keywords (unless a high-tier job keyword is
    present), then talent score, then job score. Both scores are always
    computed and reported.
    """

    name = "keyword"

    def __init__(self, rules: KeywordRules | None = None):
        self.rules = rules or KeywordRules()

    def classify(self, subject: str, body: str, message_id: str = "") -> ClassificationResult:
        text = f"{subject or ''} {body or ''}".lower()
        rules = self.rules

        job_score = rules.job.score(text)
        talent_score = rules.talent.score(text)

        if rules.has_exclusion(text) and not rules.has_high_job_keyword(text):
            decision, reason = Decision.EXCLUDED, DecisionReason.EXCLUSION_KEYWORD
        elif talent_score >= rules.talent_threshold:
            decision, reason = Decision.EXCLUDED, DecisionReason.TALENT_SIGNAL
        elif job_score >= rules.job_threshold:
            decision, reason = Decision.JOB, DecisionReason.JOB_SIGNAL
        else:
            decision, reason = Decision.EXCLUDED, DecisionReason.INSUFFICIENT_JOB_SIGNAL

        return ClassificationResult(
            message_id=message_id,
            job_score=job_score,
            talent_score=talent_score,
            decision=decision,
            reason=reason,
            strategy=self.name,
        )

    async def evaluate(self, message: InboundMessage) -> ClassificationResult:
        return self.classify(message.subject, message.body, message.id)


class ModelClassifier:
    """LLM type detection; keyword scores are still reported alongside."""

    name = "model"

    _TYPE_TO_DECISION = {
        "job": (Decision.JOB, DecisionReason.MODEL_JOB),
        "talent": (Decision.EXCLUDED, DecisionReason.MODEL_TALENT),
        "other": (Decision.EXCLUDED, DecisionReason.MODEL_OTHER),
    }

    def __init__(self, llm: LLMGate, rules: KeywordRules | None = None):
        self.llm = llm
        self.keywords = KeywordClassifier(rules)

    async def evaluate(self, message: InboundMessage) -> ClassificationResult:
        """
        Raises:
            RateLimitExceeded: From the LLM gate
            ClassificationError: If the model call fails or returns no usable type
        """
        scores = self.keywords.classify(message.subject, message.body, message.id)
        if not message.body or not message.body.strip():
            # an empty body has nothing to classify or extract
            return ClassificationResult(
                message_id=message.id,
                job_score=scores.job_score,
                talent_score=scores.talent_score,
                decision=Decision.EXCLUDED,
                reason=DecisionReason.EMPTY_BODY,
                strategy=self.name,
            )

        result = await self.llm.generate(
            build_type_detection_prompt(message.subject, message.body), message.id
        )
        if not result.success or not result.text:
            raise ClassificationError(result.error or "Type detection failed", message.id)

        try:
            mail_type = str(decode_json_object(result.text).get("type", "")).strip().lower()
        except ExtractionParseError as e:
            raise ClassificationError(str(e), message.id) from e

        if mail_type not in self._TYPE_TO_DECISION:
            logger.warning("Unknown mail type from model", message_id=message.id, type=mail_type)
            mail_type = "other"

        decision, reason = self._TYPE_TO_DECISION[mail_type]
        return ClassificationResult(
            message_id=message.id,
            job_score=scores.job_score,
            talent_score=scores.talent_score,
            decision=decision,
            reason=reason,
            strategy=self.name,
        )


class HybridClassifier:
    """Keyword first; weak job signals are deferred to the model."""

    name = "hybrid"

    def __init__(self, keywords: KeywordClassifier, model: ModelClassifier):
        self.keywords = keywords
        self.model = model

    async def evaluate(self, message: InboundMessage) -> ClassificationResult:
        result = self.keywords.classify(message.subject, message.body, message.id)
        if result.reason is DecisionReason.INSUFFICIENT_JOB_SIGNAL and result.job_score > 0:
            logger.debug(
                "Weak job signal, deferring to model",
                message_id=message.id,
                job_score=result.job_score,
            )
            deferred = await self.model.evaluate(message)
            deferred.strategy = self.name
            return deferred
        result.strategy = self.name
        return result


def build_classifier(
    strategy: str,
    rules: KeywordRules | None = None,
    llm: LLMGate | None = None,
    rules_path: str | None = None,
) -> ClassificationStrategy:
    """
    Build the configured strategy.

    Raises:
        ValueError: Unknown strategy, or a model-backed strategy without an LLM gate
    """
    strategy = (strategy or "keyword").strip().lower()
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown classifier strategy {strategy!r}; expected one of {STRATEGIES}")

    if rules is None:
        rules = load_keyword_rules(rules_path)
    keywords = KeywordClassifier(rules)

    if strategy == "keyword":
        return keywords
    if llm is None:
        raise ValueError(f"Classifier strategy {strategy!r} needs an LLM client")

    model = ModelClassifier(llm, rules)
    if strategy == "model":
        return model
    return HybridClassifier(keywords, model)
