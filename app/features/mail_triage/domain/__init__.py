"""
Domain subpackage for mail triage feature.
"""

from .models import (
    ClassificationResult,
    Decision,
    DecisionReason,
    ExtractedJobRecord,
    ImportResult,
    InboundMessage,
    ProcessOutcome,
    RateLimitExceeded,
    RateLimitState,
)

__all__ = [
    "ClassificationResult",
    "Decision",
    "DecisionReason",
    "ExtractedJobRecord",
    "ImportResult",
    "InboundMessage",
    "ProcessOutcome",
    "RateLimitExceeded",
    "RateLimitState",
]
