"""
Service layer for mail triage feature.
"""

from .dedup_gate import DedupGate
from .llm_gate import LLMGate
from .throttle import FixedIntervalThrottle, Throttle

__all__ = ["DedupGate", "FixedIntervalThrottle", "LLMGate", "Throttle"]
