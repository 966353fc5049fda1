"""
Mail classification package.

Keyword scoring plus the model-backed and hybrid strategies.
"""

from .keywords import KeywordRules, load_keyword_rules
from .service import (
    ClassificationError,
    HybridClassifier,
    KeywordClassifier,
    ModelClassifier,
    build_classifier,
)

__all__ = [
    "ClassificationError",
    "HybridClassifier",
    "KeywordClassifier",
    "KeywordRules",
    "ModelClassifier",
    "build_classifier",
    "load_keyword_rules",
]
