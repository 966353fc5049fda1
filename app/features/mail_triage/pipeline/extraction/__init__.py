"""
Job extraction package.

Prompt building, LLM output decoding and the submission orchestrator.
"""

from .parser import ExtractionParseError, parse_job_record
from .service import ExtractionOrchestrator
from .unit_price import PriceContext, parse_unit_price

__all__ = [
    "ExtractionOrchestrator",
    "ExtractionParseError",
    "PriceContext",
    "parse_job_record",
    "parse_unit_price",
]
