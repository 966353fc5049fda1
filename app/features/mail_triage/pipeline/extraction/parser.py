"""
Decoding of LLM output into an ExtractedJobRecord.
"""

import json
import re
from typing import Any

from pydantic import ValidationError

from app.features.mail_triage.domain.models import ExtractedJobRecord
from app.features.mail_triage.pipeline.extraction.unit_price import PriceContext, parse_unit_price
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


class ExtractionParseError(Exception):
    """Raised when model output cannot be turned into a job record."""

    def __init__(self, message: str, raw_text: str | None = None):
        super().__init__(message)
        self.raw_text = raw_text


def strip_code_fence(text: str) -> str:
    """Return the contents of a ```json fenced block, or the text unchanged."""
    match = _FENCED_BLOCK.search(text)
    return match.group(1) if match else text.strip()


def decode_json_object(text: str) -> dict[str, Any]:
    """
    Decode model output into a single JSON object.

    A top-level array yields its first element.

    Raises:
        ExtractionParseError: On invalid JSON, an empty array or a non-object value
    """
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise ExtractionParseError(f"Invalid JSON from model: {e}", raw_text=text) from e

    if isinstance(data, list):
        if not data:
            raise ExtractionParseError("Model returned an empty array", raw_text=text)
        data = data[0]

    if not isinstance(data, dict):
        raise ExtractionParseError(
            f"Model returned {type(data).__name__}, expected object", raw_text=text
        )
    return data


def parse_job_record(text: str) -> ExtractedJobRecord:
    """
    Decode and validate a job record.

    unitPrice text is coerced to 万円 with the posted-price rules before
    validation. A record with an empty title is returned as-is; deciding what
    that means is up to the caller.

    Raises:
        ExtractionParseError: If decoding or validation fails
    """
    data = decode_json_object(text)

    if "unitPrice" in data:
        data["unitPrice"] = parse_unit_price(data["unitPrice"], PriceContext.POSTED)

    try:
        return ExtractedJobRecord.model_validate(data)
    except ValidationError as e:
        logger.warning("Extracted record failed validation", errors=e.error_count())
        raise ExtractionParseError(f"Invalid job record: {e}", raw_text=text) from e
