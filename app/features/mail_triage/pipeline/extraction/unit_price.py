"""
Deterministic 万円 (ten-thousand-yen) price normalization.

The extraction prompt asks the model to return unitPrice as a number, but
models regularly echo the raw text ("60~70万", "550,000円"). This parser
applies the same rules the prompt describes so both paths agree:

- figures in parentheses after the amount are ignored ("70万円(140-200)" -> 70)
- 円 amounts are divided by 10000 ("550,000円" -> 55)
- ranges resolve to the upper bound for posted prices (job mail) and to the
  lower bound for desired prices (talent mail)
"""

import re
import unicodedata
from enum import Enum
from typing import Any

YEN_PER_MAN = 10000

_PARENTHESIZED = re.compile(r"\([^)]*\)")
_RANGE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(万円|万|円)?\s*[~〜\-–−]\s*(\d+(?:\.\d+)?)\s*(万円|万|円)"
)
_AMOUNT = re.compile(r"(\d+(?:\.\d+)?)\s*(万円|万|円)")
_BARE_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$")


class PriceContext(str, Enum):
    POSTED = "posted"  # price offered by a job posting
    DESIRED = "desired"  # price asked for by a candidate


def _to_man_yen(amount: float, unit: str | None) -> float:
    if unit == "円" or (unit is None and amount >= YEN_PER_MAN):
        return amount / YEN_PER_MAN
    return amount


def parse_unit_price(value: Any, context: PriceContext = PriceContext.POSTED) -> float | None:
    """
    Normalize a unit price to 万円.

    Args:
        value: Number or free text from the mail / LLM output
        context: Which bound of a range to keep

    Returns:
        Price in 万円, or None when no price can be read
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _to_man_yen(float(value), None)

    text = unicodedata.normalize("NFKC", str(value))
    text = _PARENTHESIZED.sub("", text).replace(",", "")
    if not text.strip():
        return None

    range_match = _RANGE.search(text)
    if range_match:
        low_amount, low_unit, high_amount, high_unit = range_match.groups()
        low = _to_man_yen(float(low_amount), low_unit or high_unit)
        high = _to_man_yen(float(high_amount), high_unit)
        return max(low, high) if context is PriceContext.POSTED else min(low, high)

    amount_match = _AMOUNT.search(text)
    if amount_match:
        return _to_man_yen(float(amount_match.group(1)), amount_match.group(2))

    bare_match = _BARE_NUMBER.match(text)
    if bare_match:
        return _to_man_yen(float(bare_match.group(1)), None)

    return None
