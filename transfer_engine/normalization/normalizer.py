"""Text and amount normalization helpers shared by evidence extraction."""

from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")
_TOKEN_RE = re.compile(r"[a-z0-9@._'&-]+")
_CURRENCY_CLUTTER_RE = re.compile(r"[$€£,\s]|AUD|USD", re.IGNORECASE)


# ============================================================================
# Text
# ============================================================================


def normalize_text(*parts: str | None) -> str:
    """
    Join the given parts, lower-case them and collapse whitespace.

    Args:
        *parts: Description fragments (missing parts are skipped)

    Returns:
        Normalized text, possibly empty
    """
    joined = " ".join(part for part in parts if part)
    return _WHITESPACE_RE.sub(" ", joined).strip().lower()


def tokenize(text: str) -> list[str]:
    """Split normalized text into tokens, dropping bare punctuation."""
    return [t for t in _TOKEN_RE.findall(text) if any(c.isalnum() for c in t)]


def digits_only(value: str | None) -> str:
    return _NON_DIGIT_RE.sub("", value or "")


def collapse_whitespace(value: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", value or "").strip()


# ============================================================================
# Amounts
# ============================================================================


def to_minor_units(amount: str | Decimal | float | int | None) -> int | None:
    """
    Convert a major-unit amount into signed integer minor units.

    Handles:
    - "-50.00" -> -5000
    - "$1,234.56" -> 123456
    - Decimal("12.345") -> 1235 (half-up)
    - 50 -> 5000

    Args:
        amount: Amount in major units

    Returns:
        Minor units or None when the value cannot be parsed
    """
    if amount is None:
        return None

    if isinstance(amount, bool):
        return None

    try:
        if isinstance(amount, Decimal):
            value = amount
        elif isinstance(amount, (int, float)):
            value = Decimal(str(amount))
        else:
            cleaned = _CURRENCY_CLUTTER_RE.sub("", str(amount))
            if not cleaned:
                return None
            value = Decimal(cleaned)
    except (InvalidOperation, ValueError) as e:
        logger.warning(f"Failed to convert amount {amount!r}: {e}")
        return None

    if not value.is_finite():
        return None

    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
