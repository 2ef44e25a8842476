"""Account identity helpers: account keys and display labels."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from transfer_engine.normalization.normalizer import collapse_whitespace, digits_only

if TYPE_CHECKING:
    from transfer_engine.normalization.models import AccountMeta

_LEADING_MONEY_RE = re.compile(r"^[+\-]?\s*\$\s*[\d,]+(?:\.\d{2})?\s*")
_LEADING_PUNCT_RE = re.compile(r"^[^A-Za-z0-9]+")
_HEADER_WORD_RE = re.compile(r"^(ACCOUNT|STATEMENT|PAGE|DATE|BSB)\b", re.IGNORECASE)
_NUMERIC_ONLY_RE = re.compile(r"^[\d\s.$+\-]+$")


def normalize_bsb(value: str | None) -> str | None:
    digits = digits_only(value)
    if len(digits) < 6:
        return None
    return digits[:6]


def normalize_account_number(value: str | None) -> str | None:
    digits = digits_only(value)
    if len(digits) < 6:
        return None
    return digits


def build_account_key(bsb: str | None, account_number: str | None) -> str | None:
    """Build the canonical ``BSB-ACCOUNT`` key, or None if either part is unusable."""
    normalized_bsb = normalize_bsb(bsb)
    normalized_account = normalize_account_number(account_number)
    if not normalized_bsb or not normalized_account:
        return None
    return f"{normalized_bsb}-{normalized_account}"


def _last4(value: str | None) -> str | None:
    digits = digits_only(value)
    if len(digits) < 4:
        return None
    return digits[-4:]


def sanitize_account_name(name: str | None) -> str | None:
    """Strip statement noise from a declared account name.

    Returns None for values that are really headers, balances or numbers.
    """
    raw = _LEADING_MONEY_RE.sub("", name or "")
    raw = collapse_whitespace(_LEADING_PUNCT_RE.sub("", raw))
    if not raw:
        return None
    if _HEADER_WORD_RE.match(raw):
        return None
    if _NUMERIC_ONLY_RE.match(raw):
        return None
    return raw


def format_account_label(account_id: str, meta: AccountMeta | None = None) -> str:
    """
    Human-readable label for an account.

    Preference order: alias, sanitized account name, account key, masked
    BSB plus last four digits, masked last four digits, "Unknown account".

    Args:
        account_id: Account id the label is for
        meta: Optional statement metadata for that account

    Returns:
        Display label
    """
    if meta is not None:
        alias = (meta.alias or "").strip()
        if alias:
            return alias

        name = sanitize_account_name(meta.account_name)
        if name:
            return name

        if meta.account_key:
            return meta.account_key

        if meta.bsb:
            tail = _last4(meta.account_number) or _last4(account_id)
            return f"{meta.bsb}-••••{tail}" if tail else meta.bsb

    tail = _last4(meta.account_number if meta else None) or _last4(account_id)
    if tail:
        return f"Acct ••••{tail}"
    if account_id and account_id != "default":
        return account_id
    return "Unknown account"
