"""Evidence extraction: turn one transaction into comparable transfer signals."""

from __future__ import annotations

import re
from typing import Mapping

from transfer_engine.normalization.accounts import (
    build_account_key,
    normalize_account_number,
    normalize_bsb,
)
from transfer_engine.normalization.models import (
    AccountMeta,
    EvidenceBundle,
    TransactionRecord,
    TransferType,
)
from transfer_engine.normalization.normalizer import (
    collapse_whitespace,
    digits_only,
    normalize_text,
    tokenize,
)

# Single words that indicate money moving between accounts.
TRANSFER_HINT_WORDS: tuple[str, ...] = (
    "transfer",
    "xfer",
    "trf",
    "tfr",
    "osko",
    "npp",
    "payid",
)

# Multi-word phrases, matched on the normalized text.
TRANSFER_HINT_PHRASES: tuple[str, ...] = (
    "internal transfer",
    "online transfer",
    "funds transfer",
    "own account",
)

MERCHANT_WORDS: tuple[str, ...] = (
    "water",
    "electric",
    "electricity",
    "gas",
    "telstra",
    "optus",
    "council",
    "rates",
    "rent",
    "insurance",
    "uber",
    "woolworths",
    "coles",
    "bpay",
    "eftpos",
)

EMAIL_RE = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)
AU_MOBILE_RE = re.compile(r"\b04\d{2}\s?\d{3}\s?\d{3}\b")
REF_ID_RE = re.compile(r"#([A-Za-z0-9]+)")
INLINE_ACCOUNT_KEY_RE = re.compile(r"\b(\d{6})-(\d{6,12})\b")
BSB_RE = re.compile(r"\b(\d{3})[- ]?(\d{3})\b")
ACCOUNT_RE = re.compile(r"\b(\d{6,12})\b")
PAYID_MARK_RE = re.compile(r"\(PAYID\)", re.IGNORECASE)
DIRECTED_NAME_RE = re.compile(r"\b(?:PAYMENT|TRANSFER)\s+(?:TO|FROM)\s+(.+)$", re.IGNORECASE)
PAYID_NAME_RE = re.compile(r"\b([A-Z][A-Z\s.'&-]{2,})\s*\(PAYID\)", re.IGNORECASE)

_TRANSFER_TYPE_PATTERNS: tuple[tuple[re.Pattern[str], TransferType], ...] = (
    (re.compile(r"\btransfer to\b"), "transfer_to"),
    (re.compile(r"\btransfer from\b"), "transfer_from"),
    (re.compile(r"\bpayment to\b"), "payment_to"),
    (re.compile(r"\bpayment from\b"), "payment_from"),
    (re.compile(r"\bosko\b"), "osko"),
    (re.compile(r"\bnpp\b"), "npp"),
)


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _clean_name(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = PAYID_MARK_RE.sub(" ", value)
    cleaned = REF_ID_RE.sub(" ", cleaned)
    cleaned = INLINE_ACCOUNT_KEY_RE.sub(" ", cleaned)
    cleaned = collapse_whitespace(cleaned)
    return cleaned or None


def extract_transfer_type(text: str) -> TransferType | None:
    """Detect the transfer direction or rail from normalized text."""
    for pattern, transfer_type in _TRANSFER_TYPE_PATTERNS:
        if pattern.search(text):
            return transfer_type
    return None


def extract_counterparty_account_key(text: str) -> str | None:
    """Find a counterparty ``BSB-ACCOUNT`` key in raw description text."""
    inline = INLINE_ACCOUNT_KEY_RE.search(text)
    if inline:
        key = build_account_key(inline.group(1), inline.group(2))
        if key:
            return key

    bsb_match = BSB_RE.search(text)
    if not bsb_match:
        return None
    bsb = normalize_bsb(bsb_match.group(1) + bsb_match.group(2))
    if not bsb:
        return None

    trailing = text[bsb_match.end():]
    account_match = ACCOUNT_RE.search(trailing)
    account_number = normalize_account_number(
        account_match.group(1) if account_match else None
    )
    return build_account_key(bsb, account_number)


def extract_counterparty_name(text: str) -> str | None:
    directed = DIRECTED_NAME_RE.search(text)
    if directed:
        name = _clean_name(directed.group(1))
        if name:
            return name

    payid_name = PAYID_NAME_RE.search(text)
    if payid_name:
        name = _clean_name(payid_name.group(1))
        if name:
            return name

    return None


def extract_pay_id(text: str) -> str | None:
    email = EMAIL_RE.search(text)
    if email:
        return email.group(0).lower()
    mobile = AU_MOBILE_RE.search(text)
    if mobile:
        return digits_only(mobile.group(0))
    return None


def extract_hints(
    normalized: str, tokens: list[str], transfer_type: TransferType | None
) -> list[str]:
    """
    Collect transfer-indicating hint tokens from the fixed vocabulary.

    "to" and "from" only count when a transfer or payment direction was
    detected, so "payment to" on its own does not make a grocery bill look
    like a transfer unless the direction pattern matched.

    Args:
        normalized: Lower-cased, whitespace-collapsed text
        tokens: Tokens of ``normalized``
        transfer_type: Detected direction, if any

    Returns:
        Ordered, de-duplicated hint tokens
    """
    token_set = set(tokens)
    hints = [word for word in TRANSFER_HINT_WORDS if word in token_set]
    hints.extend(phrase for phrase in TRANSFER_HINT_PHRASES if phrase in normalized)

    if transfer_type in ("transfer_to", "payment_to"):
        hints.append("to")
    elif transfer_type in ("transfer_from", "payment_from"):
        hints.append("from")

    return _unique(hints)


def extract_evidence(
    record: TransactionRecord, account_meta: AccountMeta | None = None
) -> EvidenceBundle:
    """
    Derive the evidence bundle for one transaction.

    Structured payment evidence supplied by the parser wins over values
    derived from the description, field by field. Missing inputs simply
    leave the corresponding evidence empty.

    Args:
        record: Transaction to inspect
        account_meta: Statement metadata of the record's own account

    Returns:
        Evidence bundle for the transaction
    """
    raw = collapse_whitespace(f"{record.description or ''} {record.merchant_norm or ''}")
    normalized = normalize_text(raw)
    tokens = tokenize(normalized)

    transfer_type = extract_transfer_type(normalized)
    ref_match = REF_ID_RE.search(raw)
    reference_id = ref_match.group(1).upper() if ref_match else None
    counterparty_account_key = extract_counterparty_account_key(raw)
    counterparty_name = extract_counterparty_name(raw)
    pay_id = extract_pay_id(raw)

    payment = record.payment
    if payment is not None:
        transfer_type = payment.transfer_type or transfer_type
        if payment.reference_id:
            reference_id = payment.reference_id.strip().lstrip("#").upper() or reference_id
        counterparty_account_key = (
            payment.counterparty_account_key or counterparty_account_key
        )
        counterparty_name = _clean_name(payment.counterparty_name) or counterparty_name
        if payment.pay_id:
            pay_id = payment.pay_id.strip().lower()

    hints = extract_hints(normalized, tokens, transfer_type)
    if payment is not None and payment.hints:
        hints = _unique(hints + [normalize_text(h) for h in payment.hints if h.strip()])

    token_set = set(tokens)
    merchant_like = any(word in token_set for word in MERCHANT_WORDS)

    return EvidenceBundle(
        transaction_id=record.id,
        text=normalized,
        tokens=tokens,
        hints=hints,
        transfer_type=transfer_type,
        reference_id=reference_id,
        counterparty_account_key=counterparty_account_key,
        counterparty_name=counterparty_name,
        pay_id=pay_id,
        merchant_like=merchant_like,
        account_key=account_meta.account_key if account_meta else None,
        account_name=account_meta.account_name if account_meta else None,
    )


def extract_all(
    records: list[TransactionRecord],
    account_meta: Mapping[tuple[str, str], AccountMeta] | None = None,
) -> dict[str, EvidenceBundle]:
    """Extract evidence for every record, keyed by transaction id."""
    account_meta = account_meta or {}
    return {
        record.id: extract_evidence(
            record, account_meta.get((record.bank_id, record.account_id))
        )
        for record in records
    }
