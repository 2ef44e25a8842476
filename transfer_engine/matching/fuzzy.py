"""Counterparty name comparison using name fingerprints and rapidfuzz."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from rapidfuzz import fuzz

from transfer_engine.matching.config import NameMatchConfig

logger = logging.getLogger(__name__)

_NON_LETTER_RE = re.compile(r"[^A-Z ]")
_SPACES_RE = re.compile(r"\s+")


def normalize_name(value: str | None) -> str:
    """Upper-case a name and reduce it to letters and single spaces."""
    upper = _NON_LETTER_RE.sub(" ", (value or "").upper())
    return _SPACES_RE.sub(" ", upper).strip()


@dataclass(frozen=True)
class NameFingerprint:
    """Comparable shape of a personal or account name."""

    normalized: str
    tokens: tuple[str, ...] = field(default_factory=tuple)
    last: str | None = None
    first_initial: str | None = None
    initials: str = ""

    @classmethod
    def build(cls, value: str | None) -> NameFingerprint:
        normalized = normalize_name(value)
        tokens = tuple(t for t in normalized.split(" ") if t)
        return cls(
            normalized=normalized,
            tokens=tokens,
            last=tokens[-1] if len(tokens) >= 2 else None,
            first_initial=tokens[0][0] if tokens else None,
            initials="".join(t[0] for t in tokens),
        )

    @property
    def token_set(self) -> set[str]:
        return set(self.tokens)

    @property
    def initial_set(self) -> set[str]:
        return set(self.initials)


def name_match_strong(a_name: str | None, b_name: str | None) -> bool:
    """
    Strong fingerprint rule for two names.

    Two names match when they normalize to the same string, or when they
    share a surname and at least one of:
    - one first name is a single letter equal to the other's first initial
    - two or more shared tokens
    - two or more shared initials, including the surname's initial

    Example: "J SMITH" matches "JOHN SMITH", "JOHN A SMITH" matches
    "JOHN SMITH", "MARY DOE" does not match "JOHN DOE".

    Args:
        a_name: First name
        b_name: Second name

    Returns:
        True if the names match strongly
    """
    a = NameFingerprint.build(a_name)
    b = NameFingerprint.build(b_name)
    if not a.normalized or not b.normalized:
        return False
    if a.normalized == b.normalized:
        return True
    if not a.last or not b.last or a.last != b.last:
        return False

    a_first, b_first = a.tokens[0], b.tokens[0]
    single_letter_first = (len(a_first) == 1 and a_first == b.first_initial) or (
        len(b_first) == 1 and b_first == a.first_initial
    )
    shared_tokens = len(a.token_set & b.token_set) >= 2

    last_initial = a.last[0]
    shared_initials = (
        len(a.initial_set & b.initial_set) >= 2
        and last_initial in a.initial_set
        and last_initial in b.initial_set
    )
    return single_letter_first or shared_tokens or shared_initials


class NameMatcher:
    """Decide whether a counterparty name refers to an account holder."""

    def __init__(self, config: NameMatchConfig | None = None):
        self.config = config or NameMatchConfig()

    def token_sort_ratio(self, str1: str | None, str2: str | None) -> float:
        """
        Order-independent similarity of two normalized names.

        Returns:
            Similarity ratio (0-1)
        """
        a, b = normalize_name(str1), normalize_name(str2)
        if not a or not b:
            return 0.0
        return fuzz.token_sort_ratio(a, b) / 100.0

    def names_match(self, counterparty: str | None, account_name: str | None) -> bool:
        """
        Check whether a counterparty name points at an account name.

        Tried in order: exact normalized equality, containment when both
        names are long enough, the strong fingerprint rule, then the
        rapidfuzz token-sort fallback.

        Args:
            counterparty: Name found in a transaction description
            account_name: Declared name of the other leg's account

        Returns:
            True if the names match
        """
        a, b = normalize_name(counterparty), normalize_name(account_name)
        if not a or not b:
            return False
        if a == b:
            return True

        min_len = self.config.min_containment_length
        if len(a) >= min_len and len(b) >= min_len and (a in b or b in a):
            return True

        if name_match_strong(a, b):
            return True

        if not self.config.use_fuzzy_fallback:
            return False

        ratio = self.token_sort_ratio(a, b)
        if ratio >= self.config.min_token_sort_ratio:
            logger.debug(f"[NAMES] Fuzzy match '{a}' ~ '{b}' ({ratio:.2f})")
            return True
        return False
