"""Individual evidence rules for transfer pair scoring."""

from __future__ import annotations

import logging
from typing import Any

from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.fuzzy import NameMatcher
from transfer_engine.normalization.models import EvidenceBundle

logger = logging.getLogger(__name__)

# Hints that only carry a direction; they never count as transfer wording.
DIRECTION_HINTS = frozenset({"to", "from"})

_COMPLEMENTARY_DIRECTIONS = {
    "transfer_to": "transfer_from",
    "payment_to": "payment_from",
}


def keyword_hints(evidence: EvidenceBundle) -> list[str]:
    """Transfer wording found on one leg, without bare direction hints."""
    return [hint for hint in evidence.hints if hint not in DIRECTION_HINTS]


class TransferRules:
    """Collection of rules comparing the evidence of two transfer legs.

    Every rule takes the outgoing leg's evidence first and returns a tuple of
    (hit, details). Rules never raise on missing evidence; absent fields
    simply make the rule miss.
    """

    def __init__(self, config: MatchingConfig | None = None):
        """
        Initialize transfer rules.

        Args:
            config: Matching configuration
        """
        self.config = config or MatchingConfig()
        self.name_matcher = NameMatcher(self.config.name_match)

    def transfer_keyword(
        self, ev_out: EvidenceBundle, ev_in: EvidenceBundle
    ) -> tuple[int, dict[str, Any]]:
        """
        Count the legs that carry transfer wording.

        Returns:
            Tuple of (number of legs with keywords: 0, 1 or 2, details)
        """
        out_words = keyword_hints(ev_out)
        in_words = keyword_hints(ev_in)
        details = {"out_keywords": out_words, "in_keywords": in_words}
        return int(bool(out_words)) + int(bool(in_words)), details

    def direction_complement(
        self, ev_out: EvidenceBundle, ev_in: EvidenceBundle
    ) -> tuple[bool, dict[str, Any]]:
        """
        Check for "transfer to" on the debit meeting "transfer from" on the credit.
        """
        details = {"out_type": ev_out.transfer_type, "in_type": ev_in.transfer_type}
        expected = _COMPLEMENTARY_DIRECTIONS.get(ev_out.transfer_type or "")
        hit = expected is not None and ev_in.transfer_type == expected
        return hit, details

    def reference_id(
        self, ev_out: EvidenceBundle, ev_in: EvidenceBundle
    ) -> tuple[bool | None, dict[str, Any]]:
        """
        Compare payment reference ids.

        Returns:
            Tuple of (True on match, False on mismatch, None when a leg has no
            reference id; details)
        """
        details = {"out_reference": ev_out.reference_id, "in_reference": ev_in.reference_id}
        if not ev_out.reference_id or not ev_in.reference_id:
            details["match_type"] = "missing_reference"
            return None, details
        if ev_out.reference_id == ev_in.reference_id:
            details["match_type"] = "exact"
            return True, details
        details["match_type"] = "mismatch"
        return False, details

    def pay_id(
        self, ev_out: EvidenceBundle, ev_in: EvidenceBundle
    ) -> tuple[bool, dict[str, Any]]:
        details = {"out_pay_id": ev_out.pay_id, "in_pay_id": ev_in.pay_id}
        hit = bool(ev_out.pay_id) and ev_out.pay_id == ev_in.pay_id
        return hit, details

    def account_key_closure(
        self, source: EvidenceBundle, target: EvidenceBundle
    ) -> tuple[bool, dict[str, Any]]:
        """
        Check whether ``source`` names ``target``'s account as its counterparty.

        Args:
            source: Leg whose description carries a counterparty account key
            target: Leg whose statement metadata declares its own account key

        Returns:
            Tuple of (hit, details)
        """
        details = {
            "counterparty_account_key": source.counterparty_account_key,
            "account_key": target.account_key,
        }
        hit = (
            bool(source.counterparty_account_key)
            and source.counterparty_account_key == target.account_key
        )
        return hit, details

    def name_closure(
        self, source: EvidenceBundle, target: EvidenceBundle
    ) -> tuple[bool, dict[str, Any]]:
        """
        Check whether ``source``'s counterparty name matches ``target``'s account name.
        """
        details = {
            "counterparty_name": source.counterparty_name,
            "account_name": target.account_name,
        }
        hit = self.name_matcher.names_match(
            source.counterparty_name, target.account_name
        )
        return hit, details

    def no_transfer_hints(
        self,
        ev_out: EvidenceBundle,
        ev_in: EvidenceBundle,
        identifier_match: bool = False,
    ) -> tuple[bool, dict[str, Any]]:
        """
        Penalty rule: neither leg carries transfer wording.

        An exact reference or pay-id match counts as transfer evidence, so the
        penalty is not raised for such pairs.

        Args:
            ev_out: Outgoing leg evidence
            ev_in: Incoming leg evidence
            identifier_match: Whether a reference or pay-id matched

        Returns:
            Tuple of (penalty applies, details)
        """
        has_words = bool(keyword_hints(ev_out) or keyword_hints(ev_in))
        details = {"has_keywords": has_words, "identifier_match": identifier_match}
        return not has_words and not identifier_match, details

    def merchant_like(
        self, ev_out: EvidenceBundle, ev_in: EvidenceBundle
    ) -> tuple[bool, dict[str, Any]]:
        """
        Penalty rule: a leg reads like a bill or merchant payment and neither
        leg carries transfer wording.
        """
        details = {"out_merchant_like": ev_out.merchant_like, "in_merchant_like": ev_in.merchant_like}
        if keyword_hints(ev_out) or keyword_hints(ev_in):
            return False, details
        return ev_out.merchant_like or ev_in.merchant_like, details
