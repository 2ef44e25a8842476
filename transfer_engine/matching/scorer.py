"""Scoring of transfer candidate pairs."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Mapping

from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.models import (
    CandidatePair,
    HintTag,
    PenaltyTag,
    ScoredCandidate,
    ScoreExplanation,
)
from transfer_engine.matching.rules import TransferRules
from transfer_engine.normalization.models import EvidenceBundle

logger = logging.getLogger(__name__)


def _raise_toward_one(score: float, weight: float) -> float:
    return score + (1.0 - score) * weight


def _closure_rank(candidate: ScoredCandidate) -> tuple[int, float, int, str]:
    return (
        -candidate.strong_closure_count,
        -candidate.unpenalized_score,
        candidate.pair.date_diff_days,
        candidate.match_id,
    )


class PairScorer:
    """Scores candidate pairs and flags near-tied alternatives."""

    def __init__(self, config: MatchingConfig | None = None):
        """
        Initialize pair scorer.

        Args:
            config: Matching configuration
        """
        self.config = config or MatchingConfig()
        self.rules = TransferRules(self.config)

    def score(
        self, pair: CandidatePair, ev_out: EvidenceBundle, ev_in: EvidenceBundle
    ) -> ScoreExplanation:
        """
        Score a single candidate pair.

        The score starts at ``weights.base`` and decays linearly with the date
        gap. Each hint closes a fraction of the remaining distance to 1.0, then
        penalties are subtracted and the result is clamped to [0, 1].

        Args:
            pair: Candidate pair
            ev_out: Evidence of the outgoing leg
            ev_in: Evidence of the incoming leg

        Returns:
            Score explanation with ordered hint and penalty tags
        """
        weights = self.config.weights
        gap = min(pair.date_diff_days, weights.max_scored_gap_days)
        score = weights.base - weights.day_decay * gap

        explanation = ScoreExplanation(
            amount_minor=pair.amount_minor,
            date_diff_days=pair.date_diff_days,
            same_account=pair.same_account,
        )
        hints: list[HintTag] = []

        # 1. Transfer wording
        keyword_legs, _ = self.rules.transfer_keyword(ev_out, ev_in)
        if keyword_legs == 2:
            hints.append(HintTag.TRANSFER_KEYWORD_BOTH)
            score = _raise_toward_one(score, weights.transfer_keyword_both)
        elif keyword_legs == 1:
            hints.append(HintTag.TRANSFER_KEYWORD)
            score = _raise_toward_one(score, weights.transfer_keyword)

        # 2. "transfer to" meets "transfer from"
        hit, _ = self.rules.direction_complement(ev_out, ev_in)
        if hit:
            hints.append(HintTag.DIRECTION_COMPLEMENT)
            score = _raise_toward_one(score, weights.direction_complement)

        # 3. Reference id
        ref_hit, _ = self.rules.reference_id(ev_out, ev_in)
        if ref_hit:
            hints.append(HintTag.REFERENCE_ID_MATCH)
            explanation.reference_id = ev_out.reference_id
            score = _raise_toward_one(score, weights.reference_id)

        # 4. Pay-id
        pay_hit, _ = self.rules.pay_id(ev_out, ev_in)
        if pay_hit:
            hints.append(HintTag.PAY_ID_MATCH)
            explanation.pay_id_match = True
            score = _raise_toward_one(score, weights.pay_id)

        # 5. Account key closure, both directions
        hit, _ = self.rules.account_key_closure(ev_out, ev_in)
        if hit:
            hints.append(HintTag.ACCOUNT_KEY_OUT_TO_IN)
            explanation.account_key_out_to_in = True
            score = _raise_toward_one(score, weights.account_key_closure)
        hit, _ = self.rules.account_key_closure(ev_in, ev_out)
        if hit:
            hints.append(HintTag.ACCOUNT_KEY_IN_TO_OUT)
            explanation.account_key_in_to_out = True
            score = _raise_toward_one(score, weights.account_key_closure)

        # 6. Name closure, both directions
        hit, _ = self.rules.name_closure(ev_out, ev_in)
        if hit:
            hints.append(HintTag.NAME_OUT_TO_IN)
            explanation.name_out_to_in = True
            score = _raise_toward_one(score, weights.name_closure)
        hit, _ = self.rules.name_closure(ev_in, ev_out)
        if hit:
            hints.append(HintTag.NAME_IN_TO_OUT)
            explanation.name_in_to_out = True
            score = _raise_toward_one(score, weights.name_closure)

        # Penalties
        penalties: list[PenaltyTag] = []
        hit, _ = self.rules.no_transfer_hints(
            ev_out, ev_in, identifier_match=bool(ref_hit) or pay_hit
        )
        if hit:
            penalties.append(PenaltyTag.NO_TRANSFER_HINTS)
            score -= weights.no_transfer_hints

        hit, _ = self.rules.merchant_like(ev_out, ev_in)
        if hit:
            penalties.append(PenaltyTag.MERCHANT_LIKE)
            score -= weights.merchant_like

        if ref_hit is False:
            penalties.append(PenaltyTag.REFERENCE_ID_MISMATCH)
            score -= weights.reference_id_mismatch

        explanation.hints = hints
        explanation.penalties = penalties
        explanation.score = max(0.0, min(1.0, score))
        explanation.score_before_ambiguity = explanation.score
        explanation.strong_closure_count = sum(
            (
                ref_hit is True,
                bool(pay_hit),
                explanation.account_key_out_to_in,
                explanation.account_key_in_to_out,
            )
        )

        if self.config.debug:
            logger.debug(
                f"[SCORER] {pair.out_record.id} -> {pair.in_record.id}: "
                f"{explanation.score:.4f}",
                extra={
                    "match_id": pair.match_id,
                    "hints": [h.value for h in hints],
                    "penalties": [p.value for p in penalties],
                },
            )

        return explanation

    def score_all(
        self,
        pairs: list[CandidatePair],
        evidence: Mapping[str, EvidenceBundle],
    ) -> list[ScoredCandidate]:
        """
        Score all candidate pairs and flag ambiguity.

        Args:
            pairs: Candidate pairs
            evidence: Evidence bundles keyed by transaction id

        Returns:
            Scored candidates in the same order as ``pairs``
        """
        logger.info(f"[SCORER] Starting scoring for {len(pairs)} candidates")
        scored = [
            ScoredCandidate(
                pair=pair,
                explanation=self.score(
                    pair, evidence[pair.out_record.id], evidence[pair.in_record.id]
                ),
            )
            for pair in pairs
        ]
        flagged = self.flag_ambiguity(scored)

        avg_score = sum(c.score for c in scored) / len(scored) if scored else 0
        logger.info(
            f"[SCORER] ✓ Scored {len(scored)} candidates | "
            f"Average score: {avg_score:.4f} | Ambiguous: {flagged}"
        )
        return scored

    def flag_ambiguity(self, scored: list[ScoredCandidate]) -> int:
        """
        Penalize candidates that are near-tied with another candidate of the same leg.

        Candidates are ranked by exact identifier matches first, then by
        score. Only candidates with as many identifier matches as the
        leader can tie with it, so a unique reference-id, pay-id or
        account-key match is never penalized against keyword-only rivals.
        Ties are judged on the scores before this pass, so the outcome does
        not depend on visiting order or on earlier passes. A candidate is
        penalized once even if both of its legs are contended.

        Args:
            scored: Scored candidates, updated in place

        Returns:
            Number of candidates that received the penalty
        """
        margin = self.config.tie_breaking.ambiguity_margin
        penalty = self.config.weights.ambiguous

        by_leg: dict[str, list[ScoredCandidate]] = defaultdict(list)
        for candidate in scored:
            by_leg[f"out:{candidate.out_id}"].append(candidate)
            by_leg[f"in:{candidate.in_id}"].append(candidate)

        ambiguous: dict[str, ScoredCandidate] = {}
        for group in by_leg.values():
            if len(group) < 2:
                continue
            best = min(group, key=_closure_rank)
            peers = [
                c
                for c in group
                if c.strong_closure_count == best.strong_closure_count
                and best.unpenalized_score - c.unpenalized_score <= margin
            ]
            if len(peers) < 2:
                continue
            for candidate in peers:
                ambiguous[candidate.match_id] = candidate

        for candidate in ambiguous.values():
            explanation = candidate.explanation
            if explanation.add_penalty(PenaltyTag.AMBIGUOUS_MULTI_CANDIDATE):
                explanation.score = max(0.0, explanation.score - penalty)

        if ambiguous:
            logger.info(
                f"[SCORER] Tie-breaking: {len(ambiguous)} candidates within "
                f"{margin:.2f} of a competing candidate"
            )
        return len(ambiguous)


def score_candidates(
    pairs: list[CandidatePair],
    evidence: Mapping[str, EvidenceBundle],
    config: MatchingConfig | None = None,
) -> list[ScoredCandidate]:
    """Score candidate pairs (convenience function)."""
    return PairScorer(config).score_all(pairs, evidence)
