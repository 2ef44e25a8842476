"""One-to-one assignment of scored candidates and collision reporting."""

from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict

from pydantic import BaseModel, Field

from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.models import (
    CollisionBucket,
    IgnoredPair,
    IgnoredReason,
    LegRole,
    MatchResult,
    MatchState,
    ScoredCandidate,
    SuggestedPairing,
    TransferLeg,
)

logger = logging.getLogger(__name__)


class ResolverOutcome(BaseModel):
    """Everything the resolver decided for one scope."""

    results: list[MatchResult] = Field(default_factory=list)
    ignored: list[IgnoredPair] = Field(default_factory=list)
    collisions: list[CollisionBucket] = Field(default_factory=list)


class AssignmentResolver:
    """Greedy, deterministic one-to-one assignment of transfer legs."""

    def __init__(self, config: MatchingConfig | None = None):
        """
        Initialize assignment resolver.

        Args:
            config: Matching configuration
        """
        self.config = config or MatchingConfig()

    def determine_state(self, score: float) -> MatchState:
        """
        Map a confidence score to a match state.

        Args:
            score: Candidate score

        Returns:
            matched, uncertain or ignored
        """
        if score >= self.config.min_matched:
            return MatchState.MATCHED
        if score >= self.config.min_uncertain:
            return MatchState.UNCERTAIN
        return MatchState.IGNORED

    def resolve(self, scored: list[ScoredCandidate]) -> ResolverOutcome:
        """
        Assign legs greedily by descending score.

        Ties on score go to the smaller date gap, then to the smaller match id.
        Assignment does not look at the thresholds, so raising ``min_matched``
        can only demote pairs and never changes which legs are paired.

        Args:
            scored: Scored candidates (ambiguity already flagged)

        Returns:
            Resolver outcome with results, ignored diagnostics and collisions
        """
        outcome = ResolverOutcome()
        used_out: set[str] = set()
        used_in: set[str] = set()

        for candidate in sorted(scored, key=lambda c: c.sort_key()):
            state = self.determine_state(candidate.score)

            if candidate.out_id in used_out or candidate.in_id in used_in:
                if state is not MatchState.IGNORED:
                    outcome.ignored.append(
                        self._ignored(candidate, IgnoredReason.LEG_ALREADY_ASSIGNED)
                    )
                continue

            used_out.add(candidate.out_id)
            used_in.add(candidate.in_id)

            if state is MatchState.IGNORED:
                outcome.ignored.append(self._ignored(candidate, IgnoredReason.LOW_CONFIDENCE))
                continue

            outcome.results.append(self._to_result(candidate, state))

        outcome.collisions = self.find_collisions(scored)

        matched = sum(1 for r in outcome.results if r.state is MatchState.MATCHED)
        logger.info(
            f"[RESOLVER] ✓ Resolved {len(scored)} candidates | "
            f"Matched: {matched} | "
            f"Uncertain: {len(outcome.results) - matched} | "
            f"Ignored: {len(outcome.ignored)} | "
            f"Collision buckets: {len(outcome.collisions)}"
        )
        return outcome

    def find_collisions(self, scored: list[ScoredCandidate]) -> list[CollisionBucket]:
        """
        Report every leg that had more than one viable candidate.

        Viability is judged on the score before the near-tie penalty, so a
        tie that the penalty pushed below ``min_uncertain`` is still reported.
        Each such leg contributes its (amount, earlier date of its best pair)
        key, whether or not it ended up assigned.

        Args:
            scored: Scored candidates

        Returns:
            Collision buckets sorted by (amount, date)
        """
        viable_by_leg: dict[tuple[LegRole, str], list[ScoredCandidate]] = defaultdict(list)
        for candidate in scored:
            if candidate.unpenalized_score < self.config.min_uncertain:
                continue
            viable_by_leg[("out", candidate.out_id)].append(candidate)
            viable_by_leg[("in", candidate.in_id)].append(candidate)

        buckets: dict[tuple[int, dt.date], CollisionBucket] = {}
        for (role, leg_id), group in sorted(viable_by_leg.items()):
            if len(group) < 2:
                continue
            ranked = sorted(group, key=lambda c: c.sort_key())
            best, second = ranked[0], ranked[1]
            key = (best.pair.amount_minor, best.pair.earlier_date)

            bucket = buckets.get(key)
            if bucket is None:
                bucket = CollisionBucket(amount_minor=key[0], date=key[1])
                buckets[key] = bucket

            ids = set(bucket.transaction_ids)
            dates = set(bucket.dates)
            for candidate in ranked:
                ids.update((candidate.out_id, candidate.in_id))
                dates.update((candidate.pair.out_record.date, candidate.pair.in_record.date))
            bucket.transaction_ids = sorted(ids)
            bucket.dates = sorted(dates)

            bucket.suggested.append(
                SuggestedPairing(
                    out_id=best.out_id,
                    in_id=best.in_id,
                    contended_role=role,
                    contended_id=leg_id,
                    best_score=best.score,
                    second_best_score=second.score,
                    viable_candidates=len(ranked),
                    strong_closure_count=best.strong_closure_count,
                )
            )

        max_suggestions = self.config.tie_breaking.max_suggestions
        for bucket in buckets.values():
            bucket.suggested.sort(
                key=lambda s: (-s.best_score, s.contended_role, s.contended_id)
            )
            del bucket.suggested[max_suggestions:]

        if buckets:
            logger.info(f"[RESOLVER] {len(buckets)} collision buckets detected")
        return [buckets[key] for key in sorted(buckets)]

    def _to_result(self, candidate: ScoredCandidate, state: MatchState) -> MatchResult:
        pair = candidate.pair
        return MatchResult(
            match_id=candidate.match_id,
            state=state,
            out_leg=TransferLeg.from_record(pair.out_record, "out"),
            in_leg=TransferLeg.from_record(pair.in_record, "in"),
            confidence=candidate.score,
            explanation=candidate.explanation,
        )

    @staticmethod
    def _ignored(candidate: ScoredCandidate, reason: IgnoredReason) -> IgnoredPair:
        return IgnoredPair(
            match_id=candidate.match_id,
            out_id=candidate.out_id,
            in_id=candidate.in_id,
            score=candidate.score,
            reason=reason,
        )
