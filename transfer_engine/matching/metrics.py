"""Aggregate statistics for one transfer matching run."""

from __future__ import annotations

import logging
from collections import Counter

from transfer_engine.matching.models import (
    CollisionBucket,
    IgnoredPair,
    KpiEffect,
    MatchResult,
    MatchState,
    TransferDecision,
    TransferStats,
)

logger = logging.getLogger(__name__)

TOP_N = 10


class StatsCollector:
    """Accumulates counters while results are added."""

    def __init__(self, transaction_count: int = 0, candidate_count: int = 0):
        self.stats = TransferStats(
            transaction_count=transaction_count, candidate_count=candidate_count
        )
        self._hints: Counter[str] = Counter()
        self._penalties: Counter[str] = Counter()

    def add_result(self, result: MatchResult) -> None:
        """Update counters with one classified result."""
        stats = self.stats
        if result.state is MatchState.MATCHED:
            stats.matched_pairs += 1
        else:
            stats.uncertain_pairs += 1

        if result.decision is TransferDecision.INTERNAL_OFFSET:
            stats.internal_offset_pairs += 1
        elif result.decision is TransferDecision.BOUNDARY_FLOW:
            stats.boundary_flow_pairs += 1

        if result.kpi_effect is KpiEffect.EXCLUDED:
            # Both legs leave the totals
            stats.excluded_transaction_count += 2
            stats.excluded_amount_minor += result.amount_minor * 2

        if not result.explanation.has_identity_closure:
            stats.missing_identity_closure_pairs += 1

        self._hints.update(h.value for h in result.explanation.hints)
        self._penalties.update(p.value for p in result.explanation.penalties)

    def add_ignored(self, ignored: list[IgnoredPair]) -> None:
        self.stats.ignored_pairs += len(ignored)

    def add_collisions(self, collisions: list[CollisionBucket]) -> None:
        self.stats.collision_buckets += len(collisions)

    def finish(self) -> TransferStats:
        self.stats.top_hints = _top(self._hints)
        self.stats.top_penalties = _top(self._penalties)
        return self.stats


def _top(counter: Counter[str]) -> list[tuple[str, int]]:
    # Ties ordered by name so the output is reproducible
    return sorted(counter.items(), key=lambda item: (-item[1], item[0]))[:TOP_N]


def compute_stats(
    results: list[MatchResult],
    ignored: list[IgnoredPair] | None = None,
    collisions: list[CollisionBucket] | None = None,
    transaction_count: int = 0,
    candidate_count: int = 0,
) -> TransferStats:
    """
    Compute run statistics.

    Args:
        results: Classified match results
        ignored: Ignored-pair diagnostics
        collisions: Collision buckets
        transaction_count: Number of input transactions
        candidate_count: Number of generated candidate pairs

    Returns:
        Transfer statistics
    """
    collector = StatsCollector(transaction_count, candidate_count)
    for result in results:
        collector.add_result(result)
    collector.add_ignored(ignored or [])
    collector.add_collisions(collisions or [])
    stats = collector.finish()

    logger.debug(
        f"[METRICS] matched={stats.matched_pairs} uncertain={stats.uncertain_pairs} "
        f"internal={stats.internal_offset_pairs} excluded={stats.excluded_amount_minor}"
    )
    return stats
