"""Transfer matching engine: orchestrates one analysis run."""

from __future__ import annotations

import logging
from typing import Iterable

from pydantic import BaseModel, Field

from transfer_engine.matching.boundary import BoundaryClassifier, BoundaryConfig
from transfer_engine.matching.candidates import CandidateGenerator
from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.metrics import compute_stats
from transfer_engine.matching.models import (
    CollisionBucket,
    IgnoredPair,
    MatchResult,
    MatchState,
    TransactionAnnotation,
    TransferDecision,
    TransferStats,
)
from transfer_engine.matching.resolver import AssignmentResolver
from transfer_engine.matching.scorer import PairScorer
from transfer_engine.normalization.evidence import extract_all
from transfer_engine.normalization.models import AccountMeta, TransactionRecord

logger = logging.getLogger(__name__)


class TransferMatchReport(BaseModel):
    """Output of one engine run."""

    results: list[MatchResult] = Field(default_factory=list)
    collisions: list[CollisionBucket] = Field(default_factory=list)
    ignored: list[IgnoredPair] = Field(default_factory=list)
    stats: TransferStats = Field(default_factory=TransferStats)
    boundary_account_ids: list[str] = Field(default_factory=list)
    config: MatchingConfig = Field(default_factory=MatchingConfig)

    def annotations(self) -> dict[str, TransactionAnnotation]:
        """
        Per-transaction annotations keyed by transaction id.

        Only legs of matched or uncertain results are annotated.
        """
        annotations: dict[str, TransactionAnnotation] = {}
        for result in self.results:
            for leg, other in (
                (result.out_leg, result.in_leg),
                (result.in_leg, result.out_leg),
            ):
                annotations[leg.transaction_id] = TransactionAnnotation(
                    transaction_id=leg.transaction_id,
                    match_id=result.match_id,
                    role=leg.role,
                    counterpart_id=other.transaction_id,
                    state=result.state,
                    decision=result.decision,
                    kpi_effect=result.kpi_effect,
                    confidence=result.confidence,
                    same_file=result.same_file,
                    why_sentence=result.why_sentence,
                )
        return annotations

    def matched(self) -> list[MatchResult]:
        return [r for r in self.results if r.state is MatchState.MATCHED]

    def uncertain(self) -> list[MatchResult]:
        return [r for r in self.results if r.state is MatchState.UNCERTAIN]


class TransferMatchingEngine:
    """
    Main engine for transfer matching and boundary classification.

    Orchestrates:
    1. Evidence extraction
    2. Candidate generation
    3. Pair scoring and ambiguity flagging
    4. One-to-one assignment
    5. Boundary classification and statistics

    The engine holds no state between runs, so one instance can serve many
    threads concurrently.
    """

    def __init__(self, config: MatchingConfig | None = None):
        """
        Initialize matching engine.

        Args:
            config: Matching configuration
        """
        self.config = config or MatchingConfig()
        self.config.validate_config()

        # Initialize components
        self.generator = CandidateGenerator(self.config)
        self.scorer = PairScorer(self.config)
        self.resolver = AssignmentResolver(self.config)

        logger.debug(
            f"[ENGINE] Initialized | window={self.config.window_days}d "
            f"matched>={self.config.min_matched:.2f} "
            f"uncertain>={self.config.min_uncertain:.2f}"
        )

    def run(
        self,
        records: Iterable[TransactionRecord],
        boundary: BoundaryConfig | None = None,
        account_meta: Iterable[AccountMeta] | None = None,
    ) -> TransferMatchReport:
        """
        Match transfers across one analysis scope.

        Args:
            records: Transactions of the scope (not modified)
            boundary: Boundary accounts; None or empty means no boundary
            account_meta: Statement account metadata, merged with the boundary's

        Returns:
            Report with classified results, collisions, diagnostics and stats
        """
        boundary = boundary or BoundaryConfig()
        unique = self._unique_records(records)

        meta_index = boundary.meta_index()
        for meta in account_meta or ():
            meta_index[meta.lookup_key()] = meta

        logger.info(
            f"[ENGINE] Starting transfer matching | "
            f"Transactions: {len(unique)} | "
            f"Boundary accounts: {len(boundary.account_ids)}"
        )

        # Step 1: Evidence
        evidence = extract_all(unique, meta_index)

        # Step 2: Candidates
        pairs = self.generator.generate(unique)

        # Step 3: Scores
        scored = self.scorer.score_all(pairs, evidence)

        # Step 4: Assignment
        outcome = self.resolver.resolve(scored)

        # Step 5: Boundary decisions
        # Labels use the same merged metadata as scoring
        if meta_index:
            boundary = boundary.model_copy(update={"account_meta": list(meta_index.values())})
        classifier = BoundaryClassifier(boundary)
        results = classifier.classify_all(outcome.results)

        stats = compute_stats(
            results,
            ignored=outcome.ignored,
            collisions=outcome.collisions,
            transaction_count=len(unique),
            candidate_count=len(pairs),
        )

        logger.info(
            f"[ENGINE] ✓ Transfer matching complete | "
            f"Matched: {stats.matched_pairs} | "
            f"Uncertain: {stats.uncertain_pairs} | "
            f"Internal offsets: {stats.internal_offset_pairs} | "
            f"Excluded amount: {stats.excluded_amount_minor}"
        )

        return TransferMatchReport(
            results=results,
            collisions=outcome.collisions,
            ignored=outcome.ignored,
            stats=stats,
            boundary_account_ids=list(boundary.account_ids),
            config=self.config,
        )

    @staticmethod
    def _unique_records(records: Iterable[TransactionRecord]) -> list[TransactionRecord]:
        seen: dict[str, TransactionRecord] = {}
        for record in records:
            if record.id in seen:
                logger.warning(f"[ENGINE] Duplicate transaction id {record.id} skipped")
                continue
            seen[record.id] = record
        return list(seen.values())


def match_transfers(
    records: Iterable[TransactionRecord],
    boundary: BoundaryConfig | None = None,
    config: MatchingConfig | None = None,
    account_meta: Iterable[AccountMeta] | None = None,
) -> TransferMatchReport:
    """
    Run the transfer matching engine (convenience function).

    Args:
        records: Transactions of the scope
        boundary: Boundary accounts
        config: Matching configuration (defaults from settings when None)
        account_meta: Statement account metadata

    Returns:
        Transfer match report
    """
    engine = TransferMatchingEngine(config or MatchingConfig.from_settings())
    return engine.run(records, boundary=boundary, account_meta=account_meta)


def filter_results(
    results: Iterable[MatchResult],
    state: MatchState | str | None = None,
    decision: TransferDecision | str | None = None,
    same_file: bool | None = None,
    account_id: str | None = None,
    amount_minor: int | None = None,
    query: str | None = None,
) -> list[MatchResult]:
    """
    Filter results the way the transfer inspector does.

    Args:
        results: Classified results
        state: Keep only this state
        decision: Keep only this decision
        same_file: Keep only results with this same-file flag
        account_id: Keep results with a leg on this account
        amount_minor: Keep results of this absolute amount
        query: Case-insensitive text found in ids, descriptions or the rationale

    Returns:
        Matching results, input order preserved
    """
    wanted_state = MatchState(state) if state else None
    wanted_decision = TransferDecision(decision) if decision else None
    needle = (query or "").strip().lower()

    filtered = []
    for result in results:
        if wanted_state and result.state is not wanted_state:
            continue
        if wanted_decision and result.decision is not wanted_decision:
            continue
        if same_file is not None and result.same_file != same_file:
            continue
        if account_id and account_id not in (
            result.out_leg.account_id,
            result.in_leg.account_id,
        ):
            continue
        if amount_minor is not None and result.amount_minor != abs(amount_minor):
            continue
        if needle:
            haystack = " ".join(
                (
                    result.match_id,
                    result.out_leg.transaction_id,
                    result.in_leg.transaction_id,
                    result.out_leg.description,
                    result.in_leg.description,
                    result.why_sentence,
                )
            ).lower()
            if needle not in haystack:
                continue
        filtered.append(result)
    return filtered
