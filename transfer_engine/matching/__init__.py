"""Transfer matching engine module exports."""

from transfer_engine.matching.config import (
    MatchingConfig,
    NameMatchConfig,
    ScoreWeights,
    ThresholdConfig,
    TieBreakingConfig,
)

from transfer_engine.matching.models import (
    CandidatePair,
    CollisionBucket,
    HintTag,
    IgnoredPair,
    IgnoredReason,
    KpiEffect,
    MatchResult,
    MatchState,
    PenaltyTag,
    ScoreExplanation,
    SuggestedPairing,
    TransactionAnnotation,
    TransferDecision,
    TransferStats,
    make_match_id,
)

from transfer_engine.matching.boundary import BoundaryClassifier, BoundaryConfig

from transfer_engine.matching.engine import (
    TransferMatchingEngine,
    TransferMatchReport,
    filter_results,
    match_transfers,
)

__all__ = [
    # Config
    "MatchingConfig",
    "NameMatchConfig",
    "ScoreWeights",
    "ThresholdConfig",
    "TieBreakingConfig",
    # Models
    "CandidatePair",
    "CollisionBucket",
    "HintTag",
    "IgnoredPair",
    "IgnoredReason",
    "KpiEffect",
    "MatchResult",
    "MatchState",
    "PenaltyTag",
    "ScoreExplanation",
    "SuggestedPairing",
    "TransactionAnnotation",
    "TransferDecision",
    "TransferStats",
    "make_match_id",
    # Boundary
    "BoundaryClassifier",
    "BoundaryConfig",
    # Engine
    "TransferMatchingEngine",
    "TransferMatchReport",
    "filter_results",
    "match_transfers",
]
