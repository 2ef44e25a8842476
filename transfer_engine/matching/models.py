"""Data models for candidate pairs, match results and collision reports."""

from __future__ import annotations

import datetime as dt
import hashlib
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from transfer_engine.normalization.models import TransactionRecord

LegRole = Literal["out", "in"]


class MatchState(str, Enum):
    """State of a resolved pair."""

    MATCHED = "matched"
    UNCERTAIN = "uncertain"
    IGNORED = "ignored"  # never emitted as a MatchResult


class TransferDecision(str, Enum):
    """Boundary decision for a resolved pair."""

    INTERNAL_OFFSET = "INTERNAL_OFFSET"
    BOUNDARY_FLOW = "BOUNDARY_FLOW"
    UNCERTAIN_NO_OFFSET = "UNCERTAIN_NO_OFFSET"


class KpiEffect(str, Enum):
    """Whether both legs keep counting toward income/spend totals."""

    EXCLUDED = "EXCLUDED"
    INCLUDED = "INCLUDED"


class HintTag(str, Enum):
    """Positive scoring evidence."""

    TRANSFER_KEYWORD = "transfer_keyword"
    TRANSFER_KEYWORD_BOTH = "transfer_keyword_both"
    DIRECTION_COMPLEMENT = "direction_complement"
    REFERENCE_ID_MATCH = "reference_id_match"
    PAY_ID_MATCH = "pay_id_match"
    ACCOUNT_KEY_OUT_TO_IN = "account_key_out_to_in"
    ACCOUNT_KEY_IN_TO_OUT = "account_key_in_to_out"
    NAME_OUT_TO_IN = "name_out_to_in"
    NAME_IN_TO_OUT = "name_in_to_out"


class PenaltyTag(str, Enum):
    """Negative scoring evidence."""

    NO_TRANSFER_HINTS = "no_transfer_hints"
    MERCHANT_LIKE = "merchant_like"
    REFERENCE_ID_MISMATCH = "reference_id_mismatch"
    AMBIGUOUS_MULTI_CANDIDATE = "ambiguous_multi_candidate"


class IgnoredReason(str, Enum):
    """Why a scored candidate produced no result."""

    LOW_CONFIDENCE = "low_confidence"
    LEG_ALREADY_ASSIGNED = "leg_already_assigned"


def make_match_id(first_id: str, second_id: str) -> str:
    """
    Stable match id for two transaction ids.

    The ids are put in canonical (sorted) order before hashing, so
    ``make_match_id(a, b) == make_match_id(b, a)``.

    Args:
        first_id: One transaction id
        second_id: The other transaction id

    Returns:
        Match id such as ``"xfer_3f1c9a0b6d2e4f57"``
    """
    low, high = sorted((first_id, second_id))
    digest = hashlib.sha1(f"{low}\x1f{high}".encode("utf-8")).hexdigest()
    return f"xfer_{digest[:16]}"


class CandidatePair(BaseModel):
    """One outgoing and one incoming transaction of equal absolute amount."""

    model_config = ConfigDict(frozen=True)

    out_record: TransactionRecord = Field(..., description="Negative-amount leg")
    in_record: TransactionRecord = Field(..., description="Positive-amount leg")
    amount_minor: int = Field(..., ge=0, description="Absolute amount of both legs")
    date_diff_days: int = Field(..., ge=0, description="Whole days between the legs")
    same_account: bool = Field(default=False, description="Both legs on one account")

    @property
    def match_id(self) -> str:
        return make_match_id(self.out_record.id, self.in_record.id)

    @property
    def earlier_date(self) -> dt.date:
        return min(self.out_record.date, self.in_record.date)


class ScoreExplanation(BaseModel):
    """Why a candidate pair got its score."""

    amount_minor: int = Field(..., description="Absolute amount, for display")
    date_diff_days: int = Field(..., description="Whole days between legs")
    same_account: bool = Field(default=False)
    hints: list[HintTag] = Field(default_factory=list, description="Ordered hint tags")
    penalties: list[PenaltyTag] = Field(
        default_factory=list, description="Ordered penalty tags"
    )
    score: float = Field(default=0.0, ge=0.0, le=1.0, description="Confidence score")
    score_before_ambiguity: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Score before the near-tie penalty"
    )
    strong_closure_count: int = Field(
        default=0, ge=0, description="Exact identifier matches: reference id, pay-id, account keys"
    )

    # Closure flags and identifiers behind the tags
    reference_id: str | None = Field(default=None)
    pay_id_match: bool = Field(default=False)
    account_key_out_to_in: bool = Field(default=False)
    account_key_in_to_out: bool = Field(default=False)
    name_out_to_in: bool = Field(default=False)
    name_in_to_out: bool = Field(default=False)

    @property
    def has_identity_closure(self) -> bool:
        return (
            self.pay_id_match
            or self.account_key_out_to_in
            or self.account_key_in_to_out
            or self.name_out_to_in
            or self.name_in_to_out
        )

    def add_penalty(self, penalty: PenaltyTag) -> bool:
        """Append a penalty tag once. Returns True if it was new."""
        if penalty in self.penalties:
            return False
        self.penalties.append(penalty)
        return True


class ScoredCandidate(BaseModel):
    """A candidate pair together with its explanation."""

    pair: CandidatePair
    explanation: ScoreExplanation

    @property
    def score(self) -> float:
        return self.explanation.score

    @property
    def unpenalized_score(self) -> float:
        """Score before the near-tie penalty, used to judge ties and viability."""
        explanation = self.explanation
        if explanation.score_before_ambiguity is None:
            return explanation.score
        return explanation.score_before_ambiguity

    @property
    def strong_closure_count(self) -> int:
        return self.explanation.strong_closure_count

    @property
    def match_id(self) -> str:
        return self.pair.match_id

    @property
    def out_id(self) -> str:
        return self.pair.out_record.id

    @property
    def in_id(self) -> str:
        return self.pair.in_record.id

    def sort_key(self) -> tuple[float, int, str]:
        """Descending score, then smaller date gap, then smaller match id."""
        return (-self.score, self.pair.date_diff_days, self.match_id)


class TransferLeg(BaseModel):
    """One side of a resolved transfer, as attached to a MatchResult."""

    role: LegRole
    transaction_id: str
    account_id: str
    bank_id: str = ""
    source_id: str | None = None
    date: dt.date
    amount_minor: int
    description: str = ""

    @classmethod
    def from_record(cls, record: TransactionRecord, role: LegRole) -> TransferLeg:
        return cls(
            role=role,
            transaction_id=record.id,
            account_id=record.account_id,
            bank_id=record.bank_id,
            source_id=record.source_id,
            date=record.date,
            amount_minor=record.amount_minor,
            description=record.description,
        )


class MatchResult(BaseModel):
    """A resolved transfer pair (matched or uncertain)."""

    match_id: str = Field(..., description="Order-independent id of the two legs")
    state: MatchState = Field(..., description="Resolved state, never ignored")
    out_leg: TransferLeg
    in_leg: TransferLeg
    confidence: float = Field(..., ge=0.0, le=1.0)

    # Filled in by the boundary classifier
    decision: TransferDecision | None = Field(default=None)
    kpi_effect: KpiEffect | None = Field(default=None)
    same_file: bool = Field(default=False)
    why_sentence: str = Field(default="")

    explanation: ScoreExplanation

    @field_validator("state")
    @classmethod
    def _not_ignored(cls, value: MatchState) -> MatchState:
        if value is MatchState.IGNORED:
            raise ValueError("ignored pairs are not emitted as match results")
        return value

    @property
    def amount_minor(self) -> int:
        return self.explanation.amount_minor

    @property
    def legs(self) -> tuple[TransferLeg, TransferLeg]:
        return (self.out_leg, self.in_leg)


class TransactionAnnotation(BaseModel):
    """Match annotation attached to a single transaction id."""

    transaction_id: str
    match_id: str
    role: LegRole
    counterpart_id: str
    state: MatchState
    decision: TransferDecision | None = None
    kpi_effect: KpiEffect | None = None
    confidence: float
    same_file: bool = False
    why_sentence: str = ""


class SuggestedPairing(BaseModel):
    """Best pairing for a contended leg, with the runner-up score."""

    out_id: str
    in_id: str
    contended_role: LegRole = Field(..., description="Leg that had several candidates")
    contended_id: str
    best_score: float = Field(..., ge=0.0, le=1.0)
    second_best_score: float | None = Field(default=None, ge=0.0, le=1.0)
    viable_candidates: int = Field(default=0, ge=0)
    strong_closure_count: int = Field(
        default=0, ge=0, description="Exact identifier matches behind the best pairing"
    )


class CollisionBucket(BaseModel):
    """Transactions sharing one (amount, date) key with competing pairings."""

    amount_minor: int
    date: dt.date = Field(..., description="Earlier date of the contended best pair")
    dates: list[dt.date] = Field(default_factory=list)
    transaction_ids: list[str] = Field(default_factory=list)
    suggested: list[SuggestedPairing] = Field(default_factory=list)


class IgnoredPair(BaseModel):
    """Diagnostic record for a scored candidate that produced no result."""

    match_id: str
    out_id: str
    in_id: str
    score: float
    reason: IgnoredReason


class TransferStats(BaseModel):
    """Aggregate counters for one analysis scope."""

    transaction_count: int = 0
    candidate_count: int = 0
    matched_pairs: int = 0
    uncertain_pairs: int = 0
    ignored_pairs: int = 0
    internal_offset_pairs: int = 0
    boundary_flow_pairs: int = 0
    excluded_transaction_count: int = 0
    excluded_amount_minor: int = 0
    collision_buckets: int = 0
    missing_identity_closure_pairs: int = 0
    top_hints: list[tuple[str, int]] = Field(default_factory=list)
    top_penalties: list[tuple[str, int]] = Field(default_factory=list)
