"""Configuration for the transfer matching engine.

Match State Flow:
-----------------
1. The scorer gives every candidate pair a confidence in [0, 1].
2. The resolver assigns pairs one-to-one (greedy, highest score first) and
   maps each resolved pair's confidence to a state:
   - "matched"   : confidence >= min_matched
   - "uncertain" : min_uncertain <= confidence < min_matched
   - "ignored"   : confidence < min_uncertain (no result, no annotation)
3. The boundary classifier maps state + boundary membership to a decision:
   - uncertain                          -> UNCERTAIN_NO_OFFSET / INCLUDED
   - matched, both accounts in boundary -> INTERNAL_OFFSET / EXCLUDED
   - matched, otherwise                 -> BOUNDARY_FLOW / INCLUDED

Out-of-range tunables are clamped rather than rejected, matching what the
host application does with query parameters. Values that are not numbers at
all raise InvalidConfigurationError.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from transfer_engine.core.config import Settings, get_settings
from transfer_engine.exceptions import InvalidConfigurationError

WINDOW_DAYS_RANGE = (0, 7)
DEFAULT_WINDOW_DAYS = 1
DEFAULT_MIN_MATCHED = 0.85
DEFAULT_MIN_UNCERTAIN = 0.60


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def coerce_number(name: str, raw: Any, default: float) -> float:
    """
    Interpret a tunable as a finite float.

    Args:
        name: Parameter name, for the error message
        raw: Raw value (number, numeric string, None)
        default: Used for None, empty strings and non-finite numbers

    Returns:
        Finite float

    Raises:
        InvalidConfigurationError: If the value is not numeric
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return float(default)
    if isinstance(raw, bool):
        raise InvalidConfigurationError(
            f"{name} must be a number, got a boolean", context={name: raw}
        )
    try:
        value = float(raw)
    except (TypeError, ValueError) as e:
        raise InvalidConfigurationError(
            f"{name} must be a number, got {raw!r}", context={name: str(raw)}
        ) from e
    if not math.isfinite(value):
        return float(default)
    return value


class ThresholdConfig(BaseModel):
    """Confidence thresholds for resolved pairs."""

    min_matched: float = Field(
        default=DEFAULT_MIN_MATCHED, description="Matched threshold, clamped to [0, 1]"
    )
    min_uncertain: float = Field(
        default=DEFAULT_MIN_UNCERTAIN,
        description="Uncertain threshold, clamped to [0, min_matched]",
    )

    @field_validator("min_matched", mode="before")
    @classmethod
    def _clamp_matched(cls, value: Any) -> float:
        return _clamp(coerce_number("min_matched", value, DEFAULT_MIN_MATCHED), 0.0, 1.0)

    @field_validator("min_uncertain", mode="before")
    @classmethod
    def _clamp_uncertain(cls, value: Any) -> float:
        return _clamp(
            coerce_number("min_uncertain", value, DEFAULT_MIN_UNCERTAIN), 0.0, 1.0
        )

    @model_validator(mode="after")
    def _order_thresholds(self) -> ThresholdConfig:
        # An inverted pair collapses the uncertain band instead of failing.
        if self.min_uncertain > self.min_matched:
            self.min_uncertain = self.min_matched
        return self


class ScoreWeights(BaseModel):
    """Weight table for the pair scorer.

    Hint weights are the fraction of the remaining distance to 1.0 that a
    hint closes (``score += (1 - score) * weight``); penalties are subtracted.
    Only the ordering properties of the resulting scores are a contract, the
    numbers themselves are tunable.
    """

    base: float = Field(default=0.80, ge=0.0, le=1.0, description="Score of a same-day pair")
    day_decay: float = Field(
        default=0.05, ge=0.0, le=0.1, description="Subtracted per day of date gap"
    )
    max_scored_gap_days: int = Field(
        default=7, ge=0, le=31, description="Gap beyond which decay stops growing"
    )

    # Positive hints
    transfer_keyword: float = Field(
        default=0.20, ge=0.0, lt=1.0, description="Transfer wording on one leg"
    )
    transfer_keyword_both: float = Field(
        default=0.60, ge=0.0, lt=1.0, description="Transfer wording on both legs"
    )
    direction_complement: float = Field(
        default=0.30, ge=0.0, lt=1.0, description="'transfer to' meets 'transfer from'"
    )
    reference_id: float = Field(
        default=0.80, ge=0.0, lt=1.0, description="Same payment reference id"
    )
    pay_id: float = Field(default=0.80, ge=0.0, lt=1.0, description="Same pay-id")
    account_key_closure: float = Field(
        default=0.70,
        ge=0.0,
        lt=1.0,
        description="Counterparty account key equals the other leg's account key",
    )
    name_closure: float = Field(
        default=0.40,
        ge=0.0,
        lt=1.0,
        description="Counterparty name matches the other leg's account name",
    )

    # Penalties
    no_transfer_hints: float = Field(default=0.35, ge=0.0, le=1.0)
    merchant_like: float = Field(default=0.30, ge=0.0, le=1.0)
    reference_id_mismatch: float = Field(default=0.30, ge=0.0, le=1.0)
    ambiguous: float = Field(default=0.15, ge=0.0, le=1.0)

    def validate_ordering(self) -> None:
        """Ensure exact identifiers outweigh keyword hints.

        Raises ValueError if the table is misconfigured.
        """
        strongest_keyword = max(self.transfer_keyword, self.transfer_keyword_both)
        if not (self.reference_id > strongest_keyword and self.pay_id > strongest_keyword):
            raise ValueError(
                "reference_id and pay_id weights must exceed transfer keyword weights"
            )


class TieBreakingConfig(BaseModel):
    """Configuration for ambiguity detection among candidates of one leg."""

    ambiguity_margin: float = Field(
        default=0.05,
        ge=0.0,
        le=0.2,
        description="Max score difference at which two candidates count as a tie",
    )
    max_suggestions: int = Field(
        default=20, ge=1, le=200, description="Suggested pairings kept per bucket"
    )


class NameMatchConfig(BaseModel):
    """Configuration for counterparty name comparison."""

    min_containment_length: int = Field(
        default=4, ge=1, le=20, description="Shortest name allowed to match by containment"
    )
    min_token_sort_ratio: float = Field(
        default=0.92, ge=0.5, le=1.0, description="Fuzzy fallback threshold (0-1)"
    )
    use_fuzzy_fallback: bool = Field(default=True, description="Enable the rapidfuzz fallback")


class MatchingConfig(BaseModel):
    """Main configuration for the matching engine."""

    window_days: int = Field(
        default=DEFAULT_WINDOW_DAYS, description="Day window, clamped to [0, 7]"
    )

    # Sub-configurations
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    tie_breaking: TieBreakingConfig = Field(default_factory=TieBreakingConfig)
    name_match: NameMatchConfig = Field(default_factory=NameMatchConfig)

    # General settings
    debug: bool = Field(default=False, description="Enable per-candidate debug logging")

    @field_validator("window_days", mode="before")
    @classmethod
    def _clamp_window(cls, value: Any) -> int:
        number = coerce_number("window_days", value, DEFAULT_WINDOW_DAYS)
        return int(_clamp(math.trunc(number), *WINDOW_DAYS_RANGE))

    @property
    def min_matched(self) -> float:
        return self.thresholds.min_matched

    @property
    def min_uncertain(self) -> float:
        return self.thresholds.min_uncertain

    def validate_config(self) -> None:
        """Validate the parts of the configuration that are not clamped.

        Raises InvalidConfigurationError if the weight table is misconfigured.
        """
        try:
            self.weights.validate_ordering()
        except ValueError as e:
            raise InvalidConfigurationError(str(e), context={"section": "weights"}) from e

    @classmethod
    def from_raw(
        cls,
        window_days: Any = None,
        min_matched: Any = None,
        min_uncertain: Any = None,
        **overrides: Any,
    ) -> MatchingConfig:
        """
        Build a config from loosely typed values such as query parameters.

        Args:
            window_days: Day window (None means default)
            min_matched: Matched threshold (None means default)
            min_uncertain: Uncertain threshold (None means default)
            **overrides: Other MatchingConfig fields

        Returns:
            Clamped configuration

        Raises:
            InvalidConfigurationError: If a value is not numeric
        """
        return cls(
            window_days=window_days,
            thresholds=ThresholdConfig(
                min_matched=min_matched, min_uncertain=min_uncertain
            ),
            **overrides,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> MatchingConfig:
        """Build the default config from environment settings."""
        settings = settings or get_settings()
        return cls.from_raw(
            window_days=settings.TRANSFER_WINDOW_DAYS,
            min_matched=settings.TRANSFER_MIN_MATCHED,
            min_uncertain=settings.TRANSFER_MIN_UNCERTAIN,
            debug=settings.DEBUG,
        )
