"""Boundary classification of resolved transfer pairs."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

from transfer_engine.matching.models import (
    KpiEffect,
    MatchResult,
    MatchState,
    TransferDecision,
    TransferLeg,
)
from transfer_engine.normalization.accounts import format_account_label
from transfer_engine.normalization.models import AccountMeta

logger = logging.getLogger(__name__)


class BoundaryConfig(BaseModel):
    """The set of accounts treated as "inside" for one analysis."""

    account_ids: list[str] = Field(
        default_factory=list, description="Ordered boundary account ids"
    )
    aliases: dict[str, str] = Field(
        default_factory=dict, description="Display alias per account id"
    )
    account_meta: list[AccountMeta] = Field(
        default_factory=list, description="Statement metadata used for labels"
    )

    @field_validator("account_ids")
    @classmethod
    def _clean_ids(cls, value: list[str]) -> list[str]:
        cleaned = (str(v).strip() for v in value)
        return list(dict.fromkeys(v for v in cleaned if v))

    @property
    def members(self) -> frozenset[str]:
        return frozenset(self.account_ids)

    def contains(self, account_id: str) -> bool:
        return account_id in self.members

    def meta_index(self) -> dict[tuple[str, str], AccountMeta]:
        return {meta.lookup_key(): meta for meta in self.account_meta}


class BoundaryClassifier:
    """Maps a resolved pair's state and boundary membership to a decision."""

    def __init__(self, boundary: BoundaryConfig | None = None):
        """
        Initialize boundary classifier.

        Args:
            boundary: Boundary accounts and label metadata (empty means no boundary)
        """
        self.boundary = boundary or BoundaryConfig()
        self._members = self.boundary.members
        self._meta = self.boundary.meta_index()

    def label_for(self, leg: TransferLeg) -> str:
        alias = (self.boundary.aliases.get(leg.account_id) or "").strip()
        if alias:
            return alias
        return format_account_label(
            leg.account_id, self._meta.get((leg.bank_id, leg.account_id))
        )

    @staticmethod
    def is_same_file(result: MatchResult) -> bool:
        out_source = (result.out_leg.source_id or "").strip()
        in_source = (result.in_leg.source_id or "").strip()
        return bool(out_source) and out_source == in_source

    def decide(
        self, state: MatchState, out_in_boundary: bool, in_in_boundary: bool
    ) -> tuple[TransferDecision, KpiEffect]:
        """
        Pure decision table.

        Args:
            state: matched or uncertain
            out_in_boundary: Outgoing leg's account is a boundary member
            in_in_boundary: Incoming leg's account is a boundary member

        Returns:
            Tuple of (decision, KPI effect)
        """
        if state is not MatchState.MATCHED:
            return TransferDecision.UNCERTAIN_NO_OFFSET, KpiEffect.INCLUDED
        if out_in_boundary and in_in_boundary:
            return TransferDecision.INTERNAL_OFFSET, KpiEffect.EXCLUDED
        return TransferDecision.BOUNDARY_FLOW, KpiEffect.INCLUDED

    def classify(self, result: MatchResult) -> MatchResult:
        """
        Classify one resolved pair.

        Returns a copy of ``result`` with decision, KPI effect, same-file flag
        and rationale sentence filled in. Aliases and account metadata only
        affect the sentence.

        Args:
            result: Matched or uncertain pair

        Returns:
            Classified copy of the result
        """
        out_in = result.out_leg.account_id in self._members
        in_in = result.in_leg.account_id in self._members
        decision, kpi_effect = self.decide(result.state, out_in, in_in)

        classified = result.model_copy(
            update={
                "decision": decision,
                "kpi_effect": kpi_effect,
                "same_file": self.is_same_file(result),
                "why_sentence": self.why_sentence(result, decision, out_in, in_in),
            }
        )
        logger.debug(
            f"[BOUNDARY] {result.match_id}: {decision.value} / {kpi_effect.value}"
        )
        return classified

    def classify_all(self, results: list[MatchResult]) -> list[MatchResult]:
        classified = [self.classify(result) for result in results]
        internal = sum(
            1 for r in classified if r.decision is TransferDecision.INTERNAL_OFFSET
        )
        logger.info(
            f"[BOUNDARY] ✓ Classified {len(classified)} pairs | "
            f"Internal offsets: {internal} | "
            f"Boundary accounts: {len(self._members)}"
        )
        return classified

    def why_sentence(
        self,
        result: MatchResult,
        decision: TransferDecision,
        out_in_boundary: bool,
        in_in_boundary: bool,
    ) -> str:
        source = self.label_for(result.out_leg)
        target = self.label_for(result.in_leg)

        if decision is TransferDecision.UNCERTAIN_NO_OFFSET:
            return (
                f"A possible transfer from {source} to {target} was found, but its "
                f"confidence ({result.confidence:.2f}) is too low to offset it; "
                f"both legs stay in totals."
            )
        if decision is TransferDecision.INTERNAL_OFFSET:
            return (
                f"Matched transfer from {source} to {target} stays inside the "
                f"selected accounts; both legs are excluded from totals."
            )
        if not self._members:
            return (
                f"Matched transfer from {source} to {target}; no boundary accounts "
                f"are selected, so both legs stay in totals."
            )
        outside = [
            label
            for label, inside in ((source, out_in_boundary), (target, in_in_boundary))
            if not inside
        ]
        return (
            f"Matched transfer from {source} to {target} crosses the boundary "
            f"({' and '.join(outside)} not selected); both legs stay in totals."
        )
