"""Candidate generation: opposite-sign pairs of equal amount within a day window."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.models import CandidatePair
from transfer_engine.normalization.models import TransactionRecord

logger = logging.getLogger(__name__)


def _pair_order(pair: CandidatePair) -> tuple:
    return (
        pair.amount_minor,
        pair.out_record.date,
        pair.in_record.date,
        pair.out_record.id,
        pair.in_record.id,
    )


class CandidateGenerator:
    """Builds every plausible out/in pair for one analysis scope."""

    def __init__(self, config: MatchingConfig | None = None):
        """
        Initialize candidate generator.

        Args:
            config: Matching configuration
        """
        self.config = config or MatchingConfig()

    def bucket_by_amount(
        self, records: Iterable[TransactionRecord]
    ) -> dict[int, tuple[list[TransactionRecord], list[TransactionRecord]]]:
        """
        Partition records by absolute amount into (outgoing, incoming) lists.

        Zero-amount records are never legs and are dropped here.
        """
        buckets: dict[int, tuple[list[TransactionRecord], list[TransactionRecord]]] = (
            defaultdict(lambda: ([], []))
        )
        for record in records:
            if record.amount_minor == 0:
                continue
            outgoing, incoming = buckets[record.amount_abs]
            if record.is_outgoing:
                outgoing.append(record)
            elif record.is_incoming:
                incoming.append(record)
        return buckets

    def generate(self, records: Iterable[TransactionRecord]) -> list[CandidatePair]:
        """
        Generate candidate pairs.

        Amounts must be equal in minor units. The date gap must not exceed
        ``window_days`` and the two ids must differ. The output order is
        independent of the input order.

        Args:
            records: All transactions of the analysis scope

        Returns:
            Candidate pairs sorted by (amount, out date, in date, out id, in id)
        """
        window = self.config.window_days
        pairs: list[CandidatePair] = []

        buckets = self.bucket_by_amount(records)
        for amount, (outgoing, incoming) in buckets.items():
            if not outgoing or not incoming:
                continue
            for out_record in outgoing:
                for in_record in incoming:
                    if out_record.id == in_record.id:
                        continue
                    gap = abs((in_record.date - out_record.date).days)
                    if gap > window:
                        continue
                    pairs.append(
                        CandidatePair(
                            out_record=out_record,
                            in_record=in_record,
                            amount_minor=amount,
                            date_diff_days=gap,
                            same_account=(
                                out_record.bank_id == in_record.bank_id
                                and out_record.account_id == in_record.account_id
                            ),
                        )
                    )

        pairs.sort(key=_pair_order)
        logger.info(
            f"[CANDIDATES] {len(pairs)} candidate pairs from {len(buckets)} amount buckets | "
            f"Window: {window}d"
        )
        return pairs


def generate_candidates(
    records: Iterable[TransactionRecord], config: MatchingConfig | None = None
) -> list[CandidatePair]:
    """Generate candidate pairs (convenience function)."""
    return CandidateGenerator(config).generate(records)
