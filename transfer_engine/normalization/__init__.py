"""Normalized transaction records and transfer evidence extraction."""

from transfer_engine.normalization.models import (
    AccountMeta,
    EvidenceBundle,
    PaymentEvidence,
    TransactionRecord,
)
from transfer_engine.normalization.evidence import extract_all, extract_evidence
from transfer_engine.normalization.normalizer import to_minor_units

__all__ = [
    "AccountMeta",
    "EvidenceBundle",
    "PaymentEvidence",
    "TransactionRecord",
    "extract_all",
    "extract_evidence",
    "to_minor_units",
]
