"""Data models for normalized transaction records and transfer evidence."""

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from transfer_engine.normalization.accounts import build_account_key

TransferType = Literal[
    "transfer_to",
    "transfer_from",
    "payment_to",
    "payment_from",
    "osko",
    "npp",
]


class PaymentEvidence(BaseModel):
    """Structured payment details supplied by the statement parser."""

    model_config = ConfigDict(frozen=True)

    transfer_type: TransferType | None = Field(
        default=None, description="Direction or rail detected by the parser"
    )
    reference_id: str | None = Field(
        default=None, description="Payment reference id (e.g. the token after '#')"
    )
    counterparty_account_key: str | None = Field(
        default=None, description="Counterparty account key, 'BSB-ACCOUNT'"
    )
    counterparty_name: str | None = Field(
        default=None, description="Counterparty display name"
    )
    pay_id: str | None = Field(
        default=None, description="Pay-id style identifier (e-mail or mobile)"
    )
    hints: list[str] = Field(
        default_factory=list, description="Hint tokens already extracted upstream"
    )


class TransactionRecord(BaseModel):
    """One normalized statement line. Never mutated by the engine."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique transaction id")
    account_id: str = Field(..., description="Owning account id")
    bank_id: str = Field(default="", description="Owning bank id")
    source_id: str | None = Field(
        default=None, description="Source file identifier (hash or file id)"
    )
    date: dt.date = Field(..., description="Posting date")
    amount_minor: int = Field(..., description="Signed amount in minor units")
    description: str = Field(default="", description="Raw statement description")
    merchant_norm: str | None = Field(
        default=None, description="Merchant-normalized description"
    )
    balance_minor: int | None = Field(
        default=None, description="Running balance in minor units"
    )
    payment: PaymentEvidence | None = Field(
        default=None, description="Structured payment evidence"
    )

    @property
    def is_outgoing(self) -> bool:
        return self.amount_minor < 0

    @property
    def is_incoming(self) -> bool:
        return self.amount_minor > 0

    @property
    def amount_abs(self) -> int:
        return abs(self.amount_minor)


class AccountMeta(BaseModel):
    """Statement-level account identity declared per bank and account."""

    model_config = ConfigDict(frozen=True)

    bank_id: str = Field(..., description="Bank id")
    account_id: str = Field(..., description="Account id")
    account_name: str | None = Field(default=None, description="Declared account name")
    bsb: str | None = Field(default=None, description="Branch (BSB) number")
    account_number: str | None = Field(default=None, description="Account number")
    account_key: str | None = Field(
        default=None, description="Canonical 'BSB-ACCOUNT' key; derived when absent"
    )
    alias: str | None = Field(default=None, description="User-chosen display alias")

    @model_validator(mode="after")
    def _derive_account_key(self) -> AccountMeta:
        if self.account_key is None:
            key = build_account_key(self.bsb, self.account_number)
            if key:
                object.__setattr__(self, "account_key", key)
        return self

    def lookup_key(self) -> tuple[str, str]:
        return (self.bank_id, self.account_id)


class EvidenceBundle(BaseModel):
    """Comparable signals derived from one transaction.

    Every field is optional in the sense that absence is represented by an
    empty list, ``None`` or ``False``; nothing here is ever probed dynamically.
    """

    model_config = ConfigDict(frozen=True)

    transaction_id: str = Field(..., description="Transaction this evidence belongs to")
    text: str = Field(default="", description="Lower-cased, whitespace-collapsed text")
    tokens: list[str] = Field(default_factory=list, description="Description tokens")
    hints: list[str] = Field(
        default_factory=list, description="Transfer-indicating hint tokens"
    )
    transfer_type: TransferType | None = Field(default=None)
    reference_id: str | None = Field(default=None)
    counterparty_account_key: str | None = Field(default=None)
    counterparty_name: str | None = Field(default=None)
    pay_id: str | None = Field(default=None)
    merchant_like: bool = Field(
        default=False, description="Description resembles a merchant or bill payment"
    )

    # From statement account metadata of the owning account
    account_key: str | None = Field(default=None)
    account_name: str | None = Field(default=None)

    @property
    def has_transfer_hints(self) -> bool:
        return bool(self.hints)
