"""
Transfer matching API routes.

Runs the engine over a posted set of transactions and returns the report.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from transfer_engine.core.config import get_settings
from transfer_engine.exceptions import InvalidConfigurationError
from transfer_engine.matching.boundary import BoundaryConfig
from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.engine import TransferMatchingEngine, TransferMatchReport
from transfer_engine.matching.models import TransactionAnnotation
from transfer_engine.normalization.models import AccountMeta, TransactionRecord

logger = structlog.get_logger("transfers")

router = APIRouter(prefix="/transfers", tags=["transfers"])


class MatchRequest(BaseModel):
    """Request body for a matching run."""

    records: list[TransactionRecord] = Field(default_factory=list)
    boundary: BoundaryConfig = Field(default_factory=BoundaryConfig)
    account_meta: list[AccountMeta] = Field(default_factory=list)


class MatchResponse(BaseModel):
    """Report plus per-transaction annotations."""

    report: TransferMatchReport
    annotations: dict[str, TransactionAnnotation] = Field(default_factory=dict)


def _build_config(
    window_days: Optional[str],
    min_matched: Optional[str],
    min_uncertain: Optional[str],
) -> MatchingConfig:
    settings = get_settings()
    return MatchingConfig.from_raw(
        window_days=window_days if window_days is not None else settings.TRANSFER_WINDOW_DAYS,
        min_matched=min_matched if min_matched is not None else settings.TRANSFER_MIN_MATCHED,
        min_uncertain=(
            min_uncertain if min_uncertain is not None else settings.TRANSFER_MIN_UNCERTAIN
        ),
        debug=settings.DEBUG,
    )


@router.post("/match", response_model=MatchResponse)
def match(
    request: MatchRequest,
    window_days: Optional[str] = Query(default=None, alias="windowDays"),
    min_matched: Optional[str] = Query(default=None, alias="minMatched"),
    min_uncertain: Optional[str] = Query(default=None, alias="minUncertain"),
) -> MatchResponse:
    """
    Match transfers in the posted transactions.

    Tunables come from query parameters and are clamped; values that are
    not numbers at all are rejected with 422.
    """
    try:
        config = _build_config(window_days, min_matched, min_uncertain)
    except InvalidConfigurationError as e:
        logger.warning("transfers.invalid_config", **e.context)
        raise HTTPException(status_code=422, detail=e.to_dict()) from e

    report = TransferMatchingEngine(config).run(
        request.records, boundary=request.boundary, account_meta=request.account_meta
    )
    logger.info(
        "transfers.matched",
        transactions=report.stats.transaction_count,
        matched=report.stats.matched_pairs,
        uncertain=report.stats.uncertain_pairs,
        collisions=report.stats.collision_buckets,
    )
    return MatchResponse(report=report, annotations=report.annotations())


@router.get("/health")
def health() -> dict[str, Any]:
    """Liveness check with the effective default tunables."""
    config = MatchingConfig.from_settings()
    return {
        "status": "ok",
        "defaults": {
            "window_days": config.window_days,
            "min_matched": config.min_matched,
            "min_uncertain": config.min_uncertain,
        },
    }
