"""Decision ledger endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from relay_review.api.v1.dependencies import CurrentModeratorDep, LedgerDep
from relay_review.models import ModerationDecision
from relay_review.schemas.moderation import (
    DecisionCreate,
    DecisionResponse,
    DecisionSummaryResponse,
    ReopenResponse,
    TargetDecisionsResponse,
)
from relay_review.services.ledger import (
    DEFAULT_DECISIONS_LIMIT,
    LedgerWriteError,
    summarize_decisions,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/decisions", tags=["decisions"])


@router.post("", response_model=DecisionResponse, status_code=status.HTTP_201_CREATED)
async def create_decision(
    payload: DecisionCreate,
    moderator: CurrentModeratorDep,
    ledger: LedgerDep,
) -> ModerationDecision:
    """Record a moderator's decision against a target."""
    try:
        return ledger.append_decision(
            payload.target_type,
            payload.target_id,
            payload.action,
            reason=payload.reason,
            moderator_identity=moderator,
            report_id=payload.report_id,
            reporter_identity=payload.reporter_identity,
        )
    except LedgerWriteError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Decision could not be recorded; retry",
        ) from exc


@router.get("", response_model=list[DecisionResponse])
async def list_decisions(
    ledger: LedgerDep,
    limit: int = Query(DEFAULT_DECISIONS_LIMIT, ge=1, le=DEFAULT_DECISIONS_LIMIT),
) -> list[ModerationDecision]:
    """Return the most recent decisions across all targets."""
    return ledger.list_decisions(limit=limit)


@router.get("/{target_id}", response_model=TargetDecisionsResponse)
async def get_target_decisions(target_id: str, ledger: LedgerDep) -> TargetDecisionsResponse:
    decisions = ledger.get_decisions(target_id)
    return TargetDecisionsResponse(
        target_id=target_id,
        decisions=[DecisionResponse.model_validate(decision) for decision in decisions],
        summary=DecisionSummaryResponse.from_summary(summarize_decisions(decisions)),
    )


@router.delete("/{target_id}", response_model=ReopenResponse)
async def reopen_target(
    target_id: str,
    moderator: CurrentModeratorDep,
    ledger: LedgerDep,
) -> ReopenResponse:
    """Remove a target's decisions so it returns to the review queue."""
    logger.info("Moderator %s reopening %s", moderator, target_id)
    try:
        removed = ledger.reopen(target_id)
    except LedgerWriteError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Target could not be reopened; retry",
        ) from exc
    if removed == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No decisions for target")
    return ReopenResponse(target_id=target_id, removed=removed, status=ledger.target_status(target_id))

