"""Review-state endpoints driving the dashboard queue views."""

from __future__ import annotations

from fastapi import APIRouter

from relay_review.api.v1.dependencies import LedgerDep
from relay_review.schemas.moderation import QueueRequest, QueueResponse, TargetStateResponse

router = APIRouter(tags=["review"])


@router.get("/targets/{target_id}", response_model=TargetStateResponse)
async def get_target_state(target_id: str, ledger: LedgerDep) -> TargetStateResponse:
    """Return a target's review state; unknown targets are NEW."""
    return TargetStateResponse(
        target_id=target_id,
        status=ledger.target_status(target_id),
        ever_human_reviewed=ledger.ever_human_reviewed(target_id),
    )


@router.post("/queue", response_model=QueueResponse)
async def review_queue(payload: QueueRequest, ledger: LedgerDep) -> QueueResponse:
    """Filter reported targets into the default or pending-review view."""
    visible = ledger.review_queue(
        payload.target_ids,
        payload.view,
        hide_resolved=payload.hide_resolved,
    )
    statuses = ledger.statuses(visible)
    return QueueResponse(view=payload.view, target_ids=visible, statuses=statuses)
