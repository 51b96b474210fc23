"""Report context and automated report processing endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from relay_review.api.v1.dependencies import (
    CurrentModeratorDep,
    LedgerDep,
    RelayRpcDep,
    ReportContextDep,
)
from relay_review.schemas.context import ReportContextResponse
from relay_review.schemas.event import KIND_REPORT, Event
from relay_review.services.auto_hide import AutoHideOutcome, AutoHideProcessor
from relay_review.services.ledger import LedgerWriteError

router = APIRouter(prefix="/reports", tags=["reports"])


class AutoHideResponse(BaseModel):
    report_id: str
    outcome: AutoHideOutcome


def _require_report(event: Event) -> Event:
    if event.kind != KIND_REPORT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Expected a report event (kind {KIND_REPORT})",
        )
    return event


ReportDep = Annotated[Event, Depends(_require_report)]


@router.post("/context", response_model=ReportContextResponse)
async def report_context(report: ReportDep, aggregator: ReportContextDep) -> ReportContextResponse:
    """Aggregate thread and reputation context for a report.

    Failures of mandatory fetches come back as ``state="errored"`` alongside
    whatever context could still be gathered.
    """
    context = await aggregator.aggregate(report)
    return ReportContextResponse.from_context(context)


@router.post("/auto-hide", response_model=AutoHideResponse)
async def auto_hide_report(
    report: ReportDep,
    actor: CurrentModeratorDep,
    ledger: LedgerDep,
    rpc: RelayRpcDep,
) -> AutoHideResponse:
    """Run the automated auto-hide policy for a newly received report."""
    processor = AutoHideProcessor(ledger, rpc)
    try:
        outcome = await processor.process_report(report)
    except LedgerWriteError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Auto-hide decision could not be recorded; retry",
        ) from exc
    return AutoHideResponse(report_id=report.id, outcome=outcome)
