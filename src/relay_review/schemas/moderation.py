# src/relay_review/schemas/moderation.py
"""Ledger-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from relay_review.services.ledger import DecisionSummary, ReviewView, TargetStatus

TargetType = Literal["event", "pubkey", "media"]


class DecisionCreate(BaseModel):
    """Schema for submitting a moderation decision."""

    target_type: TargetType
    target_id: str = Field(..., min_length=1, max_length=128)
    action: str = Field(..., min_length=1, max_length=64, description="Open-ended action name")
    reason: str | None = Field(None, max_length=2000)
    report_id: str | None = Field(None, max_length=128)
    reporter_identity: str | None = Field(None, max_length=128)


class DecisionResponse(BaseModel):
    """Schema for a recorded decision returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    target_type: str
    target_id: str
    action: str
    reason: str | None
    moderator_identity: str | None
    report_id: str | None
    reporter_identity: str | None
    created_at: datetime


class DecisionSummaryResponse(BaseModel):
    """Flags summarizing a target's decision history."""

    has_decisions: bool
    latest: DecisionResponse | None
    is_banned: bool
    is_deleted: bool
    is_media_blocked: bool
    is_reviewed: bool
    is_false_positive: bool

    @classmethod
    def from_summary(cls, summary: DecisionSummary) -> "DecisionSummaryResponse":
        return cls(
            has_decisions=summary.has_decisions,
            latest=DecisionResponse.model_validate(summary.latest) if summary.latest else None,
            is_banned=summary.is_banned,
            is_deleted=summary.is_deleted,
            is_media_blocked=summary.is_media_blocked,
            is_reviewed=summary.is_reviewed,
            is_false_positive=summary.is_false_positive,
        )


class TargetDecisionsResponse(BaseModel):
    """Decision history of one target."""

    target_id: str
    decisions: list[DecisionResponse]
    summary: DecisionSummaryResponse


class TargetStateResponse(BaseModel):
    """Derived review state of one target."""

    target_id: str
    status: TargetStatus
    ever_human_reviewed: bool


class ReopenResponse(BaseModel):
    target_id: str
    removed: int
    status: TargetStatus


class QueueRequest(BaseModel):
    """Reported targets to partition into a dashboard view."""

    target_ids: list[str] = Field(default_factory=list, max_length=5000)
    view: ReviewView = ReviewView.DEFAULT
    hide_resolved: bool = True


class QueueResponse(BaseModel):
    view: ReviewView
    target_ids: list[str]
    statuses: dict[str, TargetStatus]
