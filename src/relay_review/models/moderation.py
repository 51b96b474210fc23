# src/relay_review/models/moderation.py
"""Models recording moderation decisions and derived per-target review state."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from relay_review.db.session import Base
from relay_review.db.time import utcnow

TARGET_TYPE_EVENT = "event"
TARGET_TYPE_PUBKEY = "pubkey"
TARGET_TYPE_MEDIA = "media"

ACTION_AUTO_HIDDEN = "auto_hidden"
ACTION_AUTO_HIDE_FAILED = "auto_hide_failed"
# Moderator confirmation of an automated hide; a human action.
ACTION_AUTO_HIDE_CONFIRMED = "auto_hide_confirmed"


class ModerationDecision(Base):
    """Append-only log row describing one moderation action on a target."""

    __tablename__ = "moderation_decisions"
    __table_args__ = (
        Index("idx_decisions_target", "target_type", "target_id"),
        Index("idx_decisions_report", "report_id"),
        Index("idx_decisions_reporter", "reporter_identity"),
        Index("idx_decisions_action", "action"),
        # Ids stay monotonic even after reopen deletes the newest rows.
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # "event", "pubkey" or "media".
    target_type: Mapped[str] = mapped_column(String(16), nullable=False)
    # Event id, author key or content hash depending on target_type.
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    moderator_identity: Mapped[str | None] = mapped_column(String(128), nullable=True)
    report_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reporter_identity: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )


class ModerationTarget(Base):
    """Derived review state; one row per target ever touched by a human."""

    __tablename__ = "moderation_targets"

    target_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    target_type: Mapped[str] = mapped_column(String(16), nullable=False)
    # Monotonic: written true by the decision upsert, never reset.
    ever_human_reviewed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
