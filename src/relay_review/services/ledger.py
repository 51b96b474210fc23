# src/relay_review/services/ledger.py
"""Moderation decision ledger and derived per-target review state."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import insert, select, true, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from relay_review.core.settings import settings
from relay_review.models import ModerationDecision, ModerationTarget
from relay_review.models.moderation import (
    ACTION_AUTO_HIDDEN,
    ACTION_AUTO_HIDE_CONFIRMED,
    TARGET_TYPE_EVENT,
)

logger = logging.getLogger(__name__)

DEFAULT_DECISIONS_LIMIT = 1000

AUTO_HIDDEN_ACTIONS = (ACTION_AUTO_HIDDEN, ACTION_AUTO_HIDE_CONFIRMED)

BAN_ACTIONS = frozenset({"ban_user", "ban", "banned"})
DELETE_ACTIONS = frozenset({"delete_event", "delete", "deleted"})
MEDIA_BLOCK_ACTIONS = frozenset({"block_media", "PERMANENT_BAN"})
REVIEWED_ACTIONS = frozenset({"reviewed", "mark_ok", "dismiss"})
FALSE_POSITIVE_ACTIONS = frozenset({"false_positive", "false-positive"})


class LedgerWriteError(RuntimeError):
    """Raised when a decision could not be durably recorded."""


class TargetStatus(str, Enum):
    """Review state of one target."""

    NEW = "new"
    AUTO_FLAGGED = "auto_flagged"
    RESOLVED = "resolved"


class ReviewView(str, Enum):
    """Dashboard queue views."""

    DEFAULT = "default"
    PENDING = "pending"


@dataclass(frozen=True)
class DecisionSummary:
    """Flags derived from a target's decision history."""

    has_decisions: bool = False
    latest: ModerationDecision | None = None
    is_banned: bool = False
    is_deleted: bool = False
    is_media_blocked: bool = False
    is_reviewed: bool = False
    is_false_positive: bool = False


def summarize_decisions(decisions: Iterable[ModerationDecision]) -> DecisionSummary:
    """Summarize decisions given newest first."""
    rows = list(decisions)
    actions = {row.action for row in rows}
    return DecisionSummary(
        has_decisions=bool(rows),
        latest=rows[0] if rows else None,
        is_banned=bool(actions & BAN_ACTIONS),
        is_deleted=bool(actions & DELETE_ACTIONS),
        is_media_blocked=bool(actions & MEDIA_BLOCK_ACTIONS),
        is_reviewed=bool(actions & REVIEWED_ACTIONS),
        is_false_positive=bool(actions & FALSE_POSITIVE_ACTIONS),
    )


class ModerationLedger:
    """Append-only decision log plus the monotonic ``ever_human_reviewed`` flag.

    Appending a human decision upserts the target row with a single
    ``INSERT ... ON CONFLICT DO UPDATE SET ever_human_reviewed = true`` so
    concurrent writers for the same target can only ever set the flag, never
    clear it.
    """

    def __init__(self, db: Session, automated_actions: Iterable[str] | None = None) -> None:
        self.db = db
        self.automated_actions = frozenset(
            settings.automated_actions if automated_actions is None else automated_actions
        )

    def is_automated(self, action: str) -> bool:
        return action in self.automated_actions

    def _mark_human_reviewed(self, target_type: str, target_id: str) -> None:
        dialect = self.db.get_bind().dialect.name
        values = {"target_id": target_id, "target_type": target_type, "ever_human_reviewed": True}
        if dialect == "sqlite":
            stmt = sqlite.insert(ModerationTarget).values(**values)
        elif dialect == "postgresql":
            stmt = postgresql.insert(ModerationTarget).values(**values)
        else:
            # No native upsert: set-only update, insert when nothing matched.
            updated = self.db.execute(
                update(ModerationTarget)
                .where(ModerationTarget.target_id == target_id)
                .values(ever_human_reviewed=True)
            )
            if updated.rowcount == 0:
                self.db.execute(insert(ModerationTarget).values(**values))
            return
        stmt = stmt.on_conflict_do_update(
            index_elements=[ModerationTarget.target_id],
            set_={"ever_human_reviewed": true()},
        )
        self.db.execute(stmt)

    def append_decision(
        self,
        target_type: str,
        target_id: str,
        action: str,
        *,
        reason: str | None = None,
        moderator_identity: str | None = None,
        report_id: str | None = None,
        reporter_identity: str | None = None,
    ) -> ModerationDecision:
        """Record a decision; human actions also mark the target reviewed.

        The decision insert and the target upsert commit together.

        Raises:
            LedgerWriteError: The database rejected the write; nothing was committed.
        """
        decision = ModerationDecision(
            target_type=target_type,
            target_id=target_id,
            action=action,
            reason=reason,
            moderator_identity=moderator_identity,
            report_id=report_id,
            reporter_identity=reporter_identity,
        )
        try:
            self.db.add(decision)
            self.db.flush()
            if not self.is_automated(action):
                self._mark_human_reviewed(target_type, target_id)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to record %s decision for %s", action, target_id, exc_info=True)
            raise LedgerWriteError(f"Could not record decision for {target_id}") from exc

        self.db.refresh(decision)
        logger.info("Recorded %s decision for %s %s", action, target_type, target_id)
        return decision

    def ever_human_reviewed(self, target_id: str) -> bool:
        flag = self.db.scalar(
            select(ModerationTarget.ever_human_reviewed).where(ModerationTarget.target_id == target_id)
        )
        return bool(flag)

    def get_target_state(self, target_id: str) -> ModerationTarget | None:
        return self.db.get(ModerationTarget, target_id)

    def target_status(self, target_id: str) -> TargetStatus:
        """Return NEW, AUTO_FLAGGED or RESOLVED for ``target_id``."""
        if self.ever_human_reviewed(target_id):
            return TargetStatus.RESOLVED
        has_decision = (
            self.db.query(ModerationDecision.id)
            .filter(ModerationDecision.target_id == target_id)
            .first()
        )
        return TargetStatus.AUTO_FLAGGED if has_decision else TargetStatus.NEW

    def statuses(self, target_ids: Iterable[str]) -> dict[str, TargetStatus]:
        """Batch form of :meth:`target_status`."""
        ids = list(dict.fromkeys(target_ids))
        if not ids:
            return {}
        reviewed = set(
            self.db.scalars(
                select(ModerationTarget.target_id).where(
                    ModerationTarget.target_id.in_(ids),
                    ModerationTarget.ever_human_reviewed.is_(True),
                )
            )
        )
        decided = set(
            self.db.scalars(
                select(ModerationDecision.target_id)
                .where(ModerationDecision.target_id.in_(ids))
                .distinct()
            )
        )
        result: dict[str, TargetStatus] = {}
        for target_id in ids:
            if target_id in reviewed:
                result[target_id] = TargetStatus.RESOLVED
            elif target_id in decided:
                result[target_id] = TargetStatus.AUTO_FLAGGED
            else:
                result[target_id] = TargetStatus.NEW
        return result

    def review_queue(
        self,
        target_ids: Iterable[str],
        view: ReviewView = ReviewView.DEFAULT,
        *,
        hide_resolved: bool = True,
    ) -> list[str]:
        """Filter reported targets for a dashboard view, keeping input order.

        The pending view is exactly the AUTO_FLAGGED targets. The default view
        never shows AUTO_FLAGGED targets and hides RESOLVED ones unless
        ``hide_resolved`` is false.
        """
        statuses = self.statuses(target_ids)
        if view == ReviewView.PENDING:
            return [tid for tid, state in statuses.items() if state == TargetStatus.AUTO_FLAGGED]
        hidden = {TargetStatus.AUTO_FLAGGED}
        if hide_resolved:
            hidden.add(TargetStatus.RESOLVED)
        return [tid for tid, state in statuses.items() if state not in hidden]

    def list_decisions(self, limit: int = DEFAULT_DECISIONS_LIMIT) -> list[ModerationDecision]:
        return (
            self.db.query(ModerationDecision)
            .order_by(ModerationDecision.created_at.desc(), ModerationDecision.id.desc())
            .limit(limit)
            .all()
        )

    def get_decisions(self, target_id: str) -> list[ModerationDecision]:
        """Return the decisions recorded against ``target_id``, newest first."""
        return (
            self.db.query(ModerationDecision)
            .filter(ModerationDecision.target_id == target_id)
            .order_by(ModerationDecision.created_at.desc(), ModerationDecision.id.desc())
            .all()
        )

    def summarize(self, target_id: str) -> DecisionSummary:
        return summarize_decisions(self.get_decisions(target_id))

    def is_already_auto_hidden(self, target_id: str) -> bool:
        """True once an event has been auto-hidden or a moderator confirmed the hide."""
        return (
            self.db.query(ModerationDecision.id)
            .filter(
                ModerationDecision.target_type == TARGET_TYPE_EVENT,
                ModerationDecision.target_id == target_id,
                ModerationDecision.action.in_(AUTO_HIDDEN_ACTIONS),
            )
            .first()
            is not None
        )

    def reopen(self, target_id: str) -> int:
        """Delete the target's decision rows so it can be reviewed again.

        The target row is left alone: a target a human has reviewed stays
        reviewed.

        Returns:
            Number of decision rows removed.
        """
        try:
            removed = (
                self.db.query(ModerationDecision)
                .filter(ModerationDecision.target_id == target_id)
                .delete(synchronize_session="fetch")
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to reopen %s", target_id, exc_info=True)
            raise LedgerWriteError(f"Could not reopen {target_id}") from exc
        logger.info("Reopened %s (%d decisions removed)", target_id, removed)
        return removed

    def backfill_targets(self) -> int:
        """Recompute ``ever_human_reviewed`` from the decision log.

        Only sets flags; a target already marked reviewed is never cleared.

        Returns:
            Number of targets whose flag was written.
        """
        human = (
            select(ModerationDecision.target_id, ModerationDecision.target_type)
            .where(ModerationDecision.action.not_in(sorted(self.automated_actions)))
            .distinct()
        )
        pending: dict[str, str] = {}
        for target_id, target_type in self.db.execute(human):
            if target_id not in pending and not self.ever_human_reviewed(target_id):
                pending[target_id] = target_type
        if not pending:
            return 0
        try:
            for target_id, target_type in pending.items():
                self._mark_human_reviewed(target_type, target_id)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Target backfill failed", exc_info=True)
            raise LedgerWriteError("Could not backfill moderation targets") from exc
        logger.info("Backfilled %d moderation targets", len(pending))
        return len(pending)
