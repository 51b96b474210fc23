"""Automated hiding of reported content in zero-tolerance categories.

This is the automated actor of the ledger: it records ``auto_hidden`` (or
``auto_hide_failed``) decisions, which move a target from NEW to AUTO_FLAGGED
without marking it human-reviewed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum

from relay_review.core.settings import settings
from relay_review.models.moderation import (
    ACTION_AUTO_HIDDEN,
    ACTION_AUTO_HIDE_FAILED,
    TARGET_TYPE_EVENT,
)
from relay_review.schemas.event import KIND_REPORT, Event
from relay_review.services.ledger import ModerationLedger
from relay_review.services.relay_rpc import RelayRpcClient, RelayRpcError
from relay_review.services.tags import (
    normalize_category,
    report_category_name,
    resolve_report_target,
)

logger = logging.getLogger(__name__)


class AutoHideOutcome(str, Enum):
    """What happened to one processed report."""

    DISABLED = "disabled"
    NOT_A_REPORT = "not_a_report"
    NO_EVENT_TARGET = "no_event_target"
    CATEGORY_NOT_ELIGIBLE = "category_not_eligible"
    ALREADY_HIDDEN = "already_hidden"
    HIDDEN = "hidden"
    FAILED = "failed"


class AutoHideProcessor:
    """Hides events reported under an auto-hide category and logs the decision."""

    def __init__(
        self,
        ledger: ModerationLedger,
        rpc: RelayRpcClient,
        *,
        enabled: bool | None = None,
        categories: Iterable[str] | None = None,
    ) -> None:
        self.ledger = ledger
        self.rpc = rpc
        self.enabled = settings.auto_hide_enabled if enabled is None else enabled
        raw_categories = settings.auto_hide_categories if categories is None else categories
        self.categories = frozenset(normalize_category(category) for category in raw_categories)

    async def process_report(self, report: Event) -> AutoHideOutcome:
        if not self.enabled:
            return AutoHideOutcome.DISABLED
        if report.kind != KIND_REPORT:
            return AutoHideOutcome.NOT_A_REPORT

        target = resolve_report_target(report)
        if target is None or target.type != TARGET_TYPE_EVENT:
            return AutoHideOutcome.NO_EVENT_TARGET

        category = report_category_name(report)
        if category not in self.categories:
            return AutoHideOutcome.CATEGORY_NOT_ELIGIBLE

        if self.ledger.is_already_auto_hidden(target.value):
            logger.debug("Event %s already auto-hidden, skipping", target.value)
            return AutoHideOutcome.ALREADY_HIDDEN

        reason = f"Auto-hidden: {category} report"
        try:
            accepted = await self.rpc.ban_event(target.value, reason)
        except RelayRpcError as exc:
            logger.warning("Auto-hide of %s failed: %s", target.value, exc)
            accepted = False
        else:
            if not accepted:
                logger.warning("Relay refused to hide %s", target.value)

        if accepted:
            action, outcome = ACTION_AUTO_HIDDEN, AutoHideOutcome.HIDDEN
        else:
            action, outcome = ACTION_AUTO_HIDE_FAILED, AutoHideOutcome.FAILED

        self.ledger.append_decision(
            TARGET_TYPE_EVENT,
            target.value,
            action,
            reason=category,
            report_id=report.id,
            reporter_identity=report.pubkey,
        )
        logger.info("Auto-hide %s for event %s (category %s)", outcome.value, target.value, category)
        return outcome
