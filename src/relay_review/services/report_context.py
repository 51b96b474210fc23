"""Aggregates everything a moderator needs to judge one report.

For a report this resolves the target, fetches the conversation thread when
the target is an event, and gathers reputation for both the reported party and
the reporter. Every sub-fetch runs under the caller's signal composed with its
own timeout budget.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from relay_review.core.settings import settings
from relay_review.schemas.event import Event
from relay_review.services.cancellation import CancellationSignal, OperationTimedOut
from relay_review.services.event_store import EventStore
from relay_review.services.reputation import ReputationAggregator, UserStats, fetch_profile
from relay_review.services.tags import (
    ReportCategory,
    ReportTarget,
    parse_report_category,
    reported_pubkey,
    resolve_report_target,
)
from relay_review.services.thread import ThreadResult, ThreadService

logger = logging.getLogger(__name__)


class ContextState(str, Enum):
    """Lifecycle of an aggregation."""

    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


@dataclass
class PartyContext:
    """Identity plus profile for the reporter or the reported party."""

    pubkey: str | None = None
    profile: dict[str, Any] | None = None
    report_count: int = 0


@dataclass
class ReportContext:
    """Composite result of a report context aggregation."""

    report: Event | None = None
    target: ReportTarget | None = None
    category: ReportCategory | None = None
    thread: ThreadResult | None = None
    reported_user: PartyContext = field(default_factory=PartyContext)
    user_stats: UserStats | None = None
    reporter: PartyContext = field(default_factory=PartyContext)
    state: ContextState = ContextState.READY
    error: BaseException | None = None

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, OperationTimedOut)


@dataclass
class ContextBudgets:
    """Per-fetch timeouts in seconds."""

    thread: float = field(default_factory=lambda: settings.thread_fetch_timeout_seconds)
    reporter_stats: float = field(default_factory=lambda: settings.reporter_stats_timeout_seconds)
    user_stats: float = field(default_factory=lambda: settings.user_stats_timeout_seconds)
    profile: float = field(default_factory=lambda: settings.profile_fetch_timeout_seconds)


class ReportContextJob:
    """Handle on an aggregation running in the background."""

    def __init__(self, task: asyncio.Task[ReportContext], signal: CancellationSignal) -> None:
        self._task = task
        self.signal = signal

    @property
    def state(self) -> ContextState:
        if not self._task.done():
            return ContextState.LOADING
        return self._task.result().state

    def cancel(self) -> None:
        """Abandon the aggregation; the pending sub-fetches stop being awaited."""
        self.signal.cancel(source="caller")

    async def result(self) -> ReportContext:
        return await self._task


class ReportContextAggregator:
    """Builds a ``ReportContext`` for a single report."""

    def __init__(
        self,
        store: EventStore,
        *,
        thread_service: ThreadService | None = None,
        reputation: ReputationAggregator | None = None,
        budgets: ContextBudgets | None = None,
    ) -> None:
        self.store = store
        self.budgets = budgets or ContextBudgets()
        self.thread_service = thread_service or ThreadService(store)
        self.reputation = reputation or ReputationAggregator(
            store, timeout_seconds=self.budgets.user_stats
        )

    def start(self, report: Event | None, signal: CancellationSignal | None = None) -> ReportContextJob:
        """Schedule an aggregation and return a handle exposing its state."""
        job_signal = CancellationSignal.any(signal, name="report-context")
        task = asyncio.ensure_future(self.aggregate(report, job_signal))
        task.add_done_callback(lambda _: job_signal.dispose())
        return ReportContextJob(task, job_signal)

    async def aggregate(
        self,
        report: Event | None,
        signal: CancellationSignal | None = None,
    ) -> ReportContext:
        """Aggregate context for ``report``.

        Thread and reported-user stats are mandatory: if either fails the
        context comes back ``ERRORED`` with the first failure attached. The
        reporter's report count and both profiles are enrichment and degrade to
        zero / ``None``.
        """
        if report is None:
            return ReportContext()

        context = ReportContext(
            report=report,
            target=resolve_report_target(report),
            category=parse_report_category(report),
            reporter=PartyContext(pubkey=report.pubkey),
        )

        reporter_count_task = asyncio.ensure_future(self._reporter_report_count(report.pubkey, signal))
        reporter_profile_task = asyncio.ensure_future(self._profile(report.pubkey, signal))

        errors: list[BaseException] = []
        target_pubkey = reported_pubkey(report)
        if context.target is not None and context.target.type == "event":
            try:
                context.thread = await self._thread(context.target.value, signal)
            except Exception as exc:
                logger.warning("Thread fetch failed for report %s: %s", report.id, exc)
                errors.append(exc)
            else:
                if context.thread.event is not None:
                    target_pubkey = context.thread.event.pubkey

        context.reported_user.pubkey = target_pubkey
        stats_outcome, profile_outcome, count_outcome, reporter_profile_outcome = await asyncio.gather(
            self._user_stats(target_pubkey, signal),
            self._profile(target_pubkey, signal),
            reporter_count_task,
            reporter_profile_task,
            return_exceptions=True,
        )

        if isinstance(stats_outcome, BaseException):
            logger.warning("User stats fetch failed for %s: %s", target_pubkey, stats_outcome)
            errors.append(stats_outcome)
        else:
            context.user_stats = stats_outcome

        context.reported_user.profile = None if isinstance(profile_outcome, BaseException) else profile_outcome
        context.reporter.profile = (
            None if isinstance(reporter_profile_outcome, BaseException) else reporter_profile_outcome
        )
        context.reporter.report_count = 0 if isinstance(count_outcome, BaseException) else count_outcome

        if errors:
            context.state = ContextState.ERRORED
            context.error = errors[0]
        return context

    async def _thread(self, event_id: str, signal: CancellationSignal | None) -> ThreadResult:
        bounded = CancellationSignal.with_timeout(signal, self.budgets.thread, "thread")
        try:
            return await self.thread_service.fetch_thread(event_id, bounded)
        finally:
            bounded.dispose()

    async def _user_stats(self, pubkey: str | None, signal: CancellationSignal | None) -> UserStats:
        return await self.reputation.get_user_stats(pubkey, signal)

    async def _reporter_report_count(self, pubkey: str, signal: CancellationSignal | None) -> int:
        bounded = CancellationSignal.with_timeout(signal, self.budgets.reporter_stats, "reporter-stats")
        try:
            return await self.reputation.count_reports_by(pubkey, bounded)
        except Exception as exc:
            logger.warning("Reporter report count unavailable for %s, using 0: %s", pubkey, exc)
            return 0
        finally:
            bounded.dispose()

    async def _profile(self, pubkey: str | None, signal: CancellationSignal | None) -> dict[str, Any] | None:
        bounded = CancellationSignal.with_timeout(signal, self.budgets.profile, "profile")
        try:
            return await fetch_profile(self.store, pubkey, bounded)
        except Exception as exc:
            logger.debug("Profile fetch failed for %s: %s", pubkey, exc)
            return None
        finally:
            bounded.dispose()
