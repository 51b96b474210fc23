"""Reputation signals for an identity: recent posts, labels and reports."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from relay_review.core.settings import settings
from relay_review.schemas.event import (
    KIND_LABEL,
    KIND_METADATA,
    KIND_REPORT,
    KIND_TEXT_NOTE,
    Event,
    NostrFilter,
)
from relay_review.services.cancellation import CancellationSignal, run_cancellable
from relay_review.services.event_store import EventStore

logger = logging.getLogger(__name__)


@dataclass
class UserStats:
    """Recent-window activity for one identity.

    ``post_count`` counts the sampled recent posts only; it is not a total.
    """

    post_count: int = 0
    report_count: int = 0
    label_count: int = 0
    recent_posts: list[Event] = field(default_factory=list)
    existing_labels: list[Event] = field(default_factory=list)
    previous_reports: list[Event] = field(default_factory=list)

    @classmethod
    def empty(cls) -> UserStats:
        return cls()


class ReputationAggregator:
    """Computes ``UserStats`` from three bounded, concurrent store queries."""

    def __init__(
        self,
        store: EventStore,
        *,
        timeout_seconds: float | None = None,
        posts_limit: int | None = None,
        labels_limit: int | None = None,
        reports_limit: int | None = None,
    ) -> None:
        self.store = store
        self.timeout_seconds = (
            settings.user_stats_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.posts_limit = settings.recent_posts_limit if posts_limit is None else posts_limit
        self.labels_limit = settings.labels_limit if labels_limit is None else labels_limit
        self.reports_limit = settings.reports_limit if reports_limit is None else reports_limit

    async def get_user_stats(
        self,
        pubkey: str | None,
        signal: CancellationSignal | None = None,
    ) -> UserStats:
        """Return stats for ``pubkey``.

        Without an identity this returns zeroed stats before awaiting anything,
        so no query is issued. Otherwise the three queries share one timeout
        composed with ``signal`` and the result is assembled once all settle;
        the first failure is then re-raised.
        """
        if not pubkey:
            return UserStats.empty()

        bounded = CancellationSignal.with_timeout(signal, self.timeout_seconds, "user-stats")
        try:
            outcomes = await asyncio.gather(
                self._query(
                    NostrFilter(kinds=[KIND_TEXT_NOTE], authors=[pubkey], limit=self.posts_limit),
                    bounded,
                ),
                self._query(
                    NostrFilter(kinds=[KIND_LABEL], tags={"p": [pubkey]}, limit=self.labels_limit),
                    bounded,
                ),
                self._query(
                    NostrFilter(kinds=[KIND_REPORT], tags={"p": [pubkey]}, limit=self.reports_limit),
                    bounded,
                ),
                return_exceptions=True,
            )
        finally:
            bounded.dispose()

        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        recent_posts, labels, reports = outcomes

        return UserStats(
            post_count=len(recent_posts),
            report_count=len(reports),
            label_count=len(labels),
            recent_posts=sorted(recent_posts, key=lambda event: event.created_at, reverse=True),
            existing_labels=labels,
            previous_reports=reports,
        )

    async def count_reports_by(
        self,
        pubkey: str | None,
        signal: CancellationSignal | None = None,
        *,
        limit: int | None = None,
    ) -> int:
        """Return how many reports ``pubkey`` has filed (bounded sample)."""
        if not pubkey:
            return 0
        reports = await self._query(
            NostrFilter(
                kinds=[KIND_REPORT],
                authors=[pubkey],
                limit=settings.reporter_reports_limit if limit is None else limit,
            ),
            signal,
        )
        return len(reports)

    async def _query(self, query_filter: NostrFilter, signal: CancellationSignal | None) -> list[Event]:
        return await run_cancellable(self.store.query([query_filter], signal), signal)


async def fetch_profile(
    store: EventStore,
    pubkey: str | None,
    signal: CancellationSignal | None = None,
) -> dict[str, Any] | None:
    """Return the newest metadata profile published by ``pubkey``.

    Unparseable profile content is treated as no profile.
    """
    if not pubkey:
        return None
    events = await run_cancellable(
        store.query([NostrFilter(kinds=[KIND_METADATA], authors=[pubkey], limit=1)], signal),
        signal,
    )
    if not events:
        return None
    newest = max(events, key=lambda event: event.created_at)
    try:
        profile = json.loads(newest.content)
    except ValueError:
        logger.debug("Ignoring malformed profile content for %s", pubkey)
        return None
    return profile if isinstance(profile, dict) else None
