"""Ban and delete status lookups backed by the relay management lists.

Both lists are optional relay capabilities. A failed fetch degrades to an empty
collection and logs a warning naming the capability, so "not banned" may also
mean "unknown". ``ModerationStatus`` carries availability flags for callers that
need to tell the two apart.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from relay_review.core.settings import settings
from relay_review.services.relay_rpc import BannedEvent, BannedPubkey

logger = logging.getLogger(__name__)

T = TypeVar("T")

CAPABILITY_BANNED_PUBKEYS = "listbannedpubkeys"
CAPABILITY_BANNED_EVENTS = "listbannedevents"


class BanListSource(Protocol):
    """Anything exposing the two management list calls."""

    async def list_banned_pubkeys(self) -> list[BannedPubkey]: ...

    async def list_banned_events(self) -> list[BannedEvent]: ...


@dataclass
class CacheEntry(Generic[T]):
    """A cached value together with when it was fetched and how long it stays fresh."""

    value: T
    fetched_at: float
    ttl: float
    # False when the value is a fallback for a failed fetch.
    available: bool = True

    def is_stale(self, now: float) -> bool:
        return now - self.fetched_at >= self.ttl


@dataclass(frozen=True)
class ModerationStatus:
    """Ban/delete status for an identity and/or an event."""

    is_banned: bool = False
    ban_reason: str | None = None
    is_deleted: bool = False
    delete_reason: str | None = None
    ban_list_available: bool = True
    delete_list_available: bool = True


class ModerationStatusResolver:
    """Resolves ban/delete status with two independently cached collections."""

    def __init__(
        self,
        source: BanListSource,
        *,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.ttl_seconds = settings.moderation_status_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._pubkeys: CacheEntry[list[BannedPubkey]] | None = None
        self._events: CacheEntry[list[BannedEvent]] | None = None
        self._pubkeys_lock = asyncio.Lock()
        self._events_lock = asyncio.Lock()

    async def _load(
        self,
        capability: str,
        fetch: Callable[[], Awaitable[list[T]]],
    ) -> CacheEntry[list[T]]:
        try:
            value = await fetch()
        except Exception as exc:
            logger.warning(
                "Relay capability %s unavailable, assuming an empty list: %s",
                capability,
                exc,
            )
            return CacheEntry(value=[], fetched_at=self._clock(), ttl=self.ttl_seconds, available=False)
        logger.debug("Fetched %d entries for %s", len(value), capability)
        return CacheEntry(value=value, fetched_at=self._clock(), ttl=self.ttl_seconds)

    async def banned_pubkeys_entry(self, force: bool = False) -> CacheEntry[list[BannedPubkey]]:
        async with self._pubkeys_lock:
            entry = self._pubkeys
            if force or entry is None or entry.is_stale(self._clock()):
                entry = await self._load(CAPABILITY_BANNED_PUBKEYS, self.source.list_banned_pubkeys)
                self._pubkeys = entry
            else:
                logger.debug("Ban list cache hit")
            return entry

    async def banned_events_entry(self, force: bool = False) -> CacheEntry[list[BannedEvent]]:
        async with self._events_lock:
            entry = self._events
            if force or entry is None or entry.is_stale(self._clock()):
                entry = await self._load(CAPABILITY_BANNED_EVENTS, self.source.list_banned_events)
                self._events = entry
            else:
                logger.debug("Banned events cache hit")
            return entry

    async def banned_pubkeys(self, force: bool = False) -> list[BannedPubkey]:
        return (await self.banned_pubkeys_entry(force)).value

    async def banned_events(self, force: bool = False) -> list[BannedEvent]:
        return (await self.banned_events_entry(force)).value

    async def status(self, pubkey: str | None = None, event_id: str | None = None) -> ModerationStatus:
        """Return the status of ``pubkey`` and ``event_id``; never raises on fetch failure.

        Only the collections relevant to the given arguments are consulted.
        """
        pubkeys_entry, events_entry = await asyncio.gather(
            self.banned_pubkeys_entry() if pubkey else _none(),
            self.banned_events_entry() if event_id else _none(),
        )

        banned = None
        if pubkeys_entry is not None:
            banned = next((entry for entry in pubkeys_entry.value if entry.pubkey == pubkey), None)
        deleted = None
        if events_entry is not None:
            deleted = next((entry for entry in events_entry.value if entry.id == event_id), None)

        return ModerationStatus(
            is_banned=banned is not None,
            ban_reason=banned.reason if banned is not None else None,
            is_deleted=deleted is not None,
            delete_reason=deleted.reason if deleted is not None else None,
            ban_list_available=pubkeys_entry.available if pubkeys_entry is not None else True,
            delete_list_available=events_entry.available if events_entry is not None else True,
        )

    async def refetch(self) -> None:
        """Bypass staleness and re-run both list fetches."""
        await asyncio.gather(
            self.banned_pubkeys_entry(force=True),
            self.banned_events_entry(force=True),
        )

    def invalidate(self) -> None:
        self._pubkeys = None
        self._events = None


async def _none() -> None:
    return None
