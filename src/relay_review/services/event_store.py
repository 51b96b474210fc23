"""Event store capability consumed by the aggregation services.

``RelayEventStore`` queries the configured relay over a websocket subscription.
``InMemoryEventStore`` implements the same interface over a local collection
for development fixtures and tests.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from typing import Any, Protocol, runtime_checkable

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from relay_review.core.settings import settings
from relay_review.schemas.event import Event, NostrFilter
from relay_review.services.cancellation import CancellationSignal, run_cancellable

logger = logging.getLogger(__name__)


@runtime_checkable
class EventStore(Protocol):
    """Queryable collection of protocol events.

    No ordering guarantee is made for the returned sequence; consumers impose
    their own ordering.
    """

    async def query(
        self,
        filters: Sequence[NostrFilter],
        signal: CancellationSignal | None = None,
    ) -> list[Event]:
        """Return events matching any of ``filters``."""
        ...


class InMemoryEventStore:
    """Event store over an in-process collection.

    Each filter's ``limit`` keeps the most recent matches, mirroring relay
    behaviour. Results across filters are de-duplicated by id.
    """

    def __init__(self, events: Iterable[Event] = (), *, latency: float = 0.0) -> None:
        self._events: dict[str, Event] = {}
        self.latency = latency
        self.queries: list[list[NostrFilter]] = []
        self.add(*events)

    def add(self, *events: Event) -> None:
        for event in events:
            self._events.setdefault(event.id, event)

    def __len__(self) -> int:
        return len(self._events)

    async def query(
        self,
        filters: Sequence[NostrFilter],
        signal: CancellationSignal | None = None,
    ) -> list[Event]:
        self.queries.append(list(filters))
        if signal is not None:
            signal.raise_if_cancelled()
        if self.latency:
            await run_cancellable(asyncio.sleep(self.latency), signal)

        results: dict[str, Event] = {}
        for query_filter in filters:
            matches = [event for event in self._events.values() if query_filter.matches(event)]
            matches.sort(key=lambda event: event.created_at, reverse=True)
            if query_filter.limit is not None:
                matches = matches[: query_filter.limit]
            for event in matches:
                results.setdefault(event.id, event)
        return list(results.values())


class EventStoreError(RuntimeError):
    """Raised when the relay cannot be queried."""


class RelayEventStore:
    """Event store that queries a relay over a websocket subscription.

    Each query opens a connection, sends one ``REQ`` carrying every filter and
    collects the subscription's ``EVENT`` messages until ``EOSE``. A relay that
    never sends ``EOSE`` yields whatever arrived within ``timeout_seconds``.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        connect: Callable[..., Any] | None = None,
    ) -> None:
        self.url = url or settings.relay_url
        self.timeout_seconds = (
            settings.relay_query_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._connect = connect or websockets.connect

    async def query(
        self,
        filters: Sequence[NostrFilter],
        signal: CancellationSignal | None = None,
    ) -> list[Event]:
        if signal is not None:
            signal.raise_if_cancelled()
        if not filters:
            return []
        return await run_cancellable(self._subscribe(filters), signal)

    async def _subscribe(self, filters: Sequence[NostrFilter]) -> list[Event]:
        subscription_id = f"query-{uuid.uuid4().hex[:12]}"
        request = json.dumps(["REQ", subscription_id, *(f.to_wire() for f in filters)])
        events: dict[str, Event] = {}
        try:
            async with self._connect(self.url, open_timeout=self.timeout_seconds) as connection:
                await connection.send(request)
                try:
                    await asyncio.wait_for(
                        self._collect(connection, subscription_id, events),
                        self.timeout_seconds,
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        "Relay %s sent no EOSE within %.1fs, using %d events",
                        self.url,
                        self.timeout_seconds,
                        len(events),
                    )
                try:
                    await connection.send(json.dumps(["CLOSE", subscription_id]))
                except ConnectionClosed:
                    logger.debug("Relay closed the connection before CLOSE %s", subscription_id)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise EventStoreError(f"Relay query to {self.url} failed: {exc}") from exc
        return list(events.values())

    async def _collect(self, connection: Any, subscription_id: str, events: dict[str, Event]) -> None:
        async for raw in connection:
            try:
                message = json.loads(raw)
            except ValueError:
                logger.debug("Ignoring malformed relay message")
                continue
            if not isinstance(message, list) or len(message) < 2 or message[1] != subscription_id:
                continue

            if message[0] == "EVENT" and len(message) >= 3:
                try:
                    event = Event.model_validate(message[2])
                except ValidationError:
                    logger.debug("Ignoring invalid event on %s", subscription_id)
                    continue
                events.setdefault(event.id, event)
            elif message[0] == "EOSE":
                return
            elif message[0] == "CLOSED":
                logger.warning(
                    "Relay closed subscription %s: %s",
                    subscription_id,
                    message[2] if len(message) > 2 else "",
                )
                return


class _EventStoreSingleton:
    """Singleton wrapper for the process-wide event store."""

    _instance: EventStore | None = None

    @classmethod
    def get_instance(cls) -> EventStore:
        if cls._instance is None:
            cls._instance = RelayEventStore()
        return cls._instance


def get_event_store() -> EventStore:
    """Return the process-wide relay-backed event store."""
    return _EventStoreSingleton.get_instance()
