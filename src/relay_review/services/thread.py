"""Conversation thread reconstruction for reported events.

``build_thread_tree`` turns a flat, unordered set of events into a reply tree.
``ThreadService`` fetches the events around a reported event (its ancestors up
to the conversation root, the root's replies, an optional reposted original)
and hands them to ``build_thread_tree``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from pydantic import ValidationError

from relay_review.core.settings import settings
from relay_review.schemas.event import (
    KIND_COMMENT,
    REPOST_KINDS,
    THREAD_KINDS,
    Event,
    NostrFilter,
)
from relay_review.services.cancellation import CancellationSignal, run_cancellable
from relay_review.services.event_store import EventStore
from relay_review.services.tags import parse_reply_link

logger = logging.getLogger(__name__)


@dataclass
class ThreadNode:
    """One event in a reconstructed thread."""

    event: Event
    children: list[ThreadNode] = field(default_factory=list)
    depth: int = 0

    def walk(self) -> Iterator[ThreadNode]:
        """Yield this node and its descendants depth-first, in child order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def size(self) -> int:
        return sum(1 for _ in self.walk())

    def find(self, event_id: str) -> ThreadNode | None:
        return next((node for node in self.walk() if node.event.id == event_id), None)


def build_thread_tree(events: Iterable[Event], root_id: str) -> ThreadNode | None:
    """Reconstruct the reply tree rooted at ``root_id``.

    Children of a node are the events whose resolved parent is that node, sorted
    by ascending ``created_at`` (ties keep collection order). Events that never
    attach to the root are left out, and an event is placed at most once, so a
    reply naming one of its own descendants as parent is dropped instead of
    looping.

    Returns:
        The root node, or ``None`` when ``root_id`` is not in ``events``.
    """
    ordered: list[Event] = []
    by_id: dict[str, Event] = {}
    for event in events:
        if event.id not in by_id:
            by_id[event.id] = event
            ordered.append(event)

    root_event = by_id.get(root_id)
    if root_event is None:
        return None

    children_of: dict[str, list[Event]] = {}
    for event in ordered:
        link = parse_reply_link(event)
        if link is None or link.parent_id == event.id:
            continue
        children_of.setdefault(link.parent_id, []).append(event)

    root = ThreadNode(event=root_event, depth=0)
    placed = {root_event.id}
    pending = [root]
    while pending:
        node = pending.pop()
        candidates = sorted(children_of.get(node.event.id, []), key=lambda e: e.created_at)
        for child_event in candidates:
            if child_event.id in placed:
                continue
            placed.add(child_event.id)
            child = ThreadNode(event=child_event, depth=node.depth + 1)
            node.children.append(child)
            pending.append(child)
    return root


@dataclass
class ThreadResult:
    """Thread context for one event; ``event`` is ``None`` when it was not found."""

    event: Event | None = None
    root: Event | None = None
    ancestors: list[Event] = field(default_factory=list)
    tree: ThreadNode | None = None
    reposted_event: Event | None = None
    is_repost: bool = False

    @property
    def found(self) -> bool:
        return self.event is not None

    @classmethod
    def not_found(cls) -> ThreadResult:
        return cls()


def _repost_from_content(event: Event) -> Event | None:
    if not event.content:
        return None
    try:
        payload = json.loads(event.content)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        return Event.model_validate(payload)
    except ValidationError:
        return None


class ThreadService:
    """Fetches and reconstructs the conversation around an event."""

    def __init__(
        self,
        store: EventStore,
        *,
        ancestor_depth: int | None = None,
        events_limit: int | None = None,
    ) -> None:
        self.store = store
        self.ancestor_depth = (
            settings.thread_ancestor_depth if ancestor_depth is None else ancestor_depth
        )
        self.events_limit = settings.thread_events_limit if events_limit is None else events_limit

    async def _get_event(self, event_id: str, signal: CancellationSignal | None) -> Event | None:
        events = await run_cancellable(
            self.store.query([NostrFilter(ids=[event_id], limit=1)], signal),
            signal,
        )
        return next((event for event in events if event.id == event_id), None)

    async def _resolve_repost(
        self, event: Event, signal: CancellationSignal | None
    ) -> Event | None:
        original = _repost_from_content(event)
        if original is not None:
            return original
        target = event.first_tag("e")
        if target is None:
            return None
        return await self._get_event(target[1], signal)

    async def fetch_conversation_root(
        self, event: Event, signal: CancellationSignal | None = None
    ) -> tuple[Event, list[Event]]:
        """Walk reply links upward from ``event``.

        Returns:
            ``(root, ancestors)`` where ``ancestors`` runs from the root down to
            the direct parent. The walk stops at ``ancestor_depth`` hops, at a
            missing parent, or on revisiting an event.
        """
        ancestors: list[Event] = []
        visited = {event.id}
        current = event
        for _ in range(self.ancestor_depth):
            link = parse_reply_link(current)
            if link is None:
                break
            next_id = link.root_id if link.root_id and link.root_id not in visited else link.parent_id
            if next_id in visited:
                break
            parent = await self._get_event(next_id, signal)
            if parent is None and next_id != link.parent_id and link.parent_id not in visited:
                parent = await self._get_event(link.parent_id, signal)
            if parent is None:
                break
            visited.add(parent.id)
            ancestors.insert(0, parent)
            current = parent
        root = ancestors[0] if ancestors else event
        return root, ancestors

    async def _fetch_thread_events(
        self, root: Event, known: list[Event], signal: CancellationSignal | None
    ) -> list[Event]:
        anchor_ids = sorted({event.id for event in known} | {root.id})
        filters = [
            NostrFilter(kinds=list(THREAD_KINDS), tags={"e": anchor_ids}, limit=self.events_limit),
            NostrFilter(kinds=[KIND_COMMENT], tags={"E": [root.id]}, limit=self.events_limit),
        ]
        fetched = await run_cancellable(self.store.query(filters, signal), signal)
        return [*known, root, *fetched]

    async def fetch_thread(
        self, event_id: str | None, signal: CancellationSignal | None = None
    ) -> ThreadResult:
        """Fetch the full thread containing ``event_id``.

        A missing event yields ``ThreadResult.not_found()``; store failures and
        cancellation propagate to the caller.
        """
        if not event_id:
            return ThreadResult.not_found()

        event = await self._get_event(event_id, signal)
        if event is None:
            logger.debug("Thread event %s not found", event_id)
            return ThreadResult.not_found()

        is_repost = event.kind in REPOST_KINDS
        reposted = await self._resolve_repost(event, signal) if is_repost else None

        root, ancestors = await self.fetch_conversation_root(event, signal)
        events = await self._fetch_thread_events(root, [event, *ancestors], signal)
        tree = build_thread_tree(events, root.id)

        return ThreadResult(
            event=event,
            root=root,
            ancestors=ancestors,
            tree=tree,
            reposted_event=reposted,
            is_repost=is_repost,
        )
