"""Tag convention parsers.

Clients link events with several incompatible tag conventions. Each convention
is a small strategy returning a normalized record or ``None``; strategies are
tried in a fixed priority order and callers only ever see the normalized result.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from relay_review.schemas.event import Event

TargetType = Literal["event", "pubkey"]

MARKER_ROOT = "root"
MARKER_REPLY = "reply"

NAMESPACED_CATEGORY_PREFIX = "NS-"
KNOWN_LABEL_NAMESPACES = ("social.nos.ontology", "MOD")

UNKNOWN_CATEGORY = "unknown"


@dataclass(frozen=True)
class ReportTarget:
    """What a report is about."""

    type: TargetType
    value: str


@dataclass(frozen=True)
class ReportCategory:
    """Normalized report category and the convention it was read from."""

    category: str
    raw: str
    convention: str


@dataclass(frozen=True)
class ReplyLink:
    """Normalized reply link of an event to its parent."""

    parent_id: str
    root_id: str | None = None
    parent_author: str | None = None
    parent_kind: int | None = None
    convention: str = "positional"


def _is_relay_hint(value: str) -> bool:
    return value.startswith(("ws://", "wss://"))


# --- Report targets -----------------------------------------------------------------


def resolve_report_target(report: Event) -> ReportTarget | None:
    """Return the report's target.

    An event target is canonical whenever present; a pubkey target on the same
    report only identifies the reported content's author.
    """
    event_tag = report.first_tag("e")
    if event_tag is not None:
        return ReportTarget(type="event", value=event_tag[1])
    pubkey_tag = report.first_tag("p")
    if pubkey_tag is not None:
        return ReportTarget(type="pubkey", value=pubkey_tag[1])
    return None


def reported_pubkey(report: Event) -> str | None:
    """Return the identity named by the report's first pubkey tag, if any."""
    pubkey_tag = report.first_tag("p")
    return pubkey_tag[1] if pubkey_tag is not None else None


# --- Report categories --------------------------------------------------------------


def normalize_category(raw: str) -> str:
    if raw.startswith(NAMESPACED_CATEGORY_PREFIX):
        return raw[len(NAMESPACED_CATEGORY_PREFIX):]
    return raw


def _category_from_report_tag(report: Event) -> ReportCategory | None:
    tag = report.first_tag("report")
    if tag is None or not tag[1]:
        return None
    return ReportCategory(normalize_category(tag[1]), tag[1], "report-tag")


def _category_from_target_tag(report: Event) -> ReportCategory | None:
    for name in ("e", "p"):
        tag = report.first_tag(name)
        if tag is not None and len(tag) >= 3 and tag[2] and not _is_relay_hint(tag[2]):
            return ReportCategory(normalize_category(tag[2]), tag[2], f"{name}-tag")
    return None


def _category_from_label(report: Event) -> ReportCategory | None:
    declared = set(report.tag_values("L")) | set(KNOWN_LABEL_NAMESPACES)
    for tag in report.tags:
        if len(tag) >= 3 and tag[0] == "l" and tag[2] in declared and tag[1]:
            return ReportCategory(normalize_category(tag[1]), tag[1], f"label:{tag[2]}")
    return None


CATEGORY_STRATEGIES: tuple[Callable[[Event], ReportCategory | None], ...] = (
    _category_from_report_tag,
    _category_from_target_tag,
    _category_from_label,
)


def parse_report_category(report: Event) -> ReportCategory | None:
    """Return the first category any strategy can read from the report."""
    for strategy in CATEGORY_STRATEGIES:
        result = strategy(report)
        if result is not None:
            return result
    return None


def report_category_name(report: Event) -> str:
    parsed = parse_report_category(report)
    return parsed.category if parsed is not None else UNKNOWN_CATEGORY


# --- Reply links --------------------------------------------------------------------


def _e_tags(event: Event) -> list[list[str]]:
    return [tag for tag in event.tags if len(tag) >= 2 and tag[0] == "e" and tag[1]]


def _structured_reply(event: Event) -> ReplyLink | None:
    # ["e", parent] + ["p", parent author] + ["k", parent kind]; ["E", root] optional.
    kind_tag = event.first_tag("k")
    parent_tag = event.first_tag("e")
    if kind_tag is None or parent_tag is None:
        return None
    try:
        parent_kind: int | None = int(kind_tag[1])
    except ValueError:
        parent_kind = None
    author_tag = event.first_tag("p")
    root_tag = event.first_tag("E")
    return ReplyLink(
        parent_id=parent_tag[1],
        root_id=root_tag[1] if root_tag is not None else None,
        parent_author=author_tag[1] if author_tag is not None else None,
        parent_kind=parent_kind,
        convention="structured",
    )


def _marked_reply(event: Event) -> ReplyLink | None:
    marked = {
        tag[3]: tag[1]
        for tag in reversed(_e_tags(event))
        if len(tag) >= 4 and tag[3] in (MARKER_ROOT, MARKER_REPLY)
    }
    if not marked:
        return None
    root_id = marked.get(MARKER_ROOT)
    parent_id = marked.get(MARKER_REPLY, root_id)
    if parent_id is None:
        return None
    return ReplyLink(parent_id=parent_id, root_id=root_id, convention="marked")


def _positional_reply(event: Event) -> ReplyLink | None:
    # Unmarked references: a single one is the parent; with several, the first
    # is the root and the last the parent. Other markers ("mention") are ignored.
    unmarked = [tag for tag in _e_tags(event) if len(tag) < 4 or not tag[3]]
    if not unmarked:
        return None
    if len(unmarked) == 1:
        return ReplyLink(parent_id=unmarked[0][1], convention="positional")
    return ReplyLink(parent_id=unmarked[-1][1], root_id=unmarked[0][1], convention="positional")


REPLY_STRATEGIES: tuple[Callable[[Event], ReplyLink | None], ...] = (
    _structured_reply,
    _marked_reply,
    _positional_reply,
)


def parse_reply_link(event: Event) -> ReplyLink | None:
    """Return the event's normalized parent link, or ``None`` for top-level events."""
    for strategy in REPLY_STRATEGIES:
        link = strategy(event)
        if link is not None:
            return link
    return None

