# src/relay_review/schemas/context.py
"""Response schemas for report context, reputation and status lookups."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from relay_review.schemas.event import Event
from relay_review.services.media_status import ContentBlockStatusResolver, MediaStatusResult
from relay_review.services.moderation_status import ModerationStatus
from relay_review.services.report_context import ContextState, PartyContext, ReportContext
from relay_review.services.reputation import UserStats
from relay_review.services.thread import ThreadNode, ThreadResult


class UserStatsResponse(BaseModel):
    """Recent-window reputation of one identity."""

    post_count: int
    report_count: int
    label_count: int
    recent_posts: list[Event]
    existing_labels: list[Event]
    previous_reports: list[Event]

    @classmethod
    def from_stats(cls, stats: UserStats) -> UserStatsResponse:
        return cls(
            post_count=stats.post_count,
            report_count=stats.report_count,
            label_count=stats.label_count,
            recent_posts=stats.recent_posts,
            existing_labels=stats.existing_labels,
            previous_reports=stats.previous_reports,
        )


class ThreadNodeResponse(BaseModel):
    event: Event
    depth: int
    children: list[ThreadNodeResponse] = Field(default_factory=list)

    @classmethod
    def from_node(cls, root: ThreadNode) -> ThreadNodeResponse:
        # Iterative so deep threads do not hit the recursion limit.
        converted = {id(root): cls(event=root.event, depth=root.depth)}
        for node in root.walk():
            parent = converted[id(node)]
            for child in node.children:
                response = cls(event=child.event, depth=child.depth)
                converted[id(child)] = response
                parent.children.append(response)
        return converted[id(root)]


class ThreadResponse(BaseModel):
    found: bool
    event: Event | None = None
    root: Event | None = None
    ancestors: list[Event] = Field(default_factory=list)
    tree: ThreadNodeResponse | None = None
    reposted_event: Event | None = None
    is_repost: bool = False

    @classmethod
    def from_result(cls, result: ThreadResult) -> ThreadResponse:
        return cls(
            found=result.found,
            event=result.event,
            root=result.root,
            ancestors=result.ancestors,
            tree=ThreadNodeResponse.from_node(result.tree) if result.tree is not None else None,
            reposted_event=result.reposted_event,
            is_repost=result.is_repost,
        )


class ReportTargetResponse(BaseModel):
    type: str
    value: str


class PartyResponse(BaseModel):
    pubkey: str | None
    profile: dict[str, Any] | None
    report_count: int

    @classmethod
    def from_party(cls, party: PartyContext) -> PartyResponse:
        return cls(pubkey=party.pubkey, profile=party.profile, report_count=party.report_count)


class ReportContextResponse(BaseModel):
    """Everything a moderator needs to decide on one report."""

    state: ContextState
    error: str | None = None
    target: ReportTargetResponse | None = None
    category: str | None = None
    thread: ThreadResponse | None = None
    reported_user: PartyResponse
    user_stats: UserStatsResponse | None = None
    reporter: PartyResponse

    @classmethod
    def from_context(cls, context: ReportContext) -> ReportContextResponse:
        return cls(
            state=context.state,
            error=str(context.error) if context.error is not None else None,
            target=(
                ReportTargetResponse(type=context.target.type, value=context.target.value)
                if context.target is not None
                else None
            ),
            category=context.category.category if context.category is not None else None,
            thread=ThreadResponse.from_result(context.thread) if context.thread is not None else None,
            reported_user=PartyResponse.from_party(context.reported_user),
            user_stats=(
                UserStatsResponse.from_stats(context.user_stats)
                if context.user_stats is not None
                else None
            ),
            reporter=PartyResponse.from_party(context.reporter),
        )


class ModerationStatusResponse(BaseModel):
    """Ban/delete status; the availability flags are false when a list could not be fetched."""

    is_banned: bool
    ban_reason: str | None
    is_deleted: bool
    delete_reason: str | None
    ban_list_available: bool
    delete_list_available: bool

    @classmethod
    def from_status(cls, status: ModerationStatus) -> ModerationStatusResponse:
        return cls(
            is_banned=status.is_banned,
            ban_reason=status.ban_reason,
            is_deleted=status.is_deleted,
            delete_reason=status.delete_reason,
            ban_list_available=status.ban_list_available,
            delete_list_available=status.delete_list_available,
        )


class MediaStatusRequest(BaseModel):
    hashes: list[str] = Field(default_factory=list, max_length=500)


class MediaStatusItem(BaseModel):
    hash: str
    action: str | None = None
    reason: str | None = None
    is_blocked: bool

    @classmethod
    def from_result(cls, result: MediaStatusResult) -> MediaStatusItem:
        return cls(
            hash=result.hash,
            action=result.status.action if result.status is not None else None,
            reason=result.status.reason if result.status is not None else None,
            is_blocked=result.is_blocked,
        )


class MediaStatusResponse(BaseModel):
    results: list[MediaStatusItem]
    blocked_count: int
    unblocked_count: int
    has_blocked: bool

    @classmethod
    def from_resolver(cls, resolver: ContentBlockStatusResolver) -> MediaStatusResponse:
        return cls(
            results=[MediaStatusItem.from_result(result) for result in resolver.results],
            blocked_count=resolver.blocked_count,
            unblocked_count=resolver.unblocked_count,
            has_blocked=resolver.has_blocked,
        )
