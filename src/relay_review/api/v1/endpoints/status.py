"""Ban/delete status and media block status endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from relay_review.api.v1.dependencies import ContentBlockDep, ModerationStatusDep
from relay_review.schemas.context import (
    MediaStatusRequest,
    MediaStatusResponse,
    ModerationStatusResponse,
)

router = APIRouter(tags=["status"])


@router.get("/moderation-status", response_model=ModerationStatusResponse)
async def get_moderation_status(
    resolver: ModerationStatusDep,
    pubkey: str | None = Query(None),
    event_id: str | None = Query(None),
) -> ModerationStatusResponse:
    """Return whether an identity is banned and/or an event deleted.

    ``is_banned=false`` with ``ban_list_available=false`` means the relay could
    not answer, not that the identity is in good standing.
    """
    if not pubkey and not event_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide pubkey and/or event_id",
        )
    return ModerationStatusResponse.from_status(await resolver.status(pubkey, event_id))


@router.post("/moderation-status/refresh", status_code=status.HTTP_204_NO_CONTENT)
async def refresh_moderation_status(resolver: ModerationStatusDep) -> None:
    """Refetch both relay lists, ignoring cache staleness."""
    await resolver.refetch()


@router.post("/media-status", response_model=MediaStatusResponse)
async def get_media_status(payload: MediaStatusRequest, resolver: ContentBlockDep) -> MediaStatusResponse:
    """Look up enforcement status for a batch of content hashes."""
    await resolver.check(payload.hashes)
    return MediaStatusResponse.from_resolver(resolver)
