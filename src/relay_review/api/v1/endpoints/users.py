"""Reputation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from relay_review.api.v1.dependencies import ReputationDep
from relay_review.schemas.context import UserStatsResponse
from relay_review.services.cancellation import OperationCancelled, OperationTimedOut
from relay_review.services.event_store import EventStoreError

router = APIRouter(prefix="/users", tags=["users"])

HEX_PUBKEY_LENGTH = 64


def _validate_pubkey(pubkey: str) -> str:
    try:
        bytes.fromhex(pubkey)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Identity must be hex encoded",
        ) from err
    if len(pubkey) != HEX_PUBKEY_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Identity must be {HEX_PUBKEY_LENGTH} hex characters",
        )
    return pubkey.lower()


@router.get("/{pubkey}/stats", response_model=UserStatsResponse)
async def get_user_stats(pubkey: str, reputation: ReputationDep) -> UserStatsResponse:
    """Return recent-window reputation counts for an identity."""
    try:
        stats = await reputation.get_user_stats(_validate_pubkey(pubkey))
    except OperationTimedOut as exc:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Reputation lookup timed out",
        ) from exc
    except OperationCancelled as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reputation lookup was cancelled",
        ) from exc
    except EventStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Relay could not be queried",
        ) from exc
    return UserStatsResponse.from_stats(stats)
