"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from relay_review.core.settings import settings
from relay_review.db.session import get_db
from relay_review.services.event_store import EventStore, get_event_store
from relay_review.services.ledger import ModerationLedger
from relay_review.services.media_status import (
    ContentBlockStatusResolver,
    get_moderation_service_client,
)
from relay_review.services.moderation_status import ModerationStatusResolver
from relay_review.services.relay_rpc import RelayRpcClient, get_relay_rpc_client
from relay_review.services.report_context import ReportContextAggregator
from relay_review.services.reputation import ReputationAggregator

# HTTP Bearer scheme for moderator JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_moderator(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Return the moderator identity carried in the bearer token's ``sub`` claim.

    Raises:
        HTTPException: If the token is invalid or carries no subject
    """
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return subject


# Type alias for current moderator dependency
CurrentModeratorDep = Annotated[str, Depends(get_current_moderator)]


def get_ledger(db: SessionDep) -> ModerationLedger:
    return ModerationLedger(db)


class _ResolverSingletons:
    """Process-wide resolvers; their caches must outlive single requests."""

    moderation_status: ModerationStatusResolver | None = None
    content_block: ContentBlockStatusResolver | None = None

    @classmethod
    def moderation_status_resolver(cls) -> ModerationStatusResolver:
        if cls.moderation_status is None:
            cls.moderation_status = ModerationStatusResolver(get_relay_rpc_client())
        return cls.moderation_status

    @classmethod
    def content_block_resolver(cls) -> ContentBlockStatusResolver:
        if cls.content_block is None:
            cls.content_block = ContentBlockStatusResolver(get_moderation_service_client())
        return cls.content_block


def get_moderation_status_resolver() -> ModerationStatusResolver:
    return _ResolverSingletons.moderation_status_resolver()


def get_content_block_resolver() -> ContentBlockStatusResolver:
    return _ResolverSingletons.content_block_resolver()


def get_reputation(store: Annotated[EventStore, Depends(get_event_store)]) -> ReputationAggregator:
    return ReputationAggregator(store)


def get_report_context_aggregator(
    store: Annotated[EventStore, Depends(get_event_store)],
) -> ReportContextAggregator:
    return ReportContextAggregator(store)


EventStoreDep = Annotated[EventStore, Depends(get_event_store)]
LedgerDep = Annotated[ModerationLedger, Depends(get_ledger)]
RelayRpcDep = Annotated[RelayRpcClient, Depends(get_relay_rpc_client)]
ModerationStatusDep = Annotated[ModerationStatusResolver, Depends(get_moderation_status_resolver)]
ContentBlockDep = Annotated[ContentBlockStatusResolver, Depends(get_content_block_resolver)]
ReputationDep = Annotated[ReputationAggregator, Depends(get_reputation)]
ReportContextDep = Annotated[ReportContextAggregator, Depends(get_report_context_aggregator)]
