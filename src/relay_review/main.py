# src/relay_review/main.py
"""Main entry point for the Relay Review service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay_review.api.v1 import (
    decisions_router,
    reports_router,
    review_router,
    status_router,
    users_router,
)
from relay_review.core.logging import configure_logging
from relay_review.core.settings import settings
from relay_review.db.schema import ensure_schema
from relay_review.services.media_status import get_moderation_service_client
from relay_review.services.relay_rpc import get_relay_rpc_client

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Moderation context and decision ledger for relay review",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(decisions_router, prefix="/api/v1")
app.include_router(review_router, prefix="/api/v1")
app.include_router(reports_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(status_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    changes = ensure_schema()
    logger.info("%s %s started (%d schema changes)", settings.app_name, settings.app_version, len(changes))


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await get_relay_rpc_client().close()
    await get_moderation_service_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("relay_review.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
