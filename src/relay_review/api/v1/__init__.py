# src/relay_review/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    decisions_router,
    reports_router,
    review_router,
    status_router,
    users_router,
)

__all__ = [
    "decisions_router",
    "reports_router",
    "review_router",
    "status_router",
    "users_router",
]
