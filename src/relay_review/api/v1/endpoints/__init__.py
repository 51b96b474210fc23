# src/relay_review/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .decisions import router as decisions_router
from .reports import router as reports_router
from .review import router as review_router
from .status import router as status_router
from .users import router as users_router

__all__ = [
    "decisions_router",
    "reports_router",
    "review_router",
    "status_router",
    "users_router",
]
