# src/relay_review/models/__init__.py
"""SQLAlchemy models for the Relay Review service."""

from .moderation import ModerationDecision, ModerationTarget

__all__ = [
    "ModerationDecision",
    "ModerationTarget",
]
