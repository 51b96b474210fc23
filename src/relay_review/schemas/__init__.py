# src/relay_review/schemas/__init__.py
"""
Pydantic schemas for protocol events and API request/response models.
"""

from .event import Event, NostrFilter

__all__ = ["Event", "NostrFilter"]
