"""Logging setup for the service."""

from __future__ import annotations

import logging

from relay_review.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a root handler at the configured level.

    Safe to call more than once; ``logging.basicConfig`` ignores repeat calls
    unless handlers were removed in between.
    """
    resolved = (level or settings.log_level).upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
