"""Batch enforcement-status lookup for content hashes."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import httpx

from relay_review.core.settings import settings

# Configure logger for this module
logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_NOT_FOUND = 404


class ModerationServiceError(RuntimeError):
    """Raised when the moderation service cannot answer a status lookup."""


@dataclass(frozen=True)
class MediaStatus:
    """Enforcement record the moderation service holds for one hash."""

    sha256: str
    action: str
    reason: str | None = None
    created_at: str | None = None
    source: str | None = None

    @classmethod
    def from_payload(cls, sha256: str, payload: dict[str, Any]) -> MediaStatus:
        action = payload.get("action")
        if not isinstance(action, str):
            raise ModerationServiceError(f"Status for {sha256} has no action")
        return cls(
            sha256=payload.get("sha256") or sha256,
            action=action,
            reason=payload.get("reason"),
            created_at=payload.get("created_at"),
            source=payload.get("source"),
        )


@dataclass(frozen=True)
class MediaStatusResult:
    """Status of one hash in a batch; ``status`` is ``None`` when nothing is recorded."""

    hash: str
    status: MediaStatus | None
    is_blocked: bool


class ModerationServiceClient:
    """HTTP client for the content moderation service."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.moderation_service_url).rstrip("/")
        self.timeout_seconds = (
            settings.relay_http_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=httpx.Timeout(self.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def check_media_status(self, sha256: str) -> MediaStatus | None:
        """Return the recorded status for ``sha256`` or ``None`` when there is none."""
        client = await self._ensure_client()
        try:
            response = await client.get(f"/api/check-result/{sha256}")
        except httpx.HTTPError as exc:
            raise ModerationServiceError(f"Status lookup for {sha256} failed: {exc}") from exc

        if response.status_code == HTTP_NOT_FOUND:
            return None
        if response.status_code != HTTP_OK:
            raise ModerationServiceError(
                f"Moderation service responded with {response.status_code} for {sha256}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ModerationServiceError(f"Invalid JSON in status for {sha256}") from exc
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise ModerationServiceError(f"Unexpected status payload for {sha256}")
        return MediaStatus.from_payload(sha256, payload)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _ModerationServiceClientSingleton:
    """Singleton wrapper for ModerationServiceClient."""

    _instance: ModerationServiceClient | None = None

    @classmethod
    def get_instance(cls) -> ModerationServiceClient:
        if cls._instance is None:
            cls._instance = ModerationServiceClient()
        return cls._instance


def get_moderation_service_client() -> ModerationServiceClient:
    """Return a singleton moderation service client instance."""
    return _ModerationServiceClientSingleton.get_instance()


@dataclass
class _BatchEntry:
    results: list[MediaStatusResult]
    fetched_at: float


class ContentBlockStatusResolver:
    """Looks up a batch of hashes concurrently and flags the blocking ones.

    Batches are cached by the exact ordered hash tuple for ``ttl_seconds``. The
    counters and :meth:`get_status` describe the most recently computed batch.
    """

    def __init__(
        self,
        client: ModerationServiceClient,
        *,
        blocking_actions: Iterable[str] | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.blocking_actions = frozenset(
            settings.blocking_media_actions if blocking_actions is None else blocking_actions
        )
        self.ttl_seconds = settings.media_status_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._cache: dict[tuple[str, ...], _BatchEntry] = {}
        self.results: list[MediaStatusResult] = []

    def is_blocking(self, status: MediaStatus | None) -> bool:
        return status is not None and status.action in self.blocking_actions

    async def _lookup(self, sha256: str) -> MediaStatusResult:
        try:
            status = await self.client.check_media_status(sha256)
        except ModerationServiceError as exc:
            logger.warning("Media status unavailable for %s: %s", sha256, exc)
            status = None
        return MediaStatusResult(hash=sha256, status=status, is_blocked=self.is_blocking(status))

    async def check(self, hashes: Iterable[str], force: bool = False) -> list[MediaStatusResult]:
        """Return one result per hash, in input order.

        An empty input returns ``[]`` without contacting the service.
        """
        key = tuple(dict.fromkeys(hashes))
        if not key:
            self.results = []
            return self.results

        cached = self._cache.get(key)
        now = self._clock()
        if not force and cached is not None and now - cached.fetched_at < self.ttl_seconds:
            logger.debug("Media status cache hit for %d hashes", len(key))
            self.results = cached.results
            return self.results

        results = list(await asyncio.gather(*(self._lookup(sha256) for sha256 in key)))
        self._cache = {
            batch: entry
            for batch, entry in self._cache.items()
            if now - entry.fetched_at < self.ttl_seconds
        }
        self._cache[key] = _BatchEntry(results=results, fetched_at=now)
        self.results = results
        return results

    @property
    def blocked_count(self) -> int:
        return sum(1 for result in self.results if result.is_blocked)

    @property
    def unblocked_count(self) -> int:
        return sum(1 for result in self.results if not result.is_blocked)

    @property
    def has_blocked(self) -> bool:
        return any(result.is_blocked for result in self.results)

    def get_status(self, sha256: str) -> MediaStatusResult | None:
        return next((result for result in self.results if result.hash == sha256), None)
