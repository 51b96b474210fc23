"""Relay management (NIP-86) RPC client.

Ban lists and delete lists are optional relay capabilities exposed through a
JSON-RPC style management endpoint. Request authentication is produced by an
external signer and passed in as ready-made headers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from relay_review.core.settings import settings

# Configure logger for this module
logger = logging.getLogger(__name__)

RPC_CONTENT_TYPE = "application/nostr+json+rpc"

# HTTP status codes
HTTP_OK = 200
HTTP_NOT_FOUND = 404
HTTP_METHOD_NOT_ALLOWED = 405
HTTP_NOT_IMPLEMENTED = 501

UNSUPPORTED_STATUS_CODES = frozenset({HTTP_NOT_FOUND, HTTP_METHOD_NOT_ALLOWED, HTTP_NOT_IMPLEMENTED})
UNSUPPORTED_ERROR_MARKERS = ("unsupported", "not supported", "not implemented", "unknown method")


class RelayRpcError(RuntimeError):
    """Base exception raised for relay management failures."""


class RelayCapabilityUnsupported(RelayRpcError):
    """Raised when the relay does not implement the requested method."""

    def __init__(self, method: str, detail: str | None = None) -> None:
        super().__init__(f"Relay does not support {method}" + (f": {detail}" if detail else ""))
        self.method = method


@dataclass(frozen=True)
class BannedPubkey:
    """Normalized ban-list entry."""

    pubkey: str
    reason: str | None = None


@dataclass(frozen=True)
class BannedEvent:
    """Normalized banned/deleted event entry."""

    id: str
    reason: str | None = None


def normalize_banned_pubkeys(raw: Any) -> list[BannedPubkey]:
    """Accept bare identity strings or ``{"pubkey", "reason"}`` objects."""
    if not isinstance(raw, list):
        raise RelayRpcError(f"Malformed ban list payload: {type(raw).__name__}")
    entries: list[BannedPubkey] = []
    for item in raw:
        if isinstance(item, str):
            entries.append(BannedPubkey(pubkey=item))
        elif isinstance(item, Mapping) and isinstance(item.get("pubkey"), str):
            entries.append(BannedPubkey(pubkey=item["pubkey"], reason=item.get("reason")))
        else:
            logger.debug("Skipping unrecognized ban list entry: %r", item)
    return entries


def normalize_banned_events(raw: Any) -> list[BannedEvent]:
    """Accept bare event ids or ``{"id", "reason"}`` objects."""
    if not isinstance(raw, list):
        raise RelayRpcError(f"Malformed banned events payload: {type(raw).__name__}")
    entries: list[BannedEvent] = []
    for item in raw:
        if isinstance(item, str):
            entries.append(BannedEvent(id=item))
        elif isinstance(item, Mapping) and isinstance(item.get("id"), str):
            entries.append(BannedEvent(id=item["id"], reason=item.get("reason")))
        else:
            logger.debug("Skipping unrecognized banned event entry: %r", item)
    return entries


class RelayRpcClient:
    """HTTP client wrapper for relay management calls."""

    def __init__(
        self,
        url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        auth_headers: Callable[[str, bytes], Mapping[str, str]] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url or settings.effective_management_url
        self.timeout_seconds = (
            settings.relay_http_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._auth_headers = auth_headers
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Invoke ``method`` and return its ``result`` payload.

        Raises:
            RelayCapabilityUnsupported: The relay does not implement ``method``.
            RelayRpcError: Transport failure, non-OK response or RPC-level error.
        """
        client = await self._ensure_client()
        body = httpx.Request("POST", self.url, json={"method": method, "params": params or []}).content
        headers = {"Content-Type": RPC_CONTENT_TYPE}
        if self._auth_headers is not None:
            headers.update(self._auth_headers(self.url, body))

        try:
            response = await client.post(self.url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise RelayRpcError(f"Relay RPC {method} failed: {exc}") from exc

        if response.status_code in UNSUPPORTED_STATUS_CODES:
            raise RelayCapabilityUnsupported(method, f"HTTP {response.status_code}")
        if response.status_code != HTTP_OK:
            raise RelayRpcError(f"Relay responded with {response.status_code} for {method}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise RelayRpcError(f"Relay returned invalid JSON for {method}") from exc

        error = payload.get("error") if isinstance(payload, Mapping) else None
        if error:
            detail = str(error)
            if any(marker in detail.lower() for marker in UNSUPPORTED_ERROR_MARKERS):
                raise RelayCapabilityUnsupported(method, detail)
            raise RelayRpcError(f"Relay RPC {method} error: {detail}")
        return payload.get("result") if isinstance(payload, Mapping) else None

    async def list_banned_pubkeys(self) -> list[BannedPubkey]:
        return normalize_banned_pubkeys(await self.call("listbannedpubkeys"))

    async def list_banned_events(self) -> list[BannedEvent]:
        return normalize_banned_events(await self.call("listbannedevents"))

    async def ban_event(self, event_id: str, reason: str | None = None) -> bool:
        """Hide an event on the relay.

        Returns:
            False when the relay answered with an explicit falsy result.
        """
        result = await self.call("banevent", [event_id, reason or "Banned via admin"])
        return result is None or bool(result)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _RelayRpcClientSingleton:
    """Singleton wrapper for RelayRpcClient."""

    _instance: RelayRpcClient | None = None

    @classmethod
    def get_instance(cls) -> RelayRpcClient:
        if cls._instance is None:
            cls._instance = RelayRpcClient()
        return cls._instance


def get_relay_rpc_client() -> RelayRpcClient:
    """Return a singleton relay RPC client instance."""
    return _RelayRpcClientSingleton.get_instance()
