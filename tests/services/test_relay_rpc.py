import json

import httpx
import pytest

from relay_review.services.relay_rpc import (
    RPC_CONTENT_TYPE,
    BannedPubkey,
    RelayCapabilityUnsupported,
    RelayRpcClient,
    RelayRpcError,
)

MANAGEMENT_URL = "https://relay.test/management"


def _client(handler, **kwargs) -> RelayRpcClient:
    return RelayRpcClient(MANAGEMENT_URL, transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_banned_pubkeys_accept_both_entry_shapes():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"result": ["aa" * 32, {"pubkey": "bb" * 32, "reason": "spam"}, {"unexpected": 1}]},
        )

    client = _client(handler)
    try:
        entries = await client.list_banned_pubkeys()
    finally:
        await client.close()

    assert entries == [BannedPubkey("aa" * 32), BannedPubkey("bb" * 32, "spam")]
    assert seen[0].headers["content-type"] == RPC_CONTENT_TYPE
    assert json.loads(seen[0].content) == {"method": "listbannedpubkeys", "params": []}


@pytest.mark.asyncio
async def test_auth_headers_are_attached():
    def sign(url: str, body: bytes) -> dict[str, str]:
        return {"Authorization": f"Nostr {len(body)}"}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == f"Nostr {len(request.content)}"
        return httpx.Response(200, json={"result": []})

    client = _client(handler, auth_headers=sign)
    try:
        assert await client.list_banned_events() == []
    finally:
        await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404),
        httpx.Response(501),
        httpx.Response(200, json={"error": "Unsupported method: listbannedevents"}),
    ],
)
async def test_unsupported_capability(response):
    client = _client(lambda request: response)
    try:
        with pytest.raises(RelayCapabilityUnsupported):
            await client.list_banned_events()
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_other_failures_raise_rpc_error():
    client = _client(lambda request: httpx.Response(500))
    try:
        with pytest.raises(RelayRpcError) as excinfo:
            await client.list_banned_pubkeys()
    finally:
        await client.close()

    assert not isinstance(excinfo.value, RelayCapabilityUnsupported)


@pytest.mark.asyncio
async def test_transport_error_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(RelayRpcError):
            await client.ban_event("ev1")
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_ban_event_sends_reason():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"result": True})

    client = _client(handler)
    try:
        assert await client.ban_event("ev1", "csam") is True
    finally:
        await client.close()

    assert bodies == [{"method": "banevent", "params": ["ev1", "csam"]}]


@pytest.mark.asyncio
@pytest.mark.parametrize(("result", "expected"), [(False, False), (None, True), (True, True)])
async def test_ban_event_reports_relay_refusal(result, expected):
    client = _client(lambda request: httpx.Response(200, json={"result": result}))
    try:
        assert await client.ban_event("ev1") is expected
    finally:
        await client.close()


def test_management_url_derived_from_relay_url():
    from relay_review.core.settings import Settings

    configured = Settings(SECRET_KEY="x", RELAY_URL="wss://relay.example.com/", MANAGEMENT_URL=None)

    assert configured.effective_management_url == "https://relay.example.com/management"
