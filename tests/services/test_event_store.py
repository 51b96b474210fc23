import asyncio
import json
import logging

import pytest

from relay_review.schemas.event import KIND_TEXT_NOTE, NostrFilter
from relay_review.services.cancellation import CancellationSignal, OperationCancelled
from relay_review.services.event_store import (
    EventStoreError,
    InMemoryEventStore,
    RelayEventStore,
    get_event_store,
)
from tests.conftest import make_event

RELAY_URL = "wss://relay.test"


class FakeRelay:
    """Scripted relay connection; ``replies`` maps a subscription id to the messages sent back."""

    def __init__(self, replies, *, hang=False):
        self.replies = replies
        self.hang = hang
        self.sent = []
        self.connected_to = None

    def __call__(self, url, **kwargs):
        self.connected_to = url
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def send(self, message):
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for reply in self.replies(self.sent[0][1]):
            yield reply if isinstance(reply, str) else json.dumps(reply)
        if self.hang:
            await asyncio.Event().wait()


def _event_payload(event_id):
    return make_event(event_id).model_dump()


@pytest.mark.asyncio
async def test_collects_events_until_end_of_stored_events():
    relay = FakeRelay(
        lambda sub: [
            ["EVENT", sub, _event_payload("e1")],
            ["EVENT", "someone-else", _event_payload("other")],
            "not json",
            ["EVENT", sub, {"id": "broken"}],
            ["NOTICE", "slow down"],
            ["EVENT", sub, _event_payload("e1")],
            ["EVENT", sub, _event_payload("e2")],
            ["EOSE", sub],
            ["EVENT", sub, _event_payload("late")],
        ]
    )
    store = RelayEventStore(RELAY_URL, connect=relay)
    query_filter = NostrFilter(kinds=[KIND_TEXT_NOTE], tags={"e": ["root"]}, limit=5)

    events = await store.query([query_filter])

    assert [event.id for event in events] == ["e1", "e2"]
    assert relay.connected_to == RELAY_URL
    request = relay.sent[0]
    assert request[0] == "REQ"
    assert request[2] == {"kinds": [KIND_TEXT_NOTE], "limit": 5, "#e": ["root"]}
    assert relay.sent[-1] == ["CLOSE", request[1]]


@pytest.mark.asyncio
async def test_missing_end_of_stored_events_returns_partial_results(caplog):
    relay = FakeRelay(lambda sub: [["EVENT", sub, _event_payload("e1")]], hang=True)
    store = RelayEventStore(RELAY_URL, timeout_seconds=0.05, connect=relay)

    with caplog.at_level(logging.WARNING, logger="relay_review.services.event_store"):
        events = await store.query([NostrFilter(ids=["e1"])])

    assert [event.id for event in events] == ["e1"]
    assert "sent no EOSE" in caplog.text


@pytest.mark.asyncio
async def test_closed_subscription_ends_query(caplog):
    relay = FakeRelay(lambda sub: [["CLOSED", sub, "auth-required: sign in"]], hang=True)
    store = RelayEventStore(RELAY_URL, timeout_seconds=5, connect=relay)

    with caplog.at_level(logging.WARNING, logger="relay_review.services.event_store"):
        assert await store.query([NostrFilter(ids=["e1"])]) == []

    assert "auth-required" in caplog.text


@pytest.mark.asyncio
async def test_unreachable_relay_raises():
    def refuse(url, **kwargs):
        raise OSError("connection refused")

    store = RelayEventStore(RELAY_URL, connect=refuse)

    with pytest.raises(EventStoreError):
        await store.query([NostrFilter(ids=["e1"])])


@pytest.mark.asyncio
async def test_caller_signal_abandons_subscription():
    relay = FakeRelay(lambda sub: [], hang=True)
    store = RelayEventStore(RELAY_URL, timeout_seconds=5, connect=relay)
    signal = CancellationSignal("caller")
    asyncio.get_running_loop().call_later(0.01, signal.cancel)

    with pytest.raises(OperationCancelled):
        await store.query([NostrFilter(ids=["e1"])], signal)


@pytest.mark.asyncio
async def test_empty_filter_list_skips_the_relay():
    def fail(url, **kwargs):
        raise AssertionError("relay should not be contacted")

    assert await RelayEventStore(RELAY_URL, connect=fail).query([]) == []


def test_process_store_queries_the_configured_relay():
    store = get_event_store()

    assert isinstance(store, RelayEventStore)
    assert not isinstance(store, InMemoryEventStore)
    assert store is get_event_store()
