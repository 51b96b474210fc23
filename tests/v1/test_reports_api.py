# tests/v1/test_reports_api.py
import json
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi import FastAPI

from relay_review.core.settings import settings
from relay_review.schemas.event import KIND_METADATA
from relay_review.services.ledger import ModerationLedger
from relay_review.services.relay_rpc import RelayRpcClient, RelayRpcError, get_relay_rpc_client
from tests.conftest import make_event, make_report, pubkey


@pytest.fixture()
def rpc(app: FastAPI, mocker: Any) -> Iterator[Any]:
    fake = mocker.AsyncMock(spec=RelayRpcClient)
    fake.ban_event.return_value = True
    app.dependency_overrides[get_relay_rpc_client] = lambda: fake
    try:
        yield fake
    finally:
        app.dependency_overrides.pop(get_relay_rpc_client, None)


def _body(event: Any) -> dict[str, Any]:
    return event.model_dump()


def test_context_for_reply_report(client: Any, event_store: Any) -> None:
    root = make_event("root", author="alice")
    reply = make_event("reply", author="mallory", tags=[["e", "root"]])
    profile = make_event(
        "meta",
        author="mallory",
        kind=KIND_METADATA,
        content=json.dumps({"name": "mallory"}),
    )
    report = make_report("r1", "reply", reported="mallory", category="spam")
    event_store.add(root, reply, profile, report)

    r = client.post("/api/v1/reports/context", json=_body(report))

    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "ready"
    assert body["target"] == {"type": "event", "value": "reply"}
    assert body["category"] == "spam"
    assert body["thread"]["found"] is True
    assert body["thread"]["root"]["id"] == "root"
    assert [child["event"]["id"] for child in body["thread"]["tree"]["children"]] == ["reply"]
    assert body["reported_user"]["pubkey"] == pubkey("mallory")
    assert body["reported_user"]["profile"]["name"] == "mallory"
    assert body["user_stats"]["post_count"] == 1
    assert body["user_stats"]["report_count"] == 1
    assert body["reporter"]["pubkey"] == pubkey("reporter")
    assert body["reporter"]["report_count"] == 1


def test_context_for_identity_report(client: Any, event_store: Any) -> None:
    report = make_report("r2", reported="mallory", category="impersonation")
    event_store.add(report)

    body = client.post("/api/v1/reports/context", json=_body(report)).json()

    assert body["state"] == "ready"
    assert body["target"] == {"type": "pubkey", "value": pubkey("mallory")}
    assert body["thread"] is None
    assert body["reported_user"]["pubkey"] == pubkey("mallory")


def test_context_rejects_non_report(client: Any, event_store: Any) -> None:
    r = client.post("/api/v1/reports/context", json=_body(make_event("note")))
    assert r.status_code == 400


def test_auto_hide_requires_token(client: Any, rpc: Any) -> None:
    report = make_report("r3", "ev", category="csam")
    r = client.post("/api/v1/reports/auto-hide", json=_body(report))
    assert r.status_code in {401, 403}
    rpc.ban_event.assert_not_called()


def test_auto_hide_flags_target(
    client: Any, rpc: Any, moderator_headers: dict[str, str], db_session: Any, mocker: Any
) -> None:
    mocker.patch.object(settings, "auto_hide_enabled", True)
    report = make_report("r4", "ev-hide", category="csam")

    r = client.post("/api/v1/reports/auto-hide", json=_body(report), headers=moderator_headers)

    assert r.status_code == 200
    assert r.json() == {"report_id": "r4", "outcome": "hidden"}
    rpc.ban_event.assert_awaited_once_with("ev-hide", "Auto-hidden: csam report")
    ledger = ModerationLedger(db_session)
    assert ledger.target_status("ev-hide").value == "auto_flagged"
    assert ledger.ever_human_reviewed("ev-hide") is False


def test_auto_hide_relay_failure_is_recorded(
    client: Any, rpc: Any, moderator_headers: dict[str, str], mocker: Any
) -> None:
    mocker.patch.object(settings, "auto_hide_enabled", True)
    rpc.ban_event.side_effect = RelayRpcError("relay down")
    report = make_report("r5", "ev-fail", category="csam")

    r = client.post("/api/v1/reports/auto-hide", json=_body(report), headers=moderator_headers)

    assert r.json()["outcome"] == "failed"
    history = client.get("/api/v1/decisions/ev-fail").json()
    assert [row["action"] for row in history["decisions"]] == ["auto_hide_failed"]
