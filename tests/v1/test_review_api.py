# tests/v1/test_review_api.py
from typing import Any

from relay_review.services.ledger import ModerationLedger


def test_unknown_target_is_new(client: Any) -> None:
    r = client.get("/api/v1/targets/unknown")
    assert r.status_code == 200
    assert r.json() == {"target_id": "unknown", "status": "new", "ever_human_reviewed": False}


def test_queue_views(client: Any, db_session: Any) -> None:
    ledger = ModerationLedger(db_session)
    ledger.append_decision("event", "flagged", "auto_hidden")
    ledger.append_decision("event", "resolved", "auto_hidden")
    ledger.append_decision("event", "resolved", "banned", moderator_identity="mod")
    reported = ["fresh", "flagged", "resolved"]

    default = client.post("/api/v1/queue", json={"target_ids": reported}).json()
    assert default["view"] == "default"
    assert default["target_ids"] == ["fresh"]
    assert default["statuses"] == {"fresh": "new"}

    pending = client.post("/api/v1/queue", json={"target_ids": reported, "view": "pending"}).json()
    assert pending["target_ids"] == ["flagged"]

    everything = client.post(
        "/api/v1/queue",
        json={"target_ids": reported, "hide_resolved": False},
    ).json()
    assert everything["target_ids"] == ["fresh", "resolved"]
    assert everything["statuses"]["resolved"] == "resolved"


def test_queue_rejects_unknown_view(client: Any) -> None:
    r = client.post("/api/v1/queue", json={"target_ids": ["a"], "view": "archived"})
    assert r.status_code == 422
