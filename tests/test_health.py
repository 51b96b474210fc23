# tests/test_health.py
from typing import Any


def test_health_reports_ok(client: Any) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
