import time

import numpy as np
import pytest
from fastapi.testclient import TestClient

from backend import main


class FakeCapture:
    def read(self):
        time.sleep(0.005)
        return True, np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self):
        pass


class EmptyLandmarker:
    def infer(self, frame):
        return None

    def close(self):
        pass


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main.tracker, "capture_factory", lambda settings: FakeCapture())
    monkeypatch.setattr(main.tracker, "landmarker_factory", lambda settings: EmptyLandmarker())
    with TestClient(main.app) as test_client:
        yield test_client


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_session_lifecycle(client):
    assert client.post("/api/session/stop").status_code == 409
    assert client.post("/api/session/pause").status_code == 409

    r = client.post("/api/session/start")
    assert r.status_code == 200
    assert r.json()["status"] == "STARTED"
    assert client.post("/api/session/start").status_code == 409

    r = client.post("/api/active-window", json={"owner": {"name": "Code"}, "title": "main.py"})
    assert r.json() == {"app": "Code", "site": None}
    r = client.post("/api/active-window", json={"owner": {"name": "Firefox"}, "url": "https://docs.python.org/3/"})
    assert r.json() == {"app": "Firefox", "site": "docs.python.org"}

    live = client.get("/api/session/live").json()
    assert live["running"] is True
    assert set(live["apps"]) == {"Code", "Firefox"}

    r = client.post("/api/session/stop")
    assert r.status_code == 200
    body = r.json()
    assert body["remoteId"] is None
    assert body["session"]["durationSession"] == 0
    assert body["session"]["focusScore"] == 0
    assert set(body["session"]["activity"]) == {"Code", "Firefox"}

    summary = client.get("/api/summary").json()
    assert summary["total_sessions"] >= 1
    assert "Code" in summary["app_totals"]

    history = client.get("/api/history").json()
    assert any(session["id"] == body["id"] for session in history["sessions"])

    export = client.get("/api/export")
    assert export.status_code == 200
    assert export.text.startswith("id,start_time")


def test_history_window_starting_at_epoch_zero(client):
    record = main.FocusSession(
        start_time=1000.0,
        end_time=5000.0,
        duration_looking_ms=3000,
        duration_away_ms=1000,
        activity={"Terminal": 4000},
        sites={},
        focus_score_percent=75,
    )
    session_id = main.database.save_session(record)

    sessions = client.get("/api/history", params={"start": 0, "end": 10_000}).json()["sessions"]
    assert [session["id"] for session in sessions] == [session_id]

    export = client.get("/api/export", params={"start": 0, "end": 10_000})
    assert len(export.text.splitlines()) == 2


def test_filter_rules_and_soft_block(client):
    r = client.put(
        "/api/filters",
        json={"allowlist": ["docs.python.org"], "blacklist": ["youtube.com"], "sessionOn": True},
    )
    assert r.status_code == 200
    assert [rule["action"]["type"] for rule in r.json()["addRules"]] == ["allow", "block"]
    assert len(client.get("/api/filters/rules").json()["rules"]) == 2

    url = "https://news.ycombinator.com/"
    r = client.post("/api/navigation", json={"tabId": 4, "url": url}).json()
    assert r["softBlock"] is True
    assert r["blocked"]["blockedUrl"] == url

    r = client.post("/api/bypass", json={"tabId": 4}).json()
    assert r["blockedUrl"] == url
    assert r["expiresInMs"] == 60_000

    r = client.post("/api/navigation", json={"tabId": 4, "url": url}).json()
    assert r == {"softBlock": False, "reason": "bypass", "blocked": None}

    r = client.put("/api/filters", json={"allowlist": [], "blacklist": [], "sessionOn": False})
    assert r.json() == {"removeRuleIds": [10000, 10001], "addRules": []}
    assert client.get("/api/filters").json()["sessionOn"] is False


def test_settings_round_trip(client):
    original = client.get("/api/settings").json()
    assert original["attention"]["absent_ms"] == 800.0

    changed = {**original, "attention": {**original["attention"], "absent_ms": 1200.0}}
    r = client.post("/api/settings", json=changed)
    assert r.status_code == 200
    assert client.get("/api/settings").json()["attention"]["absent_ms"] == 1200.0
    assert main.tracker.session.machine.thresholds.absent_ms == 1200.0

    client.post("/api/settings", json=original)
