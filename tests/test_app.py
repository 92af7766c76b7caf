import time
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.reading_store import build_default_store
from services.broadcast import build_default_hub
from services.history import build_default_history
from services.ingestion import build_default_gateway
from services.retention import build_default_reaper
from settings import get_settings

API_KEY = "test-secret"
HEADERS = {"X-API-Key": API_KEY}

_CACHES = (
    get_settings,
    build_default_store,
    build_default_hub,
    build_default_history,
    build_default_gateway,
    build_default_reaper,
)


def _clear_caches() -> None:
    for cache in _CACHES:
        cache.cache_clear()


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv("READINGS_STORE_PATH", str(tmp_path / "readings.json"))
    monkeypatch.setenv("API_KEY", API_KEY)
    monkeypatch.setenv("REAPER_INTERVAL_SECONDS", "3600")
    _clear_caches()

    app = create_app()
    with TestClient(app) as client:
        yield client

    _clear_caches()


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_health(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_ingest_requires_api_key(api_client: TestClient) -> None:
    body = {"temperature": 21.5, "humidity": 60.2}

    missing = api_client.post("/api/readings", json=body)
    wrong = api_client.post("/api/readings", json=body, headers={"X-API-Key": "nope"})

    assert missing.status_code == 401
    assert missing.json()["detail"]["error"] == "unauthorized"
    assert wrong.status_code == 401
    assert api_client.get("/api/readings/recent").json() == []


def test_ingest_rejects_non_numeric_temperature(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/readings", json={"temperature": "hot", "humidity": 60.2}, headers=HEADERS
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "bad_request"
    assert detail["fields"] == ["temperature"]
    assert "temperature" in detail["message"]


def test_ingest_rejects_non_json_body(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/readings",
        content=b"temperature=21",
        headers={**HEADERS, "Content-Type": "text/plain"},
    )

    assert response.status_code == 400


def test_ingest_rejects_out_of_range_integer(api_client: TestClient) -> None:
    body = b'{"temperature": 1' + b"0" * 400 + b', "humidity": 60.2}'

    response = api_client.post(
        "/api/readings", content=body, headers={**HEADERS, "Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["detail"]["fields"] == ["temperature"]
    assert api_client.get("/api/readings/recent").json() == []


def test_ingest_rejects_integer_beyond_parser_digit_limit(api_client: TestClient) -> None:
    body = b'{"temperature": 1' + b"0" * 5000 + b', "humidity": 60.2}'

    response = api_client.post(
        "/api/readings", content=body, headers={**HEADERS, "Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "bad_request"


def test_ingest_rejects_oversized_body(api_client: TestClient) -> None:
    body = b'{"temperature": 21.5, "humidity": 60.2, "note": "' + b"x" * (300 * 1024) + b'"}'

    response = api_client.post(
        "/api/readings", content=body, headers={**HEADERS, "Content-Type": "application/json"}
    )

    assert response.status_code == 413
    assert response.json()["detail"]["error"] == "payload_too_large"
    assert api_client.get("/api/readings/recent").json() == []


def test_future_timestamp_does_not_displace_latest(api_client: TestClient) -> None:
    stored = api_client.post(
        "/api/readings", json={"temperature": 20, "humidity": 50}, headers=HEADERS
    )
    rejected = api_client.post(
        "/api/readings",
        json={"temperature": 99, "humidity": 99, "timestamp": "2999-01-01T00:00:00Z"},
        headers=HEADERS,
    )

    assert rejected.status_code == 400
    assert rejected.json()["detail"]["fields"] == ["timestamp"]
    assert api_client.get("/api/readings/latest").json()["id"] == stored.json()["id"]


def test_ingest_then_query_history(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/readings", json={"temperature": 21.5, "humidity": 60.2}, headers=HEADERS
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    reading_id = payload["id"]

    recent = api_client.get("/api/readings/recent", params={"limit": 1}).json()
    assert len(recent) == 1
    assert recent[0]["id"] == reading_id
    assert recent[0]["temperature"] == 21.5
    assert recent[0]["humidity"] == 60.2
    assert recent[0]["deviceId"] == "esp32-1"

    latest = api_client.get("/api/readings/latest").json()
    assert latest == recent[0]


def test_ingest_alias_accepts_device_field(api_client: TestClient) -> None:
    response = api_client.post(
        "/ingest",
        json={"temperature": 19.0, "humidity": 40.0, "device": "greenhouse"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert api_client.get("/api/readings/latest").json()["deviceId"] == "greenhouse"


def test_latest_is_empty_object_without_readings(api_client: TestClient) -> None:
    response = api_client.get("/api/readings/latest")

    assert response.status_code == 200
    assert response.json() == {}


def test_recent_orders_ascending_and_tolerates_bad_limit(api_client: TestClient) -> None:
    for value in range(4):
        api_client.post(
            "/api/readings", json={"temperature": float(value), "humidity": 50}, headers=HEADERS
        )

    last_two = api_client.get("/api/readings/recent", params={"limit": "2"})
    garbage = api_client.get("/api/readings/recent", params={"limit": "lots"})

    assert [r["temperature"] for r in last_two.json()] == [2.0, 3.0]
    assert garbage.status_code == 200
    assert [r["temperature"] for r in garbage.json()] == [0.0, 1.0, 2.0, 3.0]


def test_persistence_failure_returns_generic_error(api_client: TestClient, monkeypatch) -> None:
    store = build_default_store()

    def broken_persist() -> None:
        raise OSError("disk on fire")

    monkeypatch.setattr(store, "_persist", broken_persist)

    response = api_client.post(
        "/api/readings", json={"temperature": 1, "humidity": 2}, headers=HEADERS
    )

    assert response.status_code == 500
    assert response.json()["detail"] == {
        "error": "internal_error",
        "message": "server error",
        "fields": [],
    }
    assert "disk on fire" not in response.text


def test_live_channel_emits_new_reading(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        response = api_client.post(
            "/api/readings", json={"temperature": 21.5, "humidity": 60.2}, headers=HEADERS
        )
        event = websocket.receive_json()

    assert event["event"] == "new_reading"
    assert event["data"]["id"] == response.json()["id"]
    assert event["data"]["temperature"] == 21.5
    assert event["data"]["humidity"] == 60.2
    assert event["data"]["deviceId"] == "esp32-1"


def test_late_viewer_gets_history_then_live_suffix(api_client: TestClient) -> None:
    first = api_client.post(
        "/api/readings", json={"temperature": 1.0, "humidity": 10.0}, headers=HEADERS
    ).json()["id"]

    with api_client.websocket_connect("/ws") as websocket:
        seeded = api_client.get("/api/readings/recent").json()
        second = api_client.post(
            "/api/readings", json={"temperature": 2.0, "humidity": 20.0}, headers=HEADERS
        ).json()["id"]
        event = websocket.receive_json()
        history = api_client.get("/api/readings/recent").json()

    assert [r["id"] for r in seeded] == [first]
    assert event["data"]["id"] == second
    assert [r["id"] for r in history] == [first, second]


def test_viewer_disconnect_unsubscribes(api_client: TestClient) -> None:
    hub = build_default_hub()

    with api_client.websocket_connect("/ws"):
        assert _wait_for(lambda: hub.subscriber_count == 1)

    assert _wait_for(lambda: hub.subscriber_count == 0)
    response = api_client.post(
        "/api/readings", json={"temperature": 1, "humidity": 2}, headers=HEADERS
    )
    assert response.status_code == 200


def test_viewer_close_after_live_event_ends_session(api_client: TestClient) -> None:
    hub = build_default_hub()

    with api_client.websocket_connect("/ws") as websocket:
        api_client.post("/api/readings", json={"temperature": 1, "humidity": 2}, headers=HEADERS)
        assert websocket.receive_json()["event"] == "new_reading"
        websocket.close()

    assert _wait_for(lambda: hub.subscriber_count == 0)

    with api_client.websocket_connect("/ws") as websocket:
        api_client.post("/api/readings", json={"temperature": 3, "humidity": 4}, headers=HEADERS)
        assert websocket.receive_json()["data"]["temperature"] == 3


def test_dashboard_page_renders(api_client: TestClient) -> None:
    response = api_client.get("/")

    assert response.status_code == 200
    assert "Sensor Stream" in response.text
    assert "/static/dashboard.js" in response.text


def test_lifespan_runs_reaper_and_clears_cache(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("READINGS_STORE_PATH", str(tmp_path / "readings.json"))
    _clear_caches()
    app = create_app()

    with TestClient(app):
        reaper_during = build_default_reaper()
        assert reaper_during.running

    assert not reaper_during.running
    reaper_after = build_default_reaper()
    try:
        assert reaper_after is not reaper_during
        assert not reaper_after.running
    finally:
        _clear_caches()
