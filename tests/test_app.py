import json
from datetime import datetime, timezone
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import _clear_factories, create_app
from datastore.sqlite_store import build_default_store
from services.engine import build_default_engine
from services.scheduler import build_default_scheduler
from settings import get_settings

WINDOW = {"start": "2024-01-01T00:00:00Z", "end": "2024-01-01T23:59:59Z"}


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "telemetry.sqlite"))
    monkeypatch.setenv("ALERT_THRESHOLD", "25")
    monkeypatch.setenv("ALERT_SOURCE", "threshold")
    monkeypatch.delenv("ALERT_PHONE_NUMBER", raising=False)
    get_settings.cache_clear()
    _clear_factories()

    with TestClient(create_app()) as client:
        yield client

    get_settings.cache_clear()


def _post(client: TestClient, topic: str, value: float, time: str):
    payload = json.dumps({"value": value, "time": time})
    return client.post("/api/messages", json={"topic": topic, "payload": payload})


def _ingest_day(client: TestClient) -> None:
    _post(client, "sensors/humidity", 45.0, "2024-01-01T00:00:00Z")
    for time, value in [
        ("2024-01-01T00:10:00Z", 20.0),
        ("2024-01-01T00:20:00Z", 26.0),
        ("2024-01-01T00:30:00Z", 28.0),
        ("2024-01-01T00:40:00Z", 24.0),
        ("2024-01-01T05:00:00Z", 22.0),
    ]:
        response = _post(client, "sensors/temperature", value, time)
        assert response.status_code == 202
        assert response.json() == {"queued": True}
    build_default_engine().drain(timeout=5)


def test_lifespan_shuts_down_engine_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "lifespan.sqlite"))
    get_settings.cache_clear()
    _clear_factories()

    with TestClient(create_app()):
        engine_during = build_default_engine()
        scheduler = build_default_scheduler()
        assert scheduler.running

    assert engine_during.executor._shutdown is True
    assert not scheduler.running

    engine_after = build_default_engine()
    try:
        assert engine_after is not engine_during
    finally:
        engine_after.shutdown()
        build_default_store().close()
        _clear_factories()
        get_settings.cache_clear()


def test_latest_reading_is_not_found_before_ingestion(api_client: TestClient) -> None:
    response = api_client.get("/api/analytics/temperature/latest")

    assert response.status_code == 404
    assert response.json()["detail"] == "No temperature readings found."


def test_ingested_messages_are_queryable(api_client: TestClient) -> None:
    _ingest_day(api_client)

    latest = api_client.get("/api/analytics/temperature/latest").json()
    assert latest["temperature"] == 22.0
    assert latest["humidity"] == 45.0
    assert latest["timestamp"].startswith("2024-01-01T05:00:00")

    readings = api_client.get("/api/analytics/temperature/range", params=WINDOW).json()
    assert [r["temperature"] for r in readings["readings"]] == [20.0, 26.0, 28.0, 24.0, 22.0]

    alerts = api_client.get("/api/analytics/alerts", params=WINDOW).json()["alerts"]
    assert len(alerts) == 1
    assert alerts[0]["peak_temperature"] == 28.0
    assert alerts[0]["duration"] == 1200
    assert alerts[0]["resolved"] is True


def test_statistics_report_time_above_threshold(api_client: TestClient) -> None:
    _ingest_day(api_client)

    body = api_client.get("/api/analytics/statistics", params=WINDOW).json()

    assert body["temperature"]["readings_count"] == 5
    assert body["temperature"]["maximum"] == 28.0
    assert body["alerts"] == {"total": 1, "resolved": 1, "average_duration": 1200.0}
    assert body["threshold"] == {"value": 25.0, "time_above": 1200}
    assert body["cooling"]["total"] == 0


def test_rollups_are_served_after_an_aggregation_run(api_client: TestClient) -> None:
    _ingest_day(api_client)

    build_default_scheduler().run_once(datetime(2024, 1, 2, 6, 0, tzinfo=timezone.utc))

    hourly = api_client.get("/api/analytics/hourly", params=WINDOW).json()["aggregates"]
    assert [(row["hour"], row["readings_count"]) for row in hourly] == [(0, 4), (5, 1)]
    assert hourly[0]["avg_temperature"] == 24.5

    daily = api_client.get("/api/analytics/daily", params=WINDOW).json()["aggregates"]
    assert len(daily) == 1
    assert daily[0]["date"] == "2024-01-01"
    assert daily[0]["alerts_count"] == 1
    assert daily[0]["cooling_events_count"] == 0


def test_cooling_messages_are_recorded(api_client: TestClient) -> None:
    for payload in ('{"active": true, "trigger": "manual", "time": "2024-01-01T01:00:00Z"}',
                    '{"active": false, "time": "2024-01-01T01:05:00Z"}'):
        response = api_client.post(
            "/api/messages", json={"topic": "industrial/status/servo", "payload": payload}
        )
        assert response.status_code == 202
    build_default_engine().drain(timeout=5)

    events = api_client.get("/api/analytics/cooling", params=WINDOW).json()["events"]

    assert len(events) == 1
    assert events[0]["trigger_type"] == "manual"
    assert events[0]["duration"] == 300


def test_malformed_message_returns_bad_request(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/messages", json={"topic": "sensors/temperature", "payload": "scorching"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid numeric value"


def test_unknown_topic_is_accepted_but_not_queued(api_client: TestClient) -> None:
    response = api_client.post("/api/messages", json={"topic": "industrial/status/mode", "payload": "AUTO"})

    assert response.status_code == 202
    assert response.json() == {"queued": False}


def test_inverted_period_returns_bad_request(api_client: TestClient) -> None:
    response = api_client.get(
        "/api/analytics/alerts",
        params={"start": "2024-01-02T00:00:00Z", "end": "2024-01-01T00:00:00Z"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Period start must not be after its end."


def test_health_and_root(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    root = api_client.get("/").json()
    assert "/api/analytics/statistics" in root["endpoints"]
