"""Unit tests for the SQLite store and its transaction unit."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from datastore.repository import TelemetryRepository
from datastore.sqlite_store import SQLiteStore
from exceptions import StoreError
from models.records import HourlyRollup, Reading


def _rollup(hour: int = 3) -> HourlyRollup:
    return HourlyRollup(
        date="2024-01-01",
        hour=hour,
        avg_temperature=21.0,
        min_temperature=20.0,
        max_temperature=22.0,
        avg_humidity=None,
        min_humidity=None,
        max_humidity=None,
        readings_count=2,
    )


def test_execute_reports_rowcount_and_id() -> None:
    store = SQLiteStore()

    result = store.execute(
        "INSERT INTO temperature_readings (timestamp, temperature) VALUES (?, ?)",
        ("2024-01-01T00:00:00.000+00:00", 20.5),
    )

    assert result.rowcount == 1
    assert result.lastrowid == 1
    row = store.fetch_one("SELECT temperature, humidity FROM temperature_readings WHERE id = ?", (1,))
    assert row == {"temperature": 20.5, "humidity": None}


def test_fetch_one_returns_none_when_missing() -> None:
    store = SQLiteStore()

    assert store.fetch_one("SELECT * FROM temperature_readings WHERE id = ?", (42,)) is None


def test_transaction_commits_all_writes() -> None:
    store = SQLiteStore()

    with store.transaction():
        store.execute("INSERT INTO temperature_readings (timestamp, temperature) VALUES ('a', 1)")
        store.execute("INSERT INTO temperature_readings (timestamp, temperature) VALUES ('b', 2)")

    assert store.fetch_one("SELECT COUNT(*) AS n FROM temperature_readings")["n"] == 2


def test_transaction_rolls_back_on_error() -> None:
    store = SQLiteStore()

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.execute("INSERT INTO temperature_readings (timestamp, temperature) VALUES ('a', 1)")
            raise RuntimeError("boom")

    assert store.fetch_one("SELECT COUNT(*) AS n FROM temperature_readings")["n"] == 0

    # The store remains usable after a rollback.
    with store.transaction():
        store.execute("INSERT INTO temperature_readings (timestamp, temperature) VALUES ('b', 2)")
    assert store.fetch_one("SELECT COUNT(*) AS n FROM temperature_readings")["n"] == 1


def test_nested_transaction_is_rejected() -> None:
    store = SQLiteStore()

    with store.transaction():
        with pytest.raises(StoreError):
            with store.transaction():
                pass


def test_sql_errors_surface_as_store_errors() -> None:
    store = SQLiteStore()

    with pytest.raises(StoreError):
        store.execute("INSERT INTO missing_table VALUES (1)")
    with pytest.raises(StoreError):
        store.fetch_all("SELECT * FROM missing_table")


def test_duplicate_rollup_key_is_rejected() -> None:
    repository = TelemetryRepository(SQLiteStore())
    repository.insert_hourly_rollup(_rollup())

    with pytest.raises(StoreError):
        repository.insert_hourly_rollup(_rollup())


def test_resolved_alert_cannot_be_updated_again() -> None:
    from models.records import AlertEpisode

    repository = TelemetryRepository(SQLiteStore())
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    episode = AlertEpisode(start=start, temperature=30.0, peak_temperature=30.0)
    episode.id = repository.insert_alert(episode)
    episode.end = datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc)
    episode.duration = 60
    episode.resolved = True

    assert repository.resolve_alert(episode) is True
    episode.duration = 999
    assert repository.resolve_alert(episode) is False
    [stored] = repository.alerts_between(start, episode.end)
    assert stored.duration == 60


def test_file_backed_store_persists_between_connections(tmp_path) -> None:
    path = tmp_path / "nested" / "telemetry.sqlite"
    first = SQLiteStore(str(path))
    TelemetryRepository(first).insert_reading(
        Reading(timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc), temperature=19.0, humidity=33.0)
    )
    first.close()

    reopened = TelemetryRepository(SQLiteStore(str(path)))
    latest = reopened.latest_reading()

    assert latest is not None
    assert latest.temperature == 19.0
    assert latest.humidity == 33.0
    assert latest.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
