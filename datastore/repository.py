"""Table-level access for readings, episodes and rollups."""

from __future__ import annotations

from datetime import date, datetime
from functools import lru_cache
from typing import Any, Dict, Optional

from datastore.sqlite_store import SQLiteStore, build_default_store
from exceptions import StoreError
from models.records import (
    AlertEpisode,
    CoolingEpisode,
    DailyRollup,
    HourlyRollup,
    Reading,
    TriggerType,
)
from services.timestamps import format_timestamp, parse_timestamp


def _optional_timestamp(value: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


def _reading_from_row(row: Dict[str, Any]) -> Reading:
    return Reading(
        id=row["id"],
        timestamp=parse_timestamp(row["timestamp"]),
        temperature=row["temperature"],
        humidity=row["humidity"],
    )


def _alert_from_row(row: Dict[str, Any]) -> AlertEpisode:
    peak = row["max_temperature"]
    return AlertEpisode(
        id=row["id"],
        start=parse_timestamp(row["timestamp"]),
        temperature=row["temperature"],
        peak_temperature=peak if peak is not None else row["temperature"],
        end=_optional_timestamp(row["resolved_at"]),
        duration=row["duration"],
        resolved=bool(row["resolved"]),
    )


def _cooling_from_row(row: Dict[str, Any]) -> CoolingEpisode:
    return CoolingEpisode(
        id=row["id"],
        activated_at=parse_timestamp(row["activated_at"]),
        trigger_type=TriggerType(row["trigger_type"]),
        deactivated_at=_optional_timestamp(row["deactivated_at"]),
        duration=row["duration"],
    )


_ROLLUP_COLUMNS = (
    "avg_temperature, min_temperature, max_temperature, "
    "avg_humidity, min_humidity, max_humidity, readings_count"
)


class TelemetryRepository:
    """SQL for every table the engine, scheduler and query surface touch.

    Range reads are inclusive on both ends and ordered ascending.
    """

    def __init__(self, store: SQLiteStore) -> None:
        self.store = store

    # Readings

    def insert_reading(self, reading: Reading) -> int:
        result = self.store.execute(
            "INSERT INTO temperature_readings (timestamp, temperature, humidity) VALUES (?, ?, ?)",
            (format_timestamp(reading.timestamp), reading.temperature, reading.humidity),
        )
        return self._require_id(result.lastrowid, "temperature_readings")

    def latest_reading(self) -> Optional[Reading]:
        row = self.store.fetch_one(
            "SELECT * FROM temperature_readings ORDER BY timestamp DESC, id DESC LIMIT 1"
        )
        return _reading_from_row(row) if row else None

    def readings_between(self, start: datetime, end: datetime, limit: int) -> list[Reading]:
        rows = self.store.fetch_all(
            "SELECT * FROM temperature_readings WHERE timestamp >= ? AND timestamp <= ? "
            "ORDER BY timestamp ASC, id ASC LIMIT ?",
            (format_timestamp(start), format_timestamp(end), limit),
        )
        return [_reading_from_row(row) for row in rows]

    def readings_in_bucket(self, start: datetime, end: datetime) -> list[Reading]:
        """Readings in the half-open interval ``[start, end)``."""
        rows = self.store.fetch_all(
            "SELECT * FROM temperature_readings WHERE timestamp >= ? AND timestamp < ? "
            "ORDER BY timestamp ASC, id ASC",
            (format_timestamp(start), format_timestamp(end)),
        )
        return [_reading_from_row(row) for row in rows]

    # Alert episodes

    def insert_alert(self, episode: AlertEpisode) -> int:
        result = self.store.execute(
            "INSERT INTO temperature_alerts (timestamp, temperature, max_temperature, resolved) "
            "VALUES (?, ?, ?, 0)",
            (format_timestamp(episode.start), episode.temperature, episode.peak_temperature),
        )
        return self._require_id(result.lastrowid, "temperature_alerts")

    def resolve_alert(self, episode: AlertEpisode) -> bool:
        """Close an open alert row by id; resolved rows are never touched again."""
        if episode.id is None or episode.end is None:
            raise StoreError("Alert episode has no row id or end time.")
        result = self.store.execute(
            "UPDATE temperature_alerts SET resolved = 1, resolved_at = ?, duration = ?, "
            "max_temperature = ? WHERE id = ? AND resolved = 0",
            (
                format_timestamp(episode.end),
                episode.duration,
                episode.peak_temperature,
                episode.id,
            ),
        )
        return result.rowcount == 1

    def alerts_between(self, start: datetime, end: datetime) -> list[AlertEpisode]:
        rows = self.store.fetch_all(
            "SELECT * FROM temperature_alerts WHERE timestamp >= ? AND timestamp <= ? "
            "ORDER BY timestamp ASC, id ASC",
            (format_timestamp(start), format_timestamp(end)),
        )
        return [_alert_from_row(row) for row in rows]

    def count_alerts_in_bucket(self, start: datetime, end: datetime) -> int:
        row = self.store.fetch_one(
            "SELECT COUNT(*) AS count FROM temperature_alerts WHERE timestamp >= ? AND timestamp < ?",
            (format_timestamp(start), format_timestamp(end)),
        )
        return int(row["count"]) if row else 0

    def alert_summary(self, start: datetime, end: datetime) -> Dict[str, Any]:
        row = self.store.fetch_one(
            "SELECT COUNT(*) AS total, "
            "COALESCE(SUM(CASE WHEN resolved = 1 THEN 1 ELSE 0 END), 0) AS resolved, "
            "AVG(duration) AS avg_duration, "
            "COALESCE(SUM(CASE WHEN resolved = 1 THEN duration ELSE 0 END), 0) AS time_above "
            "FROM temperature_alerts WHERE timestamp >= ? AND timestamp <= ?",
            (format_timestamp(start), format_timestamp(end)),
        )
        return row or {"total": 0, "resolved": 0, "avg_duration": None, "time_above": 0}

    # Cooling episodes

    def insert_cooling(self, episode: CoolingEpisode) -> int:
        result = self.store.execute(
            "INSERT INTO cooling_events (activated_at, trigger_type) VALUES (?, ?)",
            (format_timestamp(episode.activated_at), episode.trigger_type.value),
        )
        return self._require_id(result.lastrowid, "cooling_events")

    def close_cooling(self, episode: CoolingEpisode) -> bool:
        if episode.id is None or episode.deactivated_at is None:
            raise StoreError("Cooling episode has no row id or deactivation time.")
        result = self.store.execute(
            "UPDATE cooling_events SET deactivated_at = ?, duration = ? "
            "WHERE id = ? AND deactivated_at IS NULL",
            (format_timestamp(episode.deactivated_at), episode.duration, episode.id),
        )
        return result.rowcount == 1

    def cooling_between(self, start: datetime, end: datetime) -> list[CoolingEpisode]:
        rows = self.store.fetch_all(
            "SELECT * FROM cooling_events WHERE activated_at >= ? AND activated_at <= ? "
            "ORDER BY activated_at ASC, id ASC",
            (format_timestamp(start), format_timestamp(end)),
        )
        return [_cooling_from_row(row) for row in rows]

    def count_cooling_in_bucket(self, start: datetime, end: datetime) -> int:
        row = self.store.fetch_one(
            "SELECT COUNT(*) AS count FROM cooling_events WHERE activated_at >= ? AND activated_at < ?",
            (format_timestamp(start), format_timestamp(end)),
        )
        return int(row["count"]) if row else 0

    def cooling_summary(self, start: datetime, end: datetime) -> Dict[str, Any]:
        row = self.store.fetch_one(
            "SELECT COUNT(*) AS total, "
            "COALESCE(SUM(CASE WHEN trigger_type = 'auto' THEN 1 ELSE 0 END), 0) AS auto, "
            "COALESCE(SUM(CASE WHEN trigger_type = 'manual' THEN 1 ELSE 0 END), 0) AS manual, "
            "AVG(duration) AS avg_duration "
            "FROM cooling_events WHERE activated_at >= ? AND activated_at <= ?",
            (format_timestamp(start), format_timestamp(end)),
        )
        return row or {"total": 0, "auto": 0, "manual": 0, "avg_duration": None}

    def reading_summary(self, start: datetime, end: datetime) -> Dict[str, Any]:
        row = self.store.fetch_one(
            "SELECT COUNT(*) AS count, AVG(temperature) AS avg_temp, MIN(temperature) AS min_temp, "
            "MAX(temperature) AS max_temp, AVG(humidity) AS avg_humidity "
            "FROM temperature_readings WHERE timestamp >= ? AND timestamp <= ?",
            (format_timestamp(start), format_timestamp(end)),
        )
        return row or {"count": 0, "avg_temp": None, "min_temp": None, "max_temp": None, "avg_humidity": None}

    # Rollups

    def hourly_rollup_exists(self, day: date, hour: int) -> bool:
        row = self.store.fetch_one(
            "SELECT id FROM hourly_temperature_agg WHERE date = ? AND hour = ?",
            (day.isoformat(), hour),
        )
        return row is not None

    def insert_hourly_rollup(self, rollup: HourlyRollup) -> int:
        result = self.store.execute(
            f"INSERT INTO hourly_temperature_agg (date, hour, {_ROLLUP_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                rollup.date,
                rollup.hour,
                rollup.avg_temperature,
                rollup.min_temperature,
                rollup.max_temperature,
                rollup.avg_humidity,
                rollup.min_humidity,
                rollup.max_humidity,
                rollup.readings_count,
            ),
        )
        return self._require_id(result.lastrowid, "hourly_temperature_agg")

    def hourly_rollups_between(self, start: date, end: date) -> list[HourlyRollup]:
        rows = self.store.fetch_all(
            f"SELECT date, hour, {_ROLLUP_COLUMNS} FROM hourly_temperature_agg "
            "WHERE date >= ? AND date <= ? ORDER BY date ASC, hour ASC",
            (start.isoformat(), end.isoformat()),
        )
        return [HourlyRollup(**row) for row in rows]

    def daily_rollup_exists(self, day: date) -> bool:
        row = self.store.fetch_one(
            "SELECT id FROM daily_temperature_agg WHERE date = ?", (day.isoformat(),)
        )
        return row is not None

    def insert_daily_rollup(self, rollup: DailyRollup) -> int:
        result = self.store.execute(
            f"INSERT INTO daily_temperature_agg (date, {_ROLLUP_COLUMNS}, alerts_count, "
            "cooling_events_count) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                rollup.date,
                rollup.avg_temperature,
                rollup.min_temperature,
                rollup.max_temperature,
                rollup.avg_humidity,
                rollup.min_humidity,
                rollup.max_humidity,
                rollup.readings_count,
                rollup.alerts_count,
                rollup.cooling_events_count,
            ),
        )
        return self._require_id(result.lastrowid, "daily_temperature_agg")

    def daily_rollups_between(self, start: date, end: date) -> list[DailyRollup]:
        rows = self.store.fetch_all(
            f"SELECT date, {_ROLLUP_COLUMNS}, alerts_count, cooling_events_count "
            "FROM daily_temperature_agg WHERE date >= ? AND date <= ? ORDER BY date ASC",
            (start.isoformat(), end.isoformat()),
        )
        return [DailyRollup(**row) for row in rows]

    @staticmethod
    def _require_id(lastrowid: Optional[int], table: str) -> int:
        if lastrowid is None:
            raise StoreError(f"Insert into {table} did not return a row id.")
        return lastrowid


@lru_cache
def build_default_repository() -> TelemetryRepository:
    return TelemetryRepository(build_default_store())
