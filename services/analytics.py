"""Read-only queries over readings, episodes and rollups."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Optional

from datastore.repository import TelemetryRepository, build_default_repository
from models.records import AlertEpisode, CoolingEpisode, DailyRollup, HourlyRollup, Reading
from services.timestamps import ensure_utc
from settings import get_settings


@dataclass
class PeriodStatistics:
    start: datetime
    end: datetime
    avg_temperature: Optional[float]
    min_temperature: Optional[float]
    max_temperature: Optional[float]
    readings_count: int
    avg_humidity: Optional[float]
    alerts_total: int
    alerts_resolved: int
    alerts_avg_duration: Optional[float]
    cooling_total: int
    cooling_auto: int
    cooling_manual: int
    cooling_avg_duration: Optional[float]
    threshold: float
    time_above_threshold: int


class AnalyticsService:
    """Query surface consumed by the HTTP layer and dashboards.

    All ranges are inclusive and results are ordered oldest first. Rollup
    ranges are matched on the calendar date of ``start`` and ``end``.
    """

    def __init__(
        self,
        repository: TelemetryRepository,
        threshold: float,
        max_readings: int = 5000,
    ) -> None:
        self.repository = repository
        self.threshold = threshold
        self.max_readings = max_readings

    def latest_reading(self) -> Optional[Reading]:
        return self.repository.latest_reading()

    def readings(self, start: datetime, end: datetime) -> list[Reading]:
        return self.repository.readings_between(ensure_utc(start), ensure_utc(end), self.max_readings)

    def alerts(self, start: datetime, end: datetime) -> list[AlertEpisode]:
        return self.repository.alerts_between(ensure_utc(start), ensure_utc(end))

    def cooling_events(self, start: datetime, end: datetime) -> list[CoolingEpisode]:
        return self.repository.cooling_between(ensure_utc(start), ensure_utc(end))

    def hourly_rollups(self, start: datetime, end: datetime) -> list[HourlyRollup]:
        return self.repository.hourly_rollups_between(ensure_utc(start).date(), ensure_utc(end).date())

    def daily_rollups(self, start: datetime, end: datetime) -> list[DailyRollup]:
        return self.repository.daily_rollups_between(ensure_utc(start).date(), ensure_utc(end).date())

    def statistics(self, start: datetime, end: datetime) -> PeriodStatistics:
        start, end = ensure_utc(start), ensure_utc(end)
        readings = self.repository.reading_summary(start, end)
        alerts = self.repository.alert_summary(start, end)
        cooling = self.repository.cooling_summary(start, end)
        return PeriodStatistics(
            start=start,
            end=end,
            avg_temperature=readings["avg_temp"],
            min_temperature=readings["min_temp"],
            max_temperature=readings["max_temp"],
            readings_count=int(readings["count"]),
            avg_humidity=readings["avg_humidity"],
            alerts_total=int(alerts["total"]),
            alerts_resolved=int(alerts["resolved"]),
            alerts_avg_duration=alerts["avg_duration"],
            cooling_total=int(cooling["total"]),
            cooling_auto=int(cooling["auto"]),
            cooling_manual=int(cooling["manual"]),
            cooling_avg_duration=cooling["avg_duration"],
            threshold=self.threshold,
            time_above_threshold=int(alerts["time_above"]),
        )


@lru_cache
def build_default_analytics() -> AnalyticsService:
    settings = get_settings()
    return AnalyticsService(
        repository=build_default_repository(),
        threshold=settings.alert_threshold,
        max_readings=settings.readings_max_rows,
    )
