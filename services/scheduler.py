"""Periodic hourly and daily rollups over stored readings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from functools import lru_cache
from threading import Event, Thread
from typing import Callable, Optional

from datastore.repository import TelemetryRepository, build_default_repository
from exceptions import AggregationPartialFailure, StoreError
from models.records import DailyRollup, HourlyRollup
from services.aggregator import AggregationSummary, Aggregator
from services.timestamps import day_bounds, ensure_utc, hour_bounds, utcnow
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class RollupRunReport:
    """Outcome of one scheduler run; bucket keys are ``YYYY-MM-DD`` or ``YYYY-MM-DDTHH``."""

    hourly_date: Optional[date] = None
    daily_date: Optional[date] = None
    written: list[str] = field(default_factory=list)
    skipped_existing: list[str] = field(default_factory=list)
    empty: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def _hour_key(day: date, hour: int) -> str:
    return f"{day.isoformat()}T{hour:02d}"


class RollupScheduler:
    """Computes write-once rollups without double counting.

    Each run targets the UTC calendar day of ``now - 24h`` for the hourly
    pass and the previous UTC day for the daily pass. Every bucket is an
    existence check plus insert inside its own transaction, so rerunning a
    window never duplicates a row. A failing bucket is logged and skipped
    and is picked up again by the next run while it is still in the window.
    """

    def __init__(
        self,
        repository: TelemetryRepository,
        aggregator: Aggregator,
        interval_seconds: float = 3600.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.aggregator = aggregator
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._stop = Event()
        self._thread: Optional[Thread] = None

    def run_once(self, now: Optional[datetime] = None) -> RollupRunReport:
        current = ensure_utc(now) if now is not None else self.clock()
        report = RollupRunReport()
        self.run_hourly(current, report)
        self.run_daily(current, report)
        logger.info(
            "Aggregation run finished: %d written, %d failed",
            len(report.written),
            len(report.failed),
        )
        return report

    def run_hourly(self, now: datetime, report: Optional[RollupRunReport] = None) -> RollupRunReport:
        report = report or RollupRunReport()
        target = (ensure_utc(now) - timedelta(hours=24)).date()
        report.hourly_date = target
        for hour in range(24):
            key = _hour_key(target, hour)
            try:
                self._aggregate_hour(target, hour, key, report)
            except StoreError as exc:
                self._record_failure(report, key, exc)
        return report

    def run_daily(self, now: datetime, report: Optional[RollupRunReport] = None) -> RollupRunReport:
        report = report or RollupRunReport()
        target = (ensure_utc(now) - timedelta(days=1)).date()
        report.daily_date = target
        key = target.isoformat()
        try:
            self._aggregate_day(target, key, report)
        except StoreError as exc:
            self._record_failure(report, key, exc)
        return report

    def start(self) -> None:
        """Run ``run_once`` every ``interval_seconds`` on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = Thread(target=self._loop, name="rollup-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            logger.info("Running scheduled aggregations")
            try:
                self.run_once()
            except Exception:  # noqa: BLE001 - the timer must survive any single run
                logger.exception("Error running aggregations")

    def _aggregate_hour(self, day: date, hour: int, key: str, report: RollupRunReport) -> None:
        start, end = hour_bounds(day, hour)
        with self.repository.store.transaction():
            if self.repository.hourly_rollup_exists(day, hour):
                report.skipped_existing.append(key)
                return
            summary = self.aggregator.aggregate(self.repository.readings_in_bucket(start, end))
            if summary.row_count == 0:
                report.empty.append(key)
                return
            self.repository.insert_hourly_rollup(
                HourlyRollup(date=day.isoformat(), hour=hour, **self._stats(summary))
            )
        report.written.append(key)

    def _aggregate_day(self, day: date, key: str, report: RollupRunReport) -> None:
        start, end = day_bounds(day)
        with self.repository.store.transaction():
            if self.repository.daily_rollup_exists(day):
                report.skipped_existing.append(key)
                return
            summary = self.aggregator.aggregate(self.repository.readings_in_bucket(start, end))
            if summary.row_count == 0:
                report.empty.append(key)
                return
            self.repository.insert_daily_rollup(
                DailyRollup(
                    date=day.isoformat(),
                    alerts_count=self.repository.count_alerts_in_bucket(start, end),
                    cooling_events_count=self.repository.count_cooling_in_bucket(start, end),
                    **self._stats(summary),
                )
            )
        report.written.append(key)

    @staticmethod
    def _stats(summary: AggregationSummary) -> dict:
        return {
            "avg_temperature": summary.avg_temperature,
            "min_temperature": summary.min_temperature,
            "max_temperature": summary.max_temperature,
            "avg_humidity": summary.avg_humidity,
            "min_humidity": summary.min_humidity,
            "max_humidity": summary.max_humidity,
            "readings_count": summary.row_count,
        }

    @staticmethod
    def _record_failure(report: RollupRunReport, key: str, exc: Exception) -> None:
        failure = AggregationPartialFailure(str(exc), bucket=key)
        report.failed.append(key)
        logger.error(
            "Aggregation failed for bucket; skipping until next run: %s",
            failure,
            extra={"bucket": failure.bucket, "reason": type(exc).__name__},
        )


@lru_cache
def build_default_scheduler() -> RollupScheduler:
    settings = get_settings()
    return RollupScheduler(
        repository=build_default_repository(),
        aggregator=Aggregator(),
        interval_seconds=settings.aggregation_interval_seconds,
    )
