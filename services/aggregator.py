"""Aggregation logic for temperature readings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from models.records import Reading


@dataclass
class AggregationSummary:
    """Computed statistics for a batch of readings."""

    row_count: int = 0
    avg_temperature: Optional[float] = None
    min_temperature: Optional[float] = None
    max_temperature: Optional[float] = None
    humidity_count: int = 0
    avg_humidity: Optional[float] = None
    min_humidity: Optional[float] = None
    max_humidity: Optional[float] = None


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation.

    Humidity statistics only consider readings that carry a humidity value,
    the same way SQL ``AVG``/``MIN``/``MAX`` skip ``NULL``.
    """

    def aggregate(self, readings: Iterable[Reading]) -> AggregationSummary:
        summary = AggregationSummary()
        temperature_total = 0.0
        humidity_total = 0.0

        for reading in readings:
            summary.row_count += 1
            value = reading.temperature
            temperature_total += value

            if summary.min_temperature is None or value < summary.min_temperature:
                summary.min_temperature = value
            if summary.max_temperature is None or value > summary.max_temperature:
                summary.max_temperature = value

            humidity = reading.humidity
            if humidity is None:
                continue
            summary.humidity_count += 1
            humidity_total += humidity
            if summary.min_humidity is None or humidity < summary.min_humidity:
                summary.min_humidity = humidity
            if summary.max_humidity is None or humidity > summary.max_humidity:
                summary.max_humidity = humidity

        if summary.row_count:
            summary.avg_temperature = temperature_total / summary.row_count
        if summary.humidity_count:
            summary.avg_humidity = humidity_total / summary.humidity_count

        return summary
