"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class TriggerType(str, Enum):
    """What switched the cooling system on."""

    auto = "auto"
    manual = "manual"


@dataclass(slots=True)
class Reading:
    """A persisted temperature sample paired with the latest humidity."""

    timestamp: datetime
    temperature: float
    humidity: Optional[float] = None
    id: Optional[int] = None


@dataclass(slots=True)
class AlertEpisode:
    """An interval during which the temperature was considered too high.

    ``temperature`` is the value that opened the episode and
    ``peak_temperature`` the highest value seen while it was open.
    """

    start: datetime
    temperature: float
    peak_temperature: float
    end: Optional[datetime] = None
    duration: Optional[int] = None
    resolved: bool = False
    id: Optional[int] = None


@dataclass(slots=True)
class CoolingEpisode:
    """An interval during which the cooling system was running."""

    activated_at: datetime
    trigger_type: TriggerType
    deactivated_at: Optional[datetime] = None
    duration: Optional[int] = None
    id: Optional[int] = None


@dataclass(slots=True)
class HourlyRollup:
    date: str
    hour: int
    avg_temperature: float
    min_temperature: float
    max_temperature: float
    avg_humidity: Optional[float]
    min_humidity: Optional[float]
    max_humidity: Optional[float]
    readings_count: int


@dataclass(slots=True)
class DailyRollup:
    date: str
    avg_temperature: float
    min_temperature: float
    max_temperature: float
    avg_humidity: Optional[float]
    min_humidity: Optional[float]
    max_humidity: Optional[float]
    readings_count: int
    alerts_count: int
    cooling_events_count: int


@dataclass
class EngineState:
    """Mutable state owned by a single engine; never rebuilt from the store."""

    current_temperature: Optional[float] = None
    current_humidity: Optional[float] = None
    open_alert: Optional[AlertEpisode] = None
    open_cooling: Optional[CoolingEpisode] = None


@dataclass(frozen=True, slots=True)
class TemperatureSample:
    value: float
    time: datetime


@dataclass(frozen=True, slots=True)
class HumiditySample:
    value: float
    time: datetime


@dataclass(frozen=True, slots=True)
class AlertSignal:
    active: bool
    time: datetime


@dataclass(frozen=True, slots=True)
class CoolingSignal:
    active: bool
    trigger_type: TriggerType
    time: datetime


TelemetryEvent = Union[TemperatureSample, HumiditySample, AlertSignal, CoolingSignal]
