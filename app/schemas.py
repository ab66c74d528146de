"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import TriggerType


class _FromRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Period(BaseModel):
    start: datetime
    end: datetime


class ReadingOut(_FromRecord):
    id: Optional[int] = None
    timestamp: datetime
    temperature: float
    humidity: Optional[float] = None


class AlertEpisodeOut(_FromRecord):
    id: Optional[int] = None
    start: datetime
    temperature: float = Field(..., description="Temperature that opened the episode.")
    peak_temperature: float
    end: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0, description="Whole seconds from start to end.")
    resolved: bool


class CoolingEpisodeOut(_FromRecord):
    id: Optional[int] = None
    activated_at: datetime
    trigger_type: TriggerType
    deactivated_at: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)


class HourlyRollupOut(_FromRecord):
    date: str
    hour: int = Field(..., ge=0, le=23)
    avg_temperature: float
    min_temperature: float
    max_temperature: float
    avg_humidity: Optional[float] = None
    min_humidity: Optional[float] = None
    max_humidity: Optional[float] = None
    readings_count: int = Field(..., ge=1)


class DailyRollupOut(_FromRecord):
    date: str
    avg_temperature: float
    min_temperature: float
    max_temperature: float
    avg_humidity: Optional[float] = None
    min_humidity: Optional[float] = None
    max_humidity: Optional[float] = None
    readings_count: int = Field(..., ge=1)
    alerts_count: int = Field(..., ge=0)
    cooling_events_count: int = Field(..., ge=0)


class ReadingsResponse(BaseModel):
    period: Period
    readings: List[ReadingOut] = Field(default_factory=list)


class AlertsResponse(BaseModel):
    period: Period
    alerts: List[AlertEpisodeOut] = Field(default_factory=list)


class CoolingResponse(BaseModel):
    period: Period
    events: List[CoolingEpisodeOut] = Field(default_factory=list)


class HourlyRollupsResponse(BaseModel):
    period: Period
    aggregates: List[HourlyRollupOut] = Field(default_factory=list)


class DailyRollupsResponse(BaseModel):
    period: Period
    aggregates: List[DailyRollupOut] = Field(default_factory=list)


class TemperatureStats(BaseModel):
    average: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    readings_count: int = 0


class HumidityStats(BaseModel):
    average: Optional[float] = None


class AlertStats(BaseModel):
    total: int = 0
    resolved: int = 0
    average_duration: Optional[float] = None


class CoolingStats(BaseModel):
    total: int = 0
    automatic: int = 0
    manual: int = 0
    average_duration: Optional[float] = None


class ThresholdStats(BaseModel):
    value: float
    time_above: int = Field(..., ge=0, description="Seconds spent in resolved alerts.")


class StatisticsResponse(BaseModel):
    """Derived summary of one period."""

    period: Period
    temperature: TemperatureStats
    humidity: HumidityStats
    alerts: AlertStats
    cooling: CoolingStats
    threshold: ThresholdStats


class MessageIn(BaseModel):
    """A raw bus message forwarded to the engine."""

    topic: str = Field(..., min_length=1)
    payload: str


class MessageAccepted(BaseModel):
    queued: bool
