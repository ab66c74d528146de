"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    AlertEpisodeOut,
    AlertsResponse,
    AlertStats,
    CoolingEpisodeOut,
    CoolingResponse,
    CoolingStats,
    DailyRollupOut,
    DailyRollupsResponse,
    HourlyRollupOut,
    HourlyRollupsResponse,
    HumidityStats,
    MessageAccepted,
    MessageIn,
    Period,
    ReadingOut,
    ReadingsResponse,
    StatisticsResponse,
    TemperatureStats,
    ThresholdStats,
)
from exceptions import DecodeError
from services.analytics import AnalyticsService, build_default_analytics
from services.engine import TelemetryEngine, build_default_engine
from services.timestamps import ensure_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

_START_QUERY = Query(None, description="ISO-8601 start of the period (inclusive).")
_END_QUERY = Query(None, description="ISO-8601 end of the period (inclusive); defaults to now.")


def get_analytics() -> AnalyticsService:
    return build_default_analytics()


def get_engine() -> TelemetryEngine:
    return build_default_engine()


def _resolve_period(start: Optional[datetime], end: Optional[datetime], default_span: timedelta) -> Period:
    resolved_end = ensure_utc(end) if end is not None else utcnow()
    resolved_start = ensure_utc(start) if start is not None else resolved_end - default_span
    if resolved_start > resolved_end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Period start must not be after its end.",
        )
    return Period(start=resolved_start, end=resolved_end)


@router.get(
    "/api/analytics/temperature/latest",
    response_model=ReadingOut,
    summary="Most recent stored reading.",
)
async def latest_temperature(
    analytics: AnalyticsService = Depends(get_analytics),
) -> ReadingOut:
    reading = analytics.latest_reading()
    if reading is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No temperature readings found.",
        )
    return ReadingOut.model_validate(reading)


@router.get(
    "/api/analytics/temperature/range",
    response_model=ReadingsResponse,
    summary="Readings in a period, oldest first, capped in size.",
)
async def temperature_range(
    start: Optional[datetime] = _START_QUERY,
    end: Optional[datetime] = _END_QUERY,
    analytics: AnalyticsService = Depends(get_analytics),
) -> ReadingsResponse:
    period = _resolve_period(start, end, timedelta(days=1))
    readings = analytics.readings(period.start, period.end)
    return ReadingsResponse(
        period=period,
        readings=[ReadingOut.model_validate(reading) for reading in readings],
    )


@router.get(
    "/api/analytics/alerts",
    response_model=AlertsResponse,
    summary="Alert episodes that started in a period.",
)
async def alerts(
    start: Optional[datetime] = _START_QUERY,
    end: Optional[datetime] = _END_QUERY,
    analytics: AnalyticsService = Depends(get_analytics),
) -> AlertsResponse:
    period = _resolve_period(start, end, timedelta(days=7))
    episodes = analytics.alerts(period.start, period.end)
    return AlertsResponse(
        period=period,
        alerts=[AlertEpisodeOut.model_validate(episode) for episode in episodes],
    )


@router.get(
    "/api/analytics/cooling",
    response_model=CoolingResponse,
    summary="Cooling episodes activated in a period.",
)
async def cooling(
    start: Optional[datetime] = _START_QUERY,
    end: Optional[datetime] = _END_QUERY,
    analytics: AnalyticsService = Depends(get_analytics),
) -> CoolingResponse:
    period = _resolve_period(start, end, timedelta(days=7))
    episodes = analytics.cooling_events(period.start, period.end)
    return CoolingResponse(
        period=period,
        events=[CoolingEpisodeOut.model_validate(episode) for episode in episodes],
    )


@router.get(
    "/api/analytics/statistics",
    response_model=StatisticsResponse,
    summary="Derived statistics for a period.",
)
async def statistics(
    start: Optional[datetime] = _START_QUERY,
    end: Optional[datetime] = _END_QUERY,
    analytics: AnalyticsService = Depends(get_analytics),
) -> StatisticsResponse:
    period = _resolve_period(start, end, timedelta(days=7))
    stats = analytics.statistics(period.start, period.end)
    return StatisticsResponse(
        period=period,
        temperature=TemperatureStats(
            average=stats.avg_temperature,
            minimum=stats.min_temperature,
            maximum=stats.max_temperature,
            readings_count=stats.readings_count,
        ),
        humidity=HumidityStats(average=stats.avg_humidity),
        alerts=AlertStats(
            total=stats.alerts_total,
            resolved=stats.alerts_resolved,
            average_duration=stats.alerts_avg_duration,
        ),
        cooling=CoolingStats(
            total=stats.cooling_total,
            automatic=stats.cooling_auto,
            manual=stats.cooling_manual,
            average_duration=stats.cooling_avg_duration,
        ),
        threshold=ThresholdStats(value=stats.threshold, time_above=stats.time_above_threshold),
    )


@router.get(
    "/api/analytics/hourly",
    response_model=HourlyRollupsResponse,
    summary="Hourly rollups for the dates covered by a period.",
)
async def hourly(
    start: Optional[datetime] = _START_QUERY,
    end: Optional[datetime] = _END_QUERY,
    analytics: AnalyticsService = Depends(get_analytics),
) -> HourlyRollupsResponse:
    period = _resolve_period(start, end, timedelta(days=1))
    rollups = analytics.hourly_rollups(period.start, period.end)
    return HourlyRollupsResponse(
        period=period,
        aggregates=[HourlyRollupOut.model_validate(rollup) for rollup in rollups],
    )


@router.get(
    "/api/analytics/daily",
    response_model=DailyRollupsResponse,
    summary="Daily rollups for the dates covered by a period.",
)
async def daily(
    start: Optional[datetime] = _START_QUERY,
    end: Optional[datetime] = _END_QUERY,
    analytics: AnalyticsService = Depends(get_analytics),
) -> DailyRollupsResponse:
    period = _resolve_period(start, end, timedelta(days=30))
    rollups = analytics.daily_rollups(period.start, period.end)
    return DailyRollupsResponse(
        period=period,
        aggregates=[DailyRollupOut.model_validate(rollup) for rollup in rollups],
    )


@router.post(
    "/api/messages",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=MessageAccepted,
    summary="Forward a raw bus message to the engine.",
)
async def ingest_message(
    message: MessageIn,
    engine: TelemetryEngine = Depends(get_engine),
) -> MessageAccepted:
    try:
        event = engine.decoder.decode(message.topic, message.payload)
    except DecodeError as exc:
        logger.warning("Rejecting malformed message: %s", exc, extra={"topic": message.topic})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    if event is None:
        return MessageAccepted(queued=False)
    engine.submit(event)
    return MessageAccepted(queued=True)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint lists the analytics routes.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, object]:
    return {
        "status": "ok",
        "detail": "IoT Temperature Monitoring Metrics API",
        "endpoints": [
            "/api/analytics/temperature/latest",
            "/api/analytics/temperature/range",
            "/api/analytics/alerts",
            "/api/analytics/cooling",
            "/api/analytics/statistics",
            "/api/analytics/hourly",
            "/api/analytics/daily",
        ],
    }
