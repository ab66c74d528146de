from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_DATABASE_PATH_ENV = "DATABASE_PATH"
_ALERT_THRESHOLD_ENV = "ALERT_THRESHOLD"
_ALERT_SOURCE_ENV = "ALERT_SOURCE"
_ALERT_PHONE_ENV = "ALERT_PHONE_NUMBER"
_TWILIO_SID_ENV = "TWILIO_ACCOUNT_SID"
_TWILIO_TOKEN_ENV = "TWILIO_AUTH_TOKEN"
_TWILIO_FROM_ENV = "TWILIO_FROM_NUMBER"
_TEMP_TOPIC_ENV = "TEMP_TOPIC"
_HUMIDITY_TOPIC_ENV = "HUMIDITY_TOPIC"
_ALERT_TOPIC_ENV = "ALERT_TOPIC"
_COOLING_TOPIC_ENV = "COOLING_TOPIC"
_MODE_TOPIC_ENV = "MODE_TOPIC"
_AGGREGATION_INTERVAL_ENV = "AGGREGATION_INTERVAL_SECONDS"
_READINGS_MAX_ROWS_ENV = "READINGS_MAX_ROWS"
_LIVE_QUEUE_SIZE_ENV = "LIVE_QUEUE_SIZE"
_NOTIFICATION_QUEUE_SIZE_ENV = "NOTIFICATION_QUEUE_SIZE"
_LOG_LEVEL_ENV = "LOG_LEVEL"

ALERT_SOURCES = ("threshold", "signal", "both")


@dataclass(frozen=True)
class Settings:
    database_path: str
    alert_threshold: float
    alert_source: str
    alert_phone_number: Optional[str]
    twilio_account_sid: Optional[str]
    twilio_auth_token: Optional[str]
    twilio_from_number: Optional[str]
    temperature_topic: str
    humidity_topic: str
    alert_topic: str
    cooling_topic: str
    mode_topic: str
    aggregation_interval_seconds: float
    readings_max_rows: int
    live_queue_size: int
    notification_queue_size: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_threshold(default: float) -> float:
    # Negative thresholds are legitimate (cold rooms), so only parse errors fall back.
    value = os.getenv(_ALERT_THRESHOLD_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        return float(candidate)
    except ValueError:
        return default


def _read_alert_source(default: str) -> str:
    value = os.getenv(_ALERT_SOURCE_ENV)
    if value is None:
        return default
    candidate = value.strip().lower()
    return candidate if candidate in ALERT_SOURCES else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_path=_read_str_env(_DATABASE_PATH_ENV, "./tmp/telemetry.sqlite"),
        alert_threshold=_read_threshold(30.0),
        alert_source=_read_alert_source("both"),
        alert_phone_number=_read_optional_env(_ALERT_PHONE_ENV, None),
        twilio_account_sid=_read_optional_env(_TWILIO_SID_ENV, None),
        twilio_auth_token=_read_optional_env(_TWILIO_TOKEN_ENV, None),
        twilio_from_number=_read_optional_env(_TWILIO_FROM_ENV, None),
        temperature_topic=_read_str_env(_TEMP_TOPIC_ENV, "sensors/temperature"),
        humidity_topic=_read_str_env(_HUMIDITY_TOPIC_ENV, "sensors/humidity"),
        alert_topic=_read_str_env(_ALERT_TOPIC_ENV, "sensors/alert"),
        cooling_topic=_read_str_env(_COOLING_TOPIC_ENV, "industrial/status/servo"),
        mode_topic=_read_str_env(_MODE_TOPIC_ENV, "industrial/status/mode"),
        aggregation_interval_seconds=_read_positive_float(_AGGREGATION_INTERVAL_ENV, 3600.0),
        readings_max_rows=_read_positive_int(_READINGS_MAX_ROWS_ENV, 5000),
        live_queue_size=_read_positive_int(_LIVE_QUEUE_SIZE_ENV, 100),
        notification_queue_size=_read_positive_int(_NOTIFICATION_QUEUE_SIZE_ENV, 16),
        log_level=_read_log_level("INFO"),
    )
