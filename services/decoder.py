"""Decoding of raw bus messages into typed telemetry events."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from exceptions import DecodeError
from models.records import (
    AlertSignal,
    CoolingSignal,
    HumiditySample,
    TelemetryEvent,
    TemperatureSample,
    TriggerType,
)
from services.timestamps import parse_timestamp, utcnow
from settings import Settings

logger = logging.getLogger(__name__)

_ALERT_ON = {"HIGH_TEMP_ALERT", "ALERT", "ON", "TRUE", "1"}
_ALERT_OFF = {"TEMP_NORMAL", "NORMAL", "OFF", "FALSE", "0"}


@dataclass(frozen=True)
class Topics:
    temperature: str = "sensors/temperature"
    humidity: str = "sensors/humidity"
    alert: str = "sensors/alert"
    cooling: str = "industrial/status/servo"
    mode: str = "industrial/status/mode"

    @classmethod
    def from_settings(cls, settings: Settings) -> "Topics":
        return cls(
            temperature=settings.temperature_topic,
            humidity=settings.humidity_topic,
            alert=settings.alert_topic,
            cooling=settings.cooling_topic,
            mode=settings.mode_topic,
        )


class EventDecoder:
    """Turns ``(topic, payload)`` pairs into domain events.

    Payloads are either plain text (``"23.5"``, ``"HIGH_TEMP_ALERT"``,
    ``"ACTIVE_MANUAL"``) or a JSON object carrying the same value under
    ``value``/``active`` plus an optional ISO-8601 ``time``. Without a
    ``time`` the receipt clock is used. Messages on unknown topics decode
    to ``None``.
    """

    def __init__(self, topics: Topics, clock: Callable[[], datetime] = utcnow) -> None:
        self.topics = topics
        self.clock = clock

    def decode(self, topic: str, payload: Union[str, bytes]) -> Optional[TelemetryEvent]:
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError("Payload is not valid UTF-8", topic=topic) from exc

        text = payload.strip()
        if topic == self.topics.mode:
            logger.info("System mode changed to: %s", text, extra={"topic": topic})
            return None
        if topic not in self._event_topics():
            logger.debug("Ignoring message on unknown topic", extra={"topic": topic})
            return None

        body = self._parse_body(topic, text)
        time = self._event_time(topic, body)

        if topic == self.topics.temperature:
            return TemperatureSample(value=self._number(topic, body, text), time=time)
        if topic == self.topics.humidity:
            return HumiditySample(value=self._number(topic, body, text), time=time)
        if topic == self.topics.alert:
            return AlertSignal(active=self._alert_state(topic, body, text), time=time)
        active, trigger = self._servo_state(topic, body, text)
        return CoolingSignal(active=active, trigger_type=trigger, time=time)

    def _event_topics(self) -> set[str]:
        return {
            self.topics.temperature,
            self.topics.humidity,
            self.topics.alert,
            self.topics.cooling,
        }

    @staticmethod
    def _parse_body(topic: str, text: str) -> Optional[Dict[str, Any]]:
        if not text.startswith("{"):
            return None
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DecodeError("Malformed JSON payload", topic=topic, payload=text) from exc
        if not isinstance(body, dict):
            raise DecodeError("JSON payload must be an object", topic=topic, payload=text)
        return body

    def _event_time(self, topic: str, body: Optional[Dict[str, Any]]) -> datetime:
        raw = body.get("time") if body else None
        if raw is None:
            return self.clock()
        if not isinstance(raw, str):
            raise DecodeError("Event time must be an ISO-8601 string", topic=topic)
        try:
            return parse_timestamp(raw)
        except ValueError as exc:
            raise DecodeError("Invalid event time", topic=topic, payload=raw) from exc

    @staticmethod
    def _number(topic: str, body: Optional[Dict[str, Any]], text: str) -> float:
        raw: Any = body.get("value") if body is not None else text
        if isinstance(raw, bool) or raw is None:
            raise DecodeError("Missing numeric value", topic=topic, payload=text)
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise DecodeError("Invalid numeric value", topic=topic, payload=text) from exc
        if not math.isfinite(value):
            raise DecodeError("Numeric value is not finite", topic=topic, payload=text)
        return value

    @staticmethod
    def _alert_state(topic: str, body: Optional[Dict[str, Any]], text: str) -> bool:
        if body is not None:
            active = body.get("active")
            if not isinstance(active, bool):
                raise DecodeError("Alert payload requires boolean 'active'", topic=topic, payload=text)
            return active
        token = text.upper()
        if token in _ALERT_ON:
            return True
        if token in _ALERT_OFF:
            return False
        raise DecodeError("Unknown alert state", topic=topic, payload=text)

    @staticmethod
    def _servo_state(
        topic: str, body: Optional[Dict[str, Any]], text: str
    ) -> tuple[bool, TriggerType]:
        if body is not None:
            active = body.get("active")
            if not isinstance(active, bool):
                raise DecodeError("Cooling payload requires boolean 'active'", topic=topic, payload=text)
            trigger_raw = str(body.get("trigger", TriggerType.auto.value)).lower()
            try:
                return active, TriggerType(trigger_raw)
            except ValueError as exc:
                raise DecodeError("Unknown trigger type", topic=topic, payload=text) from exc

        tokens = set(text.upper().replace("-", "_").split("_"))
        if "INACTIVE" in tokens:
            active = False
        elif "ACTIVE" in tokens:
            active = True
        else:
            raise DecodeError("Unknown servo state", topic=topic, payload=text)
        trigger = TriggerType.manual if "MANUAL" in tokens else TriggerType.auto
        return active, trigger
