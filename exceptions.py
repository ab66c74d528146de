"""Exception hierarchy for the telemetry engine."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base exception for all telemetry engine errors."""


class ConfigurationError(TelemetryError):
    """Invalid or missing configuration."""


class DecodeError(TelemetryError):
    """An inbound bus message could not be decoded into a domain event."""

    def __init__(self, message: str, *, topic: str = "", payload: str = "") -> None:
        self.topic = topic
        self.payload = payload
        super().__init__(message)


class StoreError(TelemetryError):
    """A read or write against the persistent store failed."""


class AggregationPartialFailure(TelemetryError):
    """A single rollup bucket could not be computed or written."""

    def __init__(self, message: str, *, bucket: str) -> None:
        self.bucket = bucket
        super().__init__(message)


class NotificationFailure(TelemetryError):
    """An outbound notification could not be delivered."""

    def __init__(self, message: str, *, destination: str = "") -> None:
        self.destination = destination
        super().__init__(message)
