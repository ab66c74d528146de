"""Serialized dispatch of telemetry events into the stateful handlers."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from threading import Lock
from typing import Optional, Union

from datastore.repository import TelemetryRepository, build_default_repository
from exceptions import DecodeError
from models.records import (
    AlertSignal,
    CoolingSignal,
    EngineState,
    HumiditySample,
    TelemetryEvent,
    TemperatureSample,
)
from services.cooling import CoolingDetector
from services.decoder import EventDecoder, Topics
from services.fanout import LiveChannel, build_default_channel
from services.notifications import NotificationDispatcher, build_default_dispatcher
from services.state_tracker import StateTracker
from settings import get_settings

logger = logging.getLogger(__name__)


class TelemetryEngine:
    """Owns ``EngineState`` and applies events to it one at a time.

    Events are handed to a single-worker executor, so each handler runs to
    completion (state update, store writes, fan-out) before the next one
    starts, in submission order. ``handle`` applies an event synchronously
    on the caller's thread and must not be mixed with ``submit`` once the
    engine is live.
    """

    def __init__(
        self,
        repository: TelemetryRepository,
        decoder: EventDecoder,
        channel: LiveChannel,
        notifications: NotificationDispatcher,
        threshold: float,
        alert_source: str = "both",
    ) -> None:
        self.repository = repository
        self.decoder = decoder
        self.channel = channel
        self.notifications = notifications
        self.state = EngineState()
        self.tracker = StateTracker(
            state=self.state,
            repository=repository,
            channel=channel,
            notifications=notifications,
            threshold=threshold,
            alert_source=alert_source,
        )
        self.cooling = CoolingDetector(state=self.state, repository=repository)
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="telemetry-engine")
        self._pending: set[Future[None]] = set()
        self._pending_lock = Lock()

    def submit(self, event: TelemetryEvent) -> Future[None]:
        """Queue an event for serialized handling."""
        future = self.executor.submit(self.handle, event)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        return future

    def submit_message(self, topic: str, payload: Union[str, bytes]) -> Optional[Future[None]]:
        """Decode a raw bus message and queue the resulting event.

        Malformed messages are logged and dropped; ``None`` is returned when
        nothing was queued.
        """
        try:
            event = self.decoder.decode(topic, payload)
        except DecodeError as exc:
            logger.warning(
                "Dropping malformed message: %s",
                exc,
                extra={"topic": topic, "invalid_value": exc.payload or None},
            )
            return None
        if event is None:
            return None
        return self.submit(event)

    def handle(self, event: TelemetryEvent) -> None:
        if isinstance(event, TemperatureSample):
            self.tracker.observe_temperature(event.value, event.time)
        elif isinstance(event, HumiditySample):
            self.tracker.observe_humidity(event.value, event.time)
        elif isinstance(event, AlertSignal):
            self.tracker.observe_alert_signal(event.active, event.time)
        elif isinstance(event, CoolingSignal):
            self.cooling.observe(event.active, event.trigger_type, event.time)
        else:
            raise TypeError(f"Unsupported event type {type(event).__name__}.")

    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every event submitted so far to be handled."""
        self.executor.submit(lambda: None).result(timeout=timeout)

    def shutdown(self) -> None:
        """Stop accepting events and release worker resources."""
        self.executor.shutdown(wait=True, cancel_futures=False)
        self.notifications.shutdown()

    def _on_done(self, future: Future[None]) -> None:
        with self._pending_lock:
            self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Unhandled error while handling event: %s", exc, exc_info=exc)


@lru_cache
def build_default_engine() -> TelemetryEngine:
    """Factory that wires the engine with the configured store and collaborators."""
    settings = get_settings()
    return TelemetryEngine(
        repository=build_default_repository(),
        decoder=EventDecoder(Topics.from_settings(settings)),
        channel=build_default_channel(),
        notifications=build_default_dispatcher(),
        threshold=settings.alert_threshold,
        alert_source=settings.alert_source,
    )
