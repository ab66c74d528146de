"""Current readings and the single open alert episode."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from datastore.repository import TelemetryRepository
from exceptions import ConfigurationError, StoreError
from models.records import AlertEpisode, EngineState, Reading
from services.fanout import LiveChannel
from services.notifications import NotificationDispatcher
from services.timestamps import duration_seconds, ensure_utc, format_timestamp
from settings import ALERT_SOURCES

logger = logging.getLogger(__name__)


class StateTracker:
    """Applies temperature, humidity and alert-signal observations to ``EngineState``.

    ``alert_source`` picks which input may open and close alert episodes:
    ``"threshold"`` (temperature above ``threshold``), ``"signal"``
    (externally reported alert signals) or ``"both"``, in which case the
    later observation wins. Persistence failures are logged and the
    in-memory state advances regardless.
    """

    def __init__(
        self,
        state: EngineState,
        repository: TelemetryRepository,
        channel: LiveChannel,
        notifications: NotificationDispatcher,
        threshold: float,
        alert_source: str = "both",
        location_name: str = "IoT Sensor",
    ) -> None:
        if alert_source not in ALERT_SOURCES:
            raise ConfigurationError(f"Unknown alert source {alert_source!r}.")
        self.state = state
        self.repository = repository
        self.channel = channel
        self.notifications = notifications
        self.threshold = threshold
        self.alert_source = alert_source
        self.location_name = location_name

    def observe_temperature(self, value: float, time: datetime) -> None:
        time = ensure_utc(time)
        self.state.current_temperature = value

        reading = Reading(timestamp=time, temperature=value, humidity=self.state.current_humidity)
        try:
            reading.id = self.repository.insert_reading(reading)
        except StoreError as exc:
            logger.error("Error storing temperature reading: %s", exc, extra={"temperature": value})

        self.channel.publish(
            "temp_update",
            {
                "temperature": reading.temperature,
                "humidity": reading.humidity,
                "timestamp": format_timestamp(time),
            },
        )

        episode = self.state.open_alert
        if episode is not None and value > episode.peak_temperature:
            episode.peak_temperature = value

        if self.alert_source == "signal":
            return

        if value > self.threshold and episode is None:
            self._open_alert(value, time)
        elif value <= self.threshold and episode is not None:
            self._close_alert(time)

    def observe_humidity(self, value: float, time: datetime) -> None:
        # Humidity is only persisted alongside the next temperature reading.
        self.state.current_humidity = value

    def observe_alert_signal(self, active: bool, time: datetime) -> None:
        if self.alert_source == "threshold":
            logger.debug("Ignoring alert signal; alerts are driven by the threshold")
            return

        time = ensure_utc(time)
        if active and self.state.open_alert is None:
            temperature = self.state.current_temperature
            self._open_alert(temperature if temperature is not None else self.threshold, time)
        elif not active and self.state.open_alert is not None:
            self._close_alert(time)

    def _open_alert(self, temperature: float, time: datetime) -> AlertEpisode:
        episode = AlertEpisode(start=time, temperature=temperature, peak_temperature=temperature)
        try:
            episode.id = self.repository.insert_alert(episode)
        except StoreError as exc:
            logger.error("Error storing temperature alert: %s", exc, extra={"temperature": temperature})
        self.state.open_alert = episode

        logger.info(
            "Alert started",
            extra={"episode_id": episode.id, "temperature": temperature},
        )
        self.channel.publish(
            "alert",
            {"temperature": temperature, "timestamp": format_timestamp(time)},
        )
        self.notifications.dispatch(self._alert_message(temperature, time))
        return episode

    def _close_alert(self, time: datetime) -> Optional[AlertEpisode]:
        episode = self.state.open_alert
        if episode is None:
            return None

        episode.end = max(time, episode.start)
        episode.duration = duration_seconds(episode.start, episode.end)
        episode.resolved = True
        self.state.open_alert = None

        if episode.id is None:
            logger.warning(
                "Alert episode was never stored; resolution not persisted",
                extra={"duration_s": episode.duration},
            )
        else:
            try:
                if not self.repository.resolve_alert(episode):
                    logger.warning(
                        "No open alert row matched on resolution",
                        extra={"episode_id": episode.id},
                    )
            except StoreError as exc:
                logger.error(
                    "Error updating alert resolution: %s", exc, extra={"episode_id": episode.id}
                )

        logger.info(
            "Alert ended",
            extra={
                "episode_id": episode.id,
                "temperature": episode.peak_temperature,
                "duration_s": episode.duration,
            },
        )
        return episode

    def _alert_message(self, temperature: float, time: datetime) -> str:
        return (
            f"ALERT: High temperature of {temperature:.1f}°C detected at "
            f"{self.location_name} at {time.strftime('%Y-%m-%d %H:%M:%S')} UTC."
        )
