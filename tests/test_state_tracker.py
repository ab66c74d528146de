"""Tests for temperature, humidity and alert-signal handling."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest

from datastore.repository import TelemetryRepository
from datastore.sqlite_store import SQLiteStore
from exceptions import StoreError
from models.records import EngineState, Reading
from services.fanout import LiveChannel
from services.notifications import NotificationDispatcher
from services.state_tracker import StateTracker

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
EVERYTHING = (datetime(2000, 1, 1, tzinfo=timezone.utc), datetime(2100, 1, 1, tzinfo=timezone.utc))


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


class RecordingNotifier:
    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.calls: list[tuple[str, str]] = []

    def send(self, destination: str, message: str) -> bool:
        self.calls.append((destination, message))
        return self.result


class FailingReadingsRepository(TelemetryRepository):
    def insert_reading(self, reading: Reading) -> int:
        raise StoreError("disk full")


@pytest.fixture()
def repository() -> TelemetryRepository:
    return TelemetryRepository(SQLiteStore())


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def dispatcher(notifier: RecordingNotifier) -> Iterator[NotificationDispatcher]:
    service = NotificationDispatcher(notifier, destination="+15550001111")
    yield service
    service.shutdown()


def _tracker(
    repository: TelemetryRepository,
    dispatcher: NotificationDispatcher,
    alert_source: str = "both",
    channel: LiveChannel | None = None,
) -> StateTracker:
    return StateTracker(
        state=EngineState(),
        repository=repository,
        channel=channel or LiveChannel(),
        notifications=dispatcher,
        threshold=25.0,
        alert_source=alert_source,
    )


def test_threshold_sequence_opens_tracks_peak_and_closes(repository, dispatcher) -> None:
    tracker = _tracker(repository, dispatcher)

    tracker.observe_temperature(20.0, _at(0))
    assert tracker.state.open_alert is None

    tracker.observe_temperature(26.0, _at(60))
    episode = tracker.state.open_alert
    assert episode is not None
    assert episode.start == _at(60)
    assert episode.peak_temperature == 26.0

    tracker.observe_temperature(27.0, _at(120))
    assert tracker.state.open_alert is episode
    assert episode.peak_temperature == 27.0
    assert len(repository.alerts_between(*EVERYTHING)) == 1

    tracker.observe_temperature(24.0, _at(180))
    assert tracker.state.open_alert is None

    [stored] = repository.alerts_between(*EVERYTHING)
    assert stored.start == _at(60)
    assert stored.end == _at(180)
    assert stored.duration == 120
    assert stored.temperature == 26.0
    assert stored.peak_temperature == 27.0
    assert stored.resolved is True


def test_at_most_one_open_alert_for_any_sequence(repository, dispatcher) -> None:
    tracker = _tracker(repository, dispatcher)
    values = [20, 26, 30, 25, 25.1, 24, 40, 41, 10, 26, 26, 26, 1, 50]

    for index, value in enumerate(values):
        tracker.observe_temperature(float(value), _at(index * 30))
        episodes = repository.alerts_between(*EVERYTHING)
        assert sum(1 for episode in episodes if not episode.resolved) <= 1

    episodes = repository.alerts_between(*EVERYTHING)
    assert len(episodes) == 5
    assert [episode.resolved for episode in episodes] == [True, True, True, True, False]
    for episode in episodes:
        if episode.resolved:
            assert episode.end is not None and episode.end >= episode.start
            assert episode.duration is not None and episode.duration >= 0


def test_value_equal_to_threshold_does_not_open(repository, dispatcher, notifier) -> None:
    tracker = _tracker(repository, dispatcher)

    tracker.observe_temperature(25.0, _at(0))
    dispatcher.join()

    assert tracker.state.open_alert is None
    assert repository.alerts_between(*EVERYTHING) == []
    assert notifier.calls == []


def test_reading_pairs_with_most_recent_humidity(repository, dispatcher) -> None:
    tracker = _tracker(repository, dispatcher)

    tracker.observe_temperature(20.0, _at(0))
    tracker.observe_humidity(40.0, _at(10))
    tracker.observe_temperature(21.0, _at(20))
    tracker.observe_humidity(45.0, _at(30))
    tracker.observe_humidity(47.5, _at(40))
    tracker.observe_temperature(22.0, _at(50))

    readings = repository.readings_between(*EVERYTHING, limit=100)
    assert [(r.temperature, r.humidity) for r in readings] == [
        (20.0, None),
        (21.0, 40.0),
        (22.0, 47.5),
    ]


def test_humidity_alone_is_not_persisted(repository, dispatcher) -> None:
    tracker = _tracker(repository, dispatcher)

    tracker.observe_humidity(50.0, _at(0))

    assert tracker.state.current_humidity == 50.0
    assert repository.latest_reading() is None


def test_notification_dispatched_once_per_alert_open(repository, dispatcher, notifier) -> None:
    tracker = _tracker(repository, dispatcher)

    for index, value in enumerate([26.0, 28.0, 29.0, 20.0, 31.0]):
        tracker.observe_temperature(value, _at(index))
    dispatcher.join()

    assert len(notifier.calls) == 2
    destination, message = notifier.calls[0]
    assert destination == "+15550001111"
    assert "26.0°C" in message


def test_notification_failure_leaves_alert_open(repository) -> None:
    notifier = RecordingNotifier(result=False)
    dispatcher = NotificationDispatcher(notifier, destination="+15550001111")
    try:
        tracker = _tracker(repository, dispatcher)
        tracker.observe_temperature(30.0, _at(0))
        dispatcher.join()

        assert dispatcher.failed == 1
        assert tracker.state.open_alert is not None
        [stored] = repository.alerts_between(*EVERYTHING)
        assert stored.resolved is False
    finally:
        dispatcher.shutdown()


def test_store_failure_still_advances_state(dispatcher, caplog) -> None:
    repository = FailingReadingsRepository(SQLiteStore())
    tracker = _tracker(repository, dispatcher)

    with caplog.at_level(logging.ERROR):
        tracker.observe_temperature(30.0, _at(0))

    assert tracker.state.current_temperature == 30.0
    assert tracker.state.open_alert is not None
    assert repository.latest_reading() is None
    assert any("Error storing temperature reading" in r.getMessage() for r in caplog.records)


def test_live_channel_receives_reading_and_alert(repository, dispatcher) -> None:
    channel = LiveChannel()
    subscription = channel.subscribe()
    tracker = _tracker(repository, dispatcher, channel=channel)

    tracker.observe_humidity(55.0, _at(0))
    tracker.observe_temperature(26.5, _at(1))

    first = subscription.get(timeout=1)
    second = subscription.get(timeout=1)
    assert first == {
        "type": "temp_update",
        "data": {"temperature": 26.5, "humidity": 55.0, "timestamp": "2024-01-01T12:00:01.000+00:00"},
    }
    assert second is not None and second["type"] == "alert"
    assert second["data"]["temperature"] == 26.5


def test_signal_source_ignores_threshold_but_tracks_peak(repository, dispatcher, notifier) -> None:
    tracker = _tracker(repository, dispatcher, alert_source="signal")

    tracker.observe_temperature(30.0, _at(0))
    assert tracker.state.open_alert is None

    tracker.observe_alert_signal(True, _at(10))
    episode = tracker.state.open_alert
    assert episode is not None
    assert episode.temperature == 30.0

    tracker.observe_temperature(33.0, _at(20))
    tracker.observe_temperature(20.0, _at(30))
    assert tracker.state.open_alert is episode
    assert episode.peak_temperature == 33.0

    tracker.observe_alert_signal(False, _at(70))
    dispatcher.join()

    [stored] = repository.alerts_between(*EVERYTHING)
    assert stored.resolved is True
    assert stored.duration == 60
    assert stored.peak_temperature == 33.0
    assert len(notifier.calls) == 1


def test_threshold_source_ignores_signals(repository, dispatcher) -> None:
    tracker = _tracker(repository, dispatcher, alert_source="threshold")

    tracker.observe_alert_signal(True, _at(0))

    assert tracker.state.open_alert is None
    assert repository.alerts_between(*EVERYTHING) == []


def test_both_sources_share_one_slot(repository, dispatcher) -> None:
    tracker = _tracker(repository, dispatcher, alert_source="both")

    tracker.observe_temperature(30.0, _at(0))
    tracker.observe_alert_signal(True, _at(5))
    assert len(repository.alerts_between(*EVERYTHING)) == 1

    tracker.observe_alert_signal(False, _at(15))
    assert tracker.state.open_alert is None

    [stored] = repository.alerts_between(*EVERYTHING)
    assert stored.resolved is True
    assert stored.duration == 15


def test_signal_before_any_temperature_uses_threshold(repository, dispatcher) -> None:
    tracker = _tracker(repository, dispatcher, alert_source="signal")

    tracker.observe_alert_signal(True, _at(0))

    assert tracker.state.open_alert is not None
    assert tracker.state.open_alert.temperature == 25.0


def test_close_before_start_clamps_duration_to_zero(repository, dispatcher) -> None:
    tracker = _tracker(repository, dispatcher)

    tracker.observe_temperature(30.0, _at(100))
    tracker.observe_temperature(20.0, _at(50))

    [stored] = repository.alerts_between(*EVERYTHING)
    assert stored.end == stored.start
    assert stored.duration == 0


def test_unknown_alert_source_is_rejected(repository, dispatcher) -> None:
    from exceptions import ConfigurationError

    with pytest.raises(ConfigurationError):
        _tracker(repository, dispatcher, alert_source="whichever")
