from __future__ import annotations

from services.fanout import LiveChannel


def test_publish_without_subscribers_is_a_no_op() -> None:
    channel = LiveChannel()

    assert channel.publish("temp_update", {"temperature": 20.0}) == 0


def test_every_subscriber_receives_messages_in_order() -> None:
    channel = LiveChannel()
    first = channel.subscribe()
    second = channel.subscribe()

    channel.publish("temp_update", {"temperature": 20.0})
    channel.publish("alert", {"temperature": 31.0})

    for subscription in (first, second):
        assert subscription.get(timeout=1) == {"type": "temp_update", "data": {"temperature": 20.0}}
        assert subscription.get(timeout=1) == {"type": "alert", "data": {"temperature": 31.0}}
        assert subscription.get(timeout=0.01) is None


def test_slow_subscriber_misses_messages_without_blocking_others() -> None:
    channel = LiveChannel()
    slow = channel.subscribe(maxsize=1)
    fast = channel.subscribe(maxsize=10)

    delivered = [channel.publish("temp_update", {"n": n}) for n in range(3)]

    assert delivered == [2, 1, 1]
    assert slow.dropped == 2
    assert slow.pending() == 1
    assert fast.pending() == 3
    assert slow.get(timeout=1)["data"] == {"n": 0}


def test_closed_subscription_stops_receiving() -> None:
    channel = LiveChannel()
    subscription = channel.subscribe()
    assert channel.subscriber_count() == 1

    subscription.close()
    channel.publish("temp_update", {"temperature": 20.0})

    assert subscription.closed
    assert channel.subscriber_count() == 0
    assert subscription.pending() == 0
