"""
Publish/subscribe fan-out tests.
"""

import asyncio

from gasmonitor.core.fanout import FanoutChannel
from gasmonitor.models.events import EventKind, FanoutEvent


def reading_event(device_id, value):
    return FanoutEvent(
        EventKind.NEW_READING, {"deviceId": device_id, "data": {"value": value}}, device_id
    )


def test_every_subscriber_receives_events_in_publish_order():
    channel = FanoutChannel()
    first = channel.subscribe()
    second = channel.subscribe()

    for value in range(5):
        channel.publish(reading_event("a", value))

    for subscription in (first, second):
        values = [e.payload["data"]["value"] for e in subscription.drain()]
        assert values == [0, 1, 2, 3, 4]


def test_late_subscriber_gets_no_past_events():
    channel = FanoutChannel()
    channel.publish(reading_event("a", 1))

    late = channel.subscribe()

    assert late.drain() == []


def test_device_filter_passes_unscoped_events():
    channel = FanoutChannel()
    subscription = channel.subscribe(device_id="a")

    channel.publish(reading_event("b", 1))
    channel.publish(reading_event("a", 2))
    channel.publish(FanoutEvent(EventKind.DEVICE_REGISTRY_CHANGED, {"devices": []}))

    kinds = [(e.kind, e.device_id) for e in subscription.drain()]
    assert kinds == [
        (EventKind.NEW_READING, "a"),
        (EventKind.DEVICE_REGISTRY_CHANGED, None),
    ]


def test_focus_changes_filter():
    channel = FanoutChannel()
    subscription = channel.subscribe(device_id="a")

    subscription.focus("b")
    channel.publish(reading_event("a", 1))
    channel.publish(reading_event("b", 2))

    assert [e.device_id for e in subscription.drain()] == ["b"]


def test_closed_subscription_stops_receiving():
    channel = FanoutChannel()
    subscription = channel.subscribe()

    subscription.close()
    delivered = channel.publish(reading_event("a", 1))

    assert delivered == 0
    assert channel.subscriber_count() == 0
    assert subscription.drain() == []


def test_full_queue_drops_for_that_subscriber_only():
    channel = FanoutChannel(queue_max_size=2)
    slow = channel.subscribe()
    fast = channel.subscribe()

    for value in range(3):
        channel.publish(reading_event("a", value))
        fast.drain()

    assert slow.dropped == 1
    assert [e.payload["data"]["value"] for e in slow.drain()] == [0, 1]
    assert fast.dropped == 0


def test_async_iteration_ends_on_close():
    async def scenario():
        channel = FanoutChannel()
        subscription = channel.subscribe()
        received = []

        async def consume():
            async for event in subscription:
                received.append(event.payload["data"]["value"])

        consumer = asyncio.create_task(consume())
        channel.publish(reading_event("a", 1))
        channel.publish(reading_event("a", 2))
        await asyncio.sleep(0)
        subscription.close()
        await asyncio.wait_for(consumer, timeout=1)
        return received

    assert asyncio.run(scenario()) == [1, 2]


def test_wire_round_trip_names():
    event = FanoutEvent(EventKind.ALERT_RAISED, {"deviceId": "a", "value": 900}, "a")

    wire = event.to_wire()

    assert wire == {"event": "alert", "data": {"deviceId": "a", "value": 900}}
    assert FanoutEvent.from_wire(wire) == event
