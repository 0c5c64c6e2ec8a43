"""
Bounded per-device reading buffer tests.
"""

import pytest

from gasmonitor.core.errors import ValidationError
from gasmonitor.models.reading import Reading
from gasmonitor.storage.timeseries_store import TimeSeriesStore


def make_reading(device_id, value, timestamp):
    return Reading(device_id=device_id, value=value, timestamp=timestamp)


@pytest.mark.parametrize("capacity,appended", [(1, 5), (3, 2), (3, 3), (5, 17), (100, 250)])
def test_keeps_exactly_the_last_n_in_arrival_order(capacity, appended):
    """Length never exceeds N and the retained readings are the last N appended."""
    store = TimeSeriesStore(max_readings=capacity)
    appended_readings = []

    for i in range(appended):
        reading = make_reading("dev", float(i), 1000 + i)
        store.append("dev", reading)
        appended_readings.append(reading)
        assert store.count("dev") <= capacity

    assert store.query("dev") == appended_readings[-capacity:]


def test_devices_have_independent_buffers():
    store = TimeSeriesStore(max_readings=2)
    for i in range(4):
        store.append("a", make_reading("a", i, 10 + i))
    store.append("b", make_reading("b", 99, 50))

    assert [r.value for r in store.query("a")] == [2, 3]
    assert [r.value for r in store.query("b")] == [99]


def test_query_since_is_inclusive():
    store = TimeSeriesStore()
    for ts in (100, 200, 300):
        store.append("dev", make_reading("dev", ts, ts))

    assert [r.timestamp for r in store.query("dev", since=200)] == [200, 300]
    assert [r.timestamp for r in store.query("dev", since=301)] == []


def test_query_unknown_device_is_empty():
    assert TimeSeriesStore().query("missing") == []


def test_arrival_timestamp_never_goes_backwards():
    store = TimeSeriesStore()
    store.append("dev", make_reading("dev", 1, 5000))

    assert store.arrival_timestamp("dev", 4000) == 5000
    assert store.arrival_timestamp("dev", 6000) == 6000
    assert store.arrival_timestamp("other", 4000) == 4000


def test_append_rejects_out_of_order_reading():
    store = TimeSeriesStore()
    store.append("dev", make_reading("dev", 1, 5000))

    with pytest.raises(ValidationError):
        store.append("dev", make_reading("dev", 2, 4999))

    assert store.count("dev") == 1


def test_equal_timestamps_are_kept_in_arrival_order():
    store = TimeSeriesStore()
    store.append("dev", make_reading("dev", 1, 5000))
    store.append("dev", make_reading("dev", 2, 5000))

    assert [r.value for r in store.query("dev")] == [1, 2]


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        TimeSeriesStore(max_readings=0)
