import json

import pytest

from activity_recorder.exceptions import DurabilityError
from activity_recorder.recording.buffer import SensorIngestionBuffer
from activity_recorder.recording.models import Metric, ReadingQuality, SensorReading


def hr(ts, value=140.0, paused=False):
    return SensorReading(metric=Metric.HEARTRATE, value=value, timestamp=ts, paused=paused)


class FailingStore:
    def __init__(self, store):
        self.store = store

    def write_chunk(self, chunk):
        raise DurabilityError("disk full")


class InjectingStore:
    """第一次写入期间模拟另一个传感器线程继续推送读数"""

    def __init__(self, store, readings):
        self.store = store
        self.readings = readings
        self.buffer = None

    def write_chunk(self, chunk):
        pending, self.readings = self.readings, []
        for r in pending:
            self.buffer.append(r)
        self.store.write_chunk(chunk)


def test_full_chunk_is_flushed_with_next_index(store):
    buf = SensorIngestionBuffer(store, "s-1", chunk_capacity=3)
    for i in range(7):
        assert buf.append(hr(1000 * i))
    chunks = store.list_chunks("s-1")
    assert [c.chunk_index for c in chunks] == [0, 1]
    assert all(c.sample_count == 3 for c in chunks)
    assert buf.chunk_count("heartrate") == 2

    assert buf.flush_all() == 1
    chunks = store.list_chunks("s-1")
    assert [c.sample_count for c in chunks] == [3, 3, 1]
    assert json.loads(chunks[2].timestamps) == [6000]


def test_late_reading_beyond_jitter_is_rejected(store):
    buf = SensorIngestionBuffer(store, "s-1", chunk_capacity=2, jitter_tolerance_ms=2000)
    buf.append(hr(10_000))
    buf.append(hr(11_000))
    assert buf.chunk_count("heartrate") == 1

    assert buf.append(hr(8_000)) is False
    assert buf.chunk_count("heartrate") == 1
    assert buf.buffer_status()["heartrate"]["rejected"] == 1

    # inside the tolerance window is still accepted
    assert buf.append(hr(9_500)) is True


def test_out_of_order_within_window_is_sorted(store):
    buf = SensorIngestionBuffer(store, "s-1", chunk_capacity=3)
    for ts in (1000, 3000, 2000):
        buf.append(hr(ts, value=float(ts)))
    chunk = store.list_chunks("s-1")[0]
    assert json.loads(chunk.timestamps) == [1000, 2000, 3000]
    assert json.loads(chunk.data) == [1000.0, 2000.0, 3000.0]


def test_metrics_are_buffered_independently(store):
    buf = SensorIngestionBuffer(store, "s-1", chunk_capacity=2)
    buf.append(hr(1000))
    buf.append(SensorReading(metric=Metric.POWER, value=200.0, timestamp=1000))
    buf.append(hr(2000))
    assert [c.metric for c in store.list_chunks("s-1")] == ["heartrate"]
    assert buf.buffer_status()["power"]["buffered"] == 1


@pytest.mark.parametrize("reading", [
    SensorReading(metric=Metric.MOVING, value=1.5, timestamp=1000),
    SensorReading(metric=Metric.HEARTRATE, value=True, timestamp=1000),
    SensorReading(metric=Metric.LATLNG, value=(95.0, 10.0), timestamp=1000),
    SensorReading(metric=Metric.POWER, value=float("nan"), timestamp=1000),
    SensorReading(metric=Metric.POWER, value=200.0, timestamp=1000, quality=ReadingQuality.INVALID),
])
def test_invalid_readings_are_rejected(store, reading):
    buf = SensorIngestionBuffer(store, "s-1", chunk_capacity=1)
    assert buf.append(reading) is False
    assert store.list_chunks("s-1") == []


def test_latlng_pairs_are_stored_as_pairs(store):
    buf = SensorIngestionBuffer(store, "s-1", chunk_capacity=2)
    buf.append(SensorReading(metric=Metric.LATLNG, value=(31.2, 121.5), timestamp=1000))
    buf.append(SensorReading(metric=Metric.LATLNG, value=(31.3, 121.6), timestamp=2000))
    chunk = store.list_chunks("s-1")[0]
    assert chunk.data_type.value == "latlng"
    assert json.loads(chunk.data) == [[31.2, 121.5], [31.3, 121.6]]


def test_paused_offsets_are_recorded(store):
    buf = SensorIngestionBuffer(store, "s-1", chunk_capacity=4)
    for i, paused in enumerate([False, True, True, False]):
        buf.append(hr(1000 * i, paused=paused))
    chunk = store.list_chunks("s-1")[0]
    assert json.loads(chunk.paused_offsets) == [1, 2]


def test_backpressure_drops_oldest_unflushed(store):
    late = [hr(100_000 + i) for i in range(5)]
    injecting = InjectingStore(store, late)
    buf = SensorIngestionBuffer(injecting, "s-1", chunk_capacity=2, max_unflushed=3)
    injecting.buffer = buf

    buf.append(hr(1))
    buf.append(hr(2))

    status = buf.buffer_status()["heartrate"]
    assert status["dropped"] == 2
    timestamps = [json.loads(c.timestamps) for c in store.list_chunks("s-1")]
    assert timestamps == [[1, 2], [100_002, 100_003]]
    assert status["buffered"] == 1


def test_flush_callback_receives_chunk(store):
    seen = []
    buf = SensorIngestionBuffer(store, "s-1", chunk_capacity=2, on_flush=seen.append)
    buf.append(hr(1000))
    buf.append(hr(2000))
    assert [c.chunk_index for c in seen] == [0]


def test_write_failure_closes_buffer(store):
    buf = SensorIngestionBuffer(FailingStore(store), "s-1", chunk_capacity=1)
    with pytest.raises(DurabilityError):
        buf.append(hr(1000))
    assert buf.failed
    with pytest.raises(DurabilityError):
        buf.append(hr(2000))
    with pytest.raises(DurabilityError):
        buf.flush_all()
