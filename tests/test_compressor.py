import numpy as np
import pytest

from activity_recorder.exceptions import ValidationError
from activity_recorder.recording.models import DataType
from activity_recorder.streams.aggregator import aggregate_metric
from activity_recorder.streams.compressor import compress, decompress


def test_float_stream_round_trip(make_chunk):
    values = [101.3, 250.7, 0.0, 333.333]
    ts = [1_700_000_000_000, 1_700_000_001_000, 1_700_000_002_500, 1_700_000_003_000]
    stream = aggregate_metric("power", [make_chunk("power", 0, values, ts)])

    packed = compress(stream)
    assert packed.data_type == DataType.FLOAT
    assert packed.original_size == 4 * 4 + 4 * 8
    assert packed.min_value == stream.min_value
    assert packed.avg_value == stream.avg_value

    restored = decompress(packed)
    assert restored.sample_count == stream.sample_count
    assert restored.min_value == stream.min_value
    assert restored.max_value == stream.max_value
    assert restored.avg_value == stream.avg_value
    np.testing.assert_allclose(restored.values, values, rtol=1e-6)
    np.testing.assert_array_equal(restored.timestamps, ts)


def test_boolean_stream_round_trip(make_chunk):
    stream = aggregate_metric("moving", [
        make_chunk("moving", 0, [True, False, True], [0, 1000, 2000], data_type=DataType.BOOLEAN)
    ])
    packed = compress(stream)
    assert packed.min_value is None
    restored = decompress(packed)
    np.testing.assert_array_equal(restored.values, [True, False, True])


def test_latlng_pairs_are_preserved(make_chunk):
    pairs = [[31.2304, 121.4737], [31.2310, 121.4745]]
    stream = aggregate_metric("latlng", [
        make_chunk("latlng", 0, pairs, [0, 1000], data_type=DataType.LATLNG)
    ])
    restored = decompress(compress(stream))
    assert restored.values.shape == (2, 2)
    np.testing.assert_array_equal(restored.values, pairs)


def test_corrupted_payload_is_rejected(make_chunk):
    stream = aggregate_metric("power", [make_chunk("power", 0, [1.0], [0])])
    packed = compress(stream).model_copy(update={"compressed_values": "bm90IGd6aXA="})
    with pytest.raises(ValidationError):
        decompress(packed)
