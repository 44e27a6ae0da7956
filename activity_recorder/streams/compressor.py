"""
指标流压缩（Stream Compressor）

编码规则：
- float：小端 float32（有意的精度收窄，换取带宽）
- boolean：uint8
- latlng：JSON 数组 [[lat, lng], ...]，保持成对结构
- timestamps：int64 差分编码（首个元素为绝对值），无损
每段字节先 gzip 压缩再 base64 编码；min/max/avg 原样复制，解压时不重新计算。
"""

import base64
import gzip
import json
from typing import Tuple

import numpy as np

from ..exceptions import ValidationError
from ..recording.models import DataType
from .models import AggregatedStream, BooleanStream, CompressedStream, FloatStream, LatLngStream


def _pack(raw: bytes) -> str:
    return base64.b64encode(gzip.compress(raw)).decode('ascii')


def _unpack(encoded: str) -> bytes:
    try:
        return gzip.decompress(base64.b64decode(encoded))
    except (ValueError, OSError) as e:
        raise ValidationError(f"压缩数据无法解码: {e}") from e


def encode_timestamps(timestamps: np.ndarray) -> bytes:
    ts = np.asarray(timestamps, dtype=np.int64)
    if ts.size == 0:
        return b""
    deltas = np.diff(ts, prepend=np.int64(0))
    return deltas.astype('<i8').tobytes()


def decode_timestamps(raw: bytes) -> np.ndarray:
    if not raw:
        return np.zeros(0, dtype=np.int64)
    return np.cumsum(np.frombuffer(raw, dtype='<i8')).astype(np.int64)


def _encode_values(stream: AggregatedStream) -> bytes:
    if stream.data_type == DataType.FLOAT:
        return np.asarray(stream.values, dtype='<f4').tobytes()
    if stream.data_type == DataType.BOOLEAN:
        return np.asarray(stream.values, dtype=np.uint8).tobytes()
    pairs = np.asarray(stream.values, dtype=float).reshape(-1, 2).tolist()
    return json.dumps(pairs, separators=(',', ':')).encode('utf-8')


def compress(stream: AggregatedStream) -> CompressedStream:
    value_bytes = _encode_values(stream)
    ts_bytes = encode_timestamps(stream.timestamps)
    stats = {}
    if isinstance(stream, FloatStream):
        stats = dict(min_value=stream.min_value, max_value=stream.max_value, avg_value=stream.avg_value)
    return CompressedStream(
        metric=stream.metric,
        data_type=stream.data_type,
        compressed_values=_pack(value_bytes),
        compressed_timestamps=_pack(ts_bytes),
        sample_count=stream.sample_count,
        original_size=len(value_bytes) + len(ts_bytes),
        **stats,
    )


def _decode_values(compressed: CompressedStream) -> Tuple[np.ndarray, int]:
    raw = _unpack(compressed.compressed_values)
    if compressed.data_type == DataType.FLOAT:
        values = np.frombuffer(raw, dtype='<f4').astype(np.float64)
    elif compressed.data_type == DataType.BOOLEAN:
        values = np.frombuffer(raw, dtype=np.uint8).astype(bool)
    else:
        values = np.asarray(json.loads(raw.decode('utf-8')), dtype=float).reshape(-1, 2)
    return values, len(values)


def decompress(compressed: CompressedStream) -> AggregatedStream:
    """还原为聚合流；数值为 float32 精度，统计值沿用压缩时的结果。"""
    values, n = _decode_values(compressed)
    timestamps = decode_timestamps(_unpack(compressed.compressed_timestamps))
    if n != compressed.sample_count or timestamps.size != compressed.sample_count:
        raise ValidationError(
            f"解压后样本数不一致: metric={compressed.metric}, expected={compressed.sample_count}, "
            f"values={n}, timestamps={timestamps.size}"
        )
    common = dict(metric=compressed.metric, timestamps=timestamps, sample_count=n, values=values)
    if compressed.data_type == DataType.FLOAT:
        return FloatStream(
            min_value=compressed.min_value,
            max_value=compressed.max_value,
            avg_value=compressed.avg_value,
            **common,
        )
    if compressed.data_type == DataType.BOOLEAN:
        return BooleanStream(**common)
    return LatLngStream(**common)
