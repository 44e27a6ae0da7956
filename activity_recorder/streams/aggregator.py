"""
指标流聚合（Stream Aggregator）

说明：
- 按指标分组分块，按 chunk_index 排序后校验下标必须连续（0..n-1），缺页或重复页直接报错；
- 按样本总数预分配 numpy 数组，一次遍历把每个分块复制到对应偏移，同时累计 min/max/sum；
- 拼接后若时间戳不单调（迟到读数落在后一个分块），按时间戳稳定排序，数值与暂停标记同步调整；
- 某个指标没有任何分块时结果中不出现该指标（不可用 ≠ 0）。
"""

import json
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

import numpy as np

from ..exceptions import ValidationError
from ..recording.models import DataType, StreamChunk
from .models import AggregatedStream, BooleanStream, FloatStream, LatLngStream

logger = logging.getLogger(__name__)

_VALUE_DTYPES = {
    DataType.FLOAT: np.float64,
    DataType.BOOLEAN: np.bool_,
    DataType.LATLNG: np.float64,
}


def _decode(chunk: StreamChunk, field: str) -> list:
    raw = getattr(chunk, field)
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"分块数据无法解析: metric={chunk.metric}, chunk_index={chunk.chunk_index}, field={field}"
        ) from e
    if not isinstance(decoded, list):
        raise ValidationError(f"分块数据不是数组: metric={chunk.metric}, chunk_index={chunk.chunk_index}")
    return decoded


def _validate_sequence(metric: str, chunks: List[StreamChunk]) -> DataType:
    data_types = {c.data_type for c in chunks}
    if len(data_types) != 1:
        raise ValidationError(f"指标 {metric} 的分块数据类型不一致: {sorted(t.value for t in data_types)}")
    indexes = [c.chunk_index for c in chunks]
    if indexes != list(range(len(chunks))):
        raise ValidationError(f"指标 {metric} 的分块下标不连续或重复: {indexes}")
    return data_types.pop()


def aggregate_metric(metric: str, chunks: Iterable[StreamChunk]) -> Optional[AggregatedStream]:
    """把一个指标的全部分块拼接成完整的指标流；没有分块时返回 None。"""
    ordered = sorted(chunks, key=lambda c: c.chunk_index)
    if not ordered:
        return None
    data_type = _validate_sequence(metric, ordered)

    total = sum(c.sample_count for c in ordered)
    timestamps = np.empty(total, dtype=np.int64)
    shape = (total, 2) if data_type == DataType.LATLNG else (total,)
    values = np.empty(shape, dtype=_VALUE_DTYPES[data_type])
    paused = np.zeros(total, dtype=bool)

    v_min = np.inf
    v_max = -np.inf
    v_sum = 0.0
    offset = 0
    for chunk in ordered:
        data = _decode(chunk, 'data')
        ts = _decode(chunk, 'timestamps')
        n = chunk.sample_count
        if len(data) != n or len(ts) != n:
            raise ValidationError(
                f"分块样本数与 sample_count 不一致: metric={metric}, chunk_index={chunk.chunk_index}, "
                f"sample_count={n}, data={len(data)}, timestamps={len(ts)}"
            )
        try:
            block = np.asarray(data, dtype=_VALUE_DTYPES[data_type])
            ts_block = np.asarray(ts, dtype=np.int64)
        except (TypeError, ValueError, OverflowError) as e:
            raise ValidationError(f"分块数值类型错误: metric={metric}, chunk_index={chunk.chunk_index}") from e
        if block.shape != values[offset:offset + n].shape or ts_block.shape != (n,):
            raise ValidationError(
                f"分块形状错误: metric={metric}, chunk_index={chunk.chunk_index}, "
                f"expected={values[offset:offset + n].shape}, data={block.shape}, timestamps={ts_block.shape}"
            )
        values[offset:offset + n] = block
        timestamps[offset:offset + n] = ts_block
        if chunk.paused_offsets:
            for i in _decode(chunk, 'paused_offsets'):
                if not isinstance(i, int) or not 0 <= i < n:
                    raise ValidationError(
                        f"暂停标记越界: metric={metric}, chunk_index={chunk.chunk_index}, offset={i}"
                    )
                paused[offset + i] = True
        if data_type == DataType.FLOAT and n:
            v_min = min(v_min, float(block.min()))
            v_max = max(v_max, float(block.max()))
            v_sum += float(block.sum())
        offset += n

    # 已落盘分块之后才到达的迟到读数会排进下一个分块，这里按时间戳稳定排序
    if total > 1 and np.any(np.diff(timestamps) < 0):
        order = np.argsort(timestamps, kind="stable")
        timestamps = timestamps[order]
        values = values[order]
        paused = paused[order]
        logger.debug(f"[aggregate][reorder] metric={metric} samples={total}")

    common = dict(
        metric=metric,
        timestamps=timestamps,
        sample_count=total,
        paused_mask=paused if paused.any() else None,
        values=values,
    )
    if data_type == DataType.FLOAT:
        has_samples = total > 0
        return FloatStream(
            min_value=v_min if has_samples else None,
            max_value=v_max if has_samples else None,
            avg_value=v_sum / total if has_samples else None,
            **common,
        )
    if data_type == DataType.BOOLEAN:
        return BooleanStream(**common)
    return LatLngStream(**common)


def aggregate_chunks(chunks: Iterable[StreamChunk]) -> Dict[str, AggregatedStream]:
    """按指标分组聚合会话的全部分块。"""
    grouped: Dict[str, List[StreamChunk]] = defaultdict(list)
    for chunk in chunks:
        grouped[chunk.metric].append(chunk)
    streams: Dict[str, AggregatedStream] = {}
    for metric, metric_chunks in grouped.items():
        stream = aggregate_metric(metric, metric_chunks)
        if stream is not None:
            streams[metric] = stream
            logger.debug(f"[aggregate] metric={metric} chunks={len(metric_chunks)} samples={stream.sample_count}")
    return streams
