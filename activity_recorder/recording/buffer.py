"""
传感器采集缓冲（Sensor Ingestion Buffer）

说明：
- 每个指标独立缓冲，读数按时间戳有序插入（bisect），容忍 JITTER_TOLERANCE_MS 内的乱序到达；
- 缓冲达到 CHUNK_CAPACITY 时切出一整页，分配下一个 chunk_index，在锁外写入本地存储；
- 同一指标同一时刻只有一次写入在进行，保证分块下标与时间顺序一致；
- 早于最近一次落盘时间戳且超出容忍窗口的读数直接拒绝（已落盘的分块不可修改）；
- 未落盘样本超过 MAX_UNFLUSHED_SAMPLES 时丢弃最旧的样本并计数（背压）；
- 写入失败抛 DurabilityError，此后缓冲拒绝继续写入，由状态机中止本次记录。
"""

import bisect
import json
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ..config import CHUNK_CAPACITY, JITTER_TOLERANCE_MS, MAX_UNFLUSHED_SAMPLES
from ..exceptions import DurabilityError
from .models import DataType, ReadingQuality, SensorReading, StreamChunk
from .store import RecordingStore

logger = logging.getLogger(__name__)

# (timestamp, value, paused)
_Entry = Tuple[int, object, bool]


def _entry_ts(entry: _Entry) -> int:
    return entry[0]


class _MetricBuffer:
    def __init__(self, metric: str, data_type: DataType):
        self.metric = metric
        self.data_type = data_type
        self.lock = threading.Lock()
        self.entries: List[_Entry] = []
        self.next_index = 0
        self.flushed_chunks = 0
        self.last_flushed_ts: Optional[int] = None
        self.writing = False
        self.rejected = 0
        self.dropped = 0


class SensorIngestionBuffer:
    def __init__(
        self,
        store: RecordingStore,
        session_id: str,
        chunk_capacity: int = CHUNK_CAPACITY,
        jitter_tolerance_ms: int = JITTER_TOLERANCE_MS,
        max_unflushed: int = MAX_UNFLUSHED_SAMPLES,
        on_flush: Optional[Callable[[StreamChunk], None]] = None,
    ):
        if chunk_capacity <= 0:
            raise ValueError("chunk_capacity must be positive")
        self.store = store
        self.session_id = session_id
        self.chunk_capacity = chunk_capacity
        self.jitter_tolerance_ms = jitter_tolerance_ms
        self.max_unflushed = max(max_unflushed, chunk_capacity)
        self.on_flush = on_flush
        self._buffers: Dict[str, _MetricBuffer] = {}
        self._registry_lock = threading.Lock()
        self._failure: Optional[DurabilityError] = None

    def _buffer_for(self, reading: SensorReading) -> _MetricBuffer:
        metric = reading.metric.value
        buf = self._buffers.get(metric)
        if buf is None:
            with self._registry_lock:
                buf = self._buffers.setdefault(metric, _MetricBuffer(metric, reading.data_type))
        return buf

    def append(self, reading: SensorReading) -> bool:
        """缓冲一条读数；被拒绝时返回 False。"""
        if self._failure is not None:
            raise DurabilityError(f"buffer for session {self.session_id} is closed: {self._failure}")
        if reading.quality == ReadingQuality.INVALID or not reading.value_matches_type():
            buf = self._buffer_for(reading)
            with buf.lock:
                buf.rejected += 1
            logger.debug(f"[buffer][reject-invalid] metric={reading.metric.value} value={reading.value!r}")
            return False

        buf = self._buffer_for(reading)
        value = list(reading.value) if isinstance(reading.value, tuple) else reading.value
        with buf.lock:
            if (
                buf.last_flushed_ts is not None
                and reading.timestamp < buf.last_flushed_ts - self.jitter_tolerance_ms
            ):
                buf.rejected += 1
                logger.debug(
                    f"[buffer][reject-late] metric={buf.metric} ts={reading.timestamp} "
                    f"last_flushed={buf.last_flushed_ts}"
                )
                return False
            entry = (reading.timestamp, value, reading.paused)
            if not buf.entries or buf.entries[-1][0] <= reading.timestamp:
                buf.entries.append(entry)
            else:
                bisect.insort(buf.entries, entry, key=_entry_ts)
            if len(buf.entries) > self.max_unflushed:
                overflow = len(buf.entries) - self.max_unflushed
                del buf.entries[:overflow]
                if buf.dropped == 0:
                    logger.warning(
                        f"[buffer][backpressure] metric={buf.metric} flush is behind, dropping oldest unflushed samples"
                    )
                buf.dropped += overflow
        self._drain(buf, force=False)
        return True

    def _cut_page(self, buf: _MetricBuffer, force: bool) -> Optional[Tuple[int, List[_Entry]]]:
        """在持有锁时切出一页；没有可写内容或已有写入在进行时返回 None。"""
        if buf.writing or not buf.entries:
            return None
        if not force and len(buf.entries) < self.chunk_capacity:
            return None
        page = buf.entries[:self.chunk_capacity]
        del buf.entries[:self.chunk_capacity]
        index = buf.next_index
        buf.next_index += 1
        page_max = page[-1][0]
        buf.last_flushed_ts = page_max if buf.last_flushed_ts is None else max(buf.last_flushed_ts, page_max)
        buf.writing = True
        return index, page

    def _drain(self, buf: _MetricBuffer, force: bool) -> int:
        written = 0
        while True:
            with buf.lock:
                cut = self._cut_page(buf, force)
            if cut is None:
                return written
            index, page = cut
            try:
                chunk = self._write_page(buf, index, page)
            except DurabilityError as e:
                with buf.lock:
                    buf.writing = False
                self._failure = e
                logger.error(f"[buffer][flush-failed] session={self.session_id} metric={buf.metric} index={index}: {e}")
                raise
            with buf.lock:
                buf.writing = False
                buf.flushed_chunks += 1
            written += 1
            if self.on_flush is not None:
                self.on_flush(chunk)

    def _write_page(self, buf: _MetricBuffer, index: int, page: List[_Entry]) -> StreamChunk:
        paused_offsets = [i for i, entry in enumerate(page) if entry[2]]
        chunk = StreamChunk(
            session_id=self.session_id,
            metric=buf.metric,
            data_type=buf.data_type,
            chunk_index=index,
            data=json.dumps([entry[1] for entry in page]),
            timestamps=json.dumps([entry[0] for entry in page]),
            paused_offsets=json.dumps(paused_offsets) if paused_offsets else None,
            sample_count=len(page),
            start_time=page[0][0],
            end_time=page[-1][0],
        )
        self.store.write_chunk(chunk)
        logger.info(f"[buffer][flush] session={self.session_id} metric={buf.metric} index={index} samples={len(page)}")
        return chunk

    def flush_all(self) -> int:
        """把所有指标的剩余缓冲强制写成分块，返回写入的分块数。"""
        if self._failure is not None:
            raise DurabilityError(f"buffer for session {self.session_id} is closed: {self._failure}")
        written = 0
        for buf in list(self._buffers.values()):
            written += self._drain(buf, force=True)
        logger.info(f"[buffer][flush-all] session={self.session_id} chunks={written}")
        return written

    def chunk_count(self, metric: str) -> int:
        buf = self._buffers.get(metric)
        return buf.flushed_chunks if buf else 0

    def buffer_status(self) -> Dict[str, Dict[str, int]]:
        status = {}
        for metric, buf in list(self._buffers.items()):
            with buf.lock:
                status[metric] = {
                    'buffered': len(buf.entries),
                    'chunks': buf.flushed_chunks,
                    'rejected': buf.rejected,
                    'dropped': buf.dropped,
                }
        return status

    @property
    def failed(self) -> bool:
        return self._failure is not None
