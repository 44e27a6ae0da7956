"""
记录状态机（Recording State Machine）

状态：pending → ready → recording ⇄ paused → finished / discarded

说明：
- start：检查权限（缺失时抛内建 PermissionError），清理该用户未完成的本地记录后创建新会话；
- pause / resume：暂停期间仍然采集读数，但标记为 paused，并停止累计运动时间；
- finish：先把缓冲中的全部读数写成分块，再持久化会话，最后才广播状态变化；
- discard：删除本地数据；对已完成或已丢弃的会话同样有效（幂等清理）；
- 落盘失败（DurabilityError）时中止本次记录：状态变为 discarded，广播事件后重新抛出。
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from ..core.analytics.time_utils import now_ms
from ..exceptions import DurabilityError, InvalidTransitionError, ValidationError
from .buffer import SensorIngestionBuffer
from .events import EventChannel, RecordingEvent
from .models import ActivityType, RecordingSession, RecordingState, SensorReading, StreamChunk
from .permissions import PermissionChecker, missing_permissions
from .plan import PlanProgress
from .store import RecordingStore

logger = logging.getLogger(__name__)


class RecordingStateMachine:
    def __init__(
        self,
        store: RecordingStore,
        owner_id: str,
        activity_type: ActivityType,
        permissions: PermissionChecker,
        plan: Optional[PlanProgress] = None,
        clock: Callable[[], int] = now_ms,
        buffer_options: Optional[Dict[str, Any]] = None,
    ):
        self.store = store
        self.owner_id = owner_id
        self.activity_type = ActivityType(activity_type)
        self.permissions = permissions
        self.plan = plan
        self.clock = clock
        self.buffer_options = dict(buffer_options or {})
        self.events: EventChannel[RecordingEvent] = EventChannel("recording")

        self._lock = threading.RLock()
        self._state = RecordingState.PENDING
        self._session: Optional[RecordingSession] = None
        self._buffer: Optional[SensorIngestionBuffer] = None
        self._moving_time = 0.0
        self._segment_started: Optional[int] = None
        self._data_points = 0

    # ================================
    # 查询
    # ================================

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    @property
    def session_id(self) -> Optional[str]:
        return self._session.id if self._session else None

    @property
    def moving_time(self) -> float:
        """按时钟累计的运动时间（秒），包含正在进行的区段。"""
        with self._lock:
            extra = 0.0
            if self._state == RecordingState.RECORDING and self._segment_started is not None:
                extra = max(self.clock() - self._segment_started, 0) / 1000.0
            return self._moving_time + extra

    def subscribe(self, callback: Callable[[RecordingEvent], None]) -> Callable[[], None]:
        return self.events.subscribe(callback)

    # ================================
    # 状态迁移
    # ================================

    def _require(self, action: str, *allowed: RecordingState) -> None:
        if self._state not in allowed:
            raise InvalidTransitionError("recording", self._state.value, action)

    def _transition(self, new_state: RecordingState, error: Optional[str] = None) -> None:
        previous = self._state
        self._state = new_state
        logger.info(f"[recording][{previous.value}->{new_state.value}] session={self.session_id}")
        self.events.emit(RecordingEvent(
            session_id=self.session_id,
            previous=previous,
            state=new_state,
            timestamp=self.clock(),
            error=error,
        ))

    def _check_permissions(self) -> None:
        missing = missing_permissions(self.permissions, self.activity_type)
        if missing:
            raise PermissionError(f"缺少开始记录所需的权限: {', '.join(missing)}")

    def mark_ready(self) -> None:
        with self._lock:
            self._require("mark_ready", RecordingState.PENDING)
            self._check_permissions()
            self._transition(RecordingState.READY)

    def start(self) -> RecordingSession:
        with self._lock:
            self._require("start", RecordingState.PENDING, RecordingState.READY)
            self._check_permissions()
            self.store.delete_unfinished(self.owner_id)
            plan_id = self.plan.plan_id if self.plan else None
            session = self.store.create_session(self.owner_id, self.activity_type, plan_id)
            started_at = self.clock()
            self._session = self.store.update_session(
                session.id, state=RecordingState.RECORDING, started_at=started_at
            )
            self._buffer = SensorIngestionBuffer(
                self.store, session.id, on_flush=self._checkpoint, **self.buffer_options
            )
            self._segment_started = started_at
            self._transition(RecordingState.RECORDING)
            return self._session

    def record(self, reading: SensorReading) -> bool:
        """交给采集缓冲；暂停期间的读数打上 paused 标记。返回读数是否被接受。"""
        with self._lock:
            self._require("record", RecordingState.RECORDING, RecordingState.PAUSED)
            if self._state == RecordingState.PAUSED and not reading.paused:
                reading = reading.model_copy(update={'paused': True})
            try:
                accepted = self._buffer.append(reading)
            except DurabilityError as e:
                self._abort(e)
                raise
            if accepted:
                self._data_points += 1
            return accepted

    def pause(self) -> None:
        with self._lock:
            self._require("pause", RecordingState.RECORDING)
            self._accrue_moving_time()
            self._session = self.store.update_session(
                self.session_id, state=RecordingState.PAUSED, moving_time=self._moving_time
            )
            self._transition(RecordingState.PAUSED)

    def resume(self) -> None:
        with self._lock:
            self._require("resume", RecordingState.PAUSED)
            self._segment_started = self.clock()
            self._session = self.store.update_session(self.session_id, state=RecordingState.RECORDING)
            self._transition(RecordingState.RECORDING)

    def finish(self) -> RecordingSession:
        with self._lock:
            self._require("finish", RecordingState.RECORDING, RecordingState.PAUSED)
            if self._session is None or self._session.started_at is None:
                raise ValidationError("会话没有开始时间，无法完成记录")
            if self._state == RecordingState.RECORDING:
                self._accrue_moving_time()
            finished_at = self.clock()
            try:
                self._buffer.flush_all()
                self._session = self.store.update_session(
                    self.session_id,
                    state=RecordingState.FINISHED,
                    finished_at=finished_at,
                    total_elapsed_time=(finished_at - self._session.started_at) / 1000.0,
                    moving_time=self._moving_time,
                    data_points_recorded=self._data_points,
                    last_checkpoint_at=finished_at,
                )
            except DurabilityError as e:
                self._abort(e)
                raise
            self._buffer = None
            self._transition(RecordingState.FINISHED)
            return self._session

    def discard(self) -> None:
        with self._lock:
            self._require(
                "discard",
                RecordingState.RECORDING,
                RecordingState.PAUSED,
                RecordingState.FINISHED,
                RecordingState.DISCARDED,
            )
            if self.session_id is not None:
                self.store.delete_recording(self.session_id)
            self._buffer = None
            if self._state != RecordingState.DISCARDED:
                self._transition(RecordingState.DISCARDED)

    # ================================
    # 内部
    # ================================

    def _accrue_moving_time(self) -> None:
        if self._segment_started is not None:
            self._moving_time += max(self.clock() - self._segment_started, 0) / 1000.0
            self._segment_started = None

    def _checkpoint(self, chunk: StreamChunk) -> None:
        self._session = self.store.update_session(
            chunk.session_id,
            last_checkpoint_at=self.clock(),
            data_points_recorded=self._data_points,
        )

    def _abort(self, error: DurabilityError) -> None:
        logger.error(f"[recording][abort] session={self.session_id}: {error}")
        self._buffer = None
        try:
            self.store.update_session(self.session_id, state=RecordingState.DISCARDED)
        except DurabilityError as e:
            logger.error(f"[recording][abort] session={self.session_id} state not persisted: {e}")
        self._transition(RecordingState.DISCARDED, error=str(error))

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            result: Dict[str, Any] = {
                'session_id': self.session_id,
                'state': self._state.value,
                'moving_time': round(self.moving_time, 1),
                'data_points_recorded': self._data_points,
            }
            if self.session_id is not None and self._state != RecordingState.DISCARDED:
                result.update(self.store.recording_stats(self.session_id))
            if self._buffer is not None:
                result['buffers'] = self._buffer.buffer_status()
            return result
