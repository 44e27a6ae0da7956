"""
提交状态机（Submission State Machine）

状态：idle → preparing → aggregating → computing → compressing → ready → uploading → success / error

说明：
- prepare：非 idle 时直接返回（幂等）；聚合、计算、压缩同步完成，中间状态不对外暴露负载；
- ready：可编辑名称与备注，不重新聚合或计算；
- submit：只允许从 ready（或保留了负载的 error）进入 uploading，检查与状态切换在锁内完成，
  因此重复或并发调用不会产生第二次上传；
- 上传被确认后才删除本地会话与分块；失败时保留负载与错误信息，可直接再次 submit；
- 任何阶段抛出的异常都会进入 error，不会停留在中间状态；
- retry：只允许从 error 调用，完全重置到 idle 并丢弃负载。
"""

import logging
import threading
from enum import Enum
from typing import List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..athletes.profile import ProfileProvider
from ..exceptions import DurabilityError, InvalidTransitionError, UploadError, ValidationError
from ..metrics.computer import MetricsSettings, compute_activity_metrics
from ..metrics.schemas import ActivityMetricsRecord
from ..recording.events import EventChannel
from ..recording.models import RecordingState
from ..recording.store import RecordingStore
from ..streams.aggregator import aggregate_chunks
from ..streams.compressor import compress
from ..streams.models import CompressedStream

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    AGGREGATING = "aggregating"
    COMPUTING = "computing"
    COMPRESSING = "compressing"
    READY = "ready"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


PHASE_PROGRESS = {
    SubmissionState.IDLE: 0.0,
    SubmissionState.PREPARING: 0.05,
    SubmissionState.AGGREGATING: 0.25,
    SubmissionState.COMPUTING: 0.5,
    SubmissionState.COMPRESSING: 0.6,
    SubmissionState.READY: 0.9,
    SubmissionState.UPLOADING: 0.95,
    SubmissionState.SUCCESS: 1.0,
}
COMPRESSING_END = 0.85


class SubmissionPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    record : ActivityMetricsRecord  = Field(...)
    streams: List[CompressedStream] = Field(default_factory=list)


class SubmissionEvent(BaseModel):
    session_id: str                       = Field(...)
    state     : SubmissionState           = Field(...)
    progress  : float                     = Field(..., ge=0.0, le=1.0)
    error     : Optional[str]             = None
    error_kind: Optional[str]             = Field(default=None, description="validation / network / auth / durability / internal")
    remote_id : Optional[str]             = None


class Uploader(Protocol):
    def upload_activity(self, record: ActivityMetricsRecord, streams: List[CompressedStream]) -> str:
        ...


class SubmissionStateMachine:
    def __init__(
        self,
        store: RecordingStore,
        session_id: str,
        profiles: ProfileProvider,
        uploader: Uploader,
        settings: Optional[MetricsSettings] = None,
    ):
        self.store = store
        self.session_id = session_id
        self.profiles = profiles
        self.uploader = uploader
        self.settings = settings
        self.events: EventChannel[SubmissionEvent] = EventChannel("submission")

        self._lock = threading.RLock()
        self._state = SubmissionState.IDLE
        self._progress = 0.0
        self._payload: Optional[SubmissionPayload] = None
        self._error: Optional[str] = None
        self._error_kind: Optional[str] = None
        self._remote_id: Optional[str] = None

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def payload(self) -> Optional[SubmissionPayload]:
        return self._payload

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def error_kind(self) -> Optional[str]:
        return self._error_kind

    @property
    def remote_id(self) -> Optional[str]:
        return self._remote_id

    def subscribe(self, callback):
        return self.events.subscribe(callback)

    def snapshot(self) -> SubmissionEvent:
        return SubmissionEvent(
            session_id=self.session_id,
            state=self._state,
            progress=self._progress,
            error=self._error,
            error_kind=self._error_kind,
            remote_id=self._remote_id,
        )

    def _set(self, state: SubmissionState, progress: Optional[float] = None) -> None:
        self._state = state
        target = PHASE_PROGRESS.get(state, self._progress) if progress is None else progress
        self._progress = max(self._progress, target)
        logger.debug(f"[submission][{state.value}] session={self.session_id} progress={self._progress:.2f}")
        self.events.emit(self.snapshot())

    def _fail(self, error: Exception, kind: str) -> None:
        self._error = str(error)
        self._error_kind = kind
        logger.warning(f"[submission][error] session={self.session_id} kind={kind}: {error}")
        self._set(SubmissionState.ERROR, self._progress)

    # ================================
    # 准备
    # ================================

    def prepare(self) -> Optional[SubmissionPayload]:
        """聚合 → 计算 → 压缩；失败时进入 error 并返回 None。"""
        with self._lock:
            if self._state != SubmissionState.IDLE:
                return self._payload
            try:
                self._payload = self._build_payload()
            except ValidationError as e:
                self._fail(e, "validation")
                return None
            except DurabilityError as e:
                self._fail(e, "durability")
                return None
            except Exception as e:
                logger.exception(f"[submission][prepare] session={self.session_id} unexpected failure")
                self._fail(e, "internal")
                return None
            self._set(SubmissionState.READY)
            logger.info(f"[submission][ready] session={self.session_id} streams={len(self._payload.streams)}")
            return self._payload

    def _build_payload(self) -> SubmissionPayload:
        self._set(SubmissionState.PREPARING)
        session = self.store.get_session(self.session_id)
        if session is None:
            raise ValidationError(f"本地记录不存在: {self.session_id}")
        if session.state != RecordingState.FINISHED:
            raise ValidationError(f"记录尚未完成，当前状态: {session.state.value}")
        if session.started_at is None or session.finished_at is None:
            raise ValidationError("记录缺少开始或结束时间")
        chunks = self.store.list_chunks(self.session_id)
        if not chunks:
            raise ValidationError("记录中没有任何数据分块")

        self._set(SubmissionState.AGGREGATING)
        streams = aggregate_chunks(chunks)

        self._set(SubmissionState.COMPUTING)
        record = compute_activity_metrics(
            self.profiles.get_profile(session.owner_id),
            streams,
            session.started_at,
            session.finished_at,
            session_id=session.id,
            owner_id=session.owner_id,
            activity_type=session.activity_type,
            plan_id=session.plan_id,
            recorded_moving_time=session.moving_time,
            settings=self.settings,
        )

        self._set(SubmissionState.COMPRESSING)
        start = PHASE_PROGRESS[SubmissionState.COMPRESSING]
        compressed = []
        for i, stream in enumerate(streams.values()):
            compressed.append(compress(stream))
            self._set(SubmissionState.COMPRESSING, start + (COMPRESSING_END - start) * (i + 1) / len(streams))
        return SubmissionPayload(record=record, streams=compressed)

    def update(self, name: Optional[str] = None, notes: Optional[str] = None) -> ActivityMetricsRecord:
        """修改名称与备注，不重新计算。"""
        with self._lock:
            editable = self._state == SubmissionState.READY or (
                self._state == SubmissionState.ERROR and self._payload is not None
            )
            if not editable:
                raise InvalidTransitionError("submission", self._state.value, "update")
            self._payload = self._payload.model_copy(
                update={'record': self._payload.record.with_edits(name=name, notes=notes)}
            )
            self.events.emit(self.snapshot())
            return self._payload.record

    # ================================
    # 上传
    # ================================

    def submit(self) -> Optional[str]:
        """上传已准备好的负载；成功返回远端 id，失败进入 error 并返回 None。"""
        with self._lock:
            can_submit = self._state == SubmissionState.READY or (
                self._state == SubmissionState.ERROR and self._payload is not None
            )
            if not can_submit:
                raise InvalidTransitionError("submission", self._state.value, "submit")
            self._error = None
            self._error_kind = None
            self._set(SubmissionState.UPLOADING)
            payload = self._payload

        try:
            remote_id = self.uploader.upload_activity(payload.record, payload.streams)
        except UploadError as e:
            with self._lock:
                self._fail(e, e.kind)
            return None
        except Exception as e:
            logger.exception(f"[submission][upload] session={self.session_id} uploader raised")
            with self._lock:
                self._fail(e, "network")
            return None

        try:
            self.store.delete_recording(self.session_id)
        except DurabilityError as e:
            logger.error(f"[submission][cleanup-failed] session={self.session_id} remote_id={remote_id}: {e}")
        with self._lock:
            self._remote_id = remote_id
            self._set(SubmissionState.SUCCESS)
        logger.info(f"[submission][success] session={self.session_id} remote_id={remote_id}")
        return remote_id

    def retry(self) -> None:
        """从 error 完全重置到 idle，丢弃已准备的负载。"""
        with self._lock:
            if self._state != SubmissionState.ERROR:
                raise InvalidTransitionError("submission", self._state.value, "retry")
            self._payload = None
            self._error = None
            self._error_kind = None
            self._progress = 0.0
            self._state = SubmissionState.IDLE
            logger.info(f"[submission][reset] session={self.session_id}")
            self.events.emit(self.snapshot())
