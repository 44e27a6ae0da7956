"""
本文件定义了记录会话相关的数据模型。

包含：
1. 枚举 - 记录状态、运动类型、指标名称、数据类型标签、采样质量
2. SensorReading - 设备层产生的单条传感器读数（瞬时对象，进入缓冲后即被消费）
3. 数据库模型 - recording_sessions / recording_stream_chunks 表的映射
4. RecordingSession / StreamChunk - 从 ORM 行构造的只读快照，供状态机、聚合器使用

时间戳统一使用 epoch 毫秒（int），避免 SQLite 丢失时区信息。
"""

import math
from enum import Enum
from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import BigInteger, Column, Float, ForeignKey, Integer, String, Text, UniqueConstraint

from ..db_base import Base


class RecordingState(str, Enum):
    """记录会话状态；DISCARDED / FINISHED 为终态"""
    PENDING = "pending"
    READY = "ready"
    RECORDING = "recording"
    PAUSED = "paused"
    DISCARDED = "discarded"
    FINISHED = "finished"


class ActivityType(str, Enum):
    OUTDOOR_RUN = "outdoor_run"
    OUTDOOR_BIKE = "outdoor_bike"
    OUTDOOR_WALK = "outdoor_walk"
    INDOOR_TREADMILL = "indoor_treadmill"
    INDOOR_BIKE_TRAINER = "indoor_bike_trainer"
    INDOOR_STRENGTH = "indoor_strength"
    INDOOR_SWIM = "indoor_swim"
    OTHER = "other"

    @property
    def is_outdoor(self) -> bool:
        return self.value.startswith("outdoor_")


class Metric(str, Enum):
    """可采集的指标；speed 单位 m/s，distance 为累计米数，gradient 为百分比"""
    HEARTRATE = "heartrate"
    POWER = "power"
    CADENCE = "cadence"
    SPEED = "speed"
    DISTANCE = "distance"
    ALTITUDE = "altitude"
    TEMPERATURE = "temperature"
    GRADIENT = "gradient"
    MOVING = "moving"
    LATLNG = "latlng"


class DataType(str, Enum):
    """数据类型标签：只有 FLOAT 允许做数值归约（min/max/avg）"""
    FLOAT = "float"
    BOOLEAN = "boolean"
    LATLNG = "latlng"


METRIC_DATA_TYPES = {
    Metric.MOVING: DataType.BOOLEAN,
    Metric.LATLNG: DataType.LATLNG,
}


def data_type_for(metric: Metric) -> DataType:
    return METRIC_DATA_TYPES.get(Metric(metric), DataType.FLOAT)


class ReadingQuality(str, Enum):
    GOOD = "good"
    DEGRADED = "degraded"
    INVALID = "invalid"


ReadingValue = Union[bool, float, Tuple[float, float]]


class SensorReading(BaseModel):
    """单条传感器读数"""
    metric   : Metric         = Field(...)
    value    : ReadingValue   = Field(...)
    timestamp: int            = Field(..., description="epoch 毫秒")
    source_id: Optional[str]  = Field(default=None, description="来源设备 ID")
    quality  : ReadingQuality = Field(default=ReadingQuality.GOOD)
    paused   : bool           = Field(default=False, description="暂停期间采集的数据")

    @property
    def data_type(self) -> DataType:
        return data_type_for(self.metric)

    def value_matches_type(self) -> bool:
        """检查 value 的实际类型是否与指标的数据类型标签一致"""
        data_type = self.data_type
        if data_type == DataType.BOOLEAN:
            return isinstance(self.value, bool)
        if data_type == DataType.LATLNG:
            if not isinstance(self.value, tuple) or len(self.value) != 2:
                return False
            lat, lng = self.value
            return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0
        if isinstance(self.value, bool) or isinstance(self.value, tuple):
            return False
        return math.isfinite(self.value)


# 数据库表模型
class TbRecordingSession(Base):
    """本地记录会话表"""
    __tablename__ = "recording_sessions"

    id                   = Column(String(36), primary_key=True)
    owner_id             = Column(String(64), index=True, nullable=False)
    state                = Column(String(16), nullable=False, default=RecordingState.PENDING.value)
    activity_type        = Column(String(32), nullable=False)
    plan_id              = Column(String(64), nullable=True)
    started_at           = Column(BigInteger, nullable=True, comment="epoch 毫秒")
    finished_at          = Column(BigInteger, nullable=True, comment="epoch 毫秒")
    total_elapsed_time   = Column(Float, nullable=False, default=0.0, comment="秒")
    moving_time          = Column(Float, nullable=False, default=0.0, comment="秒，仅在 recording 状态累计")
    last_checkpoint_at   = Column(BigInteger, nullable=True)
    data_points_recorded = Column(Integer, nullable=False, default=0)
    created_at           = Column(BigInteger, nullable=False)


class TbStreamChunk(Base):
    """指标分块表：每行是某个指标的一页连续读数，写入后不再修改"""
    __tablename__ = "recording_stream_chunks"
    __table_args__ = (
        UniqueConstraint("session_id", "metric", "chunk_index", name="uq_chunk_session_metric_index"),
    )

    id             = Column(Integer, primary_key=True, autoincrement=True)
    session_id     = Column(String(36), ForeignKey("recording_sessions.id"), index=True, nullable=False)
    metric         = Column(String(32), nullable=False)
    data_type      = Column(String(16), nullable=False)
    chunk_index    = Column(Integer, nullable=False)
    data           = Column(Text, nullable=False, comment="JSON 数组")
    timestamps     = Column(Text, nullable=False, comment="JSON 数组，epoch 毫秒")
    paused_offsets = Column(Text, nullable=True, comment="暂停期间样本在块内的下标（JSON）")
    sample_count   = Column(Integer, nullable=False)
    start_time     = Column(BigInteger, nullable=False)
    end_time       = Column(BigInteger, nullable=False)


class RecordingSession(BaseModel):
    """会话快照（只读）"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    state: RecordingState
    activity_type: ActivityType
    plan_id: Optional[str] = None
    started_at: Optional[int] = None
    finished_at: Optional[int] = None
    total_elapsed_time: float = 0.0
    moving_time: float = 0.0
    last_checkpoint_at: Optional[int] = None
    data_points_recorded: int = 0


class StreamChunk(BaseModel):
    """分块快照（只读）"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    session_id: str
    metric: str
    data_type: DataType
    chunk_index: int
    data: str
    timestamps: str
    paused_offsets: Optional[str] = None
    sample_count: int
    start_time: int
    end_time: int
