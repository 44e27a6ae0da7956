"""
记录与提交接口的请求和响应模式
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..recording.models import ActivityType, RecordingState, SensorReading
from ..submission.state_machine import SubmissionState


class StartRecordingRequest(BaseModel):
    """开始记录请求"""
    owner_id     : str           = Field(..., description="用户 ID")
    activity_type: ActivityType  = Field(..., description="运动类型")
    plan_id      : Optional[str] = Field(None, description="训练计划 ID")


class ReadingsRequest(BaseModel):
    """批量上报传感器读数"""
    readings: List[SensorReading] = Field(..., description="读数列表，按到达顺序")


class ReadingsResponse(BaseModel):
    accepted: int = Field(..., description="被接受的读数")
    rejected: int = Field(..., description="被拒绝的读数（乱序超窗、类型不符或质量无效）")


class RecordingStatusResponse(BaseModel):
    """当前记录状态"""
    state     : RecordingState           = Field(...)
    session_id: Optional[str]            = Field(None)
    started_at: Optional[int]            = Field(None, description="epoch 毫秒")
    finished_at: Optional[int]           = Field(None, description="epoch 毫秒")
    stats     : Optional[Dict[str, Any]] = Field(None, description="分块与缓冲统计")


class SubmissionUpdateRequest(BaseModel):
    name : Optional[str] = Field(None, description="活动名称")
    notes: Optional[str] = Field(None, description="备注")


class SubmissionStatusResponse(BaseModel):
    """提交状态"""
    session_id: str                      = Field(...)
    state     : SubmissionState          = Field(...)
    progress  : float                    = Field(..., description="0~1")
    error     : Optional[str]            = Field(None)
    error_kind: Optional[str]            = Field(None)
    remote_id : Optional[str]            = Field(None)
    activity  : Optional[Dict[str, Any]] = Field(None, description="汇总指标（不含不可用的字段）")
    streams   : Optional[List[str]]      = Field(None, description="负载中包含的指标流")
