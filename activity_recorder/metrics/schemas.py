"""
活动汇总记录（Activity Metrics Record）

说明：
- 记录创建后只读（frozen），只有 name / notes 可以通过 with_edits 修改；
- 无法计算的指标为 None，上传时以 exclude_none 省略，不用 0 或 NaN 代替。
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..recording.models import ActivityType


class ActivityMetricsRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id   : str           = Field(...)
    owner_id     : str           = Field(...)
    activity_type: ActivityType  = Field(...)
    plan_id      : Optional[str] = None
    name         : str           = Field(..., description="默认为“运动类型 - 日期”")
    notes        : Optional[str] = None
    started_at   : int           = Field(..., description="epoch 毫秒")
    finished_at  : int           = Field(..., description="epoch 毫秒")

    # 时间与距离
    elapsed_time : float           = Field(..., description="秒")
    moving_time  : Optional[float] = Field(None, description="秒")
    distance     : Optional[float] = Field(None, description="米")
    avg_speed    : Optional[float] = Field(None, description="m/s")
    max_speed    : Optional[float] = Field(None, description="m/s")

    # 心率
    avg_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None

    # 功率
    avg_power         : Optional[float] = None
    max_power         : Optional[float] = None
    normalized_power  : Optional[float] = None
    intensity_factor  : Optional[float] = None
    variability_index : Optional[float] = None
    total_work        : Optional[float] = Field(None, description="千焦")
    work_above_ftp    : Optional[float] = Field(None, description="千焦")

    # 训练负荷
    training_stress_score: Optional[float] = None
    tss_source           : Optional[str]   = Field(None, description="power / heart_rate_trimp / heart_rate_zones")

    # 踏频与温度
    avg_cadence    : Optional[float] = None
    max_cadence    : Optional[float] = None
    avg_temperature: Optional[float] = None

    # 海拔
    elevation_gain       : Optional[float] = Field(None, description="米")
    elevation_loss       : Optional[float] = Field(None, description="米")
    avg_grade            : Optional[float] = Field(None, description="%")
    elevation_gain_per_km: Optional[float] = Field(None, description="米/千米")

    # 区间（秒）
    power_zone_times    : Optional[List[float]] = Field(None, description="Z1~Z7")
    heartrate_zone_times: Optional[List[float]] = Field(None, description="Z1~Z5")

    # 功率与心率的关系
    efficiency_factor     : Optional[float] = None
    decoupling            : Optional[float] = Field(None, description="%")
    power_heart_rate_ratio: Optional[float] = None
    power_weight_ratio    : Optional[float] = Field(None, description="W/kg")

    # 能量消耗
    calories     : Optional[int] = None
    calorie_model: Optional[str] = Field(None, description="power_work / heart_rate_keytel / heart_rate_basic / met_duration")

    # 计算时使用的档案快照
    profile_ftp         : Optional[float] = None
    profile_threshold_hr: Optional[float] = None
    profile_weight_kg   : Optional[float] = None
    profile_age         : Optional[int]   = None

    def with_edits(self, name: Optional[str] = None, notes: Optional[str] = None) -> "ActivityMetricsRecord":
        update = {}
        if name is not None:
            update['name'] = name
        if notes is not None:
            update['notes'] = notes
        return self.model_copy(update=update)

    def to_payload(self) -> dict:
        return self.model_dump(mode='json', exclude_none=True)
