"""运动员档案（Athlete Profile）：只读输入，供指标计算使用。"""

import logging
from datetime import date
from typing import Dict, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class AthleteProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id          : str             = Field(...)
    weight_kg   : Optional[float] = Field(default=None, gt=0)
    ftp         : Optional[float] = Field(default=None, gt=0, description="功能阈值功率（W）")
    threshold_hr: Optional[float] = Field(default=None, gt=0, description="阈值心率（bpm）")
    dob         : Optional[date]  = Field(default=None, description="出生日期")
    max_hr      : Optional[float] = Field(default=None, gt=0)
    gender      : str             = Field(default="male")

    def age_on(self, day: date) -> Optional[int]:
        if self.dob is None:
            return None
        age = day.year - self.dob.year
        if (day.month, day.day) < (self.dob.month, self.dob.day):
            age -= 1
        return age if age > 0 else None


class ProfileProvider(Protocol):
    def get_profile(self, owner_id: str) -> Optional[AthleteProfile]:
        ...


class StaticProfileProvider:
    """内存中的档案表；未登记的用户返回 None，指标层按“缺少档案”处理。"""

    def __init__(self, profiles: Optional[Dict[str, AthleteProfile]] = None):
        self._profiles = dict(profiles or {})

    def register(self, profile: AthleteProfile) -> None:
        self._profiles[profile.id] = profile

    def get_profile(self, owner_id: str) -> Optional[AthleteProfile]:
        profile = self._profiles.get(owner_id)
        if profile is None:
            logger.info(f"[profile][missing] owner={owner_id}")
        return profile
