"""训练负荷与能量消耗（Training Load & Energy）

说明：
- TSS 以策略链计算：功率 TSS 优先，缺少功率时依次尝试 TRIMP hrTSS、心率分区积分，
  每个策略独立命名、可单独测试；全部不可用时返回 None，绝不静默返回 0；
- 卡路里按可用输入显式选择模型（power_work / heart_rate_keytel / heart_rate_basic / met_duration），
  调用方把所用模型写入汇总记录；
- 本模块只处理数组与标量，不依赖数据库或网络。
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .time_utils import sample_durations
from .zones import zone_times


@dataclass
class StressInputs:
    """计算训练负荷所需的输入；缺失项为 None。"""
    elapsed_seconds: float
    intensity_factor: Optional[float] = None
    hr_timestamps: Optional[np.ndarray] = None
    heartrate: Optional[np.ndarray] = None
    threshold_hr: Optional[float] = None
    max_hr: Optional[float] = None
    gender: str = "male"

    @property
    def has_heartrate(self) -> bool:
        return self.heartrate is not None and np.asarray(self.heartrate).size > 0


class StressScoreStrategy:
    name = "base"

    def compute(self, inputs: StressInputs) -> Optional[float]:
        raise NotImplementedError


class PowerStressScore(StressScoreStrategy):
    """TSS = 时长（小时） × IF² × 100"""
    name = "power"

    def compute(self, inputs: StressInputs) -> Optional[float]:
        if inputs.intensity_factor is None or inputs.elapsed_seconds <= 0:
            return None
        hours = inputs.elapsed_seconds / 3600.0
        return round(hours * inputs.intensity_factor ** 2 * 100.0, 1)


def trimp_coefficients(gender: str) -> Tuple[float, float]:
    """Banister 指数权重系数；女性使用 0.86 / 1.67。"""
    if (gender or "male").lower() == "female":
        return 0.86, 1.67
    return 0.64, 1.92


class TrimpStressScore(StressScoreStrategy):
    """Banister TRIMP 折算的 hrTSS：100 × TRIMP / TRIMP@FTHR·1h

    需要阈值心率和最大心率。
    """
    name = "heart_rate_trimp"

    def compute(self, inputs: StressInputs) -> Optional[float]:
        if not inputs.has_heartrate or not inputs.threshold_hr or not inputs.max_hr:
            return None
        hr_max = float(inputs.max_hr)
        k1, k2 = trimp_coefficients(inputs.gender)
        s = np.clip(np.asarray(inputs.heartrate, dtype=float) / hr_max, 0.0, 1.0)
        w = k1 * np.exp(k2 * s)
        trimp = float(np.sum(w * sample_durations(inputs.hr_timestamps)) / 60.0)
        s_ftp = min(1.0, inputs.threshold_hr / hr_max)
        trimp_ref = 60.0 * k1 * np.exp(k2 * s_ftp)
        if trimp_ref <= 0:
            return None
        return round(100.0 * trimp / trimp_ref, 1)


# 心率分区积分：<82% / 82–89% / 89–93% / 93–100% / ≥100% LTHR 每小时得分
HR_ZONE_POINT_CUTS = (0.82, 0.89, 0.93, 1.00)
HR_ZONE_POINTS_PER_HOUR = (20.0, 30.0, 40.0, 50.0, 100.0)


class HeartRateZoneStressScore(StressScoreStrategy):
    """按阈值心率分区计时，每区乘以每小时得分后累加。只需要阈值心率。"""
    name = "heart_rate_zones"

    def compute(self, inputs: StressInputs) -> Optional[float]:
        if not inputs.has_heartrate or not inputs.threshold_hr:
            return None
        times = zone_times(inputs.hr_timestamps, inputs.heartrate, inputs.threshold_hr, HR_ZONE_POINT_CUTS)
        if not times:
            return None
        score = sum(t / 3600.0 * pts for t, pts in zip(times, HR_ZONE_POINTS_PER_HOUR))
        return round(score, 1)


DEFAULT_STRESS_STRATEGIES: Sequence[StressScoreStrategy] = (
    PowerStressScore(),
    TrimpStressScore(),
    HeartRateZoneStressScore(),
)


def calculate_training_load(
    inputs: StressInputs,
    strategies: Sequence[StressScoreStrategy] = DEFAULT_STRESS_STRATEGIES,
) -> Tuple[Optional[float], Optional[str]]:
    """依次尝试策略，返回 (tss, 策略名)；全部不可用时返回 (None, None)。"""
    for strategy in strategies:
        value = strategy.compute(inputs)
        if value is not None:
            return value, strategy.name
    return None, None


# ================================
# 卡路里（Calories）
# ================================

# MET（代谢当量），按运动类型取中等强度值
MET_BY_ACTIVITY = {
    "outdoor_run": 9.8,
    "outdoor_bike": 7.5,
    "outdoor_walk": 3.5,
    "indoor_treadmill": 9.0,
    "indoor_bike_trainer": 7.0,
    "indoor_strength": 5.0,
    "indoor_swim": 7.0,
    "other": 6.0,
}


def estimate_calories_with_power(total_work_kj: float) -> int:
    """人体效率约 20–25%，恰好抵消 kJ→kcal 的换算，kcal ≈ 机械功 kJ。"""
    return int(round(max(total_work_kj, 0.0)))


def estimate_calories_keytel(avg_heartrate: float, weight_kg: float, age: int, duration_seconds: float,
                             gender: str = "male") -> int:
    """Keytel 公式（分性别）。"""
    minutes = duration_seconds / 60.0
    if (gender or "male").lower() == "female":
        per_min = (-20.4022 + 0.4472 * avg_heartrate - 0.1263 * weight_kg + 0.074 * age) / 4.184
    else:
        per_min = (-55.0969 + 0.6309 * avg_heartrate + 0.1988 * weight_kg + 0.2017 * age) / 4.184
    return int(round(max(per_min, 0.0) * minutes))


def estimate_calories_with_heartrate(avg_heartrate: float, weight_kg: float, duration_seconds: float) -> int:
    """不含年龄项的 Keytel 近似。"""
    per_min = (0.6309 * avg_heartrate + 0.1988 * weight_kg - 55.0969) / 4.184
    return int(round(max(per_min, 0.0) * duration_seconds / 60.0))


def estimate_calories_met(activity_type: str, weight_kg: float, duration_seconds: float) -> int:
    met = MET_BY_ACTIVITY.get(activity_type, MET_BY_ACTIVITY["other"])
    return int(round(met * weight_kg * duration_seconds / 3600.0))


def max_hr_from_age(age: Optional[int]) -> Optional[int]:
    if age is None or age <= 0:
        return None
    return 220 - age
