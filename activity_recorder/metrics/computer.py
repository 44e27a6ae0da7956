"""
活动指标计算（Metrics Computer）

输入：运动员档案、聚合后的指标流、会话起止时间；输出 ActivityMetricsRecord。
纯函数，不访问数据库或网络。

说明：
- 每组指标独立计算，单个指标抛 ComputationError 时记为 None，不影响其他指标；
- 指标流缺失表示“不可用”，对应字段为 None，绝不用 0 代替；
- 暂停期间采集的样本不参与运动时间、NP、区间与心率/功率关系的计算。
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import numpy as np

from ..config import (
    ELEVATION_NOISE_FLOOR_M,
    MOVING_CADENCE_THRESHOLD,
    MOVING_SPEED_THRESHOLD,
    NP_WINDOW_SECONDS,
)
from ..core.analytics.altitude import average_grade, elevation_gain_loss, elevation_gain_per_km
from ..core.analytics.hr import decoupling_rate, efficiency_factor, power_heart_rate_ratio
from ..core.analytics.moving import moving_time_above, moving_time_from_signal, route_distance_m
from ..core.analytics.power import normalized_power, time_weighted_mean, total_work_kj, work_above_ftp
from ..core.analytics.time_utils import ms_to_datetime
from ..core.analytics.training import (
    StressInputs,
    calculate_training_load,
    estimate_calories_keytel,
    estimate_calories_met,
    estimate_calories_with_heartrate,
    estimate_calories_with_power,
    max_hr_from_age,
)
from ..core.analytics.zones import HR_ZONE_CUTS, POWER_ZONE_CUTS, zone_times
from ..exceptions import ComputationError, ValidationError
from ..recording.models import ActivityType, DataType, Metric
from ..athletes.profile import AthleteProfile
from ..streams.models import AggregatedStream, FloatStream
from .schemas import ActivityMetricsRecord

logger = logging.getLogger(__name__)


@dataclass
class MetricsSettings:
    moving_speed_threshold: float = MOVING_SPEED_THRESHOLD
    moving_cadence_threshold: float = MOVING_CADENCE_THRESHOLD
    elevation_noise_floor: float = ELEVATION_NOISE_FLOOR_M
    np_window_seconds: int = NP_WINDOW_SECONDS


def _float_stream(streams: Mapping[str, AggregatedStream], metric: Metric) -> Optional[FloatStream]:
    stream = streams.get(metric.value)
    if stream is None or stream.data_type != DataType.FLOAT or stream.sample_count == 0:
        return None
    return stream


def _active(stream: AggregatedStream) -> Tuple[np.ndarray, np.ndarray]:
    """去掉暂停期间的样本；全部暂停时抛 ComputationError。"""
    mask = stream.active_mask()
    if not mask.any():
        raise ComputationError(f"{stream.metric} 只有暂停期间的样本")
    return stream.timestamps[mask], stream.values[mask]


def _guarded(name: str, fn: Callable[[], Any], fallback: Any = None) -> Any:
    try:
        return fn()
    except ComputationError as e:
        logger.warning(f"[metrics][unavailable] {name}: {e}")
        return fallback


def _round(value: Optional[float], digits: int = 1) -> Optional[float]:
    return None if value is None else round(float(value), digits)


def default_activity_name(activity_type: ActivityType, started_at: int) -> str:
    label = ActivityType(activity_type).value.replace('_', ' ').title()
    return f"{label} - {ms_to_datetime(started_at).strftime('%Y-%m-%d')}"


# ================================
# 分组计算
# ================================

def _moving_time(streams, elapsed: float, recorded_moving_time: Optional[float], settings: MetricsSettings) -> float:
    speed = _float_stream(streams, Metric.SPEED)
    cadence = _float_stream(streams, Metric.CADENCE)
    moving = streams.get(Metric.MOVING.value)
    if speed is not None:
        value = moving_time_above(speed.timestamps, speed.values, settings.moving_speed_threshold, speed.paused_mask)
    elif cadence is not None:
        value = moving_time_above(cadence.timestamps, cadence.values, settings.moving_cadence_threshold,
                                  cadence.paused_mask)
    elif moving is not None and moving.data_type == DataType.BOOLEAN and moving.sample_count:
        value = moving_time_from_signal(moving.timestamps, moving.values, moving.paused_mask)
    elif recorded_moving_time:
        value = recorded_moving_time
    else:
        value = elapsed
    return float(min(max(value, 0.0), elapsed))


def _distance(streams) -> Optional[float]:
    distance = _float_stream(streams, Metric.DISTANCE)
    if distance is not None:
        return _round(distance.max_value)
    latlng = streams.get(Metric.LATLNG.value)
    if latlng is not None and latlng.data_type == DataType.LATLNG and latlng.sample_count >= 2:
        return _round(route_distance_m(latlng.values))
    return None


def _power_metrics(streams, profile: Optional[AthleteProfile], settings: MetricsSettings) -> Dict[str, Any]:
    power = _float_stream(streams, Metric.POWER)
    if power is None:
        return {}
    result: Dict[str, Any] = {
        'avg_power': _round(power.avg_value),
        'max_power': _round(power.max_value),
    }
    ts, values = _active(power)
    np_value = normalized_power(ts, values, settings.np_window_seconds)
    if np_value is None:
        raise ComputationError("normalized power unavailable")
    result['normalized_power'] = round(np_value, 1)
    result['total_work'] = _round(total_work_kj(ts, values))
    active_avg = time_weighted_mean(ts, values)
    if active_avg and active_avg > 0:
        result['variability_index'] = round(np_value / active_avg, 2)
    ftp = profile.ftp if profile else None
    if ftp:
        result['_intensity_factor_raw'] = np_value / ftp
        result['intensity_factor'] = round(np_value / ftp, 2)
        result['work_above_ftp'] = _round(work_above_ftp(ts, values, ftp))
        result['power_zone_times'] = zone_times(ts, values, ftp, POWER_ZONE_CUTS)
    if profile and profile.weight_kg and active_avg is not None:
        result['power_weight_ratio'] = round(active_avg / profile.weight_kg, 2)
    return result


def _heartrate_metrics(streams, profile: Optional[AthleteProfile]) -> Dict[str, Any]:
    hr = _float_stream(streams, Metric.HEARTRATE)
    if hr is None:
        return {}
    result: Dict[str, Any] = {
        'avg_heartrate': _round(hr.avg_value),
        'max_heartrate': _round(hr.max_value),
    }
    if profile and profile.threshold_hr:
        ts, values = _active(hr)
        result['heartrate_zone_times'] = zone_times(ts, values, profile.threshold_hr, HR_ZONE_CUTS)
    return result


def _power_hr_metrics(streams, settings: MetricsSettings) -> Dict[str, Any]:
    power = _float_stream(streams, Metric.POWER)
    hr = _float_stream(streams, Metric.HEARTRATE)
    if power is None or hr is None:
        return {}
    p_ts, p = _active(power)
    h_ts, h = _active(hr)
    return {
        'efficiency_factor': efficiency_factor(p_ts, p, h_ts, h, settings.np_window_seconds),
        'decoupling': decoupling_rate(p_ts, p, h_ts, h),
        'power_heart_rate_ratio': power_heart_rate_ratio(p_ts, p, h_ts, h),
    }


def _elevation_metrics(streams, distance_m: Optional[float], settings: MetricsSettings) -> Dict[str, Any]:
    altitude = _float_stream(streams, Metric.ALTITUDE)
    gradient = _float_stream(streams, Metric.GRADIENT)
    result: Dict[str, Any] = {}
    if altitude is not None:
        gain, loss = elevation_gain_loss(altitude.values, settings.elevation_noise_floor)
        result['elevation_gain'] = gain
        result['elevation_loss'] = loss
        result['elevation_gain_per_km'] = elevation_gain_per_km(gain, distance_m)
    result['avg_grade'] = average_grade(
        gradient.values if gradient is not None else None,
        altitude.values if altitude is not None else None,
        distance_m,
    )
    return result


def _training_load(streams, elapsed: float, intensity_factor: Optional[float],
                   profile: Optional[AthleteProfile], age: Optional[int]) -> Dict[str, Any]:
    hr = _float_stream(streams, Metric.HEARTRATE)
    hr_ts, hr_values = _active(hr) if hr is not None else (None, None)
    inputs = StressInputs(
        elapsed_seconds=elapsed,
        intensity_factor=intensity_factor,
        hr_timestamps=hr_ts,
        heartrate=hr_values,
        threshold_hr=profile.threshold_hr if profile else None,
        max_hr=(profile.max_hr or max_hr_from_age(age)) if profile else None,
        gender=profile.gender if profile else "male",
    )
    tss, source = calculate_training_load(inputs)
    return {'training_stress_score': tss, 'tss_source': source}


def _calories(activity_type: ActivityType, total_work: Optional[float], avg_hr: Optional[float],
              profile: Optional[AthleteProfile], age: Optional[int], duration: float) -> Dict[str, Any]:
    weight = profile.weight_kg if profile else None
    gender = profile.gender if profile else "male"
    if total_work is not None:
        return {'calories': estimate_calories_with_power(total_work), 'calorie_model': 'power_work'}
    if avg_hr and weight and age:
        return {
            'calories': estimate_calories_keytel(avg_hr, weight, age, duration, gender),
            'calorie_model': 'heart_rate_keytel',
        }
    if avg_hr and weight:
        return {
            'calories': estimate_calories_with_heartrate(avg_hr, weight, duration),
            'calorie_model': 'heart_rate_basic',
        }
    if weight:
        return {
            'calories': estimate_calories_met(ActivityType(activity_type).value, weight, duration),
            'calorie_model': 'met_duration',
        }
    return {}


# ================================
# 入口
# ================================

def compute_activity_metrics(
    profile: Optional[AthleteProfile],
    streams: Mapping[str, AggregatedStream],
    started_at: Optional[int],
    finished_at: Optional[int],
    *,
    session_id: str,
    owner_id: str,
    activity_type: ActivityType,
    plan_id: Optional[str] = None,
    recorded_moving_time: Optional[float] = None,
    settings: Optional[MetricsSettings] = None,
) -> ActivityMetricsRecord:
    """计算一次活动的全部汇总指标。

    参数：
        profile: 运动员档案，可为 None（依赖档案的指标全部不可用）
        streams: 指标名 → 聚合流
        started_at / finished_at: epoch 毫秒，缺失或结束早于开始时抛 ValidationError
        recorded_moving_time: 状态机按时钟累计的运动时间，没有运动信号流时使用

    返回：
        ActivityMetricsRecord
    """
    if started_at is None or finished_at is None:
        raise ValidationError("计算指标需要会话的开始与结束时间")
    if finished_at < started_at:
        raise ValidationError(f"结束时间早于开始时间: started_at={started_at}, finished_at={finished_at}")
    settings = settings or MetricsSettings()

    elapsed = (finished_at - started_at) / 1000.0
    age = profile.age_on(ms_to_datetime(started_at).date()) if profile else None

    fields: Dict[str, Any] = {'elapsed_time': elapsed}
    fields['moving_time'] = _guarded(
        'moving_time', lambda: _moving_time(streams, elapsed, recorded_moving_time, settings)
    )
    fields['distance'] = _guarded('distance', lambda: _distance(streams))

    speed = _float_stream(streams, Metric.SPEED)
    if speed is not None:
        fields['avg_speed'] = _round(speed.avg_value, 2)
        fields['max_speed'] = _round(speed.max_value, 2)
    elif fields['distance'] and fields['moving_time']:
        fields['avg_speed'] = round(fields['distance'] / fields['moving_time'], 2)

    cadence = _float_stream(streams, Metric.CADENCE)
    if cadence is not None:
        fields['avg_cadence'] = _round(cadence.avg_value)
        fields['max_cadence'] = _round(cadence.max_value)
    temperature = _float_stream(streams, Metric.TEMPERATURE)
    if temperature is not None:
        fields['avg_temperature'] = _round(temperature.avg_value)

    fields.update(_guarded('power', lambda: _power_metrics(streams, profile, settings), {}))
    intensity_factor = fields.pop('_intensity_factor_raw', None)
    fields.update(_guarded('heartrate', lambda: _heartrate_metrics(streams, profile), {}))
    fields.update(_guarded('power_heartrate', lambda: _power_hr_metrics(streams, settings), {}))
    fields.update(_guarded('elevation', lambda: _elevation_metrics(streams, fields['distance'], settings), {}))
    fields.update(_guarded(
        'training_stress_score', lambda: _training_load(streams, elapsed, intensity_factor, profile, age), {}
    ))
    duration = fields['moving_time'] if fields['moving_time'] is not None else elapsed
    fields.update(_guarded('calories', lambda: _calories(
        activity_type, fields.get('total_work'), fields.get('avg_heartrate'), profile, age, duration
    ), {}))

    if profile is not None:
        fields.update(
            profile_ftp=profile.ftp,
            profile_threshold_hr=profile.threshold_hr,
            profile_weight_kg=profile.weight_kg,
            profile_age=age,
        )

    record = ActivityMetricsRecord(
        session_id=session_id,
        owner_id=owner_id,
        activity_type=activity_type,
        plan_id=plan_id,
        name=default_activity_name(activity_type, started_at),
        started_at=started_at,
        finished_at=finished_at,
        **fields,
    )
    logger.info(
        f"[metrics][computed] session={session_id} elapsed={elapsed:.0f}s "
        f"tss={record.training_stress_score} ({record.tss_source})"
    )
    return record
