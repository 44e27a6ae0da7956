"""运动时间与距离（Moving Time & Distance）

说明：
- 运动时间按相邻采样区间累计：区间起点样本未暂停且超过阈值时计入；
- 信号优先级：速度流 > 踏频流 > moving 布尔流，均缺失时返回 None，由上层回退到时钟累计值；
- 距离优先取 distance 流最大值（设备累计里程），否则对 latlng 做 haversine 求和。
"""

from typing import Optional

import numpy as np

EARTH_RADIUS_M = 6371000.0


def moving_time_from_signal(
    timestamps: np.ndarray,
    moving: np.ndarray,
    paused_mask: Optional[np.ndarray] = None,
) -> float:
    """累计 moving 为真的采样区间（秒）；最后一个样本没有后继区间，不计入。"""
    ts = np.asarray(timestamps, dtype=np.int64)
    if ts.size < 2:
        return 0.0
    gaps = np.clip(np.diff(ts).astype(float) / 1000.0, 0.0, None)
    active = np.asarray(moving, dtype=bool)[:-1]
    if paused_mask is not None:
        active = active & ~np.asarray(paused_mask, dtype=bool)[:-1]
    return float(gaps[active].sum())


def moving_time_above(
    timestamps: np.ndarray,
    values: np.ndarray,
    threshold: float,
    paused_mask: Optional[np.ndarray] = None,
) -> float:
    return moving_time_from_signal(timestamps, np.asarray(values, dtype=float) >= threshold, paused_mask)


def haversine_m(lat1, lng1, lat2, lng2):
    lat1, lng1, lat2, lng2 = map(np.radians, (lat1, lng1, lat2, lng2))
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = np.sin(dlat / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlng / 2.0) ** 2
    return 2.0 * EARTH_RADIUS_M * np.arcsin(np.sqrt(a))


def route_distance_m(latlng: np.ndarray) -> float:
    points = np.asarray(latlng, dtype=float)
    if points.ndim != 2 or points.shape[0] < 2:
        return 0.0
    legs = haversine_m(points[:-1, 0], points[:-1, 1], points[1:, 0], points[1:, 1])
    return float(legs.sum())
