from typing import Optional, Tuple

import numpy as np

from .power import normalized_power, time_weighted_mean

HR_MIN_VALID = 30
HR_MAX_VALID = 240


def filter_hr_smooth(timestamps: np.ndarray, heartrate: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Drop physiologically impossible heart-rate samples and single-sample jumps over 50 bpm."""
    ts = np.asarray(timestamps, dtype=np.int64)
    hr = np.asarray(heartrate, dtype=float)
    keep = np.zeros(hr.size, dtype=bool)
    last = None
    for i, v in enumerate(hr):
        if not np.isfinite(v) or v < HR_MIN_VALID or v > HR_MAX_VALID:
            continue
        if last is not None and abs(v - last) > 50:
            continue
        keep[i] = True
        last = v
    return ts[keep], hr[keep]


def align_power_hr(
    power_ts: np.ndarray,
    power: np.ndarray,
    hr_ts: np.ndarray,
    hr: np.ndarray,
) -> Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """Restrict both streams to their common time range and interpolate HR onto power timestamps.

    Returns (timestamps, power, heartrate) or None when the streams do not overlap.
    """
    hr_ts, hr = filter_hr_smooth(hr_ts, hr)
    power_ts = np.asarray(power_ts, dtype=np.int64)
    power = np.asarray(power, dtype=float)
    if power_ts.size == 0 or hr_ts.size == 0:
        return None
    start = max(power_ts[0], hr_ts[0])
    end = min(power_ts[-1], hr_ts[-1])
    if start > end:
        return None
    in_window = (power_ts >= start) & (power_ts <= end)
    if not in_window.any():
        return None
    ts = power_ts[in_window]
    return ts, power[in_window], np.interp(ts, hr_ts, hr)


def efficiency_factor(power_ts, power, hr_ts, hr, window: int = 30) -> Optional[float]:
    aligned = align_power_hr(power_ts, power, hr_ts, hr)
    if aligned is None:
        return None
    ts, p, h = aligned
    np_value = normalized_power(ts, p, window)
    avg_hr = time_weighted_mean(ts, h)
    if not np_value or not avg_hr:
        return None
    return round(np_value / avg_hr, 2)


def power_heart_rate_ratio(power_ts, power, hr_ts, hr) -> Optional[float]:
    aligned = align_power_hr(power_ts, power, hr_ts, hr)
    if aligned is None:
        return None
    ts, p, h = aligned
    avg_hr = time_weighted_mean(ts, h)
    if not avg_hr:
        return None
    return round(time_weighted_mean(ts, p) / avg_hr, 2)


def decoupling_rate(power_ts, power, hr_ts, hr) -> Optional[float]:
    """Aerobic decoupling in percent: drift of the power:HR ratio from first to second half.

    Positive values mean the ratio dropped (HR rose relative to power).
    """
    aligned = align_power_hr(power_ts, power, hr_ts, hr)
    if aligned is None:
        return None
    _, p, h = aligned
    m = p.size
    if m < 10:
        return None
    mid = m // 2

    def ratio(pp, hh):
        avg_h = hh.mean()
        return (pp.mean() / avg_h) if avg_h > 0 else 0.0

    r1 = ratio(p[:mid], h[:mid])
    r2 = ratio(p[mid:], h[mid:])
    if r1 > 0 and r2 > 0:
        return round((r1 - r2) / r1 * 100.0, 1)
    return None
