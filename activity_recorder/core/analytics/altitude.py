from typing import Optional, Tuple

import numpy as np

ALTITUDE_MIN_M = -500.0
ALTITUDE_MAX_M = 9000.0
ALTITUDE_SPIKE_M = 100.0


def filter_altitude(altitude_data: np.ndarray) -> np.ndarray:
    """Drop out-of-range readings and single-sample spikes larger than 100 m."""
    filtered = []
    for alt in np.asarray(altitude_data, dtype=float):
        if not np.isfinite(alt):
            continue
        if alt > ALTITUDE_MAX_M or alt < ALTITUDE_MIN_M:
            continue
        if filtered and abs(alt - filtered[-1]) > ALTITUDE_SPIKE_M:
            continue
        filtered.append(alt)
    return np.asarray(filtered, dtype=float)


def elevation_gain_loss(altitude_data: np.ndarray, noise_floor: float = 2.0) -> Tuple[float, float]:
    """Total ascent and descent with a hysteresis threshold.

    A change is only counted once the altitude has moved at least `noise_floor`
    meters away from the last counted reference point, so GPS/barometer jitter
    around a flat road adds nothing.
    """
    filtered = filter_altitude(altitude_data)
    if filtered.size < 2:
        return 0.0, 0.0
    gain = 0.0
    loss = 0.0
    ref = filtered[0]
    for alt in filtered[1:]:
        d = alt - ref
        if d >= noise_floor:
            gain += d
            ref = alt
        elif -d >= noise_floor:
            loss += -d
            ref = alt
    return round(gain, 1), round(loss, 1)


def net_elevation(altitude_data: np.ndarray) -> Optional[float]:
    filtered = filter_altitude(altitude_data)
    if filtered.size < 2:
        return None
    return float(filtered[-1] - filtered[0])


def average_grade(
    gradient_data: Optional[np.ndarray],
    altitude_data: Optional[np.ndarray],
    distance_m: Optional[float],
) -> Optional[float]:
    """Mean of the gradient stream when recorded, else net elevation over distance (percent)."""
    if gradient_data is not None and np.asarray(gradient_data).size:
        return round(float(np.mean(gradient_data)), 2)
    if altitude_data is None or not distance_m or distance_m <= 0:
        return None
    net = net_elevation(altitude_data)
    if net is None:
        return None
    return round(net / distance_m * 100.0, 2)


def elevation_gain_per_km(gain_m: Optional[float], distance_m: Optional[float]) -> Optional[float]:
    if gain_m is None or not distance_m or distance_m <= 0:
        return None
    return round(gain_m / (distance_m / 1000.0), 2)
