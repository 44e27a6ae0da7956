from typing import Optional

import numpy as np
import pandas as pd

from .time_utils import sample_durations


def _rolling_mean(timestamps: np.ndarray, values: np.ndarray, window: int) -> np.ndarray:
    """Time-based trailing mean; irregular sampling and gaps are handled by the timestamp index."""
    index = pd.to_datetime(np.asarray(timestamps, dtype=np.int64), unit='ms')
    series = pd.Series(np.asarray(values, dtype=float), index=index).sort_index()
    return series.rolling(f"{int(window)}s", min_periods=1).mean().to_numpy()


def normalized_power(timestamps: np.ndarray, powers: np.ndarray, window: int = 30) -> Optional[float]:
    """Compute normalized power: rolling average, 4th-power time-weighted mean, 4th root.

    Args:
        timestamps: epoch milliseconds, ascending
        powers: power values in watts
        window: rolling average window length in seconds (default 30)
    """
    powers = np.asarray(powers, dtype=float)
    if powers.size == 0:
        return None
    rolling = _rolling_mean(timestamps, powers, window)
    weights = sample_durations(timestamps)
    if weights.sum() <= 0:
        weights = np.ones_like(rolling)
    mean_fourth = float(np.average(rolling ** 4, weights=weights))
    return mean_fourth ** 0.25


def time_weighted_mean(timestamps: np.ndarray, values: np.ndarray) -> Optional[float]:
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return None
    weights = sample_durations(timestamps)
    if weights.sum() <= 0:
        return float(values.mean())
    return float(np.average(values, weights=weights))


def total_work_kj(timestamps: np.ndarray, powers: np.ndarray) -> Optional[float]:
    """Mechanical work in kJ: power integrated over each sample's duration."""
    powers = np.asarray(powers, dtype=float)
    if powers.size == 0:
        return None
    return float(np.sum(np.clip(powers, 0.0, None) * sample_durations(timestamps)) / 1000.0)


def work_above_ftp(timestamps: np.ndarray, powers: np.ndarray, ftp: float) -> Optional[float]:
    powers = np.asarray(powers, dtype=float)
    if powers.size == 0 or not ftp or ftp <= 0:
        return None
    surplus = np.clip(powers - ftp, 0.0, None)
    return float(np.sum(surplus * sample_durations(timestamps)) / 1000.0)
