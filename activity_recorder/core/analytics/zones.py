from typing import List, Sequence

import numpy as np

from .time_utils import sample_durations

# 功率 7 区：55/76/91/106/121/151 % FTP
POWER_ZONE_CUTS = (0.55, 0.76, 0.91, 1.06, 1.21, 1.51)
# 心率 5 区：81/90/94/100 % 阈值心率
HR_ZONE_CUTS = (0.81, 0.90, 0.94, 1.00)


def zone_times(timestamps: np.ndarray, values: np.ndarray, threshold: float, cuts: Sequence[float]) -> List[float]:
    """Seconds spent in each band; every sample contributes the time until the next sample."""
    values = np.asarray(values, dtype=float)
    if values.size == 0 or not threshold or threshold <= 0:
        return []
    edges = np.asarray(cuts, dtype=float) * threshold
    bucket = np.searchsorted(edges, values, side='right')
    durations = sample_durations(timestamps)
    totals = np.bincount(bucket, weights=durations, minlength=len(cuts) + 1)
    return [round(float(t), 1) for t in totals]
