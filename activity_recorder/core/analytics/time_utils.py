import time
from datetime import datetime, timezone
from typing import Optional

import numpy as np


def now_ms() -> int:
    return int(time.time() * 1000)


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def format_time(seconds: float) -> Optional[str]:
    try:
        seconds = int(seconds)
        if seconds < 0:
            seconds = 0
        if seconds < 60:
            return f"{seconds}s"
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60
        if hours == 0:
            return f"{minutes}:{secs:02d}"
        return f"{hours}:{minutes:02d}:{secs:02d}"
    except (ValueError, TypeError):
        return None


def sample_durations(timestamps: np.ndarray, last_sample_seconds: float = 1.0) -> np.ndarray:
    """Seconds each sample "covers": the gap to the next sample, last sample gets a fixed default.

    Negative gaps (jitter across a chunk boundary) count as zero.
    """
    ts = np.asarray(timestamps, dtype=np.int64)
    if ts.size == 0:
        return np.zeros(0, dtype=float)
    gaps = np.diff(ts).astype(float) / 1000.0
    gaps = np.clip(gaps, 0.0, None)
    return np.append(gaps, last_sample_seconds)
