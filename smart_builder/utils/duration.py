"""
Duration Utility
================
Human-readable durations for build logs.

Rules:
    - Whole minutes only; seconds are dropped.
    - "1h 5m" once an hour has passed, "12m" below that.
    - Negative input renders as "0m".
"""
from typing import Optional


def format_duration(seconds: float) -> str:
    """
    Format a duration in seconds.

    Parameters
    ----------
    seconds : float
        Duration in seconds.

    Returns
    -------
    str
        e.g. "0m", "42m", "1h 5m".
    """
    minutes = int(max(0.0, seconds) // 60)
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"


def estimate_remaining(elapsed_seconds: float, percent: float) -> Optional[float]:
    """Linear remaining-time estimate; None outside the (5, 100) band."""
    if percent <= 5 or percent >= 100:
        return None
    return max(0.0, elapsed_seconds / percent * 100 - elapsed_seconds)
