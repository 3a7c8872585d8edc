"""Formatting of durations, lengths and arrival times."""

import time
from datetime import datetime
from typing import Optional


def format_time(seconds: float) -> str:
    """Format a duration, e.g. '1 h 05 min' or '12 min 30 s'"""
    seconds = int(round(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours} h {minutes:02d} min"
    if minutes:
        return f"{minutes} min {secs:02d} s"
    return f"{secs} s"


def format_length(meters: float) -> str:
    """Format a length, e.g. '850 m' or '12.4 km'"""
    if meters < 1000:
        return f"{int(round(meters))} m"
    return f"{meters / 1000:.1f} km"


def eta_in_local_time(remaining_seconds: float, now: Optional[float] = None) -> str:
    """Arrival time as HH:MM in the local time zone"""
    now = time.time() if now is None else now
    return datetime.fromtimestamp(now + remaining_seconds).strftime("%H:%M")
