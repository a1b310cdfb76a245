"""
Time-Related Utilities
----------------------

All rollout bookkeeping is in integer epoch milliseconds. Components take a
``clock`` callable so a caller (or a replay of recorded metrics) can decide
what "now" means.
"""
import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def elapsed_ms(since_ms: int, now: int) -> int:
    """Milliseconds between ``since_ms`` and ``now`` (never negative)."""
    return max(0, now - since_ms)


def format_duration(duration_ms: int) -> str:
    """
    Render a duration for log lines, e.g. ``1h 02m 03s`` or ``4.2s``.
    """
    if duration_ms < 60_000:
        return f"{duration_ms / 1000:.1f}s"
    total_sec = duration_ms // 1000
    hours, rem = divmod(total_sec, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    return f"{minutes}m {seconds:02d}s"
