"""Wall-clock helpers."""

from __future__ import annotations

import time


def now_ts() -> int:
    """Milliseconds elapsed since the Unix epoch."""
    return time.time_ns() // 1_000_000