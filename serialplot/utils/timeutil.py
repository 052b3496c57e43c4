# serialplot/utils/timeutil.py
from __future__ import annotations

import math
import time
from typing import Optional


def monotonic_ms() -> float:
    """High-resolution monotonic host clock in milliseconds."""
    return time.perf_counter() * 1000.0


def format_seconds_hms(seconds: Optional[float]) -> str:
    """
    Buffer estimate as HH:MM:SS (floored).

    "-" when there is no estimate (None, negative or NaN), "∞" for infinity.
    """
    if seconds is None:
        return "-"
    seconds = float(seconds)
    if seconds == math.inf:
        return "∞"
    if not math.isfinite(seconds) or seconds < 0:
        return "-"
    total = int(math.floor(seconds))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"
