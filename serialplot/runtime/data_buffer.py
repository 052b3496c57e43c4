# serialplot/runtime/data_buffer.py
from __future__ import annotations

import csv
import math
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, List, Optional, Sequence, Tuple

from serialplot.core.errors import InvalidStateError
from serialplot.model.sample import Sample
from .state import BufferEstimate

TIMESTAMP_HEADER = "Timestamp (s)"
_HEADER_STRIP = re.compile(r"[\"',]")


def default_channel_name(index: int) -> str:
    return f"通道 {index + 1}"


def default_export_name() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"serialplot_data_{ts}.csv"


class RateMeter:
    """
    Windowed data rate in points per second.

    The rate is recomputed once at least window_ms elapsed since the last
    check, and drops to zero after decay_ms without any points.
    """

    def __init__(self, *, window_ms: float = 1000.0, decay_ms: float = 2000.0):
        self.window_ms = float(window_ms)
        self.decay_ms = float(decay_ms)
        self._count = 0
        self._last_check_ms: Optional[float] = None
        self._rate_hz = 0.0

    def reset(self, now: Optional[float] = None) -> None:
        self._count = 0
        self._last_check_ms = now
        self._rate_hz = 0.0

    def record(self, count: int, now: float) -> None:
        if count > 0:
            self._count += count
        if self._last_check_ms is None:
            self._last_check_ms = now
            return

        elapsed = now - self._last_check_ms
        if elapsed >= self.window_ms:
            self._rate_hz = self._count * 1000.0 / elapsed
            self._count = 0
            self._last_check_ms = now
        elif elapsed > self.decay_ms and count == 0:
            self._rate_hz = 0.0
            self._count = 0
            self._last_check_ms = now

    def rate(self, now: float) -> float:
        if (
            self._last_check_ms is not None
            and now - self._last_check_ms > self.decay_ms
            and self._count == 0
        ):
            self._rate_hz = 0.0
        return self._rate_hz


class DataBuffer:
    """
    Host-side sample store for export.

    Only samples carrying values are kept; non-finite values become NaN.
    After every batch the oldest prefix beyond max_points is removed in one
    operation.
    """

    def __init__(self, max_points: int, *, rate: Optional[RateMeter] = None):
        self.max_points = int(max_points)
        self.rate_meter = rate or RateMeter()
        self._lock = threading.Lock()
        self._rows: List[Tuple[float, Tuple[float, ...]]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def add_batch(self, batch: Sequence[Sample], now: Optional[float] = None) -> int:
        """Store a batch; returns the number of points stored from it."""
        added = 0
        with self._lock:
            for s in batch:
                if not s.has_values:
                    continue
                values = tuple(v if math.isfinite(v) else math.nan for v in s.values)
                self._rows.append((float(s.timestamp_ms), values))
                added += 1
            excess = len(self._rows) - self.max_points
            if excess > 0:
                del self._rows[:excess]
        if now is not None:
            self.rate_meter.record(added, now)
        return added

    def set_max_points(self, max_points: int) -> None:
        with self._lock:
            self.max_points = int(max_points)
            excess = len(self._rows) - self.max_points
            if excess > 0:
                del self._rows[:excess]

    def clear(self) -> None:
        with self._lock:
            self._rows = []
        self.rate_meter.reset()

    def snapshot(self) -> List[Tuple[float, Tuple[float, ...]]]:
        with self._lock:
            return list(self._rows)

    def rate(self, now: float) -> float:
        return self.rate_meter.rate(now)

    def estimate(self, collecting: bool, now: float) -> Optional[BufferEstimate]:
        """totalSec = M/r and remainingSec = max(0, (M - current)/r); None unless collecting with r > 0."""
        r = self.rate(now)
        m = self.max_points
        if not collecting or r <= 0 or m <= 0:
            return None
        remaining_points = m - len(self)
        return BufferEstimate(
            total_s=m / r,
            remaining_s=0.0 if remaining_points <= 0 else remaining_points / r,
        )

    # ---------------- CSV ----------------
    @staticmethod
    def header(num_channels: int, channel_names: Optional[Sequence[str]] = None) -> List[str]:
        names = list(channel_names or [])
        out = [TIMESTAMP_HEADER]
        for i in range(num_channels):
            name = names[i] if i < len(names) and names[i] else default_channel_name(i)
            out.append(_HEADER_STRIP.sub("", name))
        return out

    def write_csv(self, f: IO[str], channel_names: Optional[Sequence[str]] = None) -> int:
        """Write the buffer as CSV to an open text file; returns the number of rows."""
        rows = self.snapshot()
        if not rows:
            raise InvalidStateError("No data to export.", hint="Collect some data first.")
        num_channels = len(rows[0][1])
        if num_channels == 0:
            raise InvalidStateError("No channel data found in the buffer.")

        w = csv.writer(f, lineterminator="\n")
        w.writerow(self.header(num_channels, channel_names))
        for ts_ms, values in rows:
            row = [f"{ts_ms / 1000.0:.6f}"]
            for ch in range(num_channels):
                v = values[ch] if ch < len(values) else math.nan
                row.append(f"{v:.6f}" if math.isfinite(v) else "")
            w.writerow(row)
        return len(rows)

    def export_csv(self, path: "str | Path", channel_names: Optional[Sequence[str]] = None) -> Path:
        if len(self) == 0:
            raise InvalidStateError("No data to export.", hint="Collect some data first.")
        path = Path(path)
        if path.is_dir():
            path = path / default_export_name()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            self.write_csv(f, channel_names)
        return path
