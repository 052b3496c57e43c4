# serialplot/worker/batcher.py
from __future__ import annotations

import dataclasses
from typing import Callable, List, Optional

from serialplot.model.sample import Batch, Sample


class Batcher:
    """
    Accumulates samples and emits them as ordered batches.

    A batch goes out when interval_ms elapsed since the previous flush or
    when max_samples are pending. Timestamps are clamped so they never go
    backwards within a session (Aresplot resync can move the clock back).
    """

    def __init__(
        self,
        emit: Callable[[Batch], None],
        *,
        interval_ms: float = 10.0,
        max_samples: int = 5000,
    ):
        self._emit = emit
        self.interval_ms = float(interval_ms)
        self.max_samples = int(max_samples)

        self._pending: List[Sample] = []
        self._last_flush_ms: Optional[float] = None
        self._last_ts: Optional[float] = None

        self.clamped = 0
        self.batches_emitted = 0

    def __len__(self) -> int:
        return len(self._pending)

    def reset(self, now: Optional[float] = None) -> None:
        """Start a new session: drop pending samples and the ordering floor."""
        self._pending = []
        self._last_ts = None
        self._last_flush_ms = now
        self.clamped = 0

    def add(self, sample: Sample) -> Sample:
        if self._last_ts is not None and sample.timestamp_ms < self._last_ts:
            sample = dataclasses.replace(sample, timestamp_ms=self._last_ts)
            self.clamped += 1
        self._last_ts = sample.timestamp_ms
        self._pending.append(sample)
        return sample

    def due(self, now: float) -> bool:
        if not self._pending:
            return False
        if len(self._pending) >= self.max_samples:
            return True
        if self._last_flush_ms is None:
            return True
        return now - self._last_flush_ms >= self.interval_ms

    def maybe_flush(self, now: float) -> bool:
        if not self.due(now):
            return False
        return self.flush(now)

    def flush(self, now: float, *, force: bool = False) -> bool:
        """Emit pending samples. With force=True an empty batch is emitted too."""
        if not self._pending and not force:
            return False
        batch, self._pending = self._pending, []
        self._last_flush_ms = now
        self.batches_emitted += 1
        self._emit(batch)
        return True
