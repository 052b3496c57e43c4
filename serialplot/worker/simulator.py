# serialplot/worker/simulator.py
from __future__ import annotations

import math
import random
import threading
from typing import List, Optional

from serialplot.model.sample import Sample
from serialplot.model.session import SimConfig


def points_for_interval(frequency: float, elapsed_ms: float) -> int:
    """max(1, round(freq * dt / 1000)) with halves rounded up."""
    return max(1, int(math.floor(frequency * elapsed_ms / 1000.0 + 0.5)))


class SignalSimulator:
    """
    Synthetic multi-channel signal generator.

    Channel i carries A*sin(2*pi*(1 + 0.5*i)*t + i*pi/4) plus noise of at
    most +-5% of A. Each tick covers the time since the previous tick, with
    point timestamps spread evenly over that interval.
    """

    def __init__(self, config: Optional[SimConfig] = None, *, rng: Optional[random.Random] = None):
        self._config = config or SimConfig()
        self._next_config: Optional[SimConfig] = None
        self._lock = threading.Lock()
        self._rng = rng or random.Random()

        self._run_start_ms = 0.0
        self._last_tick_ms = 0.0
        self.running = False

    @property
    def config(self) -> SimConfig:
        with self._lock:
            return self._next_config or self._config

    def start(self, now: float) -> None:
        self._run_start_ms = now
        self._last_tick_ms = now
        self.running = True

    def stop(self) -> None:
        self.running = False

    def update_config(self, config: SimConfig) -> None:
        """Takes effect on the next tick; the run clock is not restarted."""
        with self._lock:
            self._next_config = config

    def _take_config(self) -> SimConfig:
        with self._lock:
            if self._next_config is not None:
                self._config, self._next_config = self._next_config, None
            return self._config

    def tick(self, now: float) -> List[Sample]:
        cfg = self._take_config()
        elapsed = max(1.0, now - self._last_tick_ms)
        n = points_for_interval(cfg.frequency, elapsed)

        samples: List[Sample] = []
        for p in range(n):
            ts = self._last_tick_ms + elapsed * (p + 1) / n
            t = (ts - self._run_start_ms) / 1000.0
            samples.append(Sample(timestamp_ms=ts, values=self._values(cfg, t)))

        self._last_tick_ms = now
        return samples

    def _values(self, cfg: SimConfig, t: float) -> tuple:
        a = cfg.amplitude
        out = []
        for i in range(cfg.num_channels):
            v = a * math.sin(2 * math.pi * (1 + 0.5 * i) * t + i * math.pi / 4)
            v += (self._rng.random() - 0.5) * 0.1 * a
            out.append(v if math.isfinite(v) else 0.0)
        return tuple(out)
