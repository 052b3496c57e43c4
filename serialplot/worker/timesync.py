# serialplot/worker/timesync.py
from __future__ import annotations

from typing import Optional, Tuple

from .messages import MessageType, Notice, WorkerMessage

DRIFT_THRESHOLD_MS = 500.0
CHECK_INTERVAL_MS = 5000.0


class AresTimeSync:
    """
    Maps MCU millisecond timestamps onto the host clock.

    bias = host_now - mcu_ms is taken from the first frame of a session and
    re-taken whenever the current bias drifts more than drift_threshold_ms.
    """

    def __init__(
        self,
        *,
        drift_threshold_ms: float = DRIFT_THRESHOLD_MS,
        check_interval_ms: float = CHECK_INTERVAL_MS,
    ):
        self.drift_threshold_ms = float(drift_threshold_ms)
        self.check_interval_ms = float(check_interval_ms)
        self.bias: Optional[float] = None
        self.last_check_ms = 0.0
        self.resyncs = 0

    def reset(self) -> None:
        self.bias = None
        self.last_check_ms = 0.0

    def calibrate(self, mcu_ms: float, now: float) -> Tuple[float, Optional[WorkerMessage]]:
        """Return (host timestamp, optional info/warn message)."""
        msg: Optional[WorkerMessage] = None
        current = now - float(mcu_ms)

        if self.bias is None:
            self.bias = current
            self.last_check_ms = now
            msg = WorkerMessage(
                MessageType.INFO,
                Notice("aresplot_timestamp", f"Timestamp bias initialized: {current:.0f}ms."),
            )
        else:
            drift = abs(current - self.bias)
            if drift > self.drift_threshold_ms:
                self.bias = current
                self.last_check_ms = now
                self.resyncs += 1
                msg = WorkerMessage(
                    MessageType.WARN,
                    Notice(
                        "aresplot_timestamp",
                        f"Timestamp drift >{self.drift_threshold_ms:.0f}ms detected ({drift:.0f}ms). "
                        "Re-synchronizing. Plot may jump.",
                        {"drift_ms": drift},
                    ),
                )
            elif now - self.last_check_ms > self.check_interval_ms:
                self.last_check_ms = now

        return float(mcu_ms) + self.bias, msg
