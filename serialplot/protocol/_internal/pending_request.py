# serialplot/protocol/_internal/pending_request.py
from __future__ import annotations

import time
from concurrent.futures import Future, InvalidStateError, TimeoutError as FutureTimeout
from typing import Any, Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from serialplot.codecs.frames import AresAck


class PendingRequest:
    """Holds a Future for an outstanding Aresplot request, keyed by cmd_id."""

    def __init__(self, cmd_id: int, cmd_name: str, timeout_s: float):
        self.cmd_id = int(cmd_id)
        self.cmd_name = str(cmd_name)
        self.timeout_s = float(timeout_s)
        self.created_at = time.perf_counter()
        self.future: Future = Future()

    def add_done_callback(self, cb: Callable[[Future], Any]) -> Any:
        """Forward callback registration to the underlying Future."""
        return self.future.add_done_callback(cb)

    def result(self, *args: Any, **kwargs: Any) -> Any:
        """Forward result() to underlying Future."""
        return self.future.result(*args, **kwargs)

    def done(self) -> bool:
        return self.future.done()

    def expired(self, now: Optional[float] = None) -> bool:
        now = time.perf_counter() if now is None else now
        return (now - self.created_at) > self.timeout_s

    def remaining_s(self, now: Optional[float] = None) -> float:
        now = time.perf_counter() if now is None else now
        return max(0.0, self.timeout_s - (now - self.created_at))

    def set_result(
        self,
        status: str,
        *,
        ack: Optional["AresAck"] = None,
        status_name: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> bool:
        """Resolve once. Returns False if already resolved."""
        if self.future.done():
            return False

        if status in ("ok", "nack"):
            result = {
                "status": status,
                "code": ack.status if ack is not None else None,
                "status_name": status_name,
            }
        elif status == "send_failed":
            result = {"status": "send_failed", "error": str(error) if error else None}
        else:
            result = {"status": status}

        try:
            self.future.set_result(result)
        except InvalidStateError:
            return False
        return True

    def wait(self, timeout: Optional[float] = None) -> dict:
        """Blocking wait for request completion."""
        try:
            return self.future.result(timeout=timeout)
        except FutureTimeout:
            return {"status": "pending"}
