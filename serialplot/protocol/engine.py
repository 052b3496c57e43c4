# serialplot/protocol/engine.py
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Protocol as TypingProtocol

from serialplot.codecs.frames import AresAck, AresError
from serialplot.interfaces.command_sink import CommandEvent, CommandSink
from .core import CommandFrame, Protocol
from .errors import PendingTableFull
from ._internal.pending_request import PendingRequest


class WriterIO(TypingProtocol):
    def write(self, data: bytes) -> int: ...
    def release_lock(self) -> bool: ...


class WritableIO(TypingProtocol):
    """Outbound stream half: hands out one writer at a time."""
    def get_writer(self) -> WriterIO: ...


class AresplotEngine:
    """
    Low-level Aresplot request engine (host side).

    Owns the writer on the outbound stream half, serialises sends, and keeps
    a pending-request table keyed by command id. ACK frames arrive from the
    worker and are fed in through handle_ack(); expired requests are swept by
    expire_pending() or by wait().
    """

    MAX_PENDING = 8

    def __init__(
        self,
        proto: Protocol,
        writable: WritableIO,
        *,
        timeout_s: Optional[float] = None,
        cmd_sink: Optional[CommandSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.proto = proto
        self._writable = writable
        self._cmd_sink = cmd_sink
        self._log = logger or logging.getLogger(__name__)

        self.timeout_s = float(timeout_s) if timeout_s is not None else proto.request_timeout_s

        self._writer: Optional[WriterIO] = None
        self._send_lock = threading.Lock()
        self._lock = threading.Lock()
        self._pending: Dict[int, PendingRequest] = {}

    # ---------------- Writer ----------------
    @property
    def has_writer(self) -> bool:
        return self._writer is not None

    def acquire_writer(self) -> None:
        with self._send_lock:
            self._ensure_writer()

    def _ensure_writer(self) -> WriterIO:
        if self._writer is None:
            self._writer = self._writable.get_writer()
            self._log.info("ARES_WRITER_ACQUIRED")
        return self._writer

    def _drop_writer(self) -> None:
        writer, self._writer = self._writer, None
        if writer is None:
            return
        try:
            writer.release_lock()
        except Exception:
            self._log.exception("ARES_WRITER_RELEASE_FAILED")

    # ---------------- Command API ----------------
    def send_async(self, cmd_name: str, **kwargs) -> PendingRequest:
        frame = CommandFrame(self.proto, cmd_name, args=kwargs)
        raw = frame.encode()
        cmd_id = frame.cmd_id

        with self._send_lock:
            # A request's resolution is delivered before the next one of the same kind goes out.
            self._await_previous(cmd_id)

            pending = PendingRequest(cmd_id, cmd_name, self.timeout_s)
            with self._lock:
                if cmd_id not in self._pending and len(self._pending) >= self.MAX_PENDING:
                    raise PendingTableFull(f"{len(self._pending)} requests already outstanding")
                self._pending[cmd_id] = pending

            if self._cmd_sink:
                self._attach_trace(pending, kwargs)

            self._log.debug("ARES_SENDING cmd=%s len=%d raw=%s", cmd_name, len(raw), raw.hex())
            try:
                self._ensure_writer().write(raw)
            except Exception as e:
                with self._lock:
                    if self._pending.get(cmd_id) is pending:
                        self._pending.pop(cmd_id, None)
                # Next send reacquires a fresh writer.
                self._drop_writer()
                self._log.exception("ARES_CMD_SEND_FAILED cmd=%s", cmd_name)
                pending.set_result("send_failed", error=e)

        return pending

    def send(self, cmd_name: str, *, poll: Optional[Callable[[], object]] = None, **kwargs) -> dict:
        return self.wait(self.send_async(cmd_name, **kwargs), poll=poll)

    def wait(self, pending: PendingRequest, *, poll: Optional[Callable[[], object]] = None) -> dict:
        """
        Block until the request resolves or its timeout elapses.

        poll, when given, is called between short waits; it lets a caller that
        also owns the inbound message queue deliver the ACK itself.
        """
        while True:
            if poll is not None:
                poll()
            if pending.done():
                return pending.result()

            remaining = pending.remaining_s()
            if remaining <= 0:
                self._expire(pending)
                return pending.result()

            pending.wait(min(remaining, 0.005) if poll is not None else remaining)

    def _await_previous(self, cmd_id: int) -> None:
        with self._lock:
            prev = self._pending.get(cmd_id)
        if prev is None or prev.done():
            return
        prev.wait(prev.remaining_s())
        if not prev.done():
            self._expire(prev)

    # ---------------- Inbound ----------------
    def handle_ack(self, ack: AresAck) -> Optional[PendingRequest]:
        with self._lock:
            pending = self._pending.pop(ack.cmd_id, None)

        status_name = self.proto.status_name(ack.status)
        if pending is None:
            self._log.debug("ARES_UNSOLICITED_ACK cmd=0x%02X status=%s", ack.cmd_id, status_name)
            return None

        status = "ok" if ack.status == self.proto.status_ok else "nack"
        if status == "nack":
            self._log.warning("ARES_NACK cmd=%s status=%s", pending.cmd_name, status_name)
        pending.set_result(status, ack=ack, status_name=status_name)
        return pending

    def handle_frame(self, frame: object) -> Optional[PendingRequest]:
        """Route an inbound control frame. ERROR_REPORT frames never resolve a request."""
        if isinstance(frame, AresAck):
            return self.handle_ack(frame)
        if isinstance(frame, AresError):
            self._log.warning("ARES_MCU_ERROR code=0x%02X msg=%r", frame.code, frame.text)
        return None

    # ---------------- Expiry / teardown ----------------
    def _expire(self, pending: PendingRequest) -> None:
        with self._lock:
            if self._pending.get(pending.cmd_id) is pending:
                self._pending.pop(pending.cmd_id, None)
        if pending.set_result("timeout"):
            self._log.warning("ARES_CMD_TIMEOUT cmd=%s timeout_s=%.3f", pending.cmd_name, pending.timeout_s)

    def expire_pending(self, now: Optional[float] = None) -> List[PendingRequest]:
        now = time.perf_counter() if now is None else now
        with self._lock:
            expired = [p for p in self._pending.values() if p.expired(now)]
        for pending in expired:
            self._expire(pending)
        return expired

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def cancel_all(self) -> None:
        with self._lock:
            items = list(self._pending.values())
            self._pending.clear()
        for pending in items:
            pending.set_result("cancelled")

    def close(self) -> None:
        self.cancel_all()
        with self._send_lock:
            self._drop_writer()

    # ---------------- Tracing ----------------
    def _attach_trace(self, pending: PendingRequest, args: dict) -> None:
        sink = self._cmd_sink
        start_ts = pending.created_at

        def _on_done(fut) -> None:
            rtt_ms = (time.perf_counter() - start_ts) * 1000.0
            result = fut.result()
            try:
                sink.on_command(
                    CommandEvent(
                        name=pending.cmd_name,
                        kind=result.get("status", "unknown"),
                        request_id=f"0x{pending.cmd_id:02X}",
                        payload={"args": args, "response": result, "rtt_ms": rtt_ms},
                    )
                )
            except Exception:
                self._log.exception("CMD_SINK_ERROR")

        pending.add_done_callback(_on_done)
