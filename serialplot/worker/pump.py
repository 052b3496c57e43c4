# serialplot/worker/pump.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol as TypingProtocol

from serialplot.codecs.base import Codec
from serialplot.codecs.frames import (
    AresAck,
    AresError,
    AresMonitorFrame,
    Frame,
    JustFloatFrame,
    TextLine,
    Unidentified,
)
from serialplot.core.errors import ParserError, StreamFaultError
from serialplot.model.sample import Sample
from serialplot.transport.errors import StreamAborted, TransportError
from serialplot.utils.timeutil import monotonic_ms
from .batcher import Batcher
from .messages import MessageType, Notice, WorkerMessage
from .timesync import AresTimeSync

LF = 0x0A


class ReaderIO(TypingProtocol):
    def read(self) -> Optional[bytes]: ...
    def cancel(self) -> None: ...
    def release_lock(self) -> bool: ...


class StreamPump:
    """
    Drains a stream reader through the active codec into the Batcher.

    The pump owns the rolling byte buffer. Each read turn appends the chunk
    and runs the codec until it needs more data; every returned frame covers
    a prefix of the buffer that is removed in one step. The host timestamp
    of a turn is taken once, right after the read returned.
    """

    def __init__(
        self,
        reader: ReaderIO,
        codec: Codec,
        batcher: Batcher,
        *,
        post: Callable[[WorkerMessage], None],
        clock: Callable[[], float] = monotonic_ms,
        forced_break_bytes: int = 80,
        time_sync: Optional[AresTimeSync] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._reader = reader
        self.codec = codec
        self._batcher = batcher
        self._post = post
        self._clock = clock
        self.forced_break_bytes = int(forced_break_bytes)
        self._time_sync = time_sync or AresTimeSync()
        self._log = logger or logging.getLogger(__name__)

        self._buffer = bytearray()
        self._cancel = threading.Event()
        self._closed = False

        self.bytes_received = 0
        self.bytes_consumed = 0
        self.forced_breaks = 0

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    def set_codec(self, codec: Codec) -> None:
        if codec is not self.codec:
            self._log.warning("PUMP_CODEC_CHANGED old=%s new=%s", self.codec.name, codec.name)
        self.codec = codec
        self._time_sync.reset()

    # ---------------- Read loop ----------------
    def step(self) -> bool:
        """
        One read turn. Returns False when the loop must exit (cancelled or
        stream done). Raises StreamFaultError for read errors other than
        cancellation.
        """
        if self._cancel.is_set():
            return False
        try:
            chunk = self._reader.read()
        except StreamAborted:
            return False
        except TransportError as e:
            if self._cancel.is_set():
                return False
            self._log.error("PUMP_READ_ERROR err=%s", e)
            raise StreamFaultError(f"Read error: {e}", details={"error": type(e).__name__}) from None

        if chunk is None:
            self._log.info("PUMP_STREAM_DONE")
            return False

        now = self._clock()
        if chunk and not self._cancel.is_set():
            self.feed(chunk, now)
        self._batcher.maybe_flush(now)
        return not self._cancel.is_set()

    def feed(self, chunk: bytes, now: float) -> None:
        self._buffer += chunk
        self.bytes_received += len(chunk)
        while True:
            self._drain(now)
            if self._cancel.is_set() or not self._forced_break(now):
                break

    def _drain(self, now: float) -> None:
        while self._buffer and not self._cancel.is_set():
            before = len(self._buffer)
            try:
                result = self.codec.parse(self._buffer)
            except Exception as e:
                self._log.warning("PUMP_PARSER_ERROR codec=%s err=%s", self.codec.name, e)
                self._post(WorkerMessage(
                    MessageType.ERROR,
                    ParserError(f"Parser error ({self.codec.name}): {e}"),
                ))
                self._consume(1)
                continue

            if result is None:
                return

            if not 0 < result.consumed <= before:
                self._log.error(
                    "PUMP_BAD_CONSUMED codec=%s consumed=%d buffered=%d",
                    self.codec.name, result.consumed, before,
                )
                self._post(WorkerMessage(
                    MessageType.ERROR,
                    ParserError(
                        f"Parser error ({self.codec.name}): consumed {result.consumed} of {before} bytes"
                    ),
                ))
                self._consume(1)
                continue

            self._consume(result.consumed)
            self._on_frame(result.frame, now)

    def _consume(self, n: int) -> None:
        del self._buffer[:n]
        self.bytes_consumed += n

    def _forced_break(self, now: float) -> bool:
        limit = self.forced_break_bytes
        if not self.codec.line_oriented or len(self._buffer) <= limit:
            return False
        if self._buffer.find(LF, 0, limit) >= 0:
            return False

        raw = bytes(self._buffer[:limit])
        self._consume(limit)
        self.forced_breaks += 1
        self._batcher.add(Sample(now, (), raw, unidentified=True))
        self._post(WorkerMessage(
            MessageType.WARN,
            Notice("parser_line_break", f"Forced line break in '{self.codec.name}' due to no newline."),
        ))
        return True

    # ---------------- Frames ----------------
    def _on_frame(self, frame: Frame, now: float) -> None:
        if isinstance(frame, (TextLine, JustFloatFrame)):
            self._batcher.add(Sample(now, frame.values, frame.raw))

        elif isinstance(frame, AresMonitorFrame):
            ts, msg = self._time_sync.calibrate(frame.mcu_ms, now)
            if msg is not None:
                self._post(msg)
            self._batcher.add(Sample(ts, frame.values, frame.raw))

        elif isinstance(frame, AresAck):
            self._post(WorkerMessage(MessageType.INFO, frame))
            proto = getattr(self.codec, "proto", None)
            ok_status = proto.status_ok if proto is not None else 0
            if frame.status != ok_status:
                self._post(WorkerMessage(
                    MessageType.WARN,
                    Notice(
                        "aresplot_ack_error",
                        f"MCU NACK for CMD 0x{frame.cmd_id:02x} - Status 0x{frame.status:02x}",
                        {"cmd_id": frame.cmd_id, "status": frame.status},
                    ),
                ))

        elif isinstance(frame, AresError):
            self._post(WorkerMessage(MessageType.INFO, frame))

        elif isinstance(frame, Unidentified):
            self._batcher.add(Sample(now, (), frame.raw, unidentified=True))
            if frame.warning:
                self._post(WorkerMessage(
                    MessageType.WARN,
                    Notice("aresplot_parser_internal", frame.reason, {"length": len(frame.raw)}),
                ))

        else:
            self._log.warning("PUMP_UNKNOWN_FRAME type=%s", type(frame).__name__)

    # ---------------- Teardown ----------------
    def cancel(self) -> None:
        """Set the session token and interrupt a blocked read. Safe from any thread."""
        if self._cancel.is_set():
            return
        self._cancel.set()
        try:
            self._reader.cancel()
        except Exception:
            self._log.exception("PUMP_READER_CANCEL_ERROR")

    def close(self) -> bool:
        """
        Session teardown, run on the loop thread after the loop exited:
        token -> reader cancel -> lock release -> buffer clear -> final batch.

        Returns True when this call released the reader lock. Idempotent.
        """
        if self._closed:
            return False
        self._closed = True
        self.cancel()

        released = False
        try:
            released = bool(self._reader.release_lock())
        except StreamAborted:
            self._log.debug("PUMP_RELEASE_ABORTED")
        except Exception:
            self._log.exception("PUMP_READER_RELEASE_ERROR")
        if released:
            self._log.info("READER_RELEASED")

        dropped = len(self._buffer)
        self._buffer.clear()
        self._time_sync.reset()
        self._batcher.flush(self._clock(), force=True)
        self._log.info(
            "PUMP_CLOSED received=%d consumed=%d dropped=%d",
            self.bytes_received, self.bytes_consumed, dropped,
        )
        return released
