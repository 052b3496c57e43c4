# serialplot/transport/stream.py
from __future__ import annotations

import logging
import threading
from typing import Optional

from .base import Transport
from .errors import StreamAborted, StreamLockedError, TransportIOError
from .options import DEFAULT_BUFFER_SIZE


class ReadableStream:
    """
    Inbound half of an open transport.

    At most one StreamReader may hold the stream at a time. The stream
    counts lock acquisitions and releases so callers can check that every
    acquisition was released exactly once.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        chunk_size: int = DEFAULT_BUFFER_SIZE,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.chunk_size = int(chunk_size)
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._reader: Optional[StreamReader] = None
        self.acquisitions = 0
        self.releases = 0

    @property
    def locked(self) -> bool:
        with self._lock:
            return self._reader is not None

    def get_reader(self) -> "StreamReader":
        with self._lock:
            if self._reader is not None:
                raise StreamLockedError("readable stream is already locked to a reader")
            reader = StreamReader(self)
            self._reader = reader
            self.acquisitions += 1
        self._log.debug("READER_ACQUIRED n=%d", self.acquisitions)
        return reader

    def _release(self, reader: "StreamReader") -> bool:
        with self._lock:
            if self._reader is not reader:
                return False
            self._reader = None
            self.releases += 1
        self._log.debug("READER_RELEASED n=%d", self.releases)
        return True


class StreamReader:
    """
    Reader lock on a ReadableStream.

    read() returns:
      - a non-empty chunk when data arrived,
      - b"" when the transport read timed out with no data,
      - None when the stream is done (transport closed).
    After cancel(), read() raises StreamAborted.
    """

    def __init__(self, stream: ReadableStream):
        self._stream = stream
        self._cancelled = threading.Event()
        self._released = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def read(self) -> Optional[bytes]:
        if self._released:
            raise StreamLockedError("reader lock already released")
        if self._cancelled.is_set():
            raise StreamAborted("read cancelled")

        transport = self._stream.transport
        if not transport.is_open():
            return None

        try:
            chunk = transport.read(self._stream.chunk_size)
        except TransportIOError:
            if self._cancelled.is_set():
                raise StreamAborted("read cancelled") from None
            raise

        if self._cancelled.is_set():
            raise StreamAborted("read cancelled")
        return bytes(chunk) if chunk else b""

    def cancel(self) -> None:
        """Interrupt a pending read. Safe from any thread, idempotent."""
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        try:
            self._stream.transport.cancel_read()
        except Exception:
            self._stream._log.exception("READER_CANCEL_ERROR")

    def release_lock(self) -> bool:
        """Release the reader lock. Returns True only for the releasing call."""
        if self._released:
            return False
        self._released = True
        return self._stream._release(self)


class WritableStream:
    """Outbound half of an open transport. At most one StreamWriter at a time."""

    def __init__(self, transport: Transport, *, logger: Optional[logging.Logger] = None):
        self.transport = transport
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._writer: Optional[StreamWriter] = None

    @property
    def locked(self) -> bool:
        with self._lock:
            return self._writer is not None

    def get_writer(self) -> "StreamWriter":
        with self._lock:
            if self._writer is not None:
                raise StreamLockedError("writable stream is already locked to a writer")
            if not self.transport.is_open():
                raise TransportIOError("writer requested while transport not open")
            writer = StreamWriter(self)
            self._writer = writer
        self._log.debug("WRITER_ACQUIRED")
        return writer

    def _release(self, writer: "StreamWriter") -> bool:
        with self._lock:
            if self._writer is not writer:
                return False
            self._writer = None
        self._log.debug("WRITER_RELEASED")
        return True


class StreamWriter:
    def __init__(self, stream: WritableStream):
        self._stream = stream
        self._released = False

    def write(self, data: bytes) -> int:
        if self._released:
            raise StreamLockedError("writer lock already released")
        transport = self._stream.transport
        n = transport.write(bytes(data))
        try:
            transport.flush()
        except TransportIOError:
            raise
        except Exception:
            self._stream._log.debug("WRITER_FLUSH_IGNORED")
        return n

    def release_lock(self) -> bool:
        if self._released:
            return False
        self._released = True
        return self._stream._release(self)
