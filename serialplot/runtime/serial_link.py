# serialplot/runtime/serial_link.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from serialplot.core.errors import DeviceConnectError, InvalidStateError
from serialplot.interfaces.command_sink import CommandSink
from serialplot.protocol.client import AresplotClient
from serialplot.protocol.core.defs import Protocol
from serialplot.protocol.engine import AresplotEngine
from serialplot.transport.base import Transport
from serialplot.transport.errors import TransportError, TransportOpenError
from serialplot.transport.options import SerialOptions
from serialplot.transport.stream import ReadableStream, WritableStream


class SerialLink:
    """
    One open serial connection: transport, its two stream halves and the
    Aresplot request engine holding the writer.

    Responsibilities:
      - open/close the underlying transport
      - split it into a readable half (handed to the worker while collecting)
        and a writable half (kept for control-plane sends)
      - acquire the engine's writer once at open and hold it until close
      - translate low-level failures into operator-safe errors
    """

    def __init__(
        self,
        port: str,
        options: SerialOptions,
        transport: Transport,
        *,
        proto: Protocol,
        timeout_s: Optional[float] = None,
        read_chunk_size: Optional[int] = None,
        cmd_sink: Optional[CommandSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.port = port
        self.options = options
        self.transport = transport
        self._proto = proto
        self._timeout_s = timeout_s
        self._cmd_sink = cmd_sink
        self._log = logger or logging.getLogger(__name__)

        chunk = options.buffer_size if read_chunk_size is None else min(options.buffer_size, int(read_chunk_size))
        self.readable = ReadableStream(transport, chunk_size=chunk, logger=self._log)
        self.writable = WritableStream(transport, logger=self._log)
        self._engine: Optional[AresplotEngine] = None

    @property
    def is_open(self) -> bool:
        try:
            return self.transport.is_open()
        except Exception:
            return False

    @property
    def engine(self) -> AresplotEngine:
        if self._engine is None:
            raise InvalidStateError("Serial link is not open.")
        return self._engine

    def client(self, poll: Optional[Callable[[], object]] = None) -> AresplotClient:
        return AresplotClient(self.engine, poll=poll)

    def open(self) -> None:
        if self._engine is not None:
            return

        try:
            self.transport.open()
        except TransportOpenError as e:
            self._log.error("TRANSPORT_OPEN_FAILED port=%s err=%s", self.port, e)
            raise DeviceConnectError(
                f"Could not open serial port {self.port}.",
                hint=str(e),
                details={"port": self.port, "baud_rate": self.options.baud_rate},
            ) from None
        except TransportError as e:
            self._log.error("TRANSPORT_OPEN_ERROR port=%s err=%s", self.port, e)
            raise DeviceConnectError(
                f"Transport error while opening {self.port}.",
                hint=str(e),
                details={"port": self.port},
            ) from None

        engine = AresplotEngine(
            self._proto,
            self.writable,
            timeout_s=self._timeout_s,
            cmd_sink=self._cmd_sink,
            logger=self._log,
        )
        try:
            engine.acquire_writer()
        except TransportError as e:
            self._log.error("WRITER_ACQUIRE_FAILED port=%s err=%s", self.port, e)
            self._close_transport()
            raise DeviceConnectError(
                f"Could not acquire a writer on {self.port}.",
                hint=str(e),
                details={"port": self.port},
            ) from None
        self._engine = engine
        self._log.info("SERIAL_LINK_OPEN port=%s baud=%d", self.port, self.options.baud_rate)

    def close(self) -> None:
        engine, self._engine = self._engine, None
        if engine is not None:
            try:
                engine.close()
            except Exception:
                self._log.exception("ENGINE_CLOSE_FAILED")
        self._close_transport()
        self._log.info("SERIAL_LINK_CLOSED port=%s", self.port)

    def _close_transport(self) -> None:
        try:
            self.transport.close()
        except Exception:
            self._log.exception("TRANSPORT_CLOSE_FAILED")

    def __enter__(self) -> "SerialLink":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
