# serialplot/app/sinks.py
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from threading import Lock
from typing import Optional, Sequence, TextIO

from serialplot.interfaces.batch_sink import BatchSink
from serialplot.interfaces.command_sink import CommandEvent, CommandSink
from serialplot.model.sample import Sample


class TerminalSink(BatchSink):
    """
    Raw byte view of the stream, like a serial terminal.

    Text mode decodes each sample's raw bytes as UTF-8 (lossy); hex mode
    prints them as space separated hex. Samples without raw bytes (the
    simulator) are shown as their values.
    """

    def __init__(self, out: Optional[TextIO] = None, *, hex_mode: bool = False, show_unidentified: bool = True):
        self._out = out or sys.stdout
        self._hex = hex_mode
        self._show_unidentified = show_unidentified
        self._lock = Lock()
        self.lines_written = 0

    def format_sample(self, s: Sample) -> Optional[str]:
        if s.unidentified and not self._show_unidentified:
            return None
        if s.raw is None:
            return ",".join(f"{v:g}" for v in s.values)
        if self._hex:
            return s.raw.hex(" ").upper()
        return s.raw.decode("utf-8", errors="replace").rstrip("\r\n")

    def on_batch(self, batch: Sequence[Sample]) -> None:
        lines = [line for line in (self.format_sample(s) for s in batch) if line is not None]
        if not lines:
            return
        with self._lock:
            self._out.write("\n".join(lines) + "\n")
            self.lines_written += len(lines)

    def close(self) -> None:
        with self._lock:
            try:
                self._out.flush()
            except ValueError:
                # stream already closed
                pass


@dataclass
class CommandTraceLogger(CommandSink):
    """Logs every Aresplot request outcome with its round-trip time."""
    logger: logging.Logger

    def on_command(self, event: CommandEvent) -> None:
        payload = event.payload or {}
        rtt = payload.get("rtt_ms")
        level = logging.INFO if event.kind == "ok" else logging.WARNING
        self.logger.log(
            level,
            "ARES_CMD name=%s kind=%s id=%s rtt_ms=%s",
            event.name,
            event.kind,
            event.request_id,
            f"{rtt:.1f}" if isinstance(rtt, (int, float)) else "-",
        )

    def close(self) -> None:
        return None
