# serialplot/interfaces/command_sink.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol


@dataclass(frozen=True, slots=True)
class CommandEvent:
    """
    Aresplot request outcome (for tracing/debugging).
    Keep this small + stable; put details into payload.
    """
    name: str                   # e.g. "START_MONITOR"
    kind: str                   # "ok" | "nack" | "timeout" | "send_failed" | "cancelled"
    payload: Optional[Mapping[str, Any]] = None
    request_id: Optional[str] = None


class CommandSink(Protocol):
    def on_command(self, event: CommandEvent) -> None: ...
    def close(self) -> None: ...
