# serialplot/worker/messages.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from serialplot.model.session import ProtocolName, SimConfig, Source


class MessageType(str, Enum):
    """Worker -> host message kinds."""
    DATA_BATCH = "dataBatch"
    STATUS = "status"
    ERROR = "error"
    WARN = "warn"
    INFO = "info"


@dataclass(frozen=True)
class WorkerMessage:
    """
    One worker -> host message.

    Payload by type:
      dataBatch -> list[Sample]
      status    -> str
      error     -> SerialPlotError
      warn      -> Notice
      info      -> Notice | ParserStatus | SessionEnded | AresAck | AresError
    """
    type: MessageType
    payload: Any = None


@dataclass(frozen=True)
class Notice:
    source: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class SessionEnded:
    """
    The worker left a collecting session.

    For serial sessions this is posted after the reader lock was released,
    so the host may take the readable stream back. reason is one of
    stopped, done, fault, restarted, shutdown or idle (nothing was running).
    """
    source: Optional[Source]
    reason: str
    released: bool = False


# ---------------- Host -> worker commands ----------------

@dataclass(frozen=True)
class StartCommand:
    source: Source
    protocol: ProtocolName = ProtocolName.DEFAULT
    parser_source: Optional[str] = None
    sim_config: Optional[SimConfig] = None
    stream: Any = None  # ReadableStream; ownership moves to the worker


@dataclass(frozen=True)
class StopCommand:
    pass


@dataclass(frozen=True)
class UpdateActiveParserCommand:
    protocol: ProtocolName
    parser_source: Optional[str] = None


@dataclass(frozen=True)
class UpdateSimConfigCommand:
    sim_config: SimConfig


@dataclass(frozen=True)
class ShutdownCommand:
    pass


WorkerCommand = Union[
    StartCommand,
    StopCommand,
    UpdateActiveParserCommand,
    UpdateSimConfigCommand,
    ShutdownCommand,
]
