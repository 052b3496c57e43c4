# serialplot/codecs/frames.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union


@dataclass(frozen=True, slots=True)
class TextLine:
    values: Tuple[float, ...]
    raw: bytes


@dataclass(frozen=True, slots=True)
class JustFloatFrame:
    values: Tuple[float, ...]
    raw: bytes


@dataclass(frozen=True, slots=True)
class AresMonitorFrame:
    mcu_ms: int
    values: Tuple[float, ...]
    raw: bytes

    @property
    def payload(self) -> bytes:
        return self.raw[4:-2]


@dataclass(frozen=True, slots=True)
class AresAck:
    cmd_id: int
    status: int
    raw: bytes

    @property
    def payload(self) -> bytes:
        return self.raw[4:-2]


@dataclass(frozen=True, slots=True)
class AresError:
    code: int
    message: bytes
    raw: bytes

    @property
    def payload(self) -> bytes:
        return self.raw[4:-2]

    @property
    def text(self) -> str:
        return self.message.decode("utf-8", errors="replace")


@dataclass(frozen=True, slots=True)
class Unidentified:
    """Bytes a codec could not interpret, preserved for display/logging."""
    raw: bytes
    reason: str
    warning: bool = False


Frame = Union[TextLine, JustFloatFrame, AresMonitorFrame, AresAck, AresError, Unidentified]


@dataclass(frozen=True, slots=True)
class ParseResult:
    frame: Frame
    consumed: int
