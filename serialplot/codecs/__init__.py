# codecs/__init__.py

from .frames import (
    AresAck,
    AresError,
    AresMonitorFrame,
    Frame,
    JustFloatFrame,
    ParseResult,
    TextLine,
    Unidentified,
)
from .base import Codec

__all__ = [
    "Frame", "ParseResult",
    "TextLine", "JustFloatFrame", "AresMonitorFrame", "AresAck", "AresError", "Unidentified",
    "Codec",
]
