# protocol/core/__init__.py

from .defs import Protocol, load_default_protocol
from .command import CommandFrame, encode_frame
from .parser import AresFrameParser

__all__ = [
    "Protocol", "load_default_protocol",
    "CommandFrame", "encode_frame",
    "AresFrameParser",
]
