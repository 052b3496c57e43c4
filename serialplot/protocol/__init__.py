# protocol/__init__.py

# Core classes
from .core import AresFrameParser, CommandFrame, Protocol, encode_frame, load_default_protocol
from .client import AresplotClient
from .engine import AresplotEngine

__all__ = [
    "Protocol", "load_default_protocol",
    "AresFrameParser", "CommandFrame", "encode_frame",
    "AresplotEngine", "AresplotClient"]
