# serialplot/codecs/aresplot.py
from __future__ import annotations

import logging
from typing import Optional

from serialplot.protocol.core.defs import Protocol, load_default_protocol
from serialplot.protocol.core.parser import AresFrameParser
from .base import Buffer, Codec
from .frames import ParseResult


class AresplotCodec(Codec):
    """Aresplot framed binary; see AresFrameParser for the resync rules."""

    name = "aresplot"

    def __init__(self, proto: Optional[Protocol] = None, logger: Optional[logging.Logger] = None):
        self.proto = proto or load_default_protocol()
        self._parser = AresFrameParser(self.proto, logger=logger)

    def parse(self, buffer: Buffer) -> Optional[ParseResult]:
        return self._parser.parse(buffer)
