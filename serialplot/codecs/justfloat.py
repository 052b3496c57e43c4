# serialplot/codecs/justfloat.py
from __future__ import annotations

import logging
import struct
from typing import Optional

from .base import Buffer, Codec
from .frames import JustFloatFrame, ParseResult

TAIL = b"\x00\x00\x80\x7f"
FLOAT_SIZE = 4


class JustFloatCodec(Codec):
    """
    Binary frames: N x float32-LE followed by the tail 00 00 80 7F.

    A segment whose length before the tail is not a positive multiple of 4
    is consumed with no values so the stream resynchronises on the next tail.
    """

    name = "justfloat"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)

    def parse(self, buffer: Buffer) -> Optional[ParseResult]:
        data = buffer.tobytes() if isinstance(buffer, memoryview) else buffer
        tail_idx = data.find(TAIL)
        if tail_idx < 0:
            return None

        consumed = tail_idx + len(TAIL)
        raw = bytes(data[:consumed])

        if tail_idx == 0 or tail_idx % FLOAT_SIZE != 0:
            self._log.warning("JUSTFLOAT_BAD_SEGMENT data_len=%d, consuming", tail_idx)
            return ParseResult(JustFloatFrame(values=(), raw=raw), consumed)

        values = struct.unpack_from(f"<{tail_idx // FLOAT_SIZE}f", data, 0)
        return ParseResult(JustFloatFrame(values=tuple(values), raw=raw), consumed)
