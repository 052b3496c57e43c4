# serialplot/codecs/text.py
from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

from .base import Buffer, Codec
from .frames import ParseResult, TextLine

LF = 0x0A
CR = 0x0D

_SEPARATORS = re.compile(r"[\s,]+")
# Leading decimal number of a token ("12abc" -> 12), as lenient device output expects.
_NUMBER_PREFIX = re.compile(r"[+-]?(?:Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)")


def parse_number(token: str) -> Optional[float]:
    m = _NUMBER_PREFIX.match(token.strip())
    if m is None:
        return None
    return float(m.group(0))


def numbers_from(tokens: Iterable[str]) -> Tuple[float, ...]:
    out = []
    for tok in tokens:
        v = parse_number(tok)
        if v is not None:
            out.append(v)
    return tuple(out)


def split_line(buffer: Buffer) -> Optional[Tuple[bytes, bytes]]:
    """
    Locate the first LF-terminated line.

    Returns (line_bytes_without_terminator, raw_bytes_including_LF) or None.
    A CR directly before the LF is not part of the line.
    """
    if isinstance(buffer, memoryview):
        buffer = buffer.tobytes()
    idx = buffer.find(b"\n")
    if idx < 0:
        return None
    end = idx - 1 if idx > 0 and buffer[idx - 1] == CR else idx
    return bytes(buffer[:end]), bytes(buffer[: idx + 1])


class DefaultCodec(Codec):
    """Line-oriented text: numbers separated by commas and/or whitespace."""

    name = "default"
    line_oriented = True

    def parse(self, buffer: Buffer) -> Optional[ParseResult]:
        found = split_line(buffer)
        if found is None:
            return None
        line, raw = found

        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return ParseResult(TextLine(values=(), raw=raw), len(raw))

        values = numbers_from(_SEPARATORS.split(text))
        return ParseResult(TextLine(values=values, raw=raw), len(raw))


class FireWaterCodec(Codec):
    """Line-oriented text with an optional 'prefix:' before comma separated numbers."""

    name = "firewater"
    line_oriented = True

    def parse(self, buffer: Buffer) -> Optional[ParseResult]:
        found = split_line(buffer)
        if found is None:
            return None
        line, raw = found

        text = line.decode("utf-8", errors="replace")
        colon = text.rfind(":")
        if colon >= 0:
            text = text[colon + 1:]

        values = numbers_from(text.strip().split(","))
        return ParseResult(TextLine(values=values, raw=raw), len(raw))
