# serialplot/codecs/user.py
from __future__ import annotations

import math
import threading
from typing import Any, Mapping, Optional, Tuple

from serialplot.core.errors import ParserError
from .base import Buffer, Codec
from .frames import ParseResult, TextLine
from .sandbox import SandboxError, compile_restricted

PROBE_INPUT = b"1,2\n"
PROBE_TIMEOUT_S = 1.0


class UserParserShapeError(ValueError):
    """User parse function returned something other than (values, frame_length)."""


def coerce_result(result: Any, available: int) -> Tuple[Optional[Tuple[float, ...]], int]:
    """
    Normalise a user parser return value.

    Accepted shapes:
      - None                                   -> need more data
      - {"values": [...] | None, "frame_length": n}  ("frameByteLength" also accepted)
      - (values, frame_length)
    """
    if result is None:
        return None, 0

    if isinstance(result, Mapping):
        if "values" not in result:
            raise UserParserShapeError("result mapping has no 'values'")
        values = result.get("values")
        length = result.get("frame_length", result.get("frameByteLength"))
    elif isinstance(result, (tuple, list)) and len(result) == 2:
        values, length = result
    else:
        raise UserParserShapeError(f"unsupported result type {type(result).__name__}")

    if isinstance(length, bool) or not isinstance(length, int):
        raise UserParserShapeError(f"frame length must be an int (got {type(length).__name__})")
    if length < 0 or length > available:
        raise UserParserShapeError(f"frame length {length} outside [0, {available}]")

    if values is None:
        return None, length

    out = []
    try:
        for v in values:
            if isinstance(v, bool) or not isinstance(v, (int, float)):
                raise UserParserShapeError(f"value {v!r} is not a number")
            out.append(float(v))
    except TypeError:
        raise UserParserShapeError("values must be a list of numbers or None") from None

    return tuple(x if math.isfinite(x) else float("nan") for x in out), length


class UserParserCodec(Codec):
    """Codec around a sandboxed user parse(data) function."""

    name = "custom"
    line_oriented = True

    def __init__(self, source: str):
        try:
            self._fn = compile_restricted(source)
        except SandboxError as e:
            raise ParserError(
                f"Invalid custom parser: {e}",
                hint="Write a body using `data` (bytes) that returns {'values': [...], 'frame_length': n}.",
            ) from None
        self.source = source

    def probe(self, timeout_s: float = PROBE_TIMEOUT_S) -> "UserParserCodec":
        """
        Run the parser once on a fixed input; raises ParserError on any failure.

        The call runs on a daemon thread so a parser that never returns is
        rejected after timeout_s instead of blocking the caller. Such a thread
        cannot be killed and keeps running until the process exits.
        parse() itself has no time limit.
        """
        outcome: dict = {}

        def _run() -> None:
            try:
                outcome["result"] = self._fn(PROBE_INPUT)
            except Exception as e:
                outcome["error"] = e

        t = threading.Thread(target=_run, name="user-parser-probe", daemon=True)
        t.start()
        t.join(timeout_s)
        if t.is_alive():
            raise ParserError(
                f"Invalid custom parser: probe did not return within {timeout_s:g}s",
                hint="Check the parser for loops that never end.",
            )

        try:
            if "error" in outcome:
                raise outcome["error"]
            coerce_result(outcome.get("result"), len(PROBE_INPUT))
        except Exception as e:
            raise ParserError(
                f"Invalid custom parser: probe failed ({type(e).__name__}: {e})",
                hint=f"The parser is called with {PROBE_INPUT!r} before activation.",
            ) from None
        return self

    def parse(self, buffer: Buffer) -> Optional[ParseResult]:
        data = bytes(buffer)
        values, length = coerce_result(self._fn(data), len(data))
        if values is None or length <= 0:
            return None
        return ParseResult(TextLine(values=values, raw=data[:length]), length)


def compile_user_parser(source: Optional[str]) -> UserParserCodec:
    """Compile and probe. Raises ParserError."""
    if source is None or not str(source).strip():
        raise ParserError(
            "Custom parser has no code.",
            hint="Provide parser source (e.g. --parser-file).",
        )
    return UserParserCodec(source).probe()
