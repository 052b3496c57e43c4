# serialplot/codecs/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar, Optional, Union

from .frames import ParseResult

Buffer = Union[bytes, bytearray, memoryview]


class Codec(ABC):
    """
    Stateless frame decoder.

    parse(buffer) returns the next frame plus the number of leading bytes it
    covers, or None when more data is needed. Codecs never mutate the buffer
    and never block; the caller owns the buffer and removes the consumed prefix.
    """

    name: ClassVar[str] = "codec"

    #: Text codecs get the pump's forced line break safety net.
    line_oriented: ClassVar[bool] = False

    @abstractmethod
    def parse(self, buffer: Buffer) -> Optional[ParseResult]: ...
