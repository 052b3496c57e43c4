# serialplot/transport/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Transport(ABC):
    """
    Abstract byte transport (serial port, loopback, ...).

    Contract:
      - open()/close() manage the underlying connection.
      - read(n) returns 0..n bytes. It may return fewer than n bytes due to timeouts
        and returns b"" when no data arrived within the read timeout.
      - write(data) returns the number of bytes written.
      - flush() forces pending output to be transmitted.
      - cancel_read() interrupts a blocked read() from another thread.
    """

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    def read(self, n: int) -> bytes: ...

    @abstractmethod
    def write(self, data: bytes) -> int: ...

    @abstractmethod
    def flush(self) -> None: ...

    def cancel_read(self) -> None:
        return None

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()
