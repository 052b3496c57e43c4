# serialplot/transport/options.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import serial

from serialplot.core.errors import SerialOptionsError

DEFAULT_BAUD_RATE = 115200
DEFAULT_BUFFER_SIZE = 32768

_DATA_BITS = {7: serial.SEVENBITS, 8: serial.EIGHTBITS}
_STOP_BITS = {1: serial.STOPBITS_ONE, 2: serial.STOPBITS_TWO}
_PARITY = {"none": serial.PARITY_NONE, "even": serial.PARITY_EVEN, "odd": serial.PARITY_ODD}
_FLOW_CONTROL = ("none", "hardware")


@dataclass(frozen=True)
class SerialOptions:
    """
    Inbound serial options.

    validate() must pass before a port is opened; it is called by the
    connection layer, not on construction, so options can be assembled
    from partial CLI / UI input first.
    """
    baud_rate: int = DEFAULT_BAUD_RATE
    data_bits: int = 8
    stop_bits: int = 1
    parity: str = "none"
    flow_control: str = "none"
    buffer_size: int = DEFAULT_BUFFER_SIZE

    def validate(self) -> "SerialOptions":
        if isinstance(self.baud_rate, bool) or not isinstance(self.baud_rate, int) or self.baud_rate <= 0:
            raise SerialOptionsError(
                f"Invalid baud rate: {self.baud_rate!r}.",
                hint="Baud rate must be a positive integer, e.g. 115200.",
                details={"baud_rate": self.baud_rate},
            )
        if self.data_bits not in _DATA_BITS:
            raise SerialOptionsError(
                f"Invalid data bits: {self.data_bits!r}.",
                hint="Use 7 or 8.",
                details={"data_bits": self.data_bits},
            )
        if self.stop_bits not in _STOP_BITS:
            raise SerialOptionsError(
                f"Invalid stop bits: {self.stop_bits!r}.",
                hint="Use 1 or 2.",
                details={"stop_bits": self.stop_bits},
            )
        if str(self.parity).lower() not in _PARITY:
            raise SerialOptionsError(
                f"Invalid parity: {self.parity!r}.",
                hint=f"Valid values: {sorted(_PARITY)}",
                details={"parity": self.parity},
            )
        if str(self.flow_control).lower() not in _FLOW_CONTROL:
            raise SerialOptionsError(
                f"Invalid flow control: {self.flow_control!r}.",
                hint=f"Valid values: {list(_FLOW_CONTROL)}",
                details={"flow_control": self.flow_control},
            )
        if isinstance(self.buffer_size, bool) or not isinstance(self.buffer_size, int) or self.buffer_size <= 0:
            raise SerialOptionsError(
                f"Invalid buffer size: {self.buffer_size!r}.",
                details={"buffer_size": self.buffer_size},
            )
        return self

    def to_serial_kwargs(self) -> Dict[str, Any]:
        """pyserial constructor kwargs (validates first)."""
        self.validate()
        return {
            "baudrate": self.baud_rate,
            "bytesize": _DATA_BITS[self.data_bits],
            "stopbits": _STOP_BITS[self.stop_bits],
            "parity": _PARITY[str(self.parity).lower()],
            "rtscts": str(self.flow_control).lower() == "hardware",
        }
