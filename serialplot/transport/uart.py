# serialplot/transport/uart.py
from __future__ import annotations

from typing import Optional

import serial
from serial import SerialException

from .base import Transport
from .errors import TransportIOError, TransportOpenError
from .options import SerialOptions


class UARTTransport(Transport):
    """
    Serial port transport implemented via pyserial.

    read(n) returns what is already waiting (at least one byte or a timeout),
    capped at n, so the pump sees data as soon as it arrives.
    """

    def __init__(self, port: str, options: Optional[SerialOptions] = None, timeout: float = 0.05):
        self.port = port
        self.options = options or SerialOptions()
        self.timeout = timeout
        self.ser: Optional[serial.Serial] = None

    def open(self) -> None:
        kwargs = self.options.to_serial_kwargs()
        try:
            self.ser = serial.Serial(
                self.port,
                timeout=self.timeout,
                write_timeout=self.timeout,
                **kwargs,
            )
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()
        except SerialException as e:
            self.ser = None
            raise TransportOpenError(str(e)) from None

    def close(self) -> None:
        if self.ser is not None:
            try:
                self.ser.close()
            finally:
                self.ser = None

    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    def read(self, n: int) -> bytes:
        ser = self.ser
        if ser is None:
            raise TransportIOError("read while transport not open")

        try:
            waiting = ser.in_waiting
            return ser.read(max(1, min(int(n), waiting)))
        except SerialException as e:
            self.ser = None
            raise TransportIOError(f"UART read failed: {e}") from None

    def write(self, data: bytes) -> int:
        if self.ser is None:
            raise TransportIOError("write while transport not open")

        try:
            return self.ser.write(data)
        except SerialException as e:
            self.ser = None
            raise TransportIOError(f"UART write failed: {e}") from None

    def flush(self) -> None:
        if self.ser is None:
            raise TransportIOError("flush while transport not open")

        try:
            self.ser.flush()
        except SerialException as e:
            self.ser = None
            raise TransportIOError(f"UART flush failed: {e}") from None

    def cancel_read(self) -> None:
        ser = self.ser
        if ser is None:
            return
        try:
            ser.cancel_read()
        except (AttributeError, SerialException):
            # Port types without cancel support fall back to the read timeout.
            pass
