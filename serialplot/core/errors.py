# serialplot/core/errors.py
from __future__ import annotations


class SerialPlotError(Exception):
    """
    Base class for all expected operational errors in serialplot.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, event payloads, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration / setup errors (rejected before any side effect)
# ---------------------------------------------------------------------------

class ConfigurationError(SerialPlotError):
    """
    Configuration is invalid or not allowed in the current state.

    Examples:
      - missing parser source for the custom protocol
      - unknown protocol name
      - out-of-range tunable in a YAML config file
    """
    code = "config_error"


class SerialOptionsError(ConfigurationError):
    """
    Serial port options are invalid.

    Examples:
      - baud rate <= 0
      - data bits not in {7, 8}
      - unknown parity / flow control
    """
    code = "serial_options_error"


class InvalidStateError(SerialPlotError):
    """
    Operation is not allowed in the current connection state.

    Examples:
      - start() while Disconnected with a serial source
      - protocol change while Collecting
      - any operation after a fatal worker error
    """
    code = "invalid_state"


class ParserError(SerialPlotError):
    """
    A user-supplied parser was rejected.

    Examples:
      - syntax error
      - forbidden construct (import, dunder access)
      - probe call raised or returned a bad shape
    """
    code = "parser_error"


# ---------------------------------------------------------------------------
# Transport / connection lifecycle errors
# ---------------------------------------------------------------------------

class DeviceConnectError(SerialPlotError):
    """
    Serial port could not be opened.

    Examples:
      - port not found
      - permission denied
      - device already in use
    """
    code = "device_connect_error"


class DeviceDisconnectedError(SerialPlotError):
    """
    Device was previously connected but is no longer reachable.

    Examples:
      - USB-serial adapter unplugged
      - OS-level I/O error during read/write
    """
    code = "device_disconnected"


class StreamFaultError(SerialPlotError):
    """
    The inbound or outbound stream failed for a reason other than cancellation.
    """
    code = "stream_fault"


# ---------------------------------------------------------------------------
# Aresplot control plane
# ---------------------------------------------------------------------------

class McuRequestError(SerialPlotError):
    """
    An Aresplot request did not complete with an OK ACK.

    Examples:
      - no ACK within the request timeout
      - MCU answered with a non-OK status
      - the request frame could not be written
    """
    code = "mcu_request_error"


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------

class WorkerFaultError(SerialPlotError):
    """
    The acquisition worker died. Terminal: the pipeline must be recreated.
    """
    code = "worker_fault"
