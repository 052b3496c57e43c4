from .base import Transport
from .errors import StreamAborted, StreamLockedError, TransportError, TransportIOError, TransportOpenError
from .options import DEFAULT_BAUD_RATE, DEFAULT_BUFFER_SIZE, SerialOptions
from .stream import ReadableStream, StreamReader, StreamWriter, WritableStream

__all__ = [
    "Transport",
    "TransportError", "TransportIOError", "TransportOpenError", "StreamAborted", "StreamLockedError",
    "DEFAULT_BAUD_RATE", "DEFAULT_BUFFER_SIZE", "SerialOptions",
    "ReadableStream", "StreamReader", "WritableStream", "StreamWriter",
]
