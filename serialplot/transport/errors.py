# serialplot/transport/errors.py
from __future__ import annotations

class TransportError(Exception):
    """Base class for transport-layer failures."""

class TransportOpenError(TransportError):
    pass

class TransportIOError(TransportError):
    pass

class StreamAborted(TransportError):
    """Raised by a reader whose pending read was cancelled. Expected on stop."""

class StreamLockedError(TransportError):
    """A reader or writer is already held on this stream half."""
