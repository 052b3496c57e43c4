# serialplot/runtime/event_bus.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

Handler = Callable[[Any], None]

DATA_BATCH = "dataBatch"
STATUS = "status"
PARSER_STATUS = "parserStatus"
CONNECTED = "connected"
DISCONNECTED = "disconnected"
ERROR = "error"
ACK_RECEIVED = "ackReceived"
MCU_ERROR = "mcuError"

EVENTS = (DATA_BATCH, STATUS, PARSER_STATUS, CONNECTED, DISCONNECTED, ERROR, ACK_RECEIVED, MCU_ERROR)


class EventBus:
    """
    Synchronous publish/subscribe for the coordinator's consumer events.

    Handlers of one event run in subscription order; events are delivered in
    emission order. A failing handler is logged and does not stop delivery.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._handlers: Dict[str, List[Handler]] = {name: [] for name in EVENTS}

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a function that unsubscribes it."""
        if event not in self._handlers:
            raise ValueError(f"Unknown event '{event}' (valid: {list(EVENTS)})")
        with self._lock:
            self._handlers[event].append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers[event]
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def handler_count(self, event: str) -> int:
        with self._lock:
            return len(self._handlers.get(event, []))

    def emit(self, event: str, payload: Any = None) -> int:
        """Deliver payload to every handler of event; returns the number called."""
        if event not in self._handlers:
            raise ValueError(f"Unknown event '{event}'")
        with self._lock:
            handlers = list(self._handlers[event])
            for handler in handlers:
                try:
                    handler(payload)
                except Exception:
                    self._log.exception("EVENT_HANDLER_ERROR event=%s", event)
        return len(handlers)

    def clear(self) -> None:
        with self._lock:
            for handlers in self._handlers.values():
                handlers.clear()
