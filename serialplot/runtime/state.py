# serialplot/runtime/state.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConnectionState(str, Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    COLLECTING = "Collecting"
    STOPPING = "Stopping"
    FAULTED = "Faulted"


@dataclass(frozen=True)
class BufferEstimate:
    """Seconds of data the host buffer holds when full, and seconds until it is."""
    total_s: float
    remaining_s: float


@dataclass(frozen=True)
class PipelineStatus:
    """
    A snapshot of the coordinator, safe to share across threads.
    """
    state: ConnectionState
    source: str
    protocol: str
    port: Optional[str] = None
    buffered_points: int = 0
    max_points: int = 0
    rate_hz: float = 0.0
    estimate: Optional[BufferEstimate] = None
    last_error: Optional[str] = None
