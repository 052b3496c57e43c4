# serialplot/model/sample.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True, slots=True)
class Sample:
    """
    One parsed frame worth of channel values plus a host timestamp.

    timestamp_ms is a monotonic host clock reading in milliseconds.
    Samples without values carry raw bytes for the terminal view
    (unidentified segments, empty lines, forced line breaks).
    """
    timestamp_ms: float
    values: Tuple[float, ...] = ()
    raw: Optional[bytes] = None
    unidentified: bool = False

    @property
    def has_values(self) -> bool:
        return len(self.values) > 0


Batch = List[Sample]
