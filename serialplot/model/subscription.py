# serialplot/model/subscription.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from serialplot.core.errors import ConfigurationError

MAX_SUBSCRIPTIONS = 10


@dataclass(frozen=True)
class Subscription:
    """One MCU variable to monitor: address + original C type (name or code)."""
    address: int
    original_type: "int | str"
    display_name: Optional[str] = None

    def __post_init__(self) -> None:
        addr = int(self.address)
        if not 0 <= addr <= 0xFFFFFFFF:
            raise ConfigurationError(
                f"Variable address out of range: {self.address!r}.",
                hint="Addresses are unsigned 32-bit values.",
            )
        object.__setattr__(self, "address", addr)

    @property
    def label(self) -> str:
        return self.display_name or f"0x{self.address:08X}"


class SubscriptionSet:
    """
    Ordered set of monitored variables (at most MAX_SUBSCRIPTIONS).

    Pushed to the MCU as a whole: START_MONITOR is authoritative, never a delta.
    """

    def __init__(self, items: Iterable[Subscription] = (), *, limit: int = MAX_SUBSCRIPTIONS):
        self._limit = int(limit)
        self._items: List[Subscription] = []
        for s in items:
            self.add(s)

    def add(self, sub: Subscription) -> None:
        if any(s.address == sub.address for s in self._items):
            raise ConfigurationError(f"Variable 0x{sub.address:08X} is already monitored.")
        if len(self._items) >= self._limit:
            raise ConfigurationError(
                f"Cannot monitor more than {self._limit} variables.",
                hint="Remove a variable before adding another.",
                details={"limit": self._limit},
            )
        self._items.append(sub)

    def remove(self, address: int) -> None:
        self._items = [s for s in self._items if s.address != int(address)]

    def clear(self) -> None:
        self._items.clear()

    def channel_names(self) -> List[str]:
        return [s.label for s in self._items]

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
