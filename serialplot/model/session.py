# serialplot/model/session.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from serialplot.core.errors import ConfigurationError
from serialplot.transport.options import SerialOptions


class Source(str, Enum):
    SIMULATED = "simulated"
    SERIAL = "serial"


class ProtocolName(str, Enum):
    DEFAULT = "default"
    FIREWATER = "firewater"
    JUSTFLOAT = "justfloat"
    ARESPLOT = "aresplot"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: "str | ProtocolName") -> "ProtocolName":
        if isinstance(value, ProtocolName):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown protocol '{value}'.",
                hint=f"Valid protocols: {[p.value for p in cls]}",
                details={"protocol": value},
            ) from None


@dataclass(frozen=True)
class SimConfig:
    num_channels: int = 4
    frequency: float = 1000.0
    amplitude: float = 1.0

    def __post_init__(self) -> None:
        if isinstance(self.num_channels, bool) or int(self.num_channels) < 1:
            raise ConfigurationError(
                f"Invalid simulation channel count: {self.num_channels!r}.",
                hint="Use at least one channel.",
            )
        if not math.isfinite(float(self.frequency)) or float(self.frequency) <= 0:
            raise ConfigurationError(
                f"Invalid simulation frequency: {self.frequency!r}.",
                hint="Frequency is in points per second and must be > 0.",
            )
        if not math.isfinite(float(self.amplitude)):
            raise ConfigurationError(f"Invalid simulation amplitude: {self.amplitude!r}.")
        object.__setattr__(self, "num_channels", int(self.num_channels))
        object.__setattr__(self, "frequency", float(self.frequency))
        object.__setattr__(self, "amplitude", float(self.amplitude))


@dataclass(frozen=True)
class SessionConfig:
    """
    What to collect and how to parse it.

    Only sim_params and parser_source may change while a session runs.
    """
    source: Source = Source.SIMULATED
    protocol: ProtocolName = ProtocolName.DEFAULT
    parser_source: Optional[str] = None
    serial_options: SerialOptions = field(default_factory=SerialOptions)
    sim_params: SimConfig = field(default_factory=SimConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "source", Source(self.source))
        object.__setattr__(self, "protocol", ProtocolName.parse(self.protocol))
