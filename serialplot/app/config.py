# serialplot/app/config.py
from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from serialplot.core.errors import ConfigurationError

DEFAULT_MAX_BUFFER_POINTS = 120_000
MIN_BUFFER_POINTS = 1_000


@dataclass(frozen=True)
class SerialPlotConfig:
    max_buffer_points: int = DEFAULT_MAX_BUFFER_POINTS
    batch_interval_ms: float = 10.0
    max_batch_samples: int = 5000
    sim_tick_ms: float = 10.0
    forced_break_bytes: int = 80
    read_chunk_size: int = 32768
    read_timeout_s: float = 0.05
    ares_timeout_s: float = 0.5
    rate_window_ms: float = 1000.0
    rate_decay_ms: float = 2000.0
    stop_timeout_s: float = 2.0
    allow_parser_update_while_collecting: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.max_buffer_points < MIN_BUFFER_POINTS:
            raise ConfigurationError(
                f"max_buffer_points={self.max_buffer_points} is below the minimum of {MIN_BUFFER_POINTS}.",
                details={"max_buffer_points": self.max_buffer_points},
            )
        for name in ("batch_interval_ms", "sim_tick_ms", "read_timeout_s", "ares_timeout_s",
                     "rate_window_ms", "rate_decay_ms", "stop_timeout_s"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be > 0 (got {getattr(self, name)!r}).")
        for name in ("max_batch_samples", "forced_break_bytes", "read_chunk_size"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1 (got {getattr(self, name)!r}).")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SerialPlotConfig":
        known = {f.name: f for f in fields(cls)}
        kwargs: dict = {}
        for key, value in (data or {}).items():
            if key not in known:
                raise ConfigurationError(
                    f"Unknown config key '{key}'.",
                    hint=f"Valid keys: {sorted(known)}",
                )
            kwargs[key] = cls._cast(key, known[key].type, value)
        return cls(**kwargs)

    @staticmethod
    def _cast(key: str, type_name: Any, value: Any) -> Any:
        type_name = str(type_name)
        try:
            if type_name == "bool":
                if isinstance(value, bool):
                    return value
                raise TypeError(f"expected bool, got {type(value).__name__}")
            if type_name == "int":
                if isinstance(value, bool) or not isinstance(value, int):
                    raise TypeError(f"expected int, got {type(value).__name__}")
                return value
            if type_name == "float":
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise TypeError(f"expected float, got {type(value).__name__}")
                return float(value)
            return str(value)
        except TypeError as e:
            raise ConfigurationError(f"Invalid value for config key '{key}'.", hint=str(e)) from None


def load_config(path: "str | Path") -> SerialPlotConfig:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Config file is not valid YAML: {path}", hint=str(e)) from None
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {path}")
    return SerialPlotConfig.from_mapping(data)
