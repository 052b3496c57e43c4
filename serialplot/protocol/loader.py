# serialplot/protocol/loader.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFINITIONS_DIR = Path(__file__).resolve().parent / "definitions"


class ProtocolLoader:
    """Load the Aresplot protocol YAML definition files into dicts."""

    REQUIRED_FILES = (
        "constants.yml",
        "commands.yml",
        "frames.yml",
        "types.yml",
        "errors.yml",
    )

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir is not None else DEFINITIONS_DIR

        # Extracted structures used by Protocol(...)
        self.constants: Dict[str, Any] = {}
        self.commands: Dict[str, Any] = {}
        self.frames: Dict[str, Any] = {}
        self.types: Dict[str, Any] = {}
        self.errors: Dict[str, Any] = {}

    def load_all(self) -> "ProtocolLoader":
        for fn in self.REQUIRED_FILES:
            path = self.config_dir / fn
            if not path.exists():
                raise FileNotFoundError(f"Protocol file not found: {path}")

        self.constants = self._load_yaml("constants.yml")
        self.commands = self._load_yaml("commands.yml").get("commands", {}) or {}
        self.frames = self._load_yaml("frames.yml").get("frames", {}) or {}
        self.types = self._load_yaml("types.yml").get("types", {}) or {}
        self.errors = self._load_yaml("errors.yml").get("errors", {}) or {}

        # Basic shape validation
        if not isinstance(self.constants, dict):
            raise ValueError("constants.yml must be a mapping")
        for key in ("sop", "eop", "header_size", "trailer_size", "max_payload"):
            if key not in self.constants:
                raise ValueError(f"constants.yml is missing '{key}'")
        if not isinstance(self.commands, dict):
            raise ValueError("commands.yml must contain 'commands' mapping")
        if not isinstance(self.frames, dict):
            raise ValueError("frames.yml must contain 'frames' mapping")
        if not isinstance(self.types, dict):
            raise ValueError("types.yml must contain 'types' mapping")
        if not isinstance(self.errors, dict):
            raise ValueError("errors.yml must contain 'errors' mapping")
        return self

    def protocol_version(self) -> int:
        """
        Wire protocol version declared in constants.yml.
        Defaults to 0 if not specified.
        """
        v = self.constants.get("protocol_version", 0)
        try:
            return int(v)
        except Exception:
            raise ValueError(f"Invalid protocol version in constants.yml: {v!r}")

    def _load_yaml(self, filename: str) -> Dict[str, Any]:
        path = self.config_dir / filename
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
