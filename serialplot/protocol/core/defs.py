# serialplot/protocol/core/defs.py
from __future__ import annotations

import struct
from functools import lru_cache
from typing import Any, Dict

from .checksum import xor_checksum
from .header import build_header, parse_header
from ..loader import ProtocolLoader


class Protocol:
    """Runtime access to Aresplot protocol metadata."""

    def __init__(self, loader: ProtocolLoader):
        self.constants: Dict[str, Any] = loader.constants
        self.commands: Dict[str, Dict[str, Any]] = loader.commands
        self.frames: Dict[str, Dict[str, Any]] = loader.frames
        self.types: Dict[str, int] = {str(k).upper(): int(v) for k, v in loader.types.items()}
        self.errors: Dict[str, int] = {str(k).upper(): int(v) for k, v in loader.errors.items()}
        self.version = loader.protocol_version()

        self.sop = int(self.constants["sop"])
        self.eop = int(self.constants["eop"])
        self.max_payload = int(self.constants["max_payload"])
        self.trailer_size = int(self.constants["trailer_size"])
        self.garbage_flush_threshold = int(self.constants.get("garbage_flush_threshold", 256))
        self.max_monitor_vars = int(self.constants.get("max_monitor_vars", 10))
        self.request_timeout_s = float(self.constants.get("request_timeout_ms", 500)) / 1000.0

        # SOP | CMD | LEN
        self.header_struct = struct.Struct("<BBH")
        if self.header_struct.size != int(self.constants["header_size"]):
            raise ValueError(
                f"header_size={self.constants['header_size']} does not match SOP|CMD|LEN layout"
            )

        # Fast lookup maps
        self.command_ids: Dict[str, int] = {}
        self.commands_by_id: Dict[int, str] = {}
        for name, cmd in self.commands.items():
            cid = int(cmd["cmd_id"])
            if cid in self.commands_by_id:
                raise ValueError(f"Duplicate cmd_id={cid} for commands '{name}' and '{self.commands_by_id[cid]}'")
            self.command_ids[name] = cid
            self.commands_by_id[cid] = name

        self.frame_ids: Dict[str, int] = {name: int(f["cmd_id"]) for name, f in self.frames.items()}
        self.frames_by_id: Dict[int, Dict[str, Any]] = {int(f["cmd_id"]): f for f in self.frames.values()}
        self.type_names: Dict[int, str] = {v: k for k, v in self.types.items()}
        self.status_names: Dict[int, str] = {v: k for k, v in self.errors.items()}

    # MCU -> PC frame ids
    @property
    def monitor_data_id(self) -> int:
        return self.frame_ids["MONITOR_DATA"]

    @property
    def ack_id(self) -> int:
        return self.frame_ids["ACK"]

    @property
    def error_report_id(self) -> int:
        return self.frame_ids["ERROR_REPORT"]

    @property
    def status_ok(self) -> int:
        return self.errors.get("OK", 0)

    def min_payload(self, frame_id: int) -> int:
        frame_def = self.frames_by_id.get(frame_id) or {}
        return int(frame_def.get("min_payload", 0))

    def get_command_def(self, cmd_name: str) -> Dict[str, Any]:
        if cmd_name not in self.commands:
            raise ValueError(f"Unknown command: {cmd_name}")
        return self.commands[cmd_name]

    def command_name(self, cmd_id: int) -> str:
        return self.commands_by_id.get(int(cmd_id), f"CMD_0x{int(cmd_id):02X}")

    def resolve_type(self, value: Any) -> int:
        """Original type as wire code; accepts a code or a name like 'float32'."""
        if isinstance(value, str):
            key = value.strip().upper()
            if key not in self.types:
                raise ValueError(f"Unknown variable type '{value}' (valid: {sorted(self.types)})")
            return self.types[key]
        code = int(value)
        if code not in self.type_names:
            raise ValueError(f"Unknown variable type code 0x{code:02X}")
        return code

    def status_name(self, code: int) -> str:
        return self.status_names.get(int(code), f"UNKNOWN_0x{int(code):02X}")

    # Delegated
    def parse_header(self, raw: bytes) -> Dict[str, Any]:
        return parse_header(self, raw)

    def build_header(self, cmd_id: int, length: int) -> bytes:
        return build_header(self, cmd_id, length)

    def checksum(self, cmd_id: int, payload: bytes) -> int:
        return xor_checksum(cmd_id, payload)


@lru_cache(maxsize=1)
def load_default_protocol() -> Protocol:
    """Protocol built from the packaged definition files."""
    return Protocol(ProtocolLoader().load_all())
