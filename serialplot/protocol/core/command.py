# serialplot/protocol/core/command.py
from __future__ import annotations

import struct
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .defs import Protocol
from .types import YAML_TO_STRUCT


def encode_frame(proto: Protocol, cmd_id: int, payload: bytes) -> bytes:
    """SOP | CMD | LEN | PAYLOAD | CHECKSUM | EOP."""
    payload = bytes(payload)
    if len(payload) > proto.max_payload:
        raise ValueError(f"Payload length {len(payload)} exceeds max_payload {proto.max_payload}")
    header = proto.build_header(cmd_id, len(payload))
    return header + payload + bytes([proto.checksum(cmd_id, payload), proto.eop])


def _pack_scalar(proto: Protocol, cmd_name: str, field: Mapping[str, Any], value: Any) -> bytes:
    ftype = field["type"]
    if ftype not in YAML_TO_STRUCT:
        raise ValueError(f"Unknown field type '{ftype}' in command '{cmd_name}'")
    if value is None:
        raise KeyError(f"Missing command argument '{field['name']}' for {cmd_name}")
    if field.get("enum") == "types":
        value = proto.resolve_type(value)
    try:
        return struct.pack("<" + YAML_TO_STRUCT[ftype], value)
    except (struct.error, OverflowError) as e:
        raise ValueError(f"Invalid value {value!r} for '{field['name']}' in {cmd_name}: {e}") from None


def _item_value(item: Any, field: Mapping[str, Any], index: int) -> Any:
    if isinstance(item, Mapping):
        return item.get(field["name"])
    if isinstance(item, Sequence):
        return item[index] if index < len(item) else None
    return getattr(item, field["name"], None)


class CommandFrame:
    """Host -> MCU request frame, built from the commands.yml payload layout."""

    @staticmethod
    def build_payload(proto: Protocol, cmd_name: str, args: Optional[dict] = None) -> bytes:
        cmd_def = proto.get_command_def(cmd_name)
        args = args or {}

        parts: List[bytes] = []
        for field in cmd_def.get("payload", []):
            name = field["name"]

            if field["type"] == "array":
                items = list(args.get(name) or [])
                for item in items:
                    for idx, sub in enumerate(field.get("items", [])):
                        parts.append(_pack_scalar(proto, cmd_name, sub, _item_value(item, sub, idx)))
                continue

            count_of = field.get("count_of")
            if count_of is not None:
                count = len(list(args.get(count_of) or []))
                limit = (1 << (8 * struct.calcsize(YAML_TO_STRUCT[field["type"]]))) - 1
                if count > limit:
                    raise ValueError(f"{cmd_name}: {count_of} count {count} exceeds {limit}")
                parts.append(_pack_scalar(proto, cmd_name, field, count))
                continue

            parts.append(_pack_scalar(proto, cmd_name, field, field.get("value", args.get(name))))

        payload = b"".join(parts)
        if len(payload) > proto.max_payload:
            raise ValueError(f"Command payload length {len(payload)} exceeds max_payload {proto.max_payload}")
        return payload

    def __init__(self, proto: Protocol, cmd_name: str, args: Optional[Dict[str, Any]] = None):
        self.proto = proto
        self.cmd_name = cmd_name
        self.args = dict(args or {})
        self.cmd_id = int(proto.get_command_def(cmd_name)["cmd_id"])
        self.payload = self.build_payload(proto, cmd_name, self.args)

    def encode(self) -> bytes:
        return encode_frame(self.proto, self.cmd_id, self.payload)
