# serialplot/protocol/core/header.py
from typing import Any, Dict

def parse_header(proto, raw: bytes) -> Dict[str, Any]:
    if len(raw) != proto.header_struct.size:
        raise ValueError(f"Header size mismatch: {len(raw)} != {proto.header_struct.size}")
    sop, cmd_id, length = proto.header_struct.unpack(raw)
    return {"sop": sop, "cmd_id": cmd_id, "len": length}

def build_header(proto, cmd_id: int, length: int) -> bytes:
    return proto.header_struct.pack(proto.sop, cmd_id & 0xFF, length)
