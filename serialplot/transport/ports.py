# serialplot/transport/ports.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List

from serial.tools import list_ports


@dataclass(frozen=True)
class PortInfo:
    device: str
    description: str
    hwid: str


def list_serial_ports() -> List[PortInfo]:
    return [
        PortInfo(device=p.device, description=p.description or "", hwid=p.hwid or "")
        for p in sorted(list_ports.comports(), key=lambda p: p.device)
    ]
