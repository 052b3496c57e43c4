# serialplot/protocol/core/parser.py
from __future__ import annotations

import logging
import struct
from typing import Optional, Union

from serialplot.codecs.frames import (
    AresAck,
    AresError,
    AresMonitorFrame,
    ParseResult,
    Unidentified,
)
from .defs import Protocol

Buffer = Union[bytes, bytearray, memoryview]


class AresFrameParser:
    """
    Stateless Aresplot frame parser.

    Frame = SOP | CMD | LEN(u16 LE) | PAYLOAD[LEN] | CHECKSUM | EOP.
    Every call either returns None (need more bytes) or a ParseResult whose
    `consumed` covers exactly the bytes the returned frame describes.
    """

    def __init__(self, proto: Protocol, logger: Optional[logging.Logger] = None):
        self.proto = proto
        self._log = logger or logging.getLogger(__name__)
        self._sop = bytes([proto.sop])
        self._hdr_size = proto.header_struct.size

    def parse(self, buffer: Buffer) -> Optional[ParseResult]:
        if isinstance(buffer, memoryview):
            buffer = buffer.tobytes()

        n = len(buffer)
        if n == 0:
            return None

        sop_idx = buffer.find(self._sop)
        if sop_idx < 0:
            if n >= self.proto.garbage_flush_threshold:
                self._log.debug("ARES_GARBAGE_FLUSH len=%d", n)
                return ParseResult(Unidentified(bytes(buffer), "no SOP found"), n)
            return None

        if sop_idx > 0:
            return ParseResult(Unidentified(bytes(buffer[:sop_idx]), "bytes before SOP"), sop_idx)

        if n < self._hdr_size:
            return None

        hdr = self.proto.parse_header(bytes(buffer[: self._hdr_size]))
        cmd_id = hdr["cmd_id"]
        payload_len = hdr["len"]

        if payload_len > self.proto.max_payload:
            self._log.warning(
                "ARES_PAYLOAD_TOO_LARGE len=%d max=%d, skipping header",
                payload_len,
                self.proto.max_payload,
            )
            return ParseResult(
                Unidentified(bytes(buffer[: self._hdr_size]), f"payload length {payload_len} exceeds maximum", warning=True),
                self._hdr_size,
            )

        total = self._hdr_size + payload_len + self.proto.trailer_size
        if n < total:
            return None

        raw = bytes(buffer[:total])
        payload = raw[self._hdr_size: self._hdr_size + payload_len]
        rx_chk = raw[-2]
        eop = raw[-1]

        calc_chk = self.proto.checksum(cmd_id, payload)
        if calc_chk != rx_chk:
            self._log.warning("ARES_CHECKSUM_MISMATCH cmd=0x%02X calc=%02X rx=%02X", cmd_id, calc_chk, rx_chk)
            return ParseResult(Unidentified(raw, "checksum mismatch", warning=True), total)
        if eop != self.proto.eop:
            self._log.warning("ARES_BAD_EOP cmd=0x%02X eop=%02X", cmd_id, eop)
            return ParseResult(Unidentified(raw, "bad EOP", warning=True), total)

        return ParseResult(self._dispatch(cmd_id, payload, raw), total)

    def _dispatch(self, cmd_id: int, payload: bytes, raw: bytes):
        proto = self.proto
        plen = len(payload)

        if cmd_id == proto.monitor_data_id:
            if plen < proto.min_payload(cmd_id) or (plen - 4) % 4 != 0:
                self._log.warning("ARES_BAD_MONITOR_PAYLOAD len=%d", plen)
                return Unidentified(raw, "malformed MONITOR_DATA payload", warning=True)
            mcu_ms = struct.unpack_from("<I", payload, 0)[0]
            values = struct.unpack_from(f"<{(plen - 4) // 4}f", payload, 4)
            return AresMonitorFrame(mcu_ms=mcu_ms, values=tuple(values), raw=raw)

        if cmd_id == proto.ack_id:
            if plen < proto.min_payload(cmd_id):
                self._log.warning("ARES_BAD_ACK_PAYLOAD len=%d", plen)
                return Unidentified(raw, "malformed ACK payload", warning=True)
            return AresAck(cmd_id=payload[0], status=payload[1], raw=raw)

        if cmd_id == proto.error_report_id:
            if plen < proto.min_payload(cmd_id):
                self._log.warning("ARES_BAD_ERROR_REPORT_PAYLOAD len=%d", plen)
                return Unidentified(raw, "malformed ERROR_REPORT payload", warning=True)
            return AresError(code=payload[0], message=payload[1:], raw=raw)

        self._log.debug("ARES_UNKNOWN_CMD cmd=0x%02X", cmd_id)
        return Unidentified(raw, f"unknown CMD 0x{cmd_id:02X}")
