from __future__ import annotations

import random
import struct

import pytest

from serialplot.codecs.frames import AresAck, AresError, AresMonitorFrame, Unidentified
from serialplot.protocol.core.command import encode_frame
from serialplot.protocol.core.defs import load_default_protocol
from serialplot.protocol.core.parser import AresFrameParser


@pytest.fixture
def proto():
    return load_default_protocol()


@pytest.fixture
def parser(proto):
    return AresFrameParser(proto)


def _monitor_frame(proto, mcu_ms: int, *values: float) -> bytes:
    payload = struct.pack("<I", mcu_ms) + struct.pack(f"<{len(values)}f", *values)
    return encode_frame(proto, proto.monitor_data_id, payload)


def test_parse_empty_buffer_needs_more_data(parser):
    assert parser.parse(b"") is None


def test_monitor_data_frame_decodes_timestamp_and_values(proto, parser):
    raw = _monitor_frame(proto, 1234, 1.5, -2.0)

    res = parser.parse(raw)

    assert res is not None
    assert res.consumed == len(raw)
    assert isinstance(res.frame, AresMonitorFrame)
    assert res.frame.mcu_ms == 1234
    assert res.frame.values == (1.5, -2.0)
    assert res.frame.raw == raw


def test_monitor_data_with_no_values_is_valid(proto, parser):
    raw = _monitor_frame(proto, 7)

    res = parser.parse(raw)

    assert isinstance(res.frame, AresMonitorFrame)
    assert res.frame.values == ()


def test_partial_frame_returns_none(proto, parser):
    raw = _monitor_frame(proto, 1, 1.0)
    for cut in (1, 3, 4, len(raw) - 1):
        assert parser.parse(raw[:cut]) is None


def test_accepts_bytearray_and_memoryview(proto, parser):
    raw = _monitor_frame(proto, 1, 3.0)

    assert parser.parse(bytearray(raw)).consumed == len(raw)
    assert parser.parse(memoryview(raw)).consumed == len(raw)


def test_bytes_before_sop_are_returned_as_unidentified_prefix(proto, parser):
    raw = b"\x01\x02\x03" + _monitor_frame(proto, 1, 1.0)

    res = parser.parse(raw)

    assert isinstance(res.frame, Unidentified)
    assert res.consumed == 3
    assert res.frame.raw == b"\x01\x02\x03"
    assert res.frame.warning is False


def test_resyncs_after_random_prefixes_without_sop(proto, parser):
    rng = random.Random(1234)
    choices = [b for b in range(256) if b != proto.sop]

    for i in range(50):
        prefix = bytes(rng.choice(choices) for _ in range(rng.randint(1, 200)))
        frame = _monitor_frame(proto, i, float(i), -1.5)
        buf = prefix + frame

        first = parser.parse(buf)
        assert isinstance(first.frame, Unidentified)
        assert first.frame.raw == prefix
        assert first.consumed == len(prefix)

        second = parser.parse(buf[first.consumed:])
        assert isinstance(second.frame, AresMonitorFrame)
        assert second.frame.mcu_ms == i
        assert second.frame.values == (float(i), -1.5)
        assert second.consumed == len(frame)


def test_short_garbage_without_sop_waits(parser):
    assert parser.parse(b"\x00" * 100) is None


def test_garbage_without_sop_is_flushed_at_threshold(parser):
    """
    Algorithm: with no SOP anywhere in a buffer of >= 256 bytes, the whole
    buffer is consumed as one unidentified frame.
    """
    garbage = bytes(i % 0xA0 for i in range(300))
    assert 0xA5 not in garbage

    res = parser.parse(garbage)

    assert isinstance(res.frame, Unidentified)
    assert res.consumed == 300
    assert res.frame.raw == garbage


def test_checksum_mismatch_consumes_whole_frame_and_next_frame_parses(proto, parser):
    bad = bytearray(_monitor_frame(proto, 10, 1.0))
    bad[-2] ^= 0xFF
    good = _monitor_frame(proto, 20, 2.0)
    buf = bytes(bad) + good

    first = parser.parse(buf)
    assert isinstance(first.frame, Unidentified)
    assert first.frame.warning is True
    assert first.frame.reason == "checksum mismatch"
    assert first.consumed == len(bad)

    second = parser.parse(buf[first.consumed:])
    assert isinstance(second.frame, AresMonitorFrame)
    assert second.frame.mcu_ms == 20


def test_bad_eop_is_unidentified(proto, parser):
    raw = bytearray(_monitor_frame(proto, 1, 1.0))
    raw[-1] = 0x00

    res = parser.parse(bytes(raw))

    assert isinstance(res.frame, Unidentified)
    assert res.frame.reason == "bad EOP"
    assert res.consumed == len(raw)


def test_oversized_length_skips_only_the_header(proto, parser):
    hdr = proto.build_header(proto.monitor_data_id, proto.max_payload + 1)

    res = parser.parse(hdr + b"\x00" * 10)

    assert isinstance(res.frame, Unidentified)
    assert res.frame.warning is True
    assert res.consumed == len(hdr)


def test_malformed_monitor_payload_is_unidentified(proto, parser):
    raw = encode_frame(proto, proto.monitor_data_id, b"\x00\x00\x00\x00\x01\x02")

    res = parser.parse(raw)

    assert isinstance(res.frame, Unidentified)
    assert res.frame.warning is True
    assert res.consumed == len(raw)


def test_ack_frame(proto, parser):
    raw = encode_frame(proto, proto.ack_id, bytes([0x01, 0x04]))

    res = parser.parse(raw)

    assert isinstance(res.frame, AresAck)
    assert res.frame.cmd_id == 0x01
    assert res.frame.status == 0x04
    assert res.frame.payload == bytes([0x01, 0x04])


def test_short_ack_is_unidentified(proto, parser):
    raw = encode_frame(proto, proto.ack_id, b"\x01")
    assert isinstance(parser.parse(raw).frame, Unidentified)


def test_error_report_frame_carries_message(proto, parser):
    raw = encode_frame(proto, proto.error_report_id, b"\x07busy")

    res = parser.parse(raw)

    assert isinstance(res.frame, AresError)
    assert res.frame.code == 0x07
    assert res.frame.text == "busy"


def test_unknown_command_id_is_unidentified_without_warning(proto, parser):
    raw = encode_frame(proto, 0x55, b"\x01\x02")

    res = parser.parse(raw)

    assert isinstance(res.frame, Unidentified)
    assert res.frame.warning is False
    assert res.consumed == len(raw)


@pytest.mark.parametrize("cmd_id,status", [(0x01, 0x00), (0x02, 0x01), (0x03, 0x04), (0xFF, 0xFF)])
def test_ack_round_trip(proto, parser, cmd_id, status):
    raw = encode_frame(proto, proto.ack_id, bytes([cmd_id, status]))

    res = parser.parse(raw + b"\x00")

    assert res.consumed == len(raw)
    assert (res.frame.cmd_id, res.frame.status) == (cmd_id, status)
    assert res.frame.raw == raw


@pytest.mark.parametrize("code,message", [(0x00, b""), (0x07, b"busy"), (0xFE, "温度".encode("utf-8")), (0x10, b"\xff\x00")])
def test_error_report_round_trip(proto, parser, code, message):
    raw = encode_frame(proto, proto.error_report_id, bytes([code]) + message)

    res = parser.parse(raw)

    assert isinstance(res.frame, AresError)
    assert res.consumed == len(raw)
    assert res.frame.code == code
    assert res.frame.message == message
    assert res.frame.raw == raw
