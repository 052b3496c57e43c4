from __future__ import annotations

import struct

import pytest

from serialplot.model.subscription import Subscription
from serialplot.protocol.core.checksum import xor_checksum
from serialplot.protocol.core.command import CommandFrame, encode_frame
from serialplot.protocol.core.defs import load_default_protocol


@pytest.fixture
def proto():
    return load_default_protocol()


def test_xor_checksum_covers_cmd_length_and_payload():
    assert xor_checksum(0x01, b"") == 0x01
    assert xor_checksum(0x82, b"\x01\x00") == 0x82 ^ 0x02 ^ 0x01
    # both LEN bytes take part
    assert xor_checksum(0x00, b"\x00" * 0x0102) == 0x02 ^ 0x01


def test_start_monitor_two_variables_exact_bytes(proto):
    frame = CommandFrame(
        proto,
        "START_MONITOR",
        args={"variables": [
            {"address": 0xDEADBEEF, "type": "float32"},
            {"address": 0x00001000, "type": "uint16"},
        ]},
    )

    expected = bytes([
        0xA5, 0x01, 0x0B, 0x00,
        0x02,
        0xEF, 0xBE, 0xAD, 0xDE, 0x06,
        0x00, 0x10, 0x00, 0x00, 0x03,
        0x3F, 0x5A,
    ])
    assert frame.encode() == expected


def test_start_monitor_accepts_subscription_like_items(proto):
    subs = [Subscription(0x20000000, "int32")]
    payload = CommandFrame.build_payload(
        proto,
        "START_MONITOR",
        {"variables": [{"address": s.address, "type": s.original_type} for s in subs]},
    )
    assert payload == b"\x01" + struct.pack("<IB", 0x20000000, 0x04)


def test_start_monitor_with_no_variables_sends_zero_count(proto):
    raw = CommandFrame(proto, "START_MONITOR", args={"variables": []}).encode()
    assert raw == bytes([0xA5, 0x01, 0x01, 0x00, 0x00, 0x01 ^ 0x01, 0x5A])


def test_set_variable_payload_layout(proto):
    frame = CommandFrame(proto, "SET_VARIABLE", args={"address": 0x20000010, "type": "float32", "value": 2.5})

    assert frame.cmd_id == 0x02
    assert frame.payload == struct.pack("<IBf", 0x20000010, 0x06, 2.5)


def test_set_variable_accepts_numeric_type_code(proto):
    frame = CommandFrame(proto, "SET_VARIABLE", args={"address": 1, "type": 0x03, "value": 1.0})
    assert frame.payload[4] == 0x03


def test_set_sample_rate_payload(proto):
    frame = CommandFrame(proto, "SET_SAMPLE_RATE", args={"rate_hz": 1000})
    assert frame.payload == struct.pack("<I", 1000)


def test_unknown_command_raises(proto):
    with pytest.raises(ValueError, match="Unknown command"):
        CommandFrame(proto, "NOPE")


def test_unknown_type_name_raises(proto):
    with pytest.raises(ValueError, match="Unknown variable type"):
        CommandFrame(proto, "SET_VARIABLE", args={"address": 1, "type": "complex128", "value": 1.0})


def test_address_out_of_range_raises_value_error(proto):
    with pytest.raises(ValueError, match="Invalid value"):
        CommandFrame(proto, "SET_VARIABLE", args={"address": 1 << 33, "type": "uint8", "value": 1.0})


def test_missing_argument_raises_key_error(proto):
    with pytest.raises(KeyError):
        CommandFrame(proto, "SET_SAMPLE_RATE", args={})


def test_encode_frame_rejects_oversized_payload(proto):
    with pytest.raises(ValueError, match="exceeds max_payload"):
        encode_frame(proto, 0x01, b"\x00" * (proto.max_payload + 1))
