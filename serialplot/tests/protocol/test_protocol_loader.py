from pathlib import Path

import pytest

import serialplot.protocol.core.defs as defs_mod
from serialplot.protocol.loader import DEFINITIONS_DIR, ProtocolLoader


def _write(dirp: Path, name: str, text: str) -> None:
    (dirp / name).write_text(text, encoding="utf-8")


def _write_valid_protocol(dirp: Path) -> None:
    _write(
        dirp,
        "constants.yml",
        "protocol_version: 3\nsop: 0xA5\neop: 0x5A\nheader_size: 4\ntrailer_size: 2\nmax_payload: 64\n",
    )
    _write(dirp, "commands.yml", "commands:\n  PING: {cmd_id: 0x10, payload: []}\n")
    _write(dirp, "frames.yml", "frames:\n  MONITOR_DATA: {cmd_id: 0x81}\n  ACK: {cmd_id: 0x82}\n  ERROR_REPORT: {cmd_id: 0x8F}\n")
    _write(dirp, "types.yml", "types:\n  UINT8: 1\n")
    _write(dirp, "errors.yml", "errors:\n  OK: 0\n")


def test_packaged_definitions_load():
    loader = ProtocolLoader().load_all()

    assert loader.config_dir == DEFINITIONS_DIR
    assert loader.protocol_version() == 1
    assert set(loader.commands) == {"START_MONITOR", "SET_VARIABLE", "SET_SAMPLE_RATE"}
    assert loader.frames["ACK"]["cmd_id"] == 0x82


def test_load_all_requires_all_files(tmp_path: Path) -> None:
    _write_valid_protocol(tmp_path)
    (tmp_path / "types.yml").unlink()

    with pytest.raises(FileNotFoundError):
        ProtocolLoader(tmp_path).load_all()


def test_load_all_rejects_missing_constant(tmp_path: Path) -> None:
    _write_valid_protocol(tmp_path)
    _write(tmp_path, "constants.yml", "sop: 0xA5\n")

    with pytest.raises(ValueError, match="missing"):
        ProtocolLoader(tmp_path).load_all()


def test_load_all_rejects_non_mapping_commands(tmp_path: Path) -> None:
    _write_valid_protocol(tmp_path)
    _write(tmp_path, "commands.yml", "commands: [1, 2]\n")

    with pytest.raises(ValueError):
        ProtocolLoader(tmp_path).load_all()


def test_protocol_version_must_be_int(tmp_path: Path) -> None:
    _write_valid_protocol(tmp_path)
    loader = ProtocolLoader(tmp_path).load_all()
    loader.constants["protocol_version"] = "v2"

    with pytest.raises(ValueError):
        loader.protocol_version()


def test_protocol_from_custom_definitions(tmp_path: Path) -> None:
    _write_valid_protocol(tmp_path)

    p = defs_mod.Protocol(ProtocolLoader(tmp_path).load_all())

    assert p.version == 3
    assert p.max_payload == 64
    assert p.command_ids == {"PING": 0x10}
    # defaults for optional constants
    assert p.garbage_flush_threshold == 256
    assert p.max_monitor_vars == 10
    assert p.request_timeout_s == pytest.approx(0.5)


def test_protocol_rejects_duplicate_command_ids(tmp_path: Path) -> None:
    _write_valid_protocol(tmp_path)
    _write(tmp_path, "commands.yml", "commands:\n  A: {cmd_id: 1}\n  B: {cmd_id: 1}\n")

    with pytest.raises(ValueError, match="Duplicate cmd_id"):
        defs_mod.Protocol(ProtocolLoader(tmp_path).load_all())


def test_protocol_rejects_header_size_mismatch(tmp_path: Path) -> None:
    _write_valid_protocol(tmp_path)
    _write(
        tmp_path,
        "constants.yml",
        "sop: 0xA5\neop: 0x5A\nheader_size: 5\ntrailer_size: 2\nmax_payload: 64\n",
    )

    with pytest.raises(ValueError, match="header_size"):
        defs_mod.Protocol(ProtocolLoader(tmp_path).load_all())


def test_resolve_type_and_status_names():
    p = defs_mod.load_default_protocol()

    assert p.resolve_type("float32") == 0x06
    assert p.resolve_type(" Uint16 ") == 0x03
    assert p.resolve_type(8) == 0x08
    with pytest.raises(ValueError):
        p.resolve_type("quaternion")
    with pytest.raises(ValueError):
        p.resolve_type(0x42)

    assert p.status_ok == 0
    assert p.status_name(0x04) == "ERR_ADDR_INVALID"
    assert p.status_name(0x42) == "UNKNOWN_0x42"
    assert p.command_name(0x03) == "SET_SAMPLE_RATE"
    assert p.command_name(0x77) == "CMD_0x77"


def test_header_round_trip_fields():
    p = defs_mod.load_default_protocol()

    raw = p.build_header(0x81, 300)

    assert raw == bytes([0xA5, 0x81, 0x2C, 0x01])
    assert p.parse_header(raw) == {"sop": 0xA5, "cmd_id": 0x81, "len": 300}
    with pytest.raises(ValueError):
        p.parse_header(raw[:3])
