from __future__ import annotations

import io
import math
import re

import pytest

import serialplot.runtime.data_buffer as db_mod
from serialplot.core.errors import InvalidStateError
from serialplot.model.sample import Sample
from serialplot.runtime.data_buffer import DataBuffer, RateMeter


def _batch(start, n, channels=2):
    return [Sample(float(start + i), tuple(float(i + c) for c in range(channels))) for i in range(n)]


# -----------------------------
# Storage
# -----------------------------

def test_add_batch_skips_samples_without_values():
    buf = DataBuffer(100)

    added = buf.add_batch([Sample(0.0, (1.0,)), Sample(1.0, (), b"junk", unidentified=True), Sample(2.0, (2.0,))])

    assert added == 2
    assert [ts for ts, _ in buf.snapshot()] == [0.0, 2.0]


def test_oldest_points_are_trimmed_after_each_batch():
    buf = DataBuffer(5)

    buf.add_batch(_batch(0, 4))
    buf.add_batch(_batch(4, 4))

    rows = buf.snapshot()
    assert len(rows) == 5
    assert [ts for ts, _ in rows] == [3.0, 4.0, 5.0, 6.0, 7.0]


def test_non_finite_values_become_nan():
    buf = DataBuffer(10)

    buf.add_batch([Sample(0.0, (math.inf, -math.inf, 1.5))])

    (_, values), = buf.snapshot()
    assert math.isnan(values[0]) and math.isnan(values[1])
    assert values[2] == 1.5


def test_set_max_points_trims_immediately():
    buf = DataBuffer(10)
    buf.add_batch(_batch(0, 10))

    buf.set_max_points(3)

    assert len(buf) == 3
    assert buf.snapshot()[0][0] == 7.0


def test_clear_empties_buffer_and_rate():
    buf = DataBuffer(10)
    buf.add_batch(_batch(0, 5), now=0.0)
    buf.add_batch(_batch(5, 5), now=1000.0)
    assert buf.rate(1000.0) > 0

    buf.clear()

    assert len(buf) == 0
    assert buf.rate(1000.0) == 0.0


# -----------------------------
# Rate and estimate
# -----------------------------

def test_rate_meter_computes_points_per_second_per_window():
    """
    Algorithm: points are counted until window_ms elapsed since the last
    check, then rate = count * 1000 / elapsed.
    """
    rm = RateMeter(window_ms=1000, decay_ms=2000)

    rm.record(10, 0.0)
    rm.record(40, 500.0)
    assert rm.rate(500.0) == 0.0

    rm.record(50, 1000.0)
    assert rm.rate(1000.0) == pytest.approx(100.0)


def test_rate_meter_decays_to_zero_without_data():
    rm = RateMeter(window_ms=1000, decay_ms=2000)
    rm.record(0, 0.0)
    rm.record(100, 1000.0)
    assert rm.rate(1000.0) == pytest.approx(100.0)

    assert rm.rate(2500.0) == pytest.approx(100.0)
    assert rm.rate(3001.0) == 0.0


def test_estimate_requires_collecting_and_positive_rate():
    buf = DataBuffer(1000)

    assert buf.estimate(True, 0.0) is None

    buf.add_batch(_batch(0, 100), now=0.0)
    buf.add_batch(_batch(100, 100), now=1000.0)

    assert buf.estimate(False, 1000.0) is None
    est = buf.estimate(True, 1000.0)
    assert est.total_s == pytest.approx(5.0)
    assert est.remaining_s == pytest.approx(4.0)


def test_estimate_remaining_never_negative():
    buf = DataBuffer(100)
    buf.add_batch(_batch(0, 50), now=0.0)
    buf.add_batch(_batch(50, 100), now=1000.0)

    est = buf.estimate(True, 1000.0)

    assert est.remaining_s == 0.0


# -----------------------------
# CSV
# -----------------------------

def test_header_uses_names_and_defaults():
    assert DataBuffer.header(3, ["temp", "", 'a,"b"']) == ["Timestamp (s)", "temp", "通道 2", "ab"]
    assert DataBuffer.header(2) == ["Timestamp (s)", "通道 1", "通道 2"]


def test_write_csv_formats_seconds_and_values():
    buf = DataBuffer(10)
    buf.add_batch([Sample(1500.0, (1.0, math.nan)), Sample(2000.25, (-0.5, 2.0))])
    f = io.StringIO()

    n = buf.write_csv(f, ["x", "y"])

    assert n == 2
    assert f.getvalue().splitlines() == [
        "Timestamp (s),x,y",
        "1.500000,1.000000,",
        "2.000250,-0.500000,2.000000",
    ]


def test_write_csv_pads_short_rows():
    buf = DataBuffer(10)
    buf.add_batch([Sample(0.0, (1.0, 2.0)), Sample(1.0, (3.0,))])
    f = io.StringIO()

    buf.write_csv(f)

    assert f.getvalue().splitlines()[-1] == "0.001000,3.000000,"


def test_write_csv_on_empty_buffer_raises():
    with pytest.raises(InvalidStateError) as ei:
        DataBuffer(10).write_csv(io.StringIO())
    assert ei.value.message == "No data to export."


def test_export_csv_to_file(tmp_path):
    buf = DataBuffer(10)
    buf.add_batch(_batch(0, 3, channels=1))
    target = tmp_path / "out" / "run.csv"

    path = buf.export_csv(target, ["v"])

    assert path == target
    lines = target.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Timestamp (s),v"
    assert len(lines) == 4


def test_export_csv_into_directory_uses_default_name(tmp_path, monkeypatch):
    monkeypatch.setattr(db_mod, "default_export_name", lambda: "fixed.csv")
    buf = DataBuffer(10)
    buf.add_batch(_batch(0, 1))

    path = buf.export_csv(tmp_path)

    assert path == tmp_path / "fixed.csv"
    assert path.exists()


def test_default_export_name_shape():
    assert re.fullmatch(r"serialplot_data_\d{8}T\d{6}Z\.csv", db_mod.default_export_name())


def test_export_csv_on_empty_buffer_writes_nothing(tmp_path):
    with pytest.raises(InvalidStateError):
        DataBuffer(10).export_csv(tmp_path / "x.csv")
    assert not (tmp_path / "x.csv").exists()
