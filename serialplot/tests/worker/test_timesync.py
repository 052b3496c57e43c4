from __future__ import annotations

import pytest

from serialplot.worker.messages import MessageType
from serialplot.worker.timesync import AresTimeSync


def test_first_frame_sets_bias_and_reports_it():
    ts = AresTimeSync()

    t, msg = ts.calibrate(500, now=10_000.0)

    assert t == 10_000.0
    assert ts.bias == 9_500.0
    assert msg.type is MessageType.INFO
    assert msg.payload.message == "Timestamp bias initialized: 9500ms."


def test_small_drift_keeps_bias():
    ts = AresTimeSync()
    ts.calibrate(0, now=1000.0)

    t, msg = ts.calibrate(100, now=1300.0)

    assert msg is None
    assert t == 1100.0
    assert ts.resyncs == 0


def test_large_drift_resyncs_with_warning():
    """
    Algorithm: when |(now - mcu_ms) - bias| > 500 ms the bias is re-taken
    and a WARN message is produced; the returned timestamp uses the new bias.
    """
    ts = AresTimeSync()
    ts.calibrate(0, now=1000.0)

    t, msg = ts.calibrate(100, now=1700.0)

    assert msg.type is MessageType.WARN
    assert msg.payload.message == "Timestamp drift >500ms detected (600ms). Re-synchronizing. Plot may jump."
    assert msg.payload.details["drift_ms"] == pytest.approx(600.0)
    assert t == 1700.0
    assert ts.resyncs == 1


def test_mcu_counter_reset_triggers_resync():
    ts = AresTimeSync()
    ts.calibrate(60_000, now=61_000.0)

    t, msg = ts.calibrate(10, now=61_020.0)

    assert msg.type is MessageType.WARN
    assert t == 61_020.0


def test_reset_forgets_bias():
    ts = AresTimeSync()
    ts.calibrate(0, now=1000.0)

    ts.reset()
    _, msg = ts.calibrate(0, now=5000.0)

    assert msg.type is MessageType.INFO
    assert ts.bias == 5000.0
