from __future__ import annotations

from serialplot.model.sample import Sample
from serialplot.worker.batcher import Batcher


def _batcher(**kw):
    out = []
    return Batcher(out.append, **kw), out


def test_first_samples_flush_immediately_then_by_interval():
    b, out = _batcher(interval_ms=10)

    b.add(Sample(0.0, (1.0,)))
    assert b.maybe_flush(0.0) is True

    b.add(Sample(1.0, (2.0,)))
    assert b.maybe_flush(5.0) is False
    assert b.maybe_flush(10.0) is True

    assert [[s.values for s in batch] for batch in out] == [[(1.0,)], [(2.0,)]]


def test_reset_sets_flush_reference():
    b, out = _batcher(interval_ms=10)
    b.reset(100.0)

    b.add(Sample(100.0, (1.0,)))

    assert b.maybe_flush(105.0) is False
    assert b.maybe_flush(110.0) is True


def test_max_samples_forces_flush():
    b, out = _batcher(interval_ms=1000, max_samples=3)
    b.reset(0.0)

    for i in range(3):
        b.add(Sample(float(i), (float(i),)))

    assert b.due(1.0) is True
    b.maybe_flush(1.0)
    assert len(out[0]) == 3


def test_empty_buffer_is_never_due():
    b, out = _batcher()
    assert b.due(1e9) is False
    assert b.flush(0.0) is False
    assert out == []


def test_forced_flush_emits_empty_batch():
    b, out = _batcher()

    assert b.flush(0.0, force=True) is True

    assert out == [[]]
    assert b.batches_emitted == 1


def test_timestamps_never_go_backwards():
    """
    Algorithm: a sample older than the previous one takes the previous
    timestamp; values and raw bytes are kept.
    """
    b, out = _batcher()

    b.add(Sample(10.0, (1.0,)))
    clamped = b.add(Sample(4.0, (2.0,), b"raw"))
    b.add(Sample(12.0, (3.0,)))
    b.flush(20.0)

    assert clamped.timestamp_ms == 10.0
    assert clamped.raw == b"raw"
    assert [s.timestamp_ms for s in out[0]] == [10.0, 10.0, 12.0]
    assert b.clamped == 1


def test_reset_drops_pending_and_ordering_floor():
    b, out = _batcher()
    b.add(Sample(50.0, (1.0,)))

    b.reset(0.0)
    b.add(Sample(1.0, (2.0,)))
    b.flush(0.0)

    assert len(b) == 0
    assert out == [[Sample(1.0, (2.0,))]]
