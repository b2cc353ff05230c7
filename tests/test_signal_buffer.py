"""
Tests for the signal buffer.
"""

import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from belief_index.errors import InsufficientDiversity, RejectedSignal, RejectReason
from belief_index.signal_buffer import SignalBuffer, SignalSet
from conftest import T0, make_signal


@pytest.fixture
def buffer():
    return SignalBuffer(market_id="test-market", retention_window=3600, min_sources=3)


@pytest.fixture
def seeded_buffer(buffer, three_sources):
    for signal in three_sources:
        buffer.ingest(signal, T0)
    return buffer


class TestIngestRejections:
    """Each ingestion rule rejects with its own reason and leaves the buffer unchanged."""

    def test_future_timestamp(self, buffer):
        with pytest.raises(RejectedSignal) as exc_info:
            buffer.ingest(make_signal("alpha", 0.5, T0 + 1), T0)
        assert exc_info.value.reason == RejectReason.FUTURE_TIMESTAMP
        assert len(buffer) == 0

    def test_negative_weight(self, buffer):
        with pytest.raises(RejectedSignal) as exc_info:
            buffer.ingest(make_signal("alpha", 0.5, T0, weight=-0.5), T0)
        assert exc_info.value.reason == RejectReason.NEGATIVE_WEIGHT

    def test_out_of_domain(self):
        unit = SignalBuffer(market_id="unit-market", domain="unit")
        with pytest.raises(RejectedSignal) as exc_info:
            unit.ingest(make_signal("alpha", -0.2, T0), T0)
        assert exc_info.value.reason == RejectReason.OUT_OF_DOMAIN

    def test_stale(self, buffer):
        with pytest.raises(RejectedSignal) as exc_info:
            buffer.ingest(make_signal("alpha", 0.5, T0 - 3601), T0)
        assert exc_info.value.reason == RejectReason.STALE

    def test_duplicate(self, buffer):
        buffer.ingest(make_signal("alpha", 0.5, T0), T0)
        with pytest.raises(RejectedSignal) as exc_info:
            buffer.ingest(make_signal("alpha", 0.6, T0), T0)
        assert exc_info.value.reason == RejectReason.DUPLICATE
        assert len(buffer) == 1

    def test_zero_weight_accepted(self, buffer):
        stored = buffer.ingest(make_signal("alpha", 0.5, T0, weight=0.0), T0)
        assert stored.weight == 0.0

    def test_ingest_many_continues_past_rejections(self, buffer):
        accepted, rejected = buffer.ingest_many([
            make_signal("alpha", 0.5, T0),
            make_signal("beta", 0.5, T0 + 10),
            make_signal("gamma", 0.5, T0, weight=-1.0),
            make_signal("delta", 0.5, T0),
        ], T0)
        assert [s.source for s in accepted] == ["alpha", "delta"]
        assert [r.reason for r in rejected] == [RejectReason.FUTURE_TIMESTAMP, RejectReason.NEGATIVE_WEIGHT]


class TestOutliers:
    """Tests for z-score outlier handling."""

    def test_outlier_rejected(self, seeded_buffer):
        with pytest.raises(RejectedSignal) as exc_info:
            seeded_buffer.ingest(make_signal("alpha", -0.9, T0), T0)
        assert exc_info.value.reason == RejectReason.OUTLIER
        assert len(seeded_buffer) == 3

    def test_inlier_accepted(self, seeded_buffer):
        seeded_buffer.ingest(make_signal("alpha", 0.75, T0), T0)
        assert len(seeded_buffer) == 4

    def test_outlier_downweighted(self, three_sources):
        buffer = SignalBuffer(
            market_id="test-market", min_sources=3,
            outlier_policy="downweight", downweight_factor=0.25
        )
        for signal in three_sources:
            buffer.ingest(signal, T0)

        stored = buffer.ingest(make_signal("alpha", -0.9, T0, weight=2.0), T0)
        assert stored.weight == pytest.approx(0.5)
        assert "downweighted" in stored.metadata
        assert len(buffer) == 4

    def test_outlier_kept_when_window_below_min_sources(self, three_sources):
        """A new source is kept even if it is an outlier while diversity is short."""
        buffer = SignalBuffer(market_id="test-market", min_sources=5)
        for signal in three_sources:
            buffer.ingest(signal, T0)

        stored = buffer.ingest(make_signal("delta", -0.9, T0), T0)
        assert stored.value == -0.9
        assert buffer.source_count == 4

    def test_identical_values_never_outliers(self, buffer):
        for source in ("alpha", "beta", "gamma"):
            buffer.ingest(make_signal(source, 0.5, T0 - 10), T0)
        buffer.ingest(make_signal("delta", -0.5, T0), T0)
        assert buffer.source_count == 4

    def test_statistics_are_per_signal_type(self, seeded_buffer):
        """Values of another kind are not judged against sentiment values."""
        seeded_buffer.ingest(make_signal("alpha", -0.9, T0, signal_type="narrative"), T0)
        assert len(seeded_buffer) == 4


class TestWindow:
    """Tests for retention, eviction and snapshots."""

    def test_eviction_on_snapshot(self, seeded_buffer):
        snapshot = seeded_buffer.snapshot(T0 + 3600 - 25)
        assert snapshot.sources == ["beta", "gamma"]
        assert len(seeded_buffer) == 2

    def test_evict_returns_count(self, seeded_buffer):
        assert seeded_buffer.evict(T0 + 4000) == 3
        assert seeded_buffer.source_count == 0

    def test_signal_at_cutoff_retained(self, buffer):
        buffer.ingest(make_signal("alpha", 0.5, T0), T0)
        assert buffer.evict(T0 + 3600) == 0
        assert buffer.evict(T0 + 3601) == 1

    def test_snapshot_order(self, buffer):
        buffer.ingest(make_signal("gamma", 0.5, T0), T0)
        buffer.ingest(make_signal("beta", 0.5, T0 - 50), T0)
        buffer.ingest(make_signal("alpha", 0.5, T0), T0)

        snapshot = buffer.snapshot(T0)
        assert [(s.timestamp, s.source) for s in snapshot] == [
            (T0 - 50, "beta"),
            (T0, "alpha"),
            (T0, "gamma"),
        ]

    def test_snapshot_is_immutable_copy(self, seeded_buffer):
        snapshot = seeded_buffer.snapshot(T0)
        seeded_buffer.ingest(make_signal("delta", 0.8, T0), T0)
        assert len(snapshot) == 3
        assert isinstance(snapshot.signals, tuple)

    def test_per_source_cap(self):
        buffer = SignalBuffer(market_id="test-market", max_signals_per_source=2)
        for offset in (30, 20, 10):
            buffer.ingest(make_signal("alpha", 0.5, T0 - offset), T0)
        assert [s.timestamp for s in buffer.snapshot(T0)] == [T0 - 20, T0 - 10]

    def test_signal_older_than_capped_source_is_rejected(self):
        """A full source refuses a late signal it would drop at once, every time it is sent."""
        buffer = SignalBuffer(market_id="test-market", max_signals_per_source=2)
        buffer.ingest(make_signal("alpha", 0.5, T0), T0 + 5)
        buffer.ingest(make_signal("alpha", 0.5, T0 + 5), T0 + 5)
        for _ in range(2):
            with pytest.raises(RejectedSignal) as exc_info:
                buffer.ingest(make_signal("alpha", 0.5, T0 - 5), T0 + 5)
            assert exc_info.value.reason == RejectReason.STALE
        assert [s.timestamp for s in buffer.snapshot(T0 + 5)] == [T0, T0 + 5]

    def test_capped_out_signal_stays_a_duplicate(self):
        buffer = SignalBuffer(market_id="test-market", max_signals_per_source=2)
        for offset in (30, 20, 10):
            buffer.ingest(make_signal("alpha", 0.5, T0 - offset), T0)
        with pytest.raises(RejectedSignal) as exc_info:
            buffer.ingest(make_signal("alpha", 0.5, T0 - 30), T0)
        assert exc_info.value.reason == RejectReason.DUPLICATE

    def test_snapshot_excludes_signals_after_now(self, buffer):
        buffer.ingest(make_signal("alpha", 0.5, T0), T0 + 10)
        buffer.ingest(make_signal("beta", 0.5, T0 + 10), T0 + 10)
        assert [s.source for s in buffer.snapshot(T0)] == ["alpha"]
        assert len(buffer.snapshot(T0 + 10)) == 2

    def test_clear(self, seeded_buffer):
        seeded_buffer.clear()
        assert len(seeded_buffer) == 0

    def test_concurrent_ingest(self, buffer):
        signals = [make_signal(f"source-{i}", 0.5, T0 - i) for i in range(50)]
        with ThreadPoolExecutor(max_workers=8) as executor:
            stored = list(executor.map(lambda s: buffer.ingest(s, T0), signals))
        assert len(stored) == 50
        assert buffer.source_count == 50


class TestSignalSet:
    """Tests for snapshot helpers."""

    def test_diversity(self, three_sources):
        signal_set = SignalSet(taken_at=T0, signals=tuple(three_sources[:2]))
        assert signal_set.source_count == 2
        with pytest.raises(InsufficientDiversity) as exc_info:
            signal_set.require_diversity(3)
        assert exc_info.value.source_count == 2

    def test_latest_by_source(self):
        signal_set = SignalSet(taken_at=T0, signals=(
            make_signal("alpha", 0.1, T0 - 20),
            make_signal("beta", 0.2, T0 - 15),
            make_signal("alpha", 0.3, T0 - 10),
        ))
        latest = signal_set.latest_by_source()
        assert latest["alpha"].value == 0.3
        assert list(latest) == ["alpha", "beta"]

    def test_statistics(self, three_sources):
        stats = SignalSet(taken_at=T0, signals=tuple(three_sources)).statistics()
        assert stats.count == 3
        assert stats.mean == pytest.approx(0.8)
        assert stats.median == pytest.approx(0.8)
        assert stats.source_count == 3

    def test_empty_statistics(self):
        assert SignalSet(taken_at=T0, signals=()).statistics().count == 0
