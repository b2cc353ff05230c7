"""
Tests for the inflection monitor state machine.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from belief_index.errors import AlreadyResolved, ClockRegression
from belief_index.models import ModelConsensus
from belief_index.monitor import InflectionMonitor, MonitorState
from conftest import T0, make_bsi

ABOVE = 0.7
BELOW = 0.5


@pytest.fixture
def monitor(threshold_condition):
    return InflectionMonitor("test-market", threshold_condition)


class TestTransitions:
    """Tests for IDLE -> CANDIDATE -> CONFIRMED."""

    def test_starts_idle(self, monitor):
        assert monitor.state == MonitorState.IDLE
        assert monitor.inflection is None

    def test_unsatisfied_stays_idle(self, monitor):
        update = monitor.evaluate(make_bsi(BELOW, computed_at=T0))
        assert update.state == MonitorState.IDLE
        assert not update.satisfied
        assert not update.changed

    def test_satisfied_becomes_candidate(self, monitor):
        update = monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        assert update.state == MonitorState.CANDIDATE
        assert update.candidate_since == T0
        assert update.changed
        assert not update.confirmed

    def test_confirms_after_persistence_window(self, monitor):
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 300))
        update = monitor.evaluate(make_bsi(0.75, computed_at=T0 + 600))

        assert update.confirmed
        assert update.state == MonitorState.CONFIRMED
        inflection = update.inflection
        assert inflection.timestamp == T0 + 600
        assert inflection.candidate_since == T0
        assert inflection.persistence_duration == 600
        assert inflection.magnitude == pytest.approx(0.15)
        assert inflection.condition_type == "probability_threshold"
        assert monitor.inflection is inflection

    def test_no_confirmation_one_second_early(self, monitor):
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        update = monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 599))
        assert update.state == MonitorState.CANDIDATE
        assert update.satisfied_duration == 599

    def test_lapse_returns_to_idle(self, monitor):
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        update = monitor.evaluate(make_bsi(BELOW, computed_at=T0 + 100))
        assert update.state == MonitorState.IDLE
        assert monitor.candidate_since is None


class TestPersistence:
    """Persistence must be unbroken."""

    def test_interruption_restarts_window(self, monitor):
        """True for window-1 seconds, false for 1, then a full new window is required."""
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 599))
        monitor.evaluate(make_bsi(BELOW, computed_at=T0 + 600))

        restart = monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 601))
        assert restart.candidate_since == T0 + 601

        early = monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 1200))
        assert not early.confirmed

        confirmed = monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 1201))
        assert confirmed.confirmed
        assert confirmed.inflection.candidate_since == T0 + 601

    def test_failed_cycle_counts_as_unsatisfied(self, monitor):
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        update = monitor.evaluate(None, now=T0 + 300)
        assert update.state == MonitorState.IDLE

        monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 400))
        assert not monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 900)).confirmed

    def test_none_without_clock(self, monitor):
        with pytest.raises(ValueError):
            monitor.evaluate(None)


class TestTerminal:
    """Confirmed is terminal."""

    def test_already_resolved(self, monitor):
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 600))

        with pytest.raises(AlreadyResolved) as exc_info:
            monitor.evaluate(make_bsi(ABOVE, computed_at=T0 + 700))
        assert exc_info.value.resolved_at == T0 + 600

        with pytest.raises(AlreadyResolved):
            monitor.evaluate(None, now=T0 + 800)
        assert monitor.state == MonitorState.CONFIRMED

    def test_clock_regression(self, monitor):
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        with pytest.raises(ClockRegression):
            monitor.evaluate(make_bsi(ABOVE, computed_at=T0 - 1))
        assert monitor.candidate_since == T0


class TestConditionVariants:
    """The monitor works with any condition variant."""

    def test_model_consensus(self):
        condition = ModelConsensus(persistence_window=120, min_models=3, convergence_band=0.1)
        monitor = InflectionMonitor("consensus-market", condition)

        monitor.evaluate(make_bsi(0.5, computed_at=T0, source_count=4, spread=0.05))
        update = monitor.evaluate(make_bsi(0.5, computed_at=T0 + 120, source_count=4, spread=0.02))

        assert update.confirmed
        assert update.inflection.magnitude == 0.02

    def test_to_dict(self, monitor):
        monitor.evaluate(make_bsi(ABOVE, computed_at=T0))
        data = monitor.to_dict()
        assert data["state"] == "candidate"
        assert data["condition"]["type"] == "probability_threshold"
