"""
Tests for temporal decay, confidence and the BSI calculator.
"""

import sys
from dataclasses import replace
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from belief_index.calculator import BSICalculator, compute_bsi, rolling_volatility
from belief_index.confidence import (
    ConfidenceCalculator,
    ConfidenceComponents,
    agreement_factor,
    calculate_confidence,
    diversity_factor,
    recency_factor,
)
from belief_index.decay import calculate_time_weight, effective_weight
from belief_index.errors import InsufficientDiversity, UndefinedIndex
from belief_index.signal_buffer import SignalSet
from conftest import T0, make_signal


def signal_set(signals, taken_at=T0):
    ordered = sorted(signals, key=lambda s: (s.timestamp, s.source))
    return SignalSet(taken_at=taken_at, signals=tuple(ordered))


class TestTemporalDecay:
    """Tests for the decay module."""

    def test_no_decay_at_zero_age(self):
        assert calculate_time_weight(0, 0.5, 60) == 1.0

    def test_one_window(self):
        assert calculate_time_weight(60, 0.5, 60) == pytest.approx(0.5)

    def test_older_signal_weighs_less(self):
        fresh = make_signal("alpha", 0.5, T0 - 10)
        old = make_signal("alpha", 0.5, T0 - 600)
        assert effective_weight(old, T0, 0.9, 300) < effective_weight(fresh, T0, 0.9, 300)

    def test_decay_disabled(self):
        old = make_signal("alpha", 0.5, T0 - 10_000, weight=2.0)
        assert effective_weight(old, T0, 1.0, 300) == 2.0


class TestConfidence:
    """Tests for confidence components and blend."""

    def test_components_bounds(self):
        assert diversity_factor(10, 5) == 1.0
        assert diversity_factor(2, 4) == 0.5
        assert agreement_factor(0.0, 2.0) == 1.0
        assert agreement_factor(5.0, 2.0) == 0.0
        assert recency_factor(0, 900) == 1.0
        assert recency_factor(1800, 900) == 0.0

    def test_invalid_component(self):
        with pytest.raises(ValueError):
            ConfidenceComponents(diversity=1.5, agreement=0.5, recency=0.5)

    def test_default_blend(self):
        components = ConfidenceComponents(diversity=1.0, agreement=0.0, recency=0.0)
        assert calculate_confidence(components) == pytest.approx(0.40)

    def test_monotonicity(self):
        calc = ConfidenceCalculator(target_sources=5, domain_width=2.0, recency_horizon=900)
        assert calc.calculate(4, 0.1, 60) > calc.calculate(3, 0.1, 60)
        assert calc.calculate(3, 0.1, 30) > calc.calculate(3, 0.1, 60)
        assert calc.calculate(3, 0.1, 60) > calc.calculate(3, 0.3, 60)


class TestComputeBSI:
    """Tests for the stateless index computation."""

    def test_weighted_mean(self, market_config, three_sources):
        bsi = compute_bsi(signal_set(three_sources), T0, market_config)
        assert bsi.value == pytest.approx(0.8)
        assert bsi.source_count == 3
        assert bsi.signal_count == 3
        assert bsi.spread == pytest.approx(0.2)
        assert bsi.computed_at == T0

    def test_weights_shift_the_mean(self, market_config):
        signals = [
            make_signal("alpha", 0.0, T0, weight=3.0),
            make_signal("beta", 1.0, T0, weight=1.0),
            make_signal("gamma", 0.0, T0, weight=0.0),
        ]
        bsi = compute_bsi(signal_set(signals), T0, market_config)
        assert bsi.value == pytest.approx(0.25)

    def test_insufficient_diversity(self, market_config):
        """Two sources fail regardless of how many signals they send."""
        signals = [make_signal("alpha", 0.5, T0 - i) for i in range(10)]
        signals += [make_signal("beta", 0.5, T0 - i) for i in range(10)]
        with pytest.raises(InsufficientDiversity):
            compute_bsi(signal_set(signals), T0, market_config)

    def test_two_sources_never_enough(self, market_config):
        """A config that skipped validation still cannot lower the three-source floor."""
        lenient = replace(market_config, min_sources=2, target_sources=2)
        signals = [make_signal("alpha", 0.1, T0), make_signal("beta", 0.2, T0)]
        with pytest.raises(InsufficientDiversity):
            compute_bsi(signal_set(signals), T0, lenient)

    def test_zero_total_weight(self, market_config):
        signals = [make_signal(s, 0.5, T0, weight=0.0) for s in ("alpha", "beta", "gamma")]
        with pytest.raises(UndefinedIndex):
            compute_bsi(signal_set(signals), T0, market_config)

    def test_value_within_domain(self, market_config):
        signals = [make_signal(s, 1.0, T0) for s in ("alpha", "beta", "gamma")]
        bsi = compute_bsi(signal_set(signals), T0, market_config)
        assert -1.0 <= bsi.value <= 1.0
        assert 0.0 <= bsi.confidence <= 1.0

    def test_decay_favours_recent_signals(self, market_config):
        decaying = replace(market_config, decay_factor=0.5, decay_window=60)
        signals = [
            make_signal("alpha", -1.0, T0 - 600),
            make_signal("beta", 1.0, T0),
            make_signal("gamma", 1.0, T0),
        ]
        bsi = compute_bsi(signal_set(signals), T0, decaying)
        flat = compute_bsi(signal_set(signals), T0, market_config)
        assert bsi.value > flat.value

    def test_velocity_and_acceleration(self, market_config, three_sources):
        first = compute_bsi(signal_set(three_sources), T0, market_config)
        prior = replace(first, value=0.5, velocity=0.001, computed_at=T0 - 100)
        bsi = compute_bsi(signal_set(three_sources), T0, market_config, prior_bsi=prior)
        assert bsi.velocity == pytest.approx(0.003)
        assert bsi.acceleration == pytest.approx(0.00002)

    def test_deterministic(self, market_config):
        signals = [
            make_signal("alpha", 0.123456789, T0 - 7, weight=0.3),
            make_signal("beta", -0.987654321, T0 - 3, weight=1.7),
            make_signal("gamma", 0.5, T0 - 1, weight=2.1),
        ]
        first = compute_bsi(signal_set(signals), T0, market_config)
        second = compute_bsi(signal_set(list(reversed(signals))), T0, market_config)
        assert first == second

    def test_weightless_signal_earns_no_recency(self, market_config):
        stale = [make_signal(s, 0.5, T0 - 600) for s in ("alpha", "beta")]
        fresh_weightless = compute_bsi(
            signal_set(stale + [make_signal("gamma", 0.5, T0, weight=0.0)]), T0, market_config
        )
        old_weightless = compute_bsi(
            signal_set(stale + [make_signal("gamma", 0.5, T0 - 600, weight=0.0)]), T0, market_config
        )
        assert fresh_weightless.confidence == old_weightless.confidence


class TestRollingVolatility:
    """Tests for the rolling volatility window."""

    def test_single_value(self):
        assert rolling_volatility([], 0.5, 10) == 0.0

    def test_window_limits_history(self):
        history = [10.0] * 5 + [0.5, 0.5]
        assert rolling_volatility(history, 0.5, 3) == 0.0
        assert rolling_volatility(history, 0.5, 10) > 0.0


class TestBSICalculator:
    """Tests for the stateful per-market calculator."""

    def test_tracks_prior_and_history(self, market_config, three_sources):
        calculator = BSICalculator(market_config)
        first = calculator.compute(signal_set(three_sources), T0)
        assert first.velocity == 0.0

        moved = three_sources + [make_signal("delta", -0.2, T0 + 50)]
        second = calculator.compute(signal_set(moved, T0 + 100), T0 + 100)
        assert second.velocity != 0.0
        assert calculator.latest is second
        assert calculator.history == [first.value, second.value]
        assert second.volatility > 0.0

    def test_failed_cycle_keeps_prior(self, market_config, three_sources):
        calculator = BSICalculator(market_config)
        first = calculator.compute(signal_set(three_sources), T0)

        with pytest.raises(InsufficientDiversity):
            calculator.compute(signal_set(three_sources[:1], T0 + 60), T0 + 60)

        assert calculator.latest is first
        assert calculator.history == [first.value]

    def test_reset(self, market_config, three_sources):
        calculator = BSICalculator(market_config)
        calculator.compute(signal_set(three_sources), T0)
        calculator.reset()
        assert calculator.latest is None
        assert calculator.history == []
