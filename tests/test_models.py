"""
Tests for belief index data models and belief conditions.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from belief_index.errors import AmountOverflow, InvalidCondition, InvalidPosition
from belief_index.models import (
    MAX_AMOUNT,
    BeliefSignal,
    BeliefStateIndex,
    ModelConsensus,
    NarrativeVelocity,
    Position,
    ProbabilityThreshold,
    SentimentShift,
    TimeBucket,
    condition_from_dict,
)
from conftest import make_bsi


class TestBeliefSignal:
    """Tests for BeliefSignal construction."""

    def test_round_trip_dict(self):
        """to_dict / from_dict preserve every field."""
        signal = BeliefSignal(
            source="s1", value=0.4, weight=1.2, timestamp=100,
            signal_type="probability", confidence=0.9, metadata={"k": "v"}
        )
        assert BeliefSignal.from_dict(signal.to_dict()) == signal

    def test_unknown_signal_type_rejected(self):
        with pytest.raises(ValueError):
            BeliefSignal(source="s1", value=0.1, weight=1.0, timestamp=1, signal_type="rumor")

    def test_non_finite_value_rejected(self):
        with pytest.raises(ValueError):
            BeliefSignal(source="s1", value=float("nan"), weight=1.0, timestamp=1)

    def test_float_timestamp_rejected(self):
        """Timestamps are integer seconds."""
        with pytest.raises(ValueError):
            BeliefSignal(source="s1", value=0.1, weight=1.0, timestamp=1.5)

    def test_negative_weight_is_structurally_valid(self):
        """Negative weights are refused by the buffer, not the constructor."""
        signal = BeliefSignal(source="s1", value=0.1, weight=-1.0, timestamp=1)
        assert signal.weight == -1.0

    def test_key(self):
        signal = BeliefSignal(source="s1", value=0.1, weight=1.0, timestamp=7)
        assert signal.key == ("s1", 7)


class TestConditions:
    """Tests for belief condition predicates and validation."""

    def test_non_positive_persistence_window(self):
        with pytest.raises(InvalidCondition):
            ProbabilityThreshold(persistence_window=0, threshold=0.5)

    def test_threshold_outside_domain(self):
        condition = ProbabilityThreshold(persistence_window=60, threshold=1.5)
        with pytest.raises(InvalidCondition):
            condition.validate("signed")

    def test_negative_threshold_invalid_for_unit_domain(self):
        condition = ProbabilityThreshold(persistence_window=60, threshold=-0.2)
        condition.validate("signed")
        with pytest.raises(InvalidCondition):
            condition.validate("unit")

    def test_unknown_direction(self):
        with pytest.raises(InvalidCondition):
            ProbabilityThreshold(persistence_window=60, threshold=0.5, direction="cross")

    def test_threshold_above_and_below(self):
        above = ProbabilityThreshold(persistence_window=60, threshold=0.5, direction="above")
        below = ProbabilityThreshold(persistence_window=60, threshold=0.5, direction="below")
        assert above.is_satisfied(make_bsi(0.6))
        assert not above.is_satisfied(make_bsi(0.4))
        assert below.is_satisfied(make_bsi(0.4))
        assert not below.is_satisfied(make_bsi(0.6))
        assert above.magnitude(make_bsi(0.75)) == pytest.approx(0.25)

    def test_sentiment_shift_rising_and_falling(self):
        rising = SentimentShift(persistence_window=60, from_polarity=-0.5, to_polarity=0.3)
        falling = SentimentShift(persistence_window=60, from_polarity=0.5, to_polarity=-0.3)
        assert rising.is_satisfied(make_bsi(0.3))
        assert not rising.is_satisfied(make_bsi(0.1))
        assert falling.is_satisfied(make_bsi(-0.4))
        assert not falling.is_satisfied(make_bsi(0.0))

    def test_sentiment_shift_requires_distinct_polarities(self):
        condition = SentimentShift(persistence_window=60, from_polarity=0.2, to_polarity=0.2)
        with pytest.raises(InvalidCondition):
            condition.validate()

    def test_model_consensus(self):
        condition = ModelConsensus(persistence_window=60, min_models=3, convergence_band=0.1)
        assert condition.is_satisfied(make_bsi(source_count=3, spread=0.05))
        assert not condition.is_satisfied(make_bsi(source_count=2, spread=0.05))
        assert not condition.is_satisfied(make_bsi(source_count=4, spread=0.2))
        assert condition.magnitude(make_bsi(spread=0.05)) == 0.05

    def test_model_consensus_validation(self):
        with pytest.raises(InvalidCondition):
            ModelConsensus(persistence_window=60, min_models=1, convergence_band=0.1).validate()
        with pytest.raises(InvalidCondition):
            ModelConsensus(persistence_window=60, min_models=2, convergence_band=0.0).validate()

    def test_narrative_velocity(self):
        condition = NarrativeVelocity(
            persistence_window=60, velocity_threshold=0.01, acceleration_threshold=0.001
        )
        assert condition.is_satisfied(make_bsi(velocity=-0.02, acceleration=0.002))
        assert not condition.is_satisfied(make_bsi(velocity=0.02, acceleration=0.0))
        assert not condition.is_satisfied(make_bsi(velocity=0.005, acceleration=0.01))

    def test_condition_from_dict(self):
        condition = condition_from_dict({
            "type": "model_consensus",
            "min_models": 3,
            "convergence_band": 0.05,
            "persistence_window": 1200,
        })
        assert isinstance(condition, ModelConsensus)
        assert condition_from_dict(condition.to_dict()) == condition

    def test_condition_from_dict_unknown_type(self):
        with pytest.raises(InvalidCondition):
            condition_from_dict({"type": "vibes", "persistence_window": 10})

    def test_condition_from_dict_bad_params(self):
        with pytest.raises(InvalidCondition):
            condition_from_dict({"type": "probability_threshold", "persistence_window": 10, "cutoff": 1})


class TestBeliefStateIndex:
    """Tests for BSI helpers."""

    def test_predicates(self):
        bsi = make_bsi(0.5, velocity=0.2)
        assert bsi.is_bullish()
        assert not bsi.is_bearish()
        assert bsi.is_accelerating()

    def test_round_trip_dict(self):
        bsi = make_bsi(0.25)
        assert BeliefStateIndex.from_dict(bsi.to_dict()) == bsi


class TestPositions:
    """Tests for TimeBucket and Position."""

    def test_bucket_geometry(self):
        bucket = TimeBucket(1000, 2000)
        assert bucket.duration == 1000
        assert bucket.midpoint == 1500
        assert bucket.contains(1500)
        assert not bucket.contains(2000)
        assert bucket.distance_to(1050) == 50
        assert bucket.distance_to(900) == 100

    def test_bucket_invalid(self):
        with pytest.raises(ValueError):
            TimeBucket(2000, 1000)

    def test_bucket_overlap(self):
        assert TimeBucket(0, 10).overlaps(TimeBucket(5, 15))
        assert not TimeBucket(0, 10).overlaps(TimeBucket(10, 20))

    def test_position_amount_validation(self):
        bucket = TimeBucket.from_duration(0, 3600)
        with pytest.raises(InvalidPosition):
            Position("p1", "m", "alice", bucket, 0)
        with pytest.raises(AmountOverflow):
            Position("p1", "m", "alice", bucket, MAX_AMOUNT + 1)

    def test_position_roi(self):
        position = Position("p1", "m", "alice", TimeBucket(0, 10), 100)
        assert position.roi() is None
        position.payout = 150
        assert position.roi() == pytest.approx(50.0)
