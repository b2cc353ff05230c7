"""
Pytest Configuration and Fixtures
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

T0 = 1_000_000


def make_signal(source, value, timestamp, weight=1.0, signal_type="sentiment", **kwargs):
    """Build a BeliefSignal with test defaults."""
    from belief_index.models import BeliefSignal
    return BeliefSignal(
        source=source,
        value=value,
        weight=weight,
        timestamp=timestamp,
        signal_type=signal_type,
        **kwargs
    )


def make_bsi(value=0.0, computed_at=T0, velocity=0.0, acceleration=0.0,
             source_count=3, spread=0.0, market_id="test-market"):
    """Build a BeliefStateIndex with test defaults."""
    from belief_index.models import BeliefStateIndex
    return BeliefStateIndex(
        market_id=market_id,
        value=value,
        velocity=velocity,
        acceleration=acceleration,
        volatility=0.0,
        confidence=0.5,
        computed_at=computed_at,
        signal_count=source_count,
        source_count=source_count,
        spread=spread,
    )


@pytest.fixture
def t0():
    """Base timestamp for tests."""
    return T0


@pytest.fixture
def threshold_condition():
    """ProbabilityThreshold above 0.6, held for 600s."""
    from belief_index.models import ProbabilityThreshold
    return ProbabilityThreshold(persistence_window=600, threshold=0.6, direction="above")


@pytest.fixture
def market_config(threshold_condition):
    """Market config with decay disabled so BSI values are easy to reason about."""
    from belief_index.config import MarketConfig
    from belief_index.settlement import LinearCurve
    return MarketConfig(
        market_id="test-market",
        condition=threshold_condition,
        curve=LinearCurve(decay_rate=0.01),
        domain="signed",
        decay_factor=1.0,
        min_sources=3,
        target_sources=5,
    ).validate()


@pytest.fixture
def three_sources(t0):
    """One signal from each of three sources."""
    return [
        make_signal("alpha", 0.7, t0 - 30),
        make_signal("beta", 0.8, t0 - 20),
        make_signal("gamma", 0.9, t0 - 10),
    ]


@pytest.fixture
def registry_file(tmp_path):
    """Write a small markets.json and return its path."""
    import json
    path = tmp_path / "markets.json"
    path.write_text(json.dumps({
        "defaults": {"decay_factor": 1.0, "min_sources": 3},
        "markets": [
            {
                "market_id": "threshold-market",
                "description": "Threshold test market",
                "condition": {
                    "type": "probability_threshold",
                    "threshold": 0.6,
                    "direction": "above",
                    "persistence_window": 600,
                },
                "curve": {"type": "linear", "decay_rate": 0.01},
            },
            {
                "market_id": "shift-market",
                "description": "Sentiment shift test market",
                "condition": {
                    "type": "sentiment_shift",
                    "from_polarity": -0.2,
                    "to_polarity": 0.4,
                    "persistence_window": 300,
                },
                "curve": {"type": "gaussian", "sigma": 3600.0},
            },
        ],
    }))
    return path
