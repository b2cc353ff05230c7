"""
BSI Calculator

Converts a buffered signal set into one decayed, weighted Belief State Index.

    weight_effective = weight * decay_factor ^ (age_seconds / decay_window)
    value            = Σ(value * weight_effective) / Σ(weight_effective)
    velocity         = (value - prior.value) / (now - prior.computed_at)
    acceleration     = (velocity - prior.velocity) / (now - prior.computed_at)
    volatility       = std of the last N index values (current included)

Sums run over signals in (timestamp, source) order with math.fsum, so the
same snapshot always yields the same bits.
"""

import logging
import math
from collections import deque
from typing import Deque, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from belief_index.confidence import ConfidenceCalculator
from belief_index.config import MIN_SOURCES_FLOOR, MarketConfig
from belief_index.decay import apply_temporal_decay
from belief_index.errors import UndefinedIndex
from belief_index.models import BeliefSignal, BeliefStateIndex
from belief_index.signal_buffer import SignalSet

logger = logging.getLogger(__name__)


def weighted_mean(weighted: Sequence[Tuple[BeliefSignal, float]]) -> Tuple[float, float]:
    """
    Weighted mean of signal values.

    Returns:
        Tuple of (mean, total_weight)

    Raises:
        UndefinedIndex: If the total effective weight is zero
    """
    total_weight = math.fsum(w for _, w in weighted)
    if total_weight <= 0.0:
        raise UndefinedIndex(len(weighted))
    mean = math.fsum(s.value * w for s, w in weighted) / total_weight
    return mean, total_weight


def weighted_dispersion(
    weighted: Sequence[Tuple[BeliefSignal, float]],
    mean: float,
    total_weight: float
) -> float:
    """Weighted standard deviation of signal values around `mean`."""
    variance = math.fsum(w * (s.value - mean) ** 2 for s, w in weighted) / total_weight
    return math.sqrt(max(0.0, variance))


def latest_spread(signal_set: SignalSet) -> float:
    """Max minus min of each source's most recent value."""
    latest = [s.value for s in signal_set.latest_by_source().values()]
    if len(latest) < 2:
        return 0.0
    return max(latest) - min(latest)


def rolling_volatility(history: Iterable[float], value: float, window: int) -> float:
    """Population std of the last `window` index values including `value`."""
    values = (list(history) + [value])[-window:]
    if len(values) < 2:
        return 0.0
    return float(np.std(np.array(values, dtype=float)))


def compute_bsi(
    signal_set: SignalSet,
    now: int,
    config: MarketConfig,
    prior_bsi: Optional[BeliefStateIndex] = None,
    history: Iterable[float] = (),
) -> BeliefStateIndex:
    """
    Compute a Belief State Index from a snapshot.

    Args:
        signal_set: Time-ordered snapshot from the market's buffer
        now: Evaluation time
        config: Market configuration (decay, domain, diversity)
        prior_bsi: Previous index, basis for velocity and acceleration
        history: Previous index values, oldest first, for volatility

    Returns:
        BeliefStateIndex

    Raises:
        InsufficientDiversity: Fewer distinct sources than config.min_sources
            (never fewer than three)
        UndefinedIndex: Total effective weight is zero
    """
    signal_set.require_diversity(max(config.min_sources, MIN_SOURCES_FLOOR))

    weighted = apply_temporal_decay(signal_set.signals, now, config.decay_factor, config.decay_window)
    mean, total_weight = weighted_mean(weighted)

    low, high = config.bounds
    value = min(high, max(low, mean))

    velocity = 0.0
    acceleration = 0.0
    if prior_bsi is not None:
        elapsed = now - prior_bsi.computed_at
        if elapsed > 0:
            velocity = (value - prior_bsi.value) / elapsed
            acceleration = (velocity - prior_bsi.velocity) / elapsed

    dispersion = weighted_dispersion(weighted, mean, total_weight)
    # Only signals that still carry weight count toward recency
    freshest_age = max(0, now - max(s.timestamp for s, w in weighted if w > 0))
    confidence = ConfidenceCalculator(
        target_sources=config.target_sources,
        domain_width=high - low,
        recency_horizon=config.recency_horizon,
    ).calculate(signal_set.source_count, dispersion, freshest_age)

    return BeliefStateIndex(
        market_id=config.market_id,
        value=value,
        velocity=velocity,
        acceleration=acceleration,
        volatility=rolling_volatility(history, value, config.volatility_window),
        confidence=confidence,
        computed_at=now,
        signal_count=len(signal_set),
        source_count=signal_set.source_count,
        dispersion=dispersion,
        spread=latest_spread(signal_set),
        total_weight=total_weight,
    )


class BSICalculator:
    """
    Stateful calculator for one market.

    Keeps the prior index and the rolling value history. A failed cycle
    raises and leaves both untouched, so the prior index stays current.
    """

    def __init__(self, config: MarketConfig):
        self.config = config
        self.latest: Optional[BeliefStateIndex] = None
        self._history: Deque[float] = deque(maxlen=config.volatility_window)

    def compute(
        self,
        signal_set: SignalSet,
        now: int,
        prior_bsi: Optional[BeliefStateIndex] = None
    ) -> BeliefStateIndex:
        """
        Compute the next index.

        Args:
            signal_set: Snapshot from the market's buffer
            now: Evaluation time
            prior_bsi: Override for the prior index (defaults to the last
                index this calculator produced)

        Returns:
            BeliefStateIndex
        """
        prior = prior_bsi if prior_bsi is not None else self.latest
        bsi = compute_bsi(signal_set, now, self.config, prior, self._history)

        self._history.append(bsi.value)
        self.latest = bsi

        logger.debug(
            f"[{self.config.market_id}] BSI={bsi.value:.4f} velocity={bsi.velocity:.6f} "
            f"volatility={bsi.volatility:.4f} confidence={bsi.confidence:.3f} "
            f"({bsi.signal_count} signals, {bsi.source_count} sources)"
        )
        return bsi

    @property
    def history(self) -> List[float]:
        return list(self._history)

    def reset(self) -> None:
        self.latest = None
        self._history.clear()
