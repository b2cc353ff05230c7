"""
Temporal Decay Module

Applies time-weighted decay to signal weights based on signal age.

Formula:
    weight_effective = weight * decay_factor ^ (age_seconds / decay_window)

where age_seconds = now - signal.timestamp. decay_factor = 1 disables decay.
"""

import logging
from typing import Iterable, List, Tuple

from belief_index.config import DEFAULT_DECAY_FACTOR, DEFAULT_DECAY_WINDOW
from belief_index.models import BeliefSignal

logger = logging.getLogger(__name__)


def calculate_time_weight(
    age_seconds: float,
    decay_factor: float = DEFAULT_DECAY_FACTOR,
    decay_window: float = DEFAULT_DECAY_WINDOW
) -> float:
    """
    Calculate the decay multiplier for a given age.

    Args:
        age_seconds: Seconds since the signal was emitted
        decay_factor: Multiplier applied per decay window, in (0, 1]
        decay_window: Seconds per decay step

    Returns:
        Time weight in range (0, 1]

    Examples:
        >>> calculate_time_weight(0, 0.5, 60)
        1.0
        >>> calculate_time_weight(60, 0.5, 60)
        0.5
    """
    if age_seconds <= 0:
        # Signals stamped at or after `now` get no decay
        return 1.0

    time_weight = decay_factor ** (age_seconds / decay_window)

    # Clamp to [0, 1]
    return max(0.0, min(1.0, time_weight))


def effective_weight(
    signal: BeliefSignal,
    now: int,
    decay_factor: float = DEFAULT_DECAY_FACTOR,
    decay_window: float = DEFAULT_DECAY_WINDOW
) -> float:
    """Decayed weight of a signal at time `now`."""
    return signal.weight * calculate_time_weight(now - signal.timestamp, decay_factor, decay_window)


def apply_temporal_decay(
    signals: Iterable[BeliefSignal],
    now: int,
    decay_factor: float = DEFAULT_DECAY_FACTOR,
    decay_window: float = DEFAULT_DECAY_WINDOW
) -> List[Tuple[BeliefSignal, float]]:
    """
    Pair each signal with its effective weight.

    Args:
        signals: Signals in a deterministic order
        now: Evaluation time
        decay_factor: Multiplier per decay window
        decay_window: Seconds per decay step

    Returns:
        List of (signal, effective_weight) in input order
    """
    weighted = [
        (signal, effective_weight(signal, now, decay_factor, decay_window))
        for signal in signals
    ]
    logger.debug(
        f"Applied temporal decay to {len(weighted)} signals "
        f"(factor={decay_factor}, window={decay_window}s)"
    )
    return weighted
