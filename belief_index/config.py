"""
Configuration for the belief index core.

Module-level defaults plus MarketConfig, the per-market configuration that
is supplied once at market creation and never mutated.

Usage:
    from belief_index.config import MarketConfig, DEFAULT_DECAY_FACTOR
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from belief_index.errors import InvalidCondition, InvalidConfiguration
from belief_index.models import (
    MAX_AMOUNT,
    VALUE_DOMAINS,
    BeliefCondition,
    TimeBucket,
    condition_from_dict,
)
from belief_index.settlement import GaussianCurve, SettlementCurve, curve_from_dict

logger = logging.getLogger(__name__)


# Decay
DEFAULT_DECAY_FACTOR = 0.95       # weight multiplier per decay window
DEFAULT_DECAY_WINDOW = 300        # seconds (5 minutes)

# Buffer
DEFAULT_RETENTION_WINDOW = 3600   # seconds a signal stays in the window
DEFAULT_MIN_SOURCES = 3           # distinct sources required for a valid index
MIN_SOURCES_FLOOR = 3             # no market may configure fewer
DEFAULT_OUTLIER_THRESHOLD = 3.0   # z-score
DEFAULT_OUTLIER_POLICY = "reject"
DEFAULT_DOWNWEIGHT_FACTOR = 0.25
DEFAULT_MAX_SIGNALS_PER_SOURCE = 100
MIN_OUTLIER_SAMPLE = 3            # values needed before z-scores are trusted

# Calculator
DEFAULT_VOLATILITY_WINDOW = 10    # BSI values in the rolling std
DEFAULT_TARGET_SOURCES = 5        # sources for full diversity credit
DEFAULT_RECENCY_HORIZON = 900     # seconds until a signal earns no recency credit

# Positions
DEFAULT_BUCKET_SIZE = 3600
DEFAULT_MIN_POSITION = 1
DEFAULT_MAX_POSITION = MAX_AMOUNT

# Oracle update cadence enforced by the boundary layer
ORACLE_UPDATE_FREQUENCY = 300

# Default weights by oracle kind
SIGNAL_TYPE_WEIGHTS: Dict[str, float] = {
    "sentiment": 1.0,
    "probability": 1.2,
    "narrative": 0.8,
    "model_forecast": 1.5,
    "consensus_metric": 1.3,
}

OUTLIER_POLICIES = {"reject", "downweight"}


@dataclass(frozen=True)
class MarketConfig:
    """
    Immutable configuration for one market.

    condition and curve are fixed at creation; accepted_range bounds the
    time buckets positions may target.
    """
    market_id: str
    condition: BeliefCondition
    curve: SettlementCurve = field(default_factory=lambda: GaussianCurve(sigma=3600.0))
    description: str = ""
    domain: str = "signed"
    decay_factor: float = DEFAULT_DECAY_FACTOR
    decay_window: int = DEFAULT_DECAY_WINDOW
    retention_window: int = DEFAULT_RETENTION_WINDOW
    min_sources: int = DEFAULT_MIN_SOURCES
    target_sources: int = DEFAULT_TARGET_SOURCES
    outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD
    outlier_policy: str = DEFAULT_OUTLIER_POLICY
    downweight_factor: float = DEFAULT_DOWNWEIGHT_FACTOR
    max_signals_per_source: int = DEFAULT_MAX_SIGNALS_PER_SOURCE
    volatility_window: int = DEFAULT_VOLATILITY_WINDOW
    recency_horizon: int = DEFAULT_RECENCY_HORIZON
    accepted_range: Optional[TimeBucket] = None
    bucket_size: int = DEFAULT_BUCKET_SIZE
    min_position_size: int = DEFAULT_MIN_POSITION
    max_position_size: int = DEFAULT_MAX_POSITION
    expiration_time: Optional[int] = None

    def validate(self) -> "MarketConfig":
        """
        Validate the configuration.

        Returns:
            self, for chaining

        Raises:
            InvalidCondition: Condition parameters don't fit the domain
            InvalidConfiguration: Any other malformed parameter
        """
        errors = []

        if not self.market_id or not self.market_id.strip():
            errors.append("market_id is required")
        if self.domain not in VALUE_DOMAINS:
            errors.append(f"domain must be one of {sorted(VALUE_DOMAINS)}")
        if not 0.0 < self.decay_factor <= 1.0:
            errors.append("decay_factor must be in (0, 1]")
        if self.decay_window <= 0:
            errors.append("decay_window must be positive")
        if self.retention_window <= 0:
            errors.append("retention_window must be positive")
        if self.min_sources < MIN_SOURCES_FLOOR:
            errors.append(f"min_sources must be at least {MIN_SOURCES_FLOOR}")
        if self.target_sources < self.min_sources:
            errors.append("target_sources cannot be below min_sources")
        if self.outlier_threshold <= 0:
            errors.append("outlier_threshold must be positive")
        if self.outlier_policy not in OUTLIER_POLICIES:
            errors.append(f"outlier_policy must be one of {sorted(OUTLIER_POLICIES)}")
        if not 0.0 <= self.downweight_factor <= 1.0:
            errors.append("downweight_factor must be in [0, 1]")
        if self.max_signals_per_source < 1:
            errors.append("max_signals_per_source must be at least 1")
        if self.volatility_window < 2:
            errors.append("volatility_window must be at least 2")
        if self.recency_horizon <= 0:
            errors.append("recency_horizon must be positive")
        if self.bucket_size <= 0:
            errors.append("bucket_size must be positive")
        if not 0 < self.min_position_size <= self.max_position_size <= MAX_AMOUNT:
            errors.append("position size bounds must satisfy 0 < min <= max <= MAX_AMOUNT")
        if self.expiration_time is not None and not isinstance(self.expiration_time, int):
            errors.append("expiration_time must be integer seconds")

        if errors:
            raise InvalidConfiguration(f"Market '{self.market_id}' configuration invalid: {errors}")

        self.condition.validate(self.domain)
        return self

    @property
    def bounds(self):
        return VALUE_DOMAINS[self.domain]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "market_id": self.market_id,
            "description": self.description,
            "condition": self.condition.to_dict(),
            "curve": self.curve.to_dict(),
            "domain": self.domain,
            "decay_factor": self.decay_factor,
            "decay_window": self.decay_window,
            "retention_window": self.retention_window,
            "min_sources": self.min_sources,
            "target_sources": self.target_sources,
            "outlier_threshold": self.outlier_threshold,
            "outlier_policy": self.outlier_policy,
            "downweight_factor": self.downweight_factor,
            "max_signals_per_source": self.max_signals_per_source,
            "volatility_window": self.volatility_window,
            "recency_horizon": self.recency_horizon,
            "accepted_range": self.accepted_range.to_dict() if self.accepted_range else None,
            "bucket_size": self.bucket_size,
            "min_position_size": self.min_position_size,
            "max_position_size": self.max_position_size,
            "expiration_time": self.expiration_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MarketConfig":
        """
        Create and validate a market configuration from a dictionary.

        Args:
            data: Dict with at least market_id and condition

        Returns:
            Validated MarketConfig
        """
        if "condition" not in data:
            raise InvalidCondition(f"Market '{data.get('market_id', '')}' has no condition")

        accepted_range = None
        if data.get("accepted_range"):
            try:
                accepted_range = TimeBucket(
                    start=int(data["accepted_range"]["start"]),
                    end=int(data["accepted_range"]["end"]),
                )
            except (KeyError, ValueError) as e:
                raise InvalidConfiguration(f"Invalid accepted_range: {e}") from e

        kwargs = {
            key: data[key]
            for key in (
                "description", "domain", "decay_factor", "decay_window",
                "retention_window", "min_sources", "target_sources",
                "outlier_threshold", "outlier_policy", "downweight_factor",
                "max_signals_per_source", "volatility_window", "recency_horizon",
                "bucket_size", "min_position_size", "max_position_size",
                "expiration_time",
            )
            if key in data
        }
        if "curve" in data:
            kwargs["curve"] = curve_from_dict(data["curve"])

        config = cls(
            market_id=data.get("market_id", ""),
            condition=condition_from_dict(data["condition"]),
            accepted_range=accepted_range,
            **kwargs,
        )
        return config.validate()
