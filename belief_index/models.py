"""
Data Models for the Belief State Index

Defines the core data structures shared by the buffer, calculator, monitor
and settlement:
- BeliefSignal: One normalized observation from an oracle adapter
- BeliefStateIndex: The aggregated, decayed index for one cycle
- BeliefCondition: Market resolution predicates (four variants)
- BeliefInflection: Confirmed inflection event
- TimeBucket / Position: Time-bucketed stakes

All timestamps are integer seconds on the externally supplied clock.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Literal, Optional, Tuple

from belief_index.errors import AmountOverflow, InvalidCondition, InvalidPosition

logger = logging.getLogger(__name__)


# Type definitions
SignalType = Literal["sentiment", "probability", "narrative", "model_forecast", "consensus_metric"]
ValueDomain = Literal["signed", "unit"]
PositionStatus = Literal["open", "settled", "void"]
ThresholdDirection = Literal["above", "below"]

VALID_SIGNAL_TYPES = {"sentiment", "probability", "narrative", "model_forecast", "consensus_metric"}

# Declared BSI bounds per market domain
VALUE_DOMAINS: Dict[str, Tuple[float, float]] = {
    "signed": (-1.0, 1.0),
    "unit": (0.0, 1.0),
}

# Largest representable stake / pool / payout (unsigned 64-bit units)
MAX_AMOUNT = 2 ** 64 - 1


def domain_bounds(domain: str) -> Tuple[float, float]:
    """Return (low, high) for a value domain name."""
    if domain not in VALUE_DOMAINS:
        raise InvalidCondition(f"value domain must be one of {sorted(VALUE_DOMAINS)}, got {domain}")
    return VALUE_DOMAINS[domain]


def _is_finite_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class BeliefSignal:
    """
    A single belief observation submitted by an oracle adapter.

    The oracle kind is a tag (signal_type); the buffer and calculator treat
    every kind the same way except for outlier statistics, which are kept per
    kind.
    """
    source: str
    value: float
    weight: float
    timestamp: int
    signal_type: SignalType = "sentiment"
    confidence: Optional[float] = None
    metadata: Dict[str, str] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        """Validate structure. Ingestion policy is enforced by the buffer."""
        if not isinstance(self.source, str) or not self.source.strip():
            raise ValueError("source must be a non-empty string")
        if self.signal_type not in VALID_SIGNAL_TYPES:
            raise ValueError(f"signal_type must be one of {VALID_SIGNAL_TYPES}, got {self.signal_type}")
        if not _is_finite_number(self.value):
            raise ValueError(f"value must be a finite number, got {self.value!r}")
        if not _is_finite_number(self.weight):
            raise ValueError(f"weight must be a finite number, got {self.weight!r}")
        if not isinstance(self.timestamp, int) or isinstance(self.timestamp, bool):
            raise ValueError(f"timestamp must be an integer, got {self.timestamp!r}")
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be between 0.0 and 1.0, got {self.confidence}")

    @property
    def key(self) -> Tuple[str, int]:
        """Deduplication key."""
        return (self.source, self.timestamp)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "source": self.source,
            "value": self.value,
            "weight": self.weight,
            "timestamp": self.timestamp,
            "signal_type": self.signal_type,
            "confidence": self.confidence,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BeliefSignal":
        """Create from dictionary."""
        return cls(
            source=data["source"],
            value=data["value"],
            weight=data.get("weight", 1.0),
            timestamp=int(data["timestamp"]),
            signal_type=data.get("signal_type", "sentiment"),
            confidence=data.get("confidence"),
            metadata=data.get("metadata", {}),
        )


@dataclass(frozen=True)
class BeliefStateIndex:
    """
    Aggregated belief for one market at one point in time.

    value is always inside the market's declared domain; confidence is in
    [0, 1]. velocity and acceleration are finite differences against the
    prior index.
    """
    market_id: str
    value: float
    velocity: float
    acceleration: float
    volatility: float
    confidence: float
    computed_at: int
    signal_count: int
    source_count: int
    dispersion: float = 0.0
    spread: float = 0.0
    total_weight: float = 0.0

    def is_bullish(self) -> bool:
        return self.value > 0.3

    def is_bearish(self) -> bool:
        return self.value < -0.3

    def is_neutral(self) -> bool:
        return abs(self.value) <= 0.3

    def is_accelerating(self) -> bool:
        return abs(self.velocity) > 0.1

    def is_volatile(self) -> bool:
        return self.volatility > 0.5

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "market_id": self.market_id,
            "value": self.value,
            "velocity": self.velocity,
            "acceleration": self.acceleration,
            "volatility": self.volatility,
            "confidence": self.confidence,
            "computed_at": self.computed_at,
            "signal_count": self.signal_count,
            "source_count": self.source_count,
            "dispersion": self.dispersion,
            "spread": self.spread,
            "total_weight": self.total_weight,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BeliefStateIndex":
        """Create from dictionary."""
        return cls(
            market_id=data["market_id"],
            value=data["value"],
            velocity=data.get("velocity", 0.0),
            acceleration=data.get("acceleration", 0.0),
            volatility=data.get("volatility", 0.0),
            confidence=data.get("confidence", 0.0),
            computed_at=int(data["computed_at"]),
            signal_count=data.get("signal_count", 0),
            source_count=data.get("source_count", 0),
            dispersion=data.get("dispersion", 0.0),
            spread=data.get("spread", 0.0),
            total_weight=data.get("total_weight", 0.0),
        )


# ----------------------------------------------------------------------
# Belief conditions
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class BeliefCondition:
    """
    Base for market resolution predicates.

    Predicates are pure functions of the current BeliefStateIndex and the
    condition parameters. Conditions are fixed at market creation.
    """
    persistence_window: int

    condition_type: ClassVar[str] = ""

    def __post_init__(self):
        if not isinstance(self.persistence_window, int) or isinstance(self.persistence_window, bool):
            raise InvalidCondition(f"persistence_window must be an integer, got {self.persistence_window!r}")
        if self.persistence_window <= 0:
            raise InvalidCondition(f"persistence_window must be positive, got {self.persistence_window}")
        for name, value in self._params().items():
            if not _is_finite_number(value):
                raise InvalidCondition(f"{self.condition_type}.{name} must be a finite number, got {value!r}")

    def _params(self) -> Dict[str, float]:
        return {}

    def validate(self, domain: ValueDomain = "signed") -> None:
        """Check parameters against the market's value domain."""
        raise NotImplementedError

    def is_satisfied(self, bsi: BeliefStateIndex) -> bool:
        raise NotImplementedError

    def magnitude(self, bsi: BeliefStateIndex) -> float:
        raise NotImplementedError

    def to_dict(self) -> dict:
        data = {"type": self.condition_type, "persistence_window": self.persistence_window}
        data.update(self._params())
        return data


@dataclass(frozen=True)
class SentimentShift(BeliefCondition):
    """Satisfied once the BSI has entered the target polarity range."""
    from_polarity: float = 0.0
    to_polarity: float = 0.0

    condition_type: ClassVar[str] = "sentiment_shift"

    def _params(self) -> Dict[str, float]:
        return {"from_polarity": self.from_polarity, "to_polarity": self.to_polarity}

    def validate(self, domain: ValueDomain = "signed") -> None:
        low, high = domain_bounds(domain)
        for name, value in self._params().items():
            if not low <= value <= high:
                raise InvalidCondition(f"{name} must be within [{low}, {high}], got {value}")
        if self.from_polarity == self.to_polarity:
            raise InvalidCondition("from_polarity and to_polarity must differ")

    @property
    def rising(self) -> bool:
        return self.to_polarity > self.from_polarity

    def is_satisfied(self, bsi: BeliefStateIndex) -> bool:
        if self.rising:
            return bsi.value >= self.to_polarity
        return bsi.value <= self.to_polarity

    def magnitude(self, bsi: BeliefStateIndex) -> float:
        return abs(bsi.value - self.to_polarity)


@dataclass(frozen=True)
class ProbabilityThreshold(BeliefCondition):
    """Satisfied while the BSI is past the threshold in the configured direction."""
    threshold: float = 0.5
    direction: ThresholdDirection = "above"

    condition_type: ClassVar[str] = "probability_threshold"

    def __post_init__(self):
        super().__post_init__()
        if self.direction not in ("above", "below"):
            raise InvalidCondition(f"direction must be 'above' or 'below', got {self.direction!r}")

    def _params(self) -> Dict[str, float]:
        return {"threshold": self.threshold}

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["direction"] = self.direction
        return data

    def validate(self, domain: ValueDomain = "signed") -> None:
        low, high = domain_bounds(domain)
        if not low <= self.threshold <= high:
            raise InvalidCondition(f"threshold must be within [{low}, {high}], got {self.threshold}")

    def is_satisfied(self, bsi: BeliefStateIndex) -> bool:
        if self.direction == "above":
            return bsi.value >= self.threshold
        return bsi.value <= self.threshold

    def magnitude(self, bsi: BeliefStateIndex) -> float:
        return abs(bsi.value - self.threshold)


@dataclass(frozen=True)
class ModelConsensus(BeliefCondition):
    """Satisfied while enough sources agree within the convergence band."""
    min_models: int = 2
    convergence_band: float = 0.1

    condition_type: ClassVar[str] = "model_consensus"

    def _params(self) -> Dict[str, float]:
        return {"min_models": self.min_models, "convergence_band": self.convergence_band}

    def validate(self, domain: ValueDomain = "signed") -> None:
        low, high = domain_bounds(domain)
        if not isinstance(self.min_models, int) or self.min_models < 2:
            raise InvalidCondition(f"min_models must be an integer >= 2, got {self.min_models}")
        if not 0.0 < self.convergence_band <= high - low:
            raise InvalidCondition(
                f"convergence_band must be within (0, {high - low}], got {self.convergence_band}"
            )

    def is_satisfied(self, bsi: BeliefStateIndex) -> bool:
        return bsi.source_count >= self.min_models and bsi.spread <= self.convergence_band

    def magnitude(self, bsi: BeliefStateIndex) -> float:
        return bsi.spread


@dataclass(frozen=True)
class NarrativeVelocity(BeliefCondition):
    """Satisfied while belief change is both fast and accelerating."""
    velocity_threshold: float = 0.0
    acceleration_threshold: float = 0.0

    condition_type: ClassVar[str] = "narrative_velocity"

    def _params(self) -> Dict[str, float]:
        return {
            "velocity_threshold": self.velocity_threshold,
            "acceleration_threshold": self.acceleration_threshold,
        }

    def validate(self, domain: ValueDomain = "signed") -> None:
        domain_bounds(domain)
        if self.velocity_threshold <= 0:
            raise InvalidCondition(f"velocity_threshold must be positive, got {self.velocity_threshold}")
        if self.acceleration_threshold < 0:
            raise InvalidCondition(
                f"acceleration_threshold must be non-negative, got {self.acceleration_threshold}"
            )

    def is_satisfied(self, bsi: BeliefStateIndex) -> bool:
        return (
            abs(bsi.velocity) >= self.velocity_threshold
            and abs(bsi.acceleration) >= self.acceleration_threshold
        )

    def magnitude(self, bsi: BeliefStateIndex) -> float:
        return bsi.velocity


CONDITION_TYPES = {
    cls.condition_type: cls
    for cls in (SentimentShift, ProbabilityThreshold, ModelConsensus, NarrativeVelocity)
}


def condition_from_dict(data: dict) -> BeliefCondition:
    """
    Build a belief condition from its dictionary form.

    Args:
        data: Dict with a 'type' key plus the variant's parameters

    Returns:
        BeliefCondition instance

    Raises:
        InvalidCondition: Unknown type or bad parameters
    """
    params = dict(data)
    condition_type = params.pop("type", None)
    cls = CONDITION_TYPES.get(condition_type)
    if cls is None:
        raise InvalidCondition(f"Unknown condition type: {condition_type!r}")
    try:
        return cls(**params)
    except TypeError as e:
        raise InvalidCondition(f"Invalid parameters for {condition_type}: {e}") from e


@dataclass(frozen=True)
class BeliefInflection:
    """
    Confirmed inflection for a market. Created at most once per market.
    """
    market_id: str
    timestamp: int
    condition_type: str
    magnitude: float
    bsi_value: float
    velocity: float
    candidate_since: int
    persistence_duration: int

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "market_id": self.market_id,
            "timestamp": self.timestamp,
            "condition_type": self.condition_type,
            "magnitude": self.magnitude,
            "bsi_value": self.bsi_value,
            "velocity": self.velocity,
            "candidate_since": self.candidate_since,
            "persistence_duration": self.persistence_duration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BeliefInflection":
        """Create from dictionary."""
        return cls(
            market_id=data["market_id"],
            timestamp=int(data["timestamp"]),
            condition_type=data.get("condition_type", ""),
            magnitude=data.get("magnitude", 0.0),
            bsi_value=data.get("bsi_value", 0.0),
            velocity=data.get("velocity", 0.0),
            candidate_since=int(data.get("candidate_since", data["timestamp"])),
            persistence_duration=int(data.get("persistence_duration", 0)),
        )


# ----------------------------------------------------------------------
# Positions
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class TimeBucket:
    """Half-open interval [start, end) of predicted inflection time."""
    start: int
    end: int

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"bucket start must be before end, got [{self.start}, {self.end})")

    @classmethod
    def from_duration(cls, start: int, duration: int) -> "TimeBucket":
        return cls(start=start, end=start + duration)

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def midpoint(self) -> int:
        return (self.start + self.end) // 2

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp < self.end

    def overlaps(self, other: "TimeBucket") -> bool:
        return self.start < other.end and other.start < self.end

    def distance_to(self, timestamp: int) -> int:
        """Absolute time between the bucket start and a timestamp."""
        return abs(self.start - timestamp)

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


@dataclass
class Position:
    """
    A stake on a time bucket. References its market by id only.

    status transitions (open -> settled | void) are applied by settlement.
    """
    position_id: str
    market_id: str
    owner: str
    bucket: TimeBucket
    amount: int
    status: PositionStatus = "open"
    payout: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            raise InvalidPosition(f"amount must be an integer, got {self.amount!r}")
        if self.amount <= 0:
            raise InvalidPosition(f"amount must be positive, got {self.amount}")
        if self.amount > MAX_AMOUNT:
            raise AmountOverflow(f"amount {self.amount} exceeds maximum {MAX_AMOUNT}")
        if self.status not in ("open", "settled", "void"):
            raise InvalidPosition(f"status must be open, settled or void, got {self.status}")

    def is_open(self) -> bool:
        return self.status == "open"

    def roi(self) -> Optional[float]:
        """Return on stake in percent, once a payout is known."""
        if self.payout is None:
            return None
        return (self.payout - self.amount) / self.amount * 100.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "position_id": self.position_id,
            "market_id": self.market_id,
            "owner": self.owner,
            "bucket": self.bucket.to_dict(),
            "amount": self.amount,
            "status": self.status,
            "payout": self.payout,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        """Create from dictionary."""
        bucket = data["bucket"]
        return cls(
            position_id=data["position_id"],
            market_id=data.get("market_id", ""),
            owner=data.get("owner", ""),
            bucket=TimeBucket(start=int(bucket["start"]), end=int(bucket["end"])),
            amount=data["amount"],
            status=data.get("status", "open"),
            payout=data.get("payout"),
        )
