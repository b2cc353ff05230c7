"""
Belief State Index Core

Computes a continuously updated Belief State Index (BSI) from multi-source
signals, detects when it satisfies a market's belief condition for long
enough to count as an inflection, and settles time-bucketed positions
against that inflection.

Key components:
- SignalBuffer: Time-windowed signal storage with outlier rejection
- BSICalculator: Decayed, weighted index with velocity/volatility/confidence
- InflectionMonitor: IDLE -> CANDIDATE -> CONFIRMED state machine
- settle: Pure settlement of positions along a payout curve

Every function takes time as integer seconds from the caller; nothing reads
the wall clock.
"""

from .errors import (
    BeliefIndexError,
    RejectedSignal,
    RejectReason,
    InsufficientDiversity,
    UndefinedIndex,
    InvalidConfiguration,
    InvalidCondition,
    InvalidPosition,
    AmountOverflow,
    AlreadyResolved,
    ClockRegression,
    MarketNotFound,
    InvalidTransition,
)
from .models import (
    BeliefSignal,
    BeliefStateIndex,
    BeliefCondition,
    SentimentShift,
    ProbabilityThreshold,
    ModelConsensus,
    NarrativeVelocity,
    BeliefInflection,
    TimeBucket,
    Position,
    MAX_AMOUNT,
    VALUE_DOMAINS,
    condition_from_dict,
)
from .settlement import (
    SettlementCurve,
    LinearCurve,
    GaussianCurve,
    ExponentialCurve,
    CustomCurve,
    Payout,
    settle,
    compute_pool_total,
    curve_from_dict,
)
from .config import MarketConfig
from .decay import apply_temporal_decay, calculate_time_weight
from .confidence import ConfidenceCalculator, calculate_confidence
from .signal_buffer import SignalBuffer, SignalSet
from .calculator import BSICalculator, compute_bsi
from .monitor import InflectionMonitor, MonitorState, MonitorUpdate

__all__ = [
    # Errors
    "BeliefIndexError",
    "RejectedSignal",
    "RejectReason",
    "InsufficientDiversity",
    "UndefinedIndex",
    "InvalidConfiguration",
    "InvalidCondition",
    "InvalidPosition",
    "AmountOverflow",
    "AlreadyResolved",
    "ClockRegression",
    "MarketNotFound",
    "InvalidTransition",
    # Models
    "BeliefSignal",
    "BeliefStateIndex",
    "BeliefCondition",
    "SentimentShift",
    "ProbabilityThreshold",
    "ModelConsensus",
    "NarrativeVelocity",
    "BeliefInflection",
    "TimeBucket",
    "Position",
    "MAX_AMOUNT",
    "VALUE_DOMAINS",
    "condition_from_dict",
    # Settlement
    "SettlementCurve",
    "LinearCurve",
    "GaussianCurve",
    "ExponentialCurve",
    "CustomCurve",
    "Payout",
    "settle",
    "compute_pool_total",
    "curve_from_dict",
    # Aggregation
    "MarketConfig",
    "apply_temporal_decay",
    "calculate_time_weight",
    "ConfidenceCalculator",
    "calculate_confidence",
    "SignalBuffer",
    "SignalSet",
    "BSICalculator",
    "compute_bsi",
    "InflectionMonitor",
    "MonitorState",
    "MonitorUpdate",
]
