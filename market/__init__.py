"""
Market Module

Orchestration around the belief index core:
- Market Registry: Market configuration loading
- Lifecycle: active / monitoring / resolved / cancelled / expired
- Engine: Per-market cycles, positions and settlement
- Positions: Per-bucket stake aggregation
"""

from .registry import MarketRegistry, get_registry
from .lifecycle import MarketLifecycle, MarketState, ALLOWED_TRANSITIONS
from .positions import TimeBucketAggregate, aggregate_by_bucket
from .engine import (
    Market,
    MarketEngine,
    CycleResult,
    IngestReport,
    get_engine,
    CYCLE_COMPUTED,
    CYCLE_INSUFFICIENT_DIVERSITY,
    CYCLE_UNDEFINED_INDEX,
    CYCLE_ALREADY_RESOLVED,
    CYCLE_CLOSED,
)

__all__ = [
    "MarketRegistry",
    "get_registry",
    "MarketLifecycle",
    "MarketState",
    "ALLOWED_TRANSITIONS",
    "TimeBucketAggregate",
    "aggregate_by_bucket",
    "Market",
    "MarketEngine",
    "CycleResult",
    "IngestReport",
    "get_engine",
    "CYCLE_COMPUTED",
    "CYCLE_INSUFFICIENT_DIVERSITY",
    "CYCLE_UNDEFINED_INDEX",
    "CYCLE_ALREADY_RESOLVED",
    "CYCLE_CLOSED",
]
