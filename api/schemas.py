"""
API Schemas

Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# Request Models

class CreateMarketRequest(BaseModel):
    """Request to create a market."""
    market_id: str = Field(..., min_length=1)
    description: str = ""
    condition: Dict[str, Any] = Field(
        ...,
        description="Belief condition with a 'type' key, e.g. {'type': 'probability_threshold', ...}"
    )
    curve: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Settlement curve with a 'type' key; gaussian(sigma=3600) if omitted"
    )
    domain: str = Field(default="signed", description="'signed' for [-1, 1] or 'unit' for [0, 1]")
    accepted_range: Optional[Dict[str, int]] = None
    settings: Dict[str, Any] = Field(
        default_factory=dict,
        description="Other MarketConfig fields (decay_factor, min_sources, ...)"
    )
    created_at: Optional[int] = None


class SignalIn(BaseModel):
    """One belief signal."""
    source: str = Field(..., min_length=1)
    value: float
    weight: float = 1.0
    timestamp: int
    signal_type: str = "sentiment"
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    metadata: Dict[str, str] = Field(default_factory=dict)


class IngestSignalsRequest(BaseModel):
    """Batch of signals for one market."""
    signals: List[SignalIn]
    now: Optional[int] = Field(default=None, description="Engine clock; server time if omitted")


class CycleRequest(BaseModel):
    """Request to run an aggregation cycle."""
    now: Optional[int] = Field(default=None, description="Engine clock; server time if omitted")


class PositionRequest(BaseModel):
    """Request to place a position."""
    owner: str = Field(..., min_length=1)
    bucket_start: int
    bucket_end: Optional[int] = None
    amount: int = Field(..., gt=0)
    position_id: Optional[str] = None


class SettleRequest(BaseModel):
    """Request to settle a resolved market."""
    pool_supplement: int = Field(default=0, ge=0)


# Response Models

class BSIResponse(BaseModel):
    """Belief State Index snapshot."""
    market_id: str
    value: float
    velocity: float
    acceleration: float
    volatility: float
    confidence: float
    computed_at: int
    signal_count: int
    source_count: int
    dispersion: float
    spread: float
    total_weight: float


class InflectionResponse(BaseModel):
    """Confirmed inflection."""
    market_id: str
    timestamp: int
    condition_type: str
    magnitude: float
    bsi_value: float
    velocity: float
    candidate_since: int
    persistence_duration: int


class MarketInfo(BaseModel):
    """Market summary."""
    market_id: str
    description: str
    condition_type: str
    domain: str
    state: str
    monitor_state: str
    signal_count: int
    source_count: int
    position_count: int
    total_staked: int
    latest_bsi: Optional[BSIResponse] = None
    inflection: Optional[InflectionResponse] = None


class MarketListResponse(BaseModel):
    """List of markets."""
    markets: List[MarketInfo]
    count: int


class RejectedSignalInfo(BaseModel):
    """A signal refused at ingestion."""
    source: str
    timestamp: Optional[int] = None
    reason: str
    detail: str = ""


class IngestResponse(BaseModel):
    """Outcome of a signal batch."""
    market_id: str
    accepted: int
    rejected: List[RejectedSignalInfo]


class MonitorInfo(BaseModel):
    """Monitor state after a cycle."""
    previous_state: str
    state: str
    satisfied: bool
    candidate_since: Optional[int] = None
    satisfied_duration: int = 0


class CycleResponse(BaseModel):
    """Outcome of an aggregation cycle."""
    market_id: str
    computed_at: int
    status: str
    bsi: Optional[BSIResponse] = None
    monitor: Optional[MonitorInfo] = None
    inflection: Optional[InflectionResponse] = None
    error: Optional[str] = None


class PositionResponse(BaseModel):
    """Position information."""
    position_id: str
    market_id: str
    owner: str
    bucket_start: int
    bucket_end: int
    amount: int
    status: str
    payout: Optional[int] = None


class BucketResponse(BaseModel):
    """Stake aggregate for one time bucket."""
    bucket_start: int
    bucket_end: int
    total_staked: int
    position_count: int
    implied_probability: float
    avg_position_size: int


class BucketListResponse(BaseModel):
    """Stake aggregates for a market."""
    market_id: str
    buckets: List[BucketResponse]
    total_staked: int


class PayoutResponse(BaseModel):
    """Settlement result for one position."""
    position_id: str
    amount: int
    status: str
    distance: Optional[int] = None
    multiplier: str
    raw_payout: str


class SettlementResponse(BaseModel):
    """Settlement result for a market."""
    market_id: str
    inflection_timestamp: int
    pool_total: int
    total_paid: int
    payouts: List[PayoutResponse]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    market_count: int


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str
