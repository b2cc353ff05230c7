"""
API Endpoints

Route handlers for the FastAPI application.

Time: every mutating endpoint accepts an optional `now` (integer seconds on
the engine clock); the server clock is used when it is omitted.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from api.schemas import (
    BSIResponse, BucketListResponse, BucketResponse,
    CreateMarketRequest, CycleRequest, CycleResponse, ErrorResponse,
    HealthResponse, IngestResponse, IngestSignalsRequest,
    InflectionResponse, MarketInfo, MarketListResponse, MonitorInfo,
    PayoutResponse, PositionRequest, PositionResponse,
    RejectedSignalInfo, SettleRequest, SettlementResponse,
)
from belief_index.config import MarketConfig
from belief_index.errors import (
    AlreadyResolved,
    BeliefIndexError,
    ClockRegression,
    InvalidTransition,
    MarketNotFound,
)
from belief_index.models import BeliefInflection, BeliefSignal, BeliefStateIndex, Position
from market.engine import CycleResult, Market, get_engine
from utils.datetime_utils import now_seconds, utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"


def _http_error(error: Exception) -> HTTPException:
    """Map engine errors to HTTP status codes."""
    if isinstance(error, MarketNotFound):
        status = 404
    elif isinstance(error, (AlreadyResolved, InvalidTransition, ClockRegression)):
        status = 409
    else:
        status = 422
    logger.warning(f"Request failed ({status}): {error}")
    return HTTPException(status_code=status, detail=str(error))


def _get_market(market_id: str) -> Market:
    try:
        return get_engine().get_market(market_id)
    except MarketNotFound as e:
        raise _http_error(e) from e


def _clock(now: Optional[int]) -> int:
    return now if now is not None else now_seconds()


def _bsi_response(bsi: Optional[BeliefStateIndex]) -> Optional[BSIResponse]:
    return BSIResponse(**bsi.to_dict()) if bsi else None


def _inflection_response(inflection: Optional[BeliefInflection]) -> Optional[InflectionResponse]:
    return InflectionResponse(**inflection.to_dict()) if inflection else None


def _market_info(market: Market) -> MarketInfo:
    return MarketInfo(
        market_id=market.market_id,
        description=market.config.description,
        condition_type=market.config.condition.condition_type,
        domain=market.config.domain,
        state=market.state.value,
        monitor_state=market.monitor.state.value,
        signal_count=len(market.buffer),
        source_count=market.buffer.source_count,
        position_count=len(market.positions),
        total_staked=market.total_staked,
        latest_bsi=_bsi_response(market.latest_bsi),
        inflection=_inflection_response(market.inflection),
    )


def _cycle_response(result: CycleResult) -> CycleResponse:
    monitor = None
    if result.update is not None:
        monitor = MonitorInfo(
            previous_state=result.update.previous_state.value,
            state=result.update.state.value,
            satisfied=result.update.satisfied,
            candidate_since=result.update.candidate_since,
            satisfied_duration=result.update.satisfied_duration,
        )
    return CycleResponse(
        market_id=result.market_id,
        computed_at=result.computed_at,
        status=result.status,
        bsi=_bsi_response(result.bsi),
        monitor=monitor,
        inflection=_inflection_response(result.inflection),
        error=result.error,
    )


def _position_response(position: Position) -> PositionResponse:
    return PositionResponse(
        position_id=position.position_id,
        market_id=position.market_id,
        owner=position.owner,
        bucket_start=position.bucket.start,
        bucket_end=position.bucket.end,
        amount=position.amount,
        status=position.status,
        payout=position.payout,
    )


# Health check
@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Check system health."""
    logger.debug("Health check requested")
    return HealthResponse(
        status="healthy",
        timestamp=utc_now(),
        version=API_VERSION,
        market_count=len(get_engine()),
    )


# Market endpoints
@router.get("/markets", response_model=MarketListResponse, tags=["Markets"])
async def list_markets():
    """List all markets."""
    markets = [_market_info(m) for m in get_engine().list_markets()]
    logger.info(f"Found {len(markets)} markets")
    return MarketListResponse(markets=markets, count=len(markets))


@router.post("/markets", response_model=MarketInfo, status_code=201, tags=["Markets"])
async def create_market(request: CreateMarketRequest):
    """Create a market from a configuration."""
    data = dict(request.settings)
    data.update({
        "market_id": request.market_id,
        "description": request.description,
        "condition": request.condition,
        "domain": request.domain,
    })
    if request.curve is not None:
        data["curve"] = request.curve
    if request.accepted_range is not None:
        data["accepted_range"] = request.accepted_range

    try:
        config = MarketConfig.from_dict(data)
        market = get_engine().create_market(config, now=_clock(request.created_at))
    except (BeliefIndexError, ValueError, TypeError) as e:
        raise _http_error(e) from e

    return _market_info(market)


@router.get("/markets/{market_id}", response_model=MarketInfo, responses={404: {"model": ErrorResponse}}, tags=["Markets"])
async def get_market(market_id: str):
    """Get a market summary."""
    return _market_info(_get_market(market_id))


# Signal and cycle endpoints
@router.post("/markets/{market_id}/signals", response_model=IngestResponse, tags=["Signals"])
async def ingest_signals(market_id: str, request: IngestSignalsRequest):
    """Ingest a batch of signals. Rejected signals are reported, not raised."""
    market = _get_market(market_id)
    try:
        signals = [BeliefSignal.from_dict(s.model_dump()) for s in request.signals]
    except ValueError as e:
        raise _http_error(e) from e

    report = market.ingest_many(signals, _clock(request.now))
    return IngestResponse(
        market_id=report.market_id,
        accepted=report.accepted,
        rejected=[
            RejectedSignalInfo(source=r.source, timestamp=r.timestamp, reason=r.reason, detail=r.detail)
            for r in report.rejected
        ],
    )


@router.post("/markets/{market_id}/cycle", response_model=CycleResponse, tags=["Signals"])
async def run_cycle(market_id: str, request: Optional[CycleRequest] = None):
    """Run one aggregation cycle for a market."""
    market = _get_market(market_id)
    now = _clock(request.now if request else None)
    try:
        result = market.run_cycle(now)
    except ClockRegression as e:
        raise _http_error(e) from e
    logger.info(f"[{market_id}] Cycle at {now}: {result.status}")
    return _cycle_response(result)


@router.get("/markets/{market_id}/bsi", response_model=BSIResponse, responses={404: {"model": ErrorResponse}}, tags=["Signals"])
async def get_bsi(market_id: str):
    """Get the latest Belief State Index."""
    market = _get_market(market_id)
    if market.latest_bsi is None:
        raise HTTPException(status_code=404, detail=f"No BSI computed yet for {market_id}")
    return _bsi_response(market.latest_bsi)


@router.get("/markets/{market_id}/inflection", response_model=InflectionResponse, responses={404: {"model": ErrorResponse}}, tags=["Signals"])
async def get_inflection(market_id: str):
    """Get the confirmed inflection, if any."""
    market = _get_market(market_id)
    if market.inflection is None:
        raise HTTPException(status_code=404, detail=f"No inflection confirmed for {market_id}")
    return _inflection_response(market.inflection)


# Position and settlement endpoints
@router.post("/markets/{market_id}/positions", response_model=PositionResponse, status_code=201, tags=["Positions"])
async def place_position(market_id: str, request: PositionRequest):
    """Place a position on a time bucket."""
    market = _get_market(market_id)
    try:
        position = market.place_position(
            owner=request.owner,
            bucket_start=request.bucket_start,
            amount=request.amount,
            bucket_end=request.bucket_end,
            position_id=request.position_id,
        )
    except BeliefIndexError as e:
        raise _http_error(e) from e
    return _position_response(position)


@router.get("/markets/{market_id}/buckets", response_model=BucketListResponse, tags=["Positions"])
async def get_buckets(market_id: str):
    """Get stake aggregates by time bucket."""
    market = _get_market(market_id)
    buckets = [
        BucketResponse(
            bucket_start=a.bucket.start,
            bucket_end=a.bucket.end,
            total_staked=a.total_staked,
            position_count=a.position_count,
            implied_probability=a.implied_probability,
            avg_position_size=a.avg_position_size,
        )
        for a in market.bucket_aggregates()
    ]
    return BucketListResponse(market_id=market_id, buckets=buckets, total_staked=market.total_staked)


@router.post("/markets/{market_id}/settle", response_model=SettlementResponse, tags=["Positions"])
async def settle_market(market_id: str, request: Optional[SettleRequest] = None):
    """Settle a resolved market."""
    market = _get_market(market_id)
    supplement = request.pool_supplement if request else 0
    try:
        payouts = market.settle_positions(pool_supplement=supplement)
    except BeliefIndexError as e:
        raise _http_error(e) from e

    logger.info(f"[{market_id}] Settled {len(payouts)} positions")
    return SettlementResponse(
        market_id=market_id,
        inflection_timestamp=market.inflection.timestamp,
        pool_total=market.pool_total,
        total_paid=sum(p.amount for p in payouts.values()),
        payouts=[PayoutResponse(**p.to_dict()) for p in payouts.values()],
    )
