"""
Market Engine

Drives aggregation cycles for one or many markets.

Each Market owns its signal buffer, calculator, monitor and positions.
A cycle is:
    1. Snapshot the buffer (evicting expired signals)
    2. Compute the BSI (InsufficientDiversity / UndefinedIndex abort the
       cycle and keep the prior BSI)
    3. Feed the monitor (a failed cycle counts as predicate false)
    4. On confirmation, resolve the market and return the inflection

Only one cycle runs per market at a time. Different markets are independent
and MarketEngine.run_all processes them in parallel.
"""

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from belief_index.calculator import BSICalculator
from belief_index.config import MarketConfig
from belief_index.errors import (
    AlreadyResolved,
    ClockRegression,
    InsufficientDiversity,
    InvalidConfiguration,
    InvalidPosition,
    InvalidTransition,
    MarketNotFound,
    RejectedSignal,
    UndefinedIndex,
)
from belief_index.logging_utils import log_record
from belief_index.models import BeliefInflection, BeliefSignal, BeliefStateIndex, Position, TimeBucket
from belief_index.monitor import InflectionMonitor, MonitorUpdate
from belief_index.settlement import Payout, checked_add, compute_pool_total, settle
from belief_index.signal_buffer import SignalBuffer
from market.lifecycle import MarketLifecycle, MarketState
from market.positions import TimeBucketAggregate, aggregate_by_bucket

logger = logging.getLogger(__name__)


# Cycle outcomes
CYCLE_COMPUTED = "computed"
CYCLE_INSUFFICIENT_DIVERSITY = "insufficient_diversity"
CYCLE_UNDEFINED_INDEX = "undefined_index"
CYCLE_ALREADY_RESOLVED = "already_resolved"
CYCLE_CLOSED = "closed"

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class IngestReport:
    """Outcome of ingesting a batch of signals into one market."""
    market_id: str
    accepted: int
    rejected: List[RejectedSignal] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "accepted": self.accepted,
            "rejected": [
                {
                    "source": r.source,
                    "timestamp": r.timestamp,
                    "reason": r.reason,
                    "detail": r.detail,
                }
                for r in self.rejected
            ],
        }


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one aggregation cycle."""
    market_id: str
    computed_at: int
    status: str
    bsi: Optional[BeliefStateIndex] = None
    update: Optional[MonitorUpdate] = None
    error: Optional[str] = None

    @property
    def inflection(self) -> Optional[BeliefInflection]:
        return self.update.inflection if self.update else None

    @property
    def ok(self) -> bool:
        return self.status == CYCLE_COMPUTED

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "computed_at": self.computed_at,
            "status": self.status,
            "bsi": self.bsi.to_dict() if self.bsi else None,
            "monitor": self.update.to_dict() if self.update else None,
            "inflection": self.inflection.to_dict() if self.inflection else None,
            "error": self.error,
        }


class Market:
    """
    Runtime state of one market.
    """

    def __init__(
        self,
        config: MarketConfig,
        created_at: int = 0,
        audit_file: Optional[Path] = None
    ):
        """
        Initialize market.

        Args:
            config: Validated market configuration
            created_at: Creation time on the engine clock
            audit_file: Optional JSONL file receiving one record per cycle
        """
        self.config = config
        self.market_id = config.market_id
        self.audit_file = Path(audit_file) if audit_file else None

        self.buffer = SignalBuffer.from_config(config)
        self.calculator = BSICalculator(config)
        self.monitor = InflectionMonitor(config.market_id, config.condition)
        self.lifecycle = MarketLifecycle(config.market_id, created_at)

        self.positions: Dict[str, Position] = {}
        self.payouts: Optional[Dict[str, Payout]] = None
        self.pool_total: Optional[int] = None

        self._cycle_lock = threading.Lock()
        self._positions_lock = threading.RLock()
        self._position_seq = itertools.count(1)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> MarketState:
        return self.lifecycle.state

    @property
    def latest_bsi(self) -> Optional[BeliefStateIndex]:
        return self.calculator.latest

    @property
    def inflection(self) -> Optional[BeliefInflection]:
        return self.monitor.inflection

    @property
    def total_staked(self) -> int:
        with self._positions_lock:
            total = 0
            for position in self.positions.values():
                total = checked_add(total, position.amount)
            return total

    # ------------------------------------------------------------------
    # Signals and cycles
    # ------------------------------------------------------------------

    def ingest(self, signal: BeliefSignal, now: int) -> BeliefSignal:
        """Ingest one signal. Raises RejectedSignal if refused."""
        return self.buffer.ingest(signal, now)

    def ingest_many(self, signals: List[BeliefSignal], now: int) -> IngestReport:
        """Ingest a batch; rejected signals are dropped and reported."""
        accepted, rejected = self.buffer.ingest_many(signals, now)
        if rejected:
            logger.info(f"[{self.market_id}] Ingested {len(accepted)} signals, rejected {len(rejected)}")
        return IngestReport(market_id=self.market_id, accepted=len(accepted), rejected=rejected)

    def run_cycle(self, now: int) -> CycleResult:
        """
        Run one aggregation cycle.

        Args:
            now: Current time on the engine clock

        Returns:
            CycleResult; its inflection is set on the cycle that confirms

        Raises:
            ClockRegression: now is earlier than the previous cycle
        """
        with self._cycle_lock:
            if self.monitor.is_confirmed:
                error = AlreadyResolved(self.market_id, self.inflection.timestamp)
                logger.debug(f"[{self.market_id}] {error}")
                return self._finish(CycleResult(
                    market_id=self.market_id,
                    computed_at=now,
                    status=CYCLE_ALREADY_RESOLVED,
                    bsi=self.latest_bsi,
                    error=str(error),
                ))

            last = self.monitor.last_evaluated
            if last is not None and now < last:
                raise ClockRegression(now, last)

            if self._expire_if_due(now) or not self.lifecycle.is_live:
                return self._finish(CycleResult(
                    market_id=self.market_id,
                    computed_at=now,
                    status=CYCLE_CLOSED,
                    bsi=self.latest_bsi,
                    error=f"market is {self.state.value}",
                ))

            snapshot = self.buffer.snapshot(now)
            bsi = None
            status = CYCLE_COMPUTED
            error = None
            try:
                bsi = self.calculator.compute(snapshot, now)
            except InsufficientDiversity as e:
                status, error = CYCLE_INSUFFICIENT_DIVERSITY, str(e)
            except UndefinedIndex as e:
                status, error = CYCLE_UNDEFINED_INDEX, str(e)
            if error:
                logger.warning(f"[{self.market_id}] Cycle at {now} aborted: {error}")

            update = self.monitor.evaluate(bsi, now)
            if update.inflection is not None:
                self.lifecycle.resolve(now)

            return self._finish(CycleResult(
                market_id=self.market_id,
                computed_at=now,
                status=status,
                bsi=bsi if bsi is not None else self.latest_bsi,
                update=update,
                error=error,
            ))

    def _expire_if_due(self, now: int) -> bool:
        expiration = self.config.expiration_time
        if expiration is None or now <= expiration or not self.lifecycle.is_live:
            return False
        self.lifecycle.expire(now)
        self._void_open_positions()
        return True

    def _finish(self, result: CycleResult) -> CycleResult:
        if self.audit_file:
            log_record(self.audit_file, result.to_dict())
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_monitoring(self, now: int) -> None:
        """Close the market to new positions; cycles keep running."""
        self.lifecycle.start_monitoring(now)

    def cancel(self, now: int) -> None:
        """Cancel the market and void every open position."""
        with self._cycle_lock:
            self.lifecycle.cancel(now)
            self._void_open_positions()

    def _void_open_positions(self) -> None:
        with self._positions_lock:
            for position in self.positions.values():
                if position.is_open():
                    position.status = "void"
                    position.payout = 0

    # ------------------------------------------------------------------
    # Positions and settlement
    # ------------------------------------------------------------------

    def place_position(
        self,
        owner: str,
        bucket_start: int,
        amount: int,
        bucket_end: Optional[int] = None,
        position_id: Optional[str] = None
    ) -> Position:
        """
        Stake `amount` on a time bucket.

        Args:
            owner: Position owner
            bucket_start: Bucket start time
            amount: Stake in whole units
            bucket_end: Bucket end (defaults to start + config.bucket_size)
            position_id: Optional caller-supplied id

        Returns:
            The new Position

        Raises:
            InvalidPosition: Market closed, size out of bounds, bucket outside
                the accepted range, or duplicate id
            AmountOverflow: Market stake would exceed MAX_AMOUNT
        """
        if not self.lifecycle.accepts_positions:
            raise InvalidPosition(f"Market '{self.market_id}' is {self.state.value}; positions are closed")
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidPosition(f"amount must be an integer, got {amount!r}")
        if not self.config.min_position_size <= amount <= self.config.max_position_size:
            raise InvalidPosition(
                f"amount {amount} outside [{self.config.min_position_size}, {self.config.max_position_size}]"
            )

        if bucket_end is None:
            bucket = TimeBucket.from_duration(bucket_start, self.config.bucket_size)
        else:
            try:
                bucket = TimeBucket(start=bucket_start, end=bucket_end)
            except ValueError as e:
                raise InvalidPosition(str(e)) from e

        accepted = self.config.accepted_range
        if accepted is not None and not (accepted.start <= bucket.start and bucket.end <= accepted.end):
            raise InvalidPosition(
                f"bucket [{bucket.start}, {bucket.end}) outside accepted range "
                f"[{accepted.start}, {accepted.end})"
            )

        with self._positions_lock:
            if position_id is None:
                position_id = f"{self.market_id}-{next(self._position_seq):06d}"
            if position_id in self.positions:
                raise InvalidPosition(f"Duplicate position id: {position_id}")

            # Pool must stay representable
            checked_add(self.total_staked, amount)

            position = Position(
                position_id=position_id,
                market_id=self.market_id,
                owner=owner,
                bucket=bucket,
                amount=amount,
            )
            self.positions[position_id] = position

        logger.info(f"[{self.market_id}] Position {position_id}: {owner} staked {amount} on [{bucket.start}, {bucket.end})")
        return position

    def bucket_aggregates(self) -> List[TimeBucketAggregate]:
        with self._positions_lock:
            return aggregate_by_bucket(list(self.positions.values()))

    def settle_positions(self, pool_supplement: int = 0) -> Dict[str, Payout]:
        """
        Settle every position against the confirmed inflection.

        Repeated calls return the first result unchanged.

        Args:
            pool_supplement: Protocol-funded addition to the staked pool

        Returns:
            Dict mapping position_id to Payout

        Raises:
            InvalidTransition: The market has not resolved
        """
        with self._positions_lock:
            if self.payouts is not None:
                return self.payouts
            if self.state != MarketState.RESOLVED or self.inflection is None:
                raise InvalidTransition(self.state.value, "settled")

            positions = list(self.positions.values())
            pool_total = compute_pool_total(positions, pool_supplement)
            payouts = settle(
                self.inflection,
                positions,
                self.config.curve,
                pool_total,
                accepted_range=self.config.accepted_range,
            )

            for position in positions:
                payout = payouts[position.position_id]
                position.status = payout.status
                position.payout = payout.amount

            self.pool_total = pool_total
            self.payouts = payouts
            return payouts

    def to_dict(self) -> dict:
        """Summary for listings and the API."""
        with self._positions_lock:
            position_count = len(self.positions)
        return {
            "market_id": self.market_id,
            "description": self.config.description,
            "condition": self.config.condition.to_dict(),
            "curve": self.config.curve.to_dict(),
            "domain": self.config.domain,
            "lifecycle": self.lifecycle.to_dict(),
            "monitor_state": self.monitor.state.value,
            "signal_count": len(self.buffer),
            "source_count": self.buffer.source_count,
            "position_count": position_count,
            "total_staked": self.total_staked,
            "latest_bsi": self.latest_bsi.to_dict() if self.latest_bsi else None,
            "inflection": self.inflection.to_dict() if self.inflection else None,
        }


class MarketEngine:
    """
    Holds many markets and runs their cycles.

    The engine never reads the wall clock: every call takes `now`.
    """

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS, audit_dir: Optional[Path] = None):
        """
        Initialize engine.

        Args:
            max_workers: Thread pool size for run_all
            audit_dir: Optional directory for per-market cycle audit files
        """
        self.max_workers = max_workers
        self.audit_dir = Path(audit_dir) if audit_dir else None
        self._markets: Dict[str, Market] = {}
        self._lock = threading.Lock()

    def create_market(self, config: MarketConfig, now: int = 0) -> Market:
        """
        Register a new market.

        Raises:
            InvalidConfiguration: Invalid config or market id already in use
        """
        config.validate()
        audit_file = self.audit_dir / f"{config.market_id}.jsonl" if self.audit_dir else None
        with self._lock:
            if config.market_id in self._markets:
                raise InvalidConfiguration(f"Market already exists: {config.market_id}")
            market = Market(config, created_at=now, audit_file=audit_file)
            self._markets[config.market_id] = market
        logger.info(f"Created market {config.market_id} ({config.condition.condition_type})")
        return market

    def load_registry(self, registry, now: int = 0) -> List[Market]:
        """Create every market in a MarketRegistry not already present."""
        created = []
        for config in registry:
            if config.market_id not in self._markets:
                created.append(self.create_market(config, now))
        return created

    def get_market(self, market_id: str) -> Market:
        with self._lock:
            market = self._markets.get(market_id)
        if market is None:
            raise MarketNotFound(market_id)
        return market

    def list_markets(self) -> List[Market]:
        with self._lock:
            return [self._markets[k] for k in sorted(self._markets)]

    def remove_market(self, market_id: str) -> None:
        with self._lock:
            if self._markets.pop(market_id, None) is None:
                raise MarketNotFound(market_id)

    def ingest(self, market_id: str, signals: List[BeliefSignal], now: int) -> IngestReport:
        return self.get_market(market_id).ingest_many(signals, now)

    def run_cycle(self, market_id: str, now: int) -> CycleResult:
        return self.get_market(market_id).run_cycle(now)

    def run_all(self, now: int) -> List[CycleResult]:
        """
        Run one cycle for every market in parallel.

        Returns:
            CycleResults ordered by market id
        """
        markets = self.list_markets()
        if not markets:
            return []

        results: Dict[str, CycleResult] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_market = {
                executor.submit(market.run_cycle, now): market.market_id
                for market in markets
            }
            for future in as_completed(future_to_market):
                market_id = future_to_market[future]
                results[market_id] = future.result()

        inflections = [r for r in results.values() if r.inflection is not None]
        logger.info(
            f"Cycle at {now}: {len(results)} markets, "
            f"{sum(1 for r in results.values() if r.ok)} computed, {len(inflections)} inflections"
        )
        return [results[m.market_id] for m in markets]

    @staticmethod
    def inflections(results: List[CycleResult]) -> List[BeliefInflection]:
        """Inflection events emitted by a batch of cycle results."""
        return [r.inflection for r in results if r.inflection is not None]

    def __len__(self) -> int:
        return len(self._markets)

    def __contains__(self, market_id: str) -> bool:
        return market_id in self._markets


# Module-level singleton for convenience
_engine: Optional[MarketEngine] = None


def get_engine(force_reload: bool = False, **kwargs) -> MarketEngine:
    """
    Get the market engine singleton.

    Args:
        force_reload: If True, replace the existing engine
        **kwargs: Passed to MarketEngine on creation

    Returns:
        MarketEngine instance
    """
    global _engine
    if _engine is None or force_reload:
        _engine = MarketEngine(**kwargs)
    return _engine
