"""
CLI Command Handlers

Implementation of CLI commands: replaying recorded signals through a market
and settling it offline.
"""

import json
import logging
import sys
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from belief_index.config import ORACLE_UPDATE_FREQUENCY
from belief_index.errors import MarketNotFound
from belief_index.models import BeliefInflection, BeliefSignal, Position
from belief_index.settlement import Payout
from integrations.oracle_adapters import signal_from_record
from market.engine import CycleResult, Market, MarketEngine
from market.registry import MarketRegistry, get_registry
from utils.datetime_utils import from_epoch_seconds

logger = logging.getLogger(__name__)


def _read_records(path: Path) -> List[dict]:
    """Read a JSON array or a JSONL file of records."""
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        text = f.read()
    stripped = text.lstrip()
    if stripped.startswith("["):
        return json.loads(stripped)
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def load_signals(path: Path) -> List[BeliefSignal]:
    """
    Load recorded signals, ordered by (timestamp, source).

    Rows may be oracle payloads or plain signal dicts (see
    integrations.oracle_adapters.signal_from_record).
    """
    signals = [signal_from_record(r) for r in _read_records(path)]
    signals.sort(key=lambda s: (s.timestamp, s.source))
    logger.info(f"Loaded {len(signals)} signals from {path}")
    return signals


def load_positions(path: Path) -> List[dict]:
    """Load position requests: owner, bucket_start, amount, optional bucket_end / position_id."""
    records = _read_records(path)
    for record in records:
        missing = {"owner", "bucket_start", "amount"} - set(record)
        if missing:
            raise ValueError(f"Position record missing fields {sorted(missing)}: {record}")
    logger.info(f"Loaded {len(records)} positions from {path}")
    return records


@dataclass
class ReplayReport:
    """Outcome of replaying signals through one market."""
    market_id: str
    cycles: List[CycleResult] = field(default_factory=list)
    accepted: int = 0
    rejected: int = 0

    @property
    def inflection(self) -> Optional[BeliefInflection]:
        for cycle in self.cycles:
            if cycle.inflection is not None:
                return cycle.inflection
        return None

    def status_counts(self) -> Dict[str, int]:
        return dict(Counter(c.status for c in self.cycles))

    def to_dict(self) -> dict:
        final = self.cycles[-1].bsi if self.cycles else None
        return {
            "market_id": self.market_id,
            "cycles": len(self.cycles),
            "status_counts": self.status_counts(),
            "signals_accepted": self.accepted,
            "signals_rejected": self.rejected,
            "final_bsi": final.to_dict() if final else None,
            "inflection": self.inflection.to_dict() if self.inflection else None,
            "history": [c.to_dict() for c in self.cycles],
        }


class ReplayOrchestrator:
    """
    Replays recorded signals through registry markets.

    Signals are fed in timestamp order; a cycle runs every `cadence` seconds
    of the recorded clock, after ingesting everything stamped up to that
    time. Replay stops at the first confirmed inflection.
    """

    def __init__(
        self,
        registry: Optional[MarketRegistry] = None,
        audit_dir: Optional[Path] = None
    ):
        """Initialize orchestrator with the market registry."""
        self.registry = registry or get_registry()
        self.engine = MarketEngine(audit_dir=audit_dir)
        logger.info(f"ReplayOrchestrator ready with {len(self.registry)} registered markets")

    def _market(self, market_id: str, now: int) -> Market:
        if market_id in self.engine:
            return self.engine.get_market(market_id)
        config = self.registry.get_market(market_id)
        if config is None:
            raise MarketNotFound(market_id)
        return self.engine.create_market(config, now=now)

    def replay(
        self,
        market_id: str,
        signals: List[BeliefSignal],
        cadence: int = ORACLE_UPDATE_FREQUENCY,
        until: Optional[int] = None,
        verbose: bool = True
    ) -> ReplayReport:
        """
        Replay signals through a market.

        Args:
            market_id: Registry market id
            signals: Recorded signals
            cadence: Seconds between aggregation cycles
            until: Last cycle time (default: last signal time plus the
                condition's persistence window and one cadence step)
            verbose: Print progress messages

        Returns:
            ReplayReport
        """
        if cadence <= 0:
            raise ValueError(f"cadence must be positive, got {cadence}")

        report = ReplayReport(market_id=market_id)
        if not signals:
            logger.warning(f"[{market_id}] No signals to replay")
            return report

        ordered = sorted(signals, key=lambda s: (s.timestamp, s.source))
        start = ordered[0].timestamp
        market = self._market(market_id, start)
        if until is None:
            # One extra step so an off-grid candidate still has a cycle past its window
            until = ordered[-1].timestamp + market.config.condition.persistence_window + cadence

        logger.info(f"[{market_id}] Replaying {len(ordered)} signals from {start} to {until} every {cadence}s")
        if verbose:
            print(f"\nReplaying {market_id}: {len(ordered)} signals, cycle every {cadence}s")

        index = 0
        now = start
        while now <= until:
            batch = []
            while index < len(ordered) and ordered[index].timestamp <= now:
                batch.append(ordered[index])
                index += 1
            if batch:
                ingest = market.ingest_many(batch, now)
                report.accepted += ingest.accepted
                report.rejected += len(ingest.rejected)

            result = market.run_cycle(now)
            report.cycles.append(result)

            if verbose and result.bsi is not None and result.ok:
                print(
                    f"  t={now}  BSI={result.bsi.value:+.4f}  velocity={result.bsi.velocity:+.6f}  "
                    f"confidence={result.bsi.confidence:.2f}  monitor={result.update.state.value}"
                )
            elif verbose:
                print(f"  t={now}  {result.status}")

            if result.inflection is not None:
                if verbose:
                    inflected_at = from_epoch_seconds(result.inflection.timestamp)
                    print(f"\n  INFLECTION at {result.inflection.timestamp} ({inflected_at.isoformat()}Z, "
                          f"magnitude {result.inflection.magnitude:.4f})")
                break
            now += cadence

        logger.info(f"[{market_id}] Replay finished: {report.status_counts()}")
        return report

    def place_positions(self, market_id: str, positions: List[dict], now: int) -> List[Position]:
        """Place recorded positions in a market (before replay closes it)."""
        market = self._market(market_id, now)
        placed = []
        for record in positions:
            placed.append(market.place_position(
                owner=record["owner"],
                bucket_start=int(record["bucket_start"]),
                amount=int(record["amount"]),
                bucket_end=record.get("bucket_end"),
                position_id=record.get("position_id"),
            ))
        logger.info(f"[{market_id}] Placed {len(placed)} positions")
        return placed

    def settle(
        self,
        market_id: str,
        signals: List[BeliefSignal],
        positions: List[dict],
        cadence: int = ORACLE_UPDATE_FREQUENCY,
        pool_supplement: int = 0,
        verbose: bool = True
    ) -> Optional[Dict[str, Payout]]:
        """
        Place positions, replay signals, and settle if an inflection is confirmed.

        Returns:
            Payouts, or None if the replay never confirmed an inflection
        """
        start = min((s.timestamp for s in signals), default=0)
        self.place_positions(market_id, positions, start)
        report = self.replay(market_id, signals, cadence=cadence, verbose=verbose)

        if report.inflection is None:
            logger.warning(f"[{market_id}] No inflection confirmed; nothing to settle")
            if verbose:
                print("\nNo inflection confirmed; market not settled")
            return None

        market = self.engine.get_market(market_id)
        payouts = market.settle_positions(pool_supplement=pool_supplement)
        if verbose:
            self._print_settlement(market, payouts)
        return payouts

    def _print_settlement(self, market: Market, payouts: Dict[str, Payout]) -> None:
        """Print settlement summary to console."""
        print(f"\n  SETTLEMENT ({market.market_id})")
        print(f"  {'─'*50}")
        print(f"  Pool:        {market.pool_total}")
        print(f"  Paid out:    {sum(p.amount for p in payouts.values())}")
        for payout in payouts.values():
            position = market.positions[payout.position_id]
            print(
                f"  {payout.position_id:<24} {position.owner:<12} "
                f"stake={position.amount:<10} payout={payout.amount:<10} {payout.status}"
            )


def list_markets(registry: Optional[MarketRegistry] = None, verbose: bool = True) -> List[Dict]:
    """List all registered markets."""
    logger.info("Listing all registered markets")
    registry = registry or get_registry()
    markets = []

    for config in registry:
        info = {
            "market_id": config.market_id,
            "description": config.description,
            "condition": config.condition.to_dict(),
            "curve": config.curve.to_dict(),
            "domain": config.domain,
        }
        markets.append(info)

        if verbose:
            print(f"\n{config.market_id}")
            print(f"  Description: {config.description}")
            print(f"  Condition: {config.condition.condition_type} "
                  f"(persistence {config.condition.persistence_window}s)")
            print(f"  Curve: {config.curve.curve_type}")
            print(f"  Domain: {config.domain}")

    logger.info(f"Listed {len(markets)} markets")
    return markets
