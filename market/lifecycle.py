"""
Market Lifecycle

States and allowed transitions for a market:

    active ──> monitoring ──> resolved
      │            │
      ├──> cancelled <┤
      └──> expired  <─┘

- active: accepting positions, aggregation cycles run
- monitoring: positions closed, aggregation cycles run
- resolved: an inflection was confirmed; settlement is unlocked
- cancelled / expired: terminal without resolution; open positions are void
"""

import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional

from belief_index.errors import InvalidTransition

logger = logging.getLogger(__name__)


class MarketState(str, Enum):
    ACTIVE = "active"
    MONITORING = "monitoring"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


ALLOWED_TRANSITIONS: Dict[MarketState, FrozenSet[MarketState]] = {
    MarketState.ACTIVE: frozenset({
        MarketState.MONITORING,
        MarketState.RESOLVED,
        MarketState.CANCELLED,
        MarketState.EXPIRED,
    }),
    MarketState.MONITORING: frozenset({
        MarketState.RESOLVED,
        MarketState.CANCELLED,
        MarketState.EXPIRED,
    }),
    MarketState.RESOLVED: frozenset(),
    MarketState.CANCELLED: frozenset(),
    MarketState.EXPIRED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


class MarketLifecycle:
    """Tracks one market's state and the time of each transition."""

    def __init__(self, market_id: str, created_at: int = 0):
        self.market_id = market_id
        self.state = MarketState.ACTIVE
        self.created_at = created_at
        self.changed_at = created_at
        self.resolved_at: Optional[int] = None

    def can_transition(self, target: MarketState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: MarketState, at: int) -> None:
        """
        Move to `target`.

        Raises:
            InvalidTransition: target is not reachable from the current state
        """
        target = MarketState(target)
        if not self.can_transition(target):
            raise InvalidTransition(self.state.value, target.value)

        logger.info(f"[{self.market_id}] {self.state.value} -> {target.value} at {at}")
        self.state = target
        self.changed_at = at
        if target == MarketState.RESOLVED:
            self.resolved_at = at

    def start_monitoring(self, at: int) -> None:
        self.transition(MarketState.MONITORING, at)

    def resolve(self, at: int) -> None:
        self.transition(MarketState.RESOLVED, at)

    def cancel(self, at: int) -> None:
        self.transition(MarketState.CANCELLED, at)

    def expire(self, at: int) -> None:
        self.transition(MarketState.EXPIRED, at)

    @property
    def accepts_positions(self) -> bool:
        return self.state == MarketState.ACTIVE

    @property
    def is_live(self) -> bool:
        """Aggregation cycles still run."""
        return self.state in (MarketState.ACTIVE, MarketState.MONITORING)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "created_at": self.created_at,
            "changed_at": self.changed_at,
            "resolved_at": self.resolved_at,
        }
