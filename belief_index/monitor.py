"""
Inflection Monitor

Per-market state machine watching the BSI stream against a belief condition:

    IDLE -> CANDIDATE -> CONFIRMED (terminal)

- IDLE -> CANDIDATE when the condition is satisfied.
- Any evaluation with the condition unsatisfied (or a failed cycle, passed as
  bsi=None) returns to IDLE. Persistence must be unbroken.
- CANDIDATE -> CONFIRMED once now - candidate_since >= persistence_window.
  Exactly one BeliefInflection is produced.

The monitor has no subscribers. evaluate() returns a MonitorUpdate and the
caller decides who to notify.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from belief_index.errors import AlreadyResolved, ClockRegression
from belief_index.models import BeliefCondition, BeliefInflection, BeliefStateIndex

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    CANDIDATE = "candidate"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class MonitorUpdate:
    """Result of one monitor evaluation."""
    market_id: str
    evaluated_at: int
    previous_state: MonitorState
    state: MonitorState
    satisfied: bool
    candidate_since: Optional[int] = None
    satisfied_duration: int = 0
    inflection: Optional[BeliefInflection] = None

    @property
    def confirmed(self) -> bool:
        return self.inflection is not None

    @property
    def changed(self) -> bool:
        return self.previous_state != self.state

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "evaluated_at": self.evaluated_at,
            "previous_state": self.previous_state.value,
            "state": self.state.value,
            "satisfied": self.satisfied,
            "candidate_since": self.candidate_since,
            "satisfied_duration": self.satisfied_duration,
            "inflection": self.inflection.to_dict() if self.inflection else None,
        }


class InflectionMonitor:
    """
    Watches one market's BSI stream for a persistent condition.

    Time comes from the caller and must never move backwards, so two
    monitors fed the same history reach the same decision.
    """

    def __init__(self, market_id: str, condition: BeliefCondition):
        self.market_id = market_id
        self.condition = condition
        self.state = MonitorState.IDLE
        self.candidate_since: Optional[int] = None
        self.last_evaluated: Optional[int] = None
        self.inflection: Optional[BeliefInflection] = None

    @property
    def is_confirmed(self) -> bool:
        return self.state == MonitorState.CONFIRMED

    def evaluate(
        self,
        bsi: Optional[BeliefStateIndex],
        now: Optional[int] = None
    ) -> MonitorUpdate:
        """
        Advance the state machine by one cycle.

        Args:
            bsi: Current index, or None when the cycle's computation failed
            now: Evaluation time (defaults to bsi.computed_at)

        Returns:
            MonitorUpdate, carrying the inflection on confirmation

        Raises:
            AlreadyResolved: The monitor is already confirmed
            ClockRegression: now is earlier than the previous evaluation
        """
        if self.is_confirmed:
            raise AlreadyResolved(self.market_id, self.inflection.timestamp)

        if now is None:
            if bsi is None:
                raise ValueError("now is required when no BSI is available")
            now = bsi.computed_at

        if self.last_evaluated is not None and now < self.last_evaluated:
            raise ClockRegression(now, self.last_evaluated)
        self.last_evaluated = now

        previous = self.state
        satisfied = bsi is not None and self.condition.is_satisfied(bsi)

        if not satisfied:
            if previous == MonitorState.CANDIDATE:
                logger.info(
                    f"[{self.market_id}] Condition lapsed after {now - self.candidate_since}s; back to idle"
                )
            self.state = MonitorState.IDLE
            self.candidate_since = None
            return MonitorUpdate(
                market_id=self.market_id,
                evaluated_at=now,
                previous_state=previous,
                state=self.state,
                satisfied=False,
            )

        if previous == MonitorState.IDLE:
            self.state = MonitorState.CANDIDATE
            self.candidate_since = now
            logger.info(f"[{self.market_id}] {self.condition.condition_type} satisfied; candidate since {now}")

        duration = now - self.candidate_since
        inflection = None

        if duration >= self.condition.persistence_window:
            inflection = BeliefInflection(
                market_id=self.market_id,
                timestamp=now,
                condition_type=self.condition.condition_type,
                magnitude=self.condition.magnitude(bsi),
                bsi_value=bsi.value,
                velocity=bsi.velocity,
                candidate_since=self.candidate_since,
                persistence_duration=duration,
            )
            self.state = MonitorState.CONFIRMED
            self.inflection = inflection
            logger.info(
                f"[{self.market_id}] Inflection confirmed at {now} "
                f"(held {duration}s, magnitude={inflection.magnitude:.4f})"
            )

        return MonitorUpdate(
            market_id=self.market_id,
            evaluated_at=now,
            previous_state=previous,
            state=self.state,
            satisfied=True,
            candidate_since=self.candidate_since,
            satisfied_duration=duration,
            inflection=inflection,
        )

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "condition": self.condition.to_dict(),
            "state": self.state.value,
            "candidate_since": self.candidate_since,
            "last_evaluated": self.last_evaluated,
            "inflection": self.inflection.to_dict() if self.inflection else None,
        }
