"""
Error Taxonomy

Exceptions raised by the belief index core.

Recoverable, local:
- RejectedSignal: the signal is dropped, ingestion continues

Cycle-scoped (the prior BSI is kept, the cycle is retried later):
- InsufficientDiversity
- UndefinedIndex

Configuration / input (surfaced before any aggregation):
- InvalidCondition, InvalidConfiguration, InvalidPosition, AmountOverflow

No-op signal:
- AlreadyResolved

Boundary:
- MarketNotFound, ClockRegression, InvalidTransition
"""

from typing import Optional


class BeliefIndexError(Exception):
    """Base class for all belief index errors."""


class RejectReason:
    """Reasons a signal can be refused by the signal buffer."""
    FUTURE_TIMESTAMP = "future_timestamp"
    NEGATIVE_WEIGHT = "negative_weight"
    DUPLICATE = "duplicate"
    OUTLIER = "outlier"
    OUT_OF_DOMAIN = "out_of_domain"
    STALE = "stale"

    ALL = frozenset({
        FUTURE_TIMESTAMP,
        NEGATIVE_WEIGHT,
        DUPLICATE,
        OUTLIER,
        OUT_OF_DOMAIN,
        STALE,
    })


class RejectedSignal(BeliefIndexError):
    """A signal was refused at ingestion."""

    def __init__(self, reason: str, source: str = "", timestamp: Optional[int] = None, detail: str = ""):
        self.reason = reason
        self.source = source
        self.timestamp = timestamp
        self.detail = detail
        message = f"Signal from '{source}' at {timestamp} rejected: {reason}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class InsufficientDiversity(BeliefIndexError):
    """Fewer distinct sources than required for a valid index."""

    def __init__(self, source_count: int, minimum: int):
        self.source_count = source_count
        self.minimum = minimum
        super().__init__(
            f"Insufficient source diversity: {source_count} distinct sources, {minimum} required"
        )


class UndefinedIndex(BeliefIndexError):
    """Total effective weight is zero, so the weighted mean is undefined."""

    def __init__(self, signal_count: int):
        self.signal_count = signal_count
        super().__init__(f"Total effective weight is zero across {signal_count} signals")


class InvalidConfiguration(BeliefIndexError, ValueError):
    """Malformed market configuration."""


class InvalidCondition(InvalidConfiguration):
    """Malformed belief condition (e.g. non-positive persistence window)."""


class InvalidPosition(BeliefIndexError, ValueError):
    """Position that cannot be placed in a market."""


class AmountOverflow(BeliefIndexError, ValueError):
    """An amount (stake, pool, payout) exceeded the representable maximum."""


class AlreadyResolved(BeliefIndexError):
    """The market's monitor already confirmed an inflection."""

    def __init__(self, market_id: str, resolved_at: Optional[int] = None):
        self.market_id = market_id
        self.resolved_at = resolved_at
        super().__init__(f"Market '{market_id}' already resolved at {resolved_at}")


class ClockRegression(BeliefIndexError, ValueError):
    """The externally supplied clock moved backwards."""

    def __init__(self, now: int, last_seen: int):
        self.now = now
        self.last_seen = last_seen
        super().__init__(f"Clock moved backwards: {now} < {last_seen}")


class MarketNotFound(BeliefIndexError, LookupError):
    """No market is registered under the given id."""

    def __init__(self, market_id: str):
        self.market_id = market_id
        super().__init__(f"Market not found: {market_id}")


class InvalidTransition(BeliefIndexError):
    """Illegal market lifecycle transition."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid market state transition: {current} -> {target}")
