"""
Settlement Calculator

Maps a confirmed inflection and a set of time-bucketed positions to payouts.

For each position:
    distance   = |bucket.start - inflection.timestamp|
    raw_payout = amount * curve.multiplier(distance)

Curves (the factor of 2 lets the nearest bucket receive up to double its
stake, funded by buckets that receive less than theirs):
    Linear:       max(0, 2 - distance * decay_rate)
    Gaussian:     2 * exp(-(distance^2) / (2 * sigma^2))
    Exponential:  2 * exp(-decay_constant * distance)
    Custom:       piecewise linear table of (distance, multiplier)

If the raw total exceeds the pool every raw payout is scaled by
pool_total / total_raw. Payouts are floored to whole units, so the sum never
exceeds the pool.

Arithmetic runs in decimal.Decimal with a fixed 34-digit context. Float
parameters enter through their shortest decimal string, so identical inputs
give identical payouts on every platform.
"""

import logging
from dataclasses import dataclass
from decimal import (
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
    ROUND_FLOOR,
    ROUND_HALF_EVEN,
    localcontext,
)
from typing import ClassVar, Dict, Iterable, List, Optional, Tuple

from belief_index.errors import AmountOverflow, InvalidConfiguration, InvalidPosition
from belief_index.models import MAX_AMOUNT, BeliefInflection, Position, TimeBucket

logger = logging.getLogger(__name__)


SETTLEMENT_PRECISION = 34

SETTLEMENT_CONTEXT = Context(
    prec=SETTLEMENT_PRECISION,
    rounding=ROUND_HALF_EVEN,
    traps=[InvalidOperation, DivisionByZero, Overflow],
)

# Scaling runs with directed rounding so a scaled payout never rounds upward
_SCALING_CONTEXT = SETTLEMENT_CONTEXT.copy()
_SCALING_CONTEXT.rounding = ROUND_FLOOR

_TWO = Decimal(2)
_ZERO = Decimal(0)


def to_decimal(value) -> Decimal:
    """Convert an int or float parameter to Decimal via its decimal string."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(repr(float(value)))


# ----------------------------------------------------------------------
# Curves
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SettlementCurve:
    """Base for payout curves. Parameters are fixed at market creation."""

    curve_type: ClassVar[str] = ""

    def multiplier(self, distance: int) -> Decimal:
        raise NotImplementedError

    def to_dict(self) -> dict:
        raise NotImplementedError


@dataclass(frozen=True)
class LinearCurve(SettlementCurve):
    decay_rate: float

    curve_type: ClassVar[str] = "linear"

    def __post_init__(self):
        if self.decay_rate <= 0:
            raise InvalidConfiguration(f"decay_rate must be positive, got {self.decay_rate}")

    def multiplier(self, distance: int) -> Decimal:
        with localcontext(SETTLEMENT_CONTEXT):
            return max(_ZERO, _TWO - Decimal(distance) * to_decimal(self.decay_rate))

    def to_dict(self) -> dict:
        return {"type": self.curve_type, "decay_rate": self.decay_rate}


@dataclass(frozen=True)
class GaussianCurve(SettlementCurve):
    sigma: float

    curve_type: ClassVar[str] = "gaussian"

    def __post_init__(self):
        if self.sigma <= 0:
            raise InvalidConfiguration(f"sigma must be positive, got {self.sigma}")

    def multiplier(self, distance: int) -> Decimal:
        with localcontext(SETTLEMENT_CONTEXT):
            sigma = to_decimal(self.sigma)
            d = Decimal(distance)
            exponent = -(d * d) / (_TWO * sigma * sigma)
            return _TWO * exponent.exp()

    def to_dict(self) -> dict:
        return {"type": self.curve_type, "sigma": self.sigma}


@dataclass(frozen=True)
class ExponentialCurve(SettlementCurve):
    decay_constant: float

    curve_type: ClassVar[str] = "exponential"

    def __post_init__(self):
        if self.decay_constant <= 0:
            raise InvalidConfiguration(f"decay_constant must be positive, got {self.decay_constant}")

    def multiplier(self, distance: int) -> Decimal:
        with localcontext(SETTLEMENT_CONTEXT):
            return _TWO * (-to_decimal(self.decay_constant) * Decimal(distance)).exp()

    def to_dict(self) -> dict:
        return {"type": self.curve_type, "decay_constant": self.decay_constant}


@dataclass(frozen=True)
class CustomCurve(SettlementCurve):
    """
    Piecewise linear multiplier over distance.

    points are (distance, multiplier) pairs with strictly increasing
    distances and multipliers in [0, 2]. Distances before the first point use
    its multiplier; distances past the last point use the last multiplier.
    """
    points: Tuple[Tuple[int, float], ...]

    curve_type: ClassVar[str] = "custom"

    def __post_init__(self):
        if not self.points:
            raise InvalidConfiguration("custom curve needs at least one point")
        previous = None
        for distance, multiplier in self.points:
            if distance < 0:
                raise InvalidConfiguration(f"curve distance must be non-negative, got {distance}")
            if previous is not None and distance <= previous:
                raise InvalidConfiguration("curve distances must be strictly increasing")
            if not 0 <= multiplier <= 2:
                raise InvalidConfiguration(f"curve multiplier must be within [0, 2], got {multiplier}")
            previous = distance

    def multiplier(self, distance: int) -> Decimal:
        with localcontext(SETTLEMENT_CONTEXT):
            first_d, first_m = self.points[0]
            if distance <= first_d:
                return to_decimal(first_m)
            for (d0, m0), (d1, m1) in zip(self.points, self.points[1:]):
                if distance <= d1:
                    m0, m1 = to_decimal(m0), to_decimal(m1)
                    fraction = Decimal(distance - d0) / Decimal(d1 - d0)
                    return m0 + (m1 - m0) * fraction
            return to_decimal(self.points[-1][1])

    def to_dict(self) -> dict:
        return {"type": self.curve_type, "points": [list(p) for p in self.points]}


CURVE_TYPES = {
    cls.curve_type: cls
    for cls in (LinearCurve, GaussianCurve, ExponentialCurve, CustomCurve)
}


def curve_from_dict(data: dict) -> SettlementCurve:
    """Build a settlement curve from its dictionary form."""
    params = dict(data)
    curve_type = params.pop("type", None)
    cls = CURVE_TYPES.get(curve_type)
    if cls is None:
        raise InvalidConfiguration(f"Unknown settlement curve type: {curve_type!r}")
    if cls is CustomCurve and "points" in params:
        params["points"] = tuple((int(d), m) for d, m in params["points"])
    try:
        return cls(**params)
    except TypeError as e:
        raise InvalidConfiguration(f"Invalid parameters for {curve_type} curve: {e}") from e


# ----------------------------------------------------------------------
# Settlement
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Payout:
    """Settlement outcome for one position."""
    position_id: str
    amount: int
    status: str  # settled | void
    distance: Optional[int] = None
    multiplier: Decimal = _ZERO
    raw_payout: Decimal = _ZERO

    def to_dict(self) -> dict:
        return {
            "position_id": self.position_id,
            "amount": self.amount,
            "status": self.status,
            "distance": self.distance,
            "multiplier": str(self.multiplier),
            "raw_payout": str(self.raw_payout),
        }


def checked_add(a: int, b: int) -> int:
    """Add two amounts, refusing results above MAX_AMOUNT."""
    total = a + b
    if total > MAX_AMOUNT:
        raise AmountOverflow(f"amount sum {total} exceeds maximum {MAX_AMOUNT}")
    return total


def compute_pool_total(positions: Iterable[Position], supplement: int = 0) -> int:
    """
    Pool available for payouts: all staked amounts plus a protocol supplement.

    Raises:
        AmountOverflow: If the pool exceeds MAX_AMOUNT
    """
    if supplement < 0:
        raise InvalidPosition(f"pool supplement must be non-negative, got {supplement}")
    total = checked_add(0, supplement)
    for position in positions:
        total = checked_add(total, position.amount)
    return total


def is_void(position: Position, accepted_range: Optional[TimeBucket]) -> bool:
    """A position is void if already voided or its bucket lies wholly outside the accepted range."""
    if position.status == "void":
        return True
    if accepted_range is None:
        return False
    return not position.bucket.overlaps(accepted_range)


def settle(
    inflection: BeliefInflection,
    positions: List[Position],
    curve: SettlementCurve,
    pool_total: int,
    accepted_range: Optional[TimeBucket] = None,
) -> Dict[str, Payout]:
    """
    Compute payouts for every position.

    Pure and deterministic: inputs are not mutated and identical inputs give
    identical output.

    Args:
        inflection: Confirmed inflection
        positions: Positions staked in the market
        curve: Settlement curve configured for the market
        pool_total: Total funds available (stakes plus supplement)
        accepted_range: Market's accepted bucket range; buckets entirely
            outside it are void

    Returns:
        Dict mapping position_id to Payout

    Raises:
        AmountOverflow: pool_total outside [0, MAX_AMOUNT]
        InvalidPosition: Duplicate position ids
    """
    if not isinstance(pool_total, int) or pool_total < 0:
        raise InvalidPosition(f"pool_total must be a non-negative integer, got {pool_total!r}")
    if pool_total > MAX_AMOUNT:
        raise AmountOverflow(f"pool_total {pool_total} exceeds maximum {MAX_AMOUNT}")

    payouts: Dict[str, Payout] = {}
    raw: Dict[str, Tuple[int, Decimal, Decimal]] = {}

    with localcontext(SETTLEMENT_CONTEXT):
        for position in positions:
            if position.position_id in payouts or position.position_id in raw:
                raise InvalidPosition(f"Duplicate position id: {position.position_id}")

            if is_void(position, accepted_range):
                payouts[position.position_id] = Payout(
                    position_id=position.position_id,
                    amount=0,
                    status="void",
                )
                continue

            distance = position.bucket.distance_to(inflection.timestamp)
            multiplier = curve.multiplier(distance)
            raw[position.position_id] = (distance, multiplier, Decimal(position.amount) * multiplier)

        total_raw = sum((r for _, _, r in raw.values()), _ZERO)
        pool = Decimal(pool_total)
        scaled = total_raw > pool

    amounts: Dict[str, int] = {}
    with localcontext(_SCALING_CONTEXT):
        for position_id, (_, _, raw_payout) in raw.items():
            value = raw_payout * pool / total_raw if scaled else raw_payout
            amounts[position_id] = int(value.to_integral_value(rounding=ROUND_FLOOR))

    _trim_excess(amounts, pool_total)

    for position_id, (distance, multiplier, raw_payout) in raw.items():
        payouts[position_id] = Payout(
            position_id=position_id,
            amount=amounts[position_id],
            status="settled",
            distance=distance,
            multiplier=multiplier,
            raw_payout=raw_payout,
        )

    void_count = sum(1 for p in payouts.values() if p.status == "void")
    logger.info(
        f"Settled market {inflection.market_id}: {len(raw)} positions paid "
        f"{sum(amounts.values())}/{pool_total}, {void_count} void, "
        f"normalized={scaled}"
    )

    # Preserve input order
    return {p.position_id: payouts[p.position_id] for p in positions}


def _trim_excess(amounts: Dict[str, int], pool_total: int) -> None:
    """Remove any rounding excess over the pool, largest payouts first."""
    excess = sum(amounts.values()) - pool_total
    if excess <= 0:
        return
    for position_id in sorted(amounts, key=lambda pid: (-amounts[pid], pid)):
        if excess <= 0:
            break
        taken = min(excess, amounts[position_id])
        amounts[position_id] -= taken
        excess -= taken
