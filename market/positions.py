"""
Position aggregation by time bucket.

Implied probability of a bucket is its share of the market's total stake.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List

from belief_index.models import Position, TimeBucket
from belief_index.settlement import checked_add


@dataclass(frozen=True)
class TimeBucketAggregate:
    """Stake summary for one time bucket."""
    bucket: TimeBucket
    total_staked: int
    position_count: int
    implied_probability: float
    avg_position_size: int

    def is_significant(self, threshold: float) -> bool:
        return self.implied_probability >= threshold

    def to_dict(self) -> dict:
        return {
            "bucket": self.bucket.to_dict(),
            "total_staked": self.total_staked,
            "position_count": self.position_count,
            "implied_probability": round(self.implied_probability, 6),
            "avg_position_size": self.avg_position_size,
        }


def implied_probability(bucket_stake: int, total_stake: int) -> float:
    if total_stake == 0:
        return 0.0
    return bucket_stake / total_stake


def aggregate_by_bucket(positions: Iterable[Position]) -> List[TimeBucketAggregate]:
    """
    Summarize non-void positions per bucket, ordered by bucket start.

    Raises:
        AmountOverflow: If a stake total exceeds MAX_AMOUNT
    """
    totals: Dict[TimeBucket, int] = {}
    counts: Dict[TimeBucket, int] = {}
    for position in positions:
        if position.status == "void":
            continue
        totals[position.bucket] = checked_add(totals.get(position.bucket, 0), position.amount)
        counts[position.bucket] = counts.get(position.bucket, 0) + 1

    market_total = 0
    for stake in totals.values():
        market_total = checked_add(market_total, stake)

    return [
        TimeBucketAggregate(
            bucket=bucket,
            total_staked=totals[bucket],
            position_count=counts[bucket],
            implied_probability=implied_probability(totals[bucket], market_total),
            avg_position_size=totals[bucket] // counts[bucket],
        )
        for bucket in sorted(totals, key=lambda b: (b.start, b.end))
    ]
