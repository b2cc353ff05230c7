"""
Signal Buffer

Per-market, time-windowed storage of belief signals with outlier rejection.

Ingestion rejects a signal when:
- its timestamp is after `now` (future_timestamp)
- its weight is negative (negative_weight)
- its value lies outside the market domain (out_of_domain)
- it is already older than the retention window (stale)
- its (source, timestamp) pair was already accepted (duplicate)
- its z-score against retained signals of the same kind exceeds the
  threshold (outlier), unless rejecting it would keep the window below the
  minimum source count

All operations hold one re-entrant lock, so concurrent adapters can ingest
while a reader takes a snapshot; snapshots are immutable copies.
"""

import bisect
import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Set, Tuple

import numpy as np

from belief_index.config import (
    DEFAULT_DOWNWEIGHT_FACTOR,
    DEFAULT_MAX_SIGNALS_PER_SOURCE,
    DEFAULT_MIN_SOURCES,
    DEFAULT_OUTLIER_POLICY,
    DEFAULT_OUTLIER_THRESHOLD,
    DEFAULT_RETENTION_WINDOW,
    MIN_OUTLIER_SAMPLE,
    MarketConfig,
)
from belief_index.errors import InsufficientDiversity, RejectedSignal, RejectReason
from belief_index.models import BeliefSignal, domain_bounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalStatistics:
    """Summary statistics over a signal set."""
    count: int = 0
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    min: float = 0.0
    max: float = 0.0
    source_count: int = 0

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "mean": round(self.mean, 6),
            "median": round(self.median, 6),
            "std_dev": round(self.std_dev, 6),
            "min": self.min,
            "max": self.max,
            "source_count": self.source_count,
        }


@dataclass(frozen=True)
class SignalSet:
    """
    Immutable snapshot of a buffer.

    signals are ordered by (timestamp, source), which fixes the summation
    order downstream.
    """
    taken_at: int
    signals: Tuple[BeliefSignal, ...]

    def __len__(self) -> int:
        return len(self.signals)

    def __iter__(self) -> Iterator[BeliefSignal]:
        return iter(self.signals)

    @property
    def sources(self) -> List[str]:
        return sorted({s.source for s in self.signals})

    @property
    def source_count(self) -> int:
        """Diversity metric: number of distinct sources."""
        return len({s.source for s in self.signals})

    def require_diversity(self, minimum: int) -> None:
        """Raise InsufficientDiversity if fewer than `minimum` sources are present."""
        count = self.source_count
        if count < minimum:
            raise InsufficientDiversity(count, minimum)

    def by_source(self) -> Dict[str, Tuple[BeliefSignal, ...]]:
        grouped: Dict[str, List[BeliefSignal]] = {}
        for signal in self.signals:
            grouped.setdefault(signal.source, []).append(signal)
        return {source: tuple(grouped[source]) for source in sorted(grouped)}

    def latest_by_source(self) -> Dict[str, BeliefSignal]:
        return {source: signals[-1] for source, signals in self.by_source().items()}

    def by_type(self, signal_type: str) -> Tuple[BeliefSignal, ...]:
        return tuple(s for s in self.signals if s.signal_type == signal_type)

    def statistics(self) -> SignalStatistics:
        if not self.signals:
            return SignalStatistics()
        values = np.array([s.value for s in self.signals], dtype=float)
        return SignalStatistics(
            count=len(values),
            mean=float(np.mean(values)),
            median=float(np.median(values)),
            std_dev=float(np.std(values)),
            min=float(np.min(values)),
            max=float(np.max(values)),
            source_count=self.source_count,
        )


class SignalBuffer:
    """
    Thread-safe, time-windowed signal store owned by a single market.
    """

    def __init__(
        self,
        market_id: str = "",
        retention_window: int = DEFAULT_RETENTION_WINDOW,
        min_sources: int = DEFAULT_MIN_SOURCES,
        outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD,
        outlier_policy: str = DEFAULT_OUTLIER_POLICY,
        downweight_factor: float = DEFAULT_DOWNWEIGHT_FACTOR,
        max_signals_per_source: int = DEFAULT_MAX_SIGNALS_PER_SOURCE,
        domain: str = "signed",
    ):
        """
        Initialize buffer.

        Args:
            market_id: Owning market (for logging)
            retention_window: Seconds a signal is retained
            min_sources: Minimum distinct sources for a valid index
            outlier_threshold: z-score above which a value is an outlier
            outlier_policy: 'reject' or 'downweight'
            downweight_factor: Weight multiplier for down-weighted outliers
            max_signals_per_source: Oldest signals beyond this are dropped
            domain: Value domain name ('signed' or 'unit')
        """
        self.market_id = market_id
        self.retention_window = retention_window
        self.min_sources = min_sources
        self.outlier_threshold = outlier_threshold
        self.outlier_policy = outlier_policy
        self.downweight_factor = downweight_factor
        self.max_signals_per_source = max_signals_per_source
        self.low, self.high = domain_bounds(domain)

        self._lock = threading.RLock()
        self._by_source: Dict[str, List[BeliefSignal]] = {}
        self._keys: Set[Tuple[str, int]] = set()

    @classmethod
    def from_config(cls, config: MarketConfig) -> "SignalBuffer":
        return cls(
            market_id=config.market_id,
            retention_window=config.retention_window,
            min_sources=config.min_sources,
            outlier_threshold=config.outlier_threshold,
            outlier_policy=config.outlier_policy,
            downweight_factor=config.downweight_factor,
            max_signals_per_source=config.max_signals_per_source,
            domain=config.domain,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ingest(self, signal: BeliefSignal, now: int) -> BeliefSignal:
        """
        Accept a signal into the window.

        Args:
            signal: Incoming signal
            now: Current time on the external clock

        Returns:
            The stored signal (a down-weighted copy under the 'downweight'
            outlier policy)

        Raises:
            RejectedSignal: The signal was refused; the buffer is unchanged
        """
        if signal.timestamp > now:
            raise self._reject(signal, RejectReason.FUTURE_TIMESTAMP, f"now={now}")
        if signal.weight < 0:
            raise self._reject(signal, RejectReason.NEGATIVE_WEIGHT, f"weight={signal.weight}")
        if not self.low <= signal.value <= self.high:
            raise self._reject(
                signal, RejectReason.OUT_OF_DOMAIN, f"value={signal.value} not in [{self.low}, {self.high}]"
            )
        if signal.timestamp < now - self.retention_window:
            raise self._reject(signal, RejectReason.STALE, f"older than {self.retention_window}s")

        with self._lock:
            if signal.key in self._keys:
                raise self._reject(signal, RejectReason.DUPLICATE)
            if self._displaced_by_cap(signal):
                raise self._reject(
                    signal, RejectReason.STALE,
                    f"older than every retained signal from {signal.source} at cap {self.max_signals_per_source}"
                )

            z_score = self._z_score(signal, now)
            if z_score is not None and z_score > self.outlier_threshold:
                if self._would_starve(signal, now):
                    logger.info(
                        f"[{self.market_id}] Keeping outlier from new source {signal.source} "
                        f"(z={z_score:.2f}) to reach {self.min_sources} sources"
                    )
                elif self.outlier_policy == "downweight":
                    metadata = dict(signal.metadata)
                    metadata["downweighted"] = f"z={z_score:.4f}"
                    signal = replace(
                        signal,
                        weight=signal.weight * self.downweight_factor,
                        metadata=metadata,
                    )
                    logger.info(f"[{self.market_id}] Down-weighted outlier from {signal.source} (z={z_score:.2f})")
                else:
                    raise self._reject(signal, RejectReason.OUTLIER, f"z={z_score:.4f}")

            self._insert(signal)

        logger.debug(f"[{self.market_id}] Accepted signal {signal.source}@{signal.timestamp} value={signal.value}")
        return signal

    def ingest_many(
        self,
        signals: List[BeliefSignal],
        now: int
    ) -> Tuple[List[BeliefSignal], List[RejectedSignal]]:
        """
        Ingest a batch, dropping rejected signals.

        Returns:
            Tuple of (accepted signals, rejections)
        """
        accepted: List[BeliefSignal] = []
        rejected: List[RejectedSignal] = []
        for signal in signals:
            try:
                accepted.append(self.ingest(signal, now))
            except RejectedSignal as e:
                rejected.append(e)
        return accepted, rejected

    def snapshot(self, now: int) -> SignalSet:
        """
        Evict expired signals and return an immutable, time-ordered view.

        Signals stamped after `now` stay buffered but are left out of the view.

        Args:
            now: Current time on the external clock

        Returns:
            SignalSet taken atomically under the buffer lock
        """
        with self._lock:
            self._evict(now)
            signals = [
                s for source_signals in self._by_source.values()
                for s in source_signals if s.timestamp <= now
            ]
        signals.sort(key=lambda s: (s.timestamp, s.source))
        return SignalSet(taken_at=now, signals=tuple(signals))

    def evict(self, now: int) -> int:
        """Drop signals older than the retention window. Returns the number dropped."""
        with self._lock:
            return self._evict(now)

    @property
    def source_count(self) -> int:
        with self._lock:
            return len(self._by_source)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._by_source.values())

    def clear(self) -> None:
        with self._lock:
            self._by_source.clear()
            self._keys.clear()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _reject(self, signal: BeliefSignal, reason: str, detail: str = "") -> RejectedSignal:
        logger.warning(f"[{self.market_id}] Rejected signal {signal.source}@{signal.timestamp}: {reason} {detail}")
        return RejectedSignal(reason, source=signal.source, timestamp=signal.timestamp, detail=detail)

    def _retained(self, now: int) -> List[BeliefSignal]:
        cutoff = now - self.retention_window
        return [
            s for source_signals in self._by_source.values()
            for s in source_signals if s.timestamp >= cutoff
        ]

    def _z_score(self, signal: BeliefSignal, now: int) -> Optional[float]:
        """z-score of the signal's value against retained values of its kind."""
        values = [s.value for s in self._retained(now) if s.signal_type == signal.signal_type]
        if len(values) < MIN_OUTLIER_SAMPLE:
            return None
        arr = np.array(values, dtype=float)
        std = float(np.std(arr))
        if std == 0.0:
            return None
        return abs(signal.value - float(np.mean(arr))) / std

    def _would_starve(self, signal: BeliefSignal, now: int) -> bool:
        """True if rejecting a signal from a new source keeps the window below min_sources."""
        active = {s.source for s in self._retained(now)}
        return signal.source not in active and len(active) < self.min_sources

    def _displaced_by_cap(self, signal: BeliefSignal) -> bool:
        """True if a full source would drop this signal itself as its oldest entry."""
        source_signals = self._by_source.get(signal.source, [])
        return (
            len(source_signals) >= self.max_signals_per_source
            and signal.timestamp < source_signals[0].timestamp
        )

    def _insert(self, signal: BeliefSignal) -> None:
        source_signals = self._by_source.setdefault(signal.source, [])
        timestamps = [s.timestamp for s in source_signals]
        source_signals.insert(bisect.bisect_right(timestamps, signal.timestamp), signal)
        self._keys.add(signal.key)

        while len(source_signals) > self.max_signals_per_source:
            # Key stays until retention eviction so the pair cannot be re-accepted
            source_signals.pop(0)

    def _evict(self, now: int) -> int:
        cutoff = now - self.retention_window
        evicted = 0
        for source in list(self._by_source):
            kept = []
            for s in self._by_source[source]:
                if s.timestamp < cutoff:
                    evicted += 1
                else:
                    kept.append(s)
            if kept:
                self._by_source[source] = kept
            else:
                del self._by_source[source]
        self._keys = {key for key in self._keys if key[1] >= cutoff}
        if evicted:
            logger.debug(f"[{self.market_id}] Evicted {evicted} signals older than {cutoff}")
        return evicted
