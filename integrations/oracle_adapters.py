"""
Oracle Adapters

Normalize raw oracle payloads into BeliefSignal records.

Each oracle kind reads one field from its payload and tags the resulting
signal with its kind and a default weight. Fetching payloads is the
caller's job; adapters only parse.

    kind              payload field      default weight
    sentiment         sentiment_score    1.0
    probability       probability        1.2
    narrative         narrative_score    0.8
    model_forecast    forecast           1.5
    consensus_metric  consensus_score    1.3
"""

import logging
import math
import threading
from typing import Dict, List, Optional

from belief_index.config import ORACLE_UPDATE_FREQUENCY, SIGNAL_TYPE_WEIGHTS
from belief_index.models import BeliefSignal
from utils.datetime_utils import to_epoch_seconds

logger = logging.getLogger(__name__)


class OraclePayloadError(ValueError):
    """An oracle payload could not be parsed into a signal."""


class OracleAdapter:
    """Parses one kind of oracle payload."""

    signal_type: str = ""
    payload_key: str = ""
    name: str = ""

    def __init__(
        self,
        source: Optional[str] = None,
        weight: Optional[float] = None,
        update_frequency: int = ORACLE_UPDATE_FREQUENCY
    ):
        """
        Initialize adapter.

        Args:
            source: Source id stamped on signals (default '<kind>_oracle')
            weight: Signal weight (default per-kind weight)
            update_frequency: Minimum seconds between updates per source
        """
        self.source = source or f"{self.signal_type}_oracle"
        self.weight = SIGNAL_TYPE_WEIGHTS[self.signal_type] if weight is None else weight
        self.update_frequency = update_frequency

    def parse(self, payload: dict) -> float:
        """Extract the normalized value from a payload."""
        value = payload.get(self.payload_key) if isinstance(payload, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise OraclePayloadError(f"Invalid {self.signal_type} data: missing or non-numeric '{self.payload_key}'")
        return float(value)

    def to_signal(
        self,
        payload: dict,
        timestamp: int,
        domain: str = "",
        source: Optional[str] = None
    ) -> BeliefSignal:
        """
        Build a BeliefSignal from a payload.

        Args:
            payload: Raw oracle response
            timestamp: Observation time on the engine clock
            domain: Topic the oracle was queried for (kept in metadata)
            source: Override for the adapter's source id

        Returns:
            BeliefSignal tagged with this adapter's kind
        """
        value = self.parse(payload)
        confidence = payload.get("confidence")
        if confidence is not None and not (isinstance(confidence, (int, float)) and 0.0 <= confidence <= 1.0):
            raise OraclePayloadError(f"confidence must be between 0.0 and 1.0, got {confidence!r}")

        metadata = {"oracle": self.signal_type}
        if domain:
            metadata["domain"] = domain

        return BeliefSignal(
            source=source or self.source,
            value=value,
            weight=self.weight,
            timestamp=int(timestamp),
            signal_type=self.signal_type,
            confidence=confidence,
            metadata=metadata,
        )


class SentimentAdapter(OracleAdapter):
    signal_type = "sentiment"
    payload_key = "sentiment_score"
    name = "Sentiment Oracle"


class ProbabilityAdapter(OracleAdapter):
    signal_type = "probability"
    payload_key = "probability"
    name = "Forecast Aggregation Oracle"


class NarrativeAdapter(OracleAdapter):
    signal_type = "narrative"
    payload_key = "narrative_score"
    name = "Narrative Oracle"


class ModelForecastAdapter(OracleAdapter):
    signal_type = "model_forecast"
    payload_key = "forecast"
    name = "Model Forecast Oracle"


class ConsensusAdapter(OracleAdapter):
    signal_type = "consensus_metric"
    payload_key = "consensus_score"
    name = "AI Consensus Oracle"


ADAPTER_TYPES = {
    cls.signal_type: cls
    for cls in (SentimentAdapter, ProbabilityAdapter, NarrativeAdapter, ModelForecastAdapter, ConsensusAdapter)
}


def get_adapter(signal_type: str, **kwargs) -> OracleAdapter:
    """Create the adapter for an oracle kind."""
    cls = ADAPTER_TYPES.get(signal_type)
    if cls is None:
        raise OraclePayloadError(f"Unknown oracle kind: {signal_type}")
    return cls(**kwargs)


class UpdateThrottle:
    """
    Allows at most one update per source per `min_interval` seconds.
    """

    def __init__(self, min_interval: int = ORACLE_UPDATE_FREQUENCY):
        self.min_interval = min_interval
        self._last: Dict[str, int] = {}
        self._lock = threading.Lock()

    def allow(self, source: str, timestamp: int) -> bool:
        """Record and allow an update unless the source updated too recently."""
        with self._lock:
            last = self._last.get(source)
            if last is not None and timestamp - last < self.min_interval:
                return False
            self._last[source] = timestamp
            return True


def signal_from_record(record: dict) -> BeliefSignal:
    """
    Build a signal from a recorded row.

    Rows either carry a payload for an oracle kind:
        {"oracle": "sentiment", "timestamp": 100, "payload": {"sentiment_score": 0.4}}
    or are already in BeliefSignal form:
        {"source": "s1", "value": 0.4, "weight": 1.0, "timestamp": 100}

    timestamp may be epoch seconds or an ISO-8601 string.
    """
    timestamp = to_epoch_seconds(record["timestamp"])
    if "oracle" in record:
        adapter = get_adapter(record["oracle"], source=record.get("source"), weight=record.get("weight"))
        return adapter.to_signal(record.get("payload", {}), timestamp, record.get("domain", ""))
    return BeliefSignal.from_dict(dict(record, timestamp=timestamp))


class OracleHub:
    """
    Collects signals from several adapters for one topic.

    Adapters whose payload fails to parse, or whose source is throttled, are
    skipped; the rest still produce signals.
    """

    def __init__(self, adapters: Optional[List[OracleAdapter]] = None, throttle: Optional[UpdateThrottle] = None):
        if adapters is None:
            adapters = [cls() for cls in ADAPTER_TYPES.values()]
        self.adapters = {a.source: a for a in adapters}
        self.throttle = throttle or UpdateThrottle()

    def collect(self, payloads: Dict[str, dict], timestamp: int, domain: str = "") -> List[BeliefSignal]:
        """
        Turn a batch of payloads into signals.

        Args:
            payloads: Mapping of adapter source id to raw payload
            timestamp: Observation time
            domain: Topic queried

        Returns:
            Signals for every payload that parsed and was not throttled
        """
        signals = []
        for source, payload in payloads.items():
            adapter = self.adapters.get(source)
            if adapter is None:
                logger.warning(f"No adapter registered for source {source}")
                continue
            try:
                signal = adapter.to_signal(payload, timestamp, domain)
            except OraclePayloadError as e:
                logger.warning(f"Skipping {source}: {e}")
                continue
            if not self.throttle.allow(source, timestamp):
                logger.debug(f"Throttled {source} at {timestamp}")
                continue
            signals.append(signal)
        return signals
