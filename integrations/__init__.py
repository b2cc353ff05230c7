"""
Integrations Module

Oracle adapters that turn raw oracle payloads into belief signals.
"""

from .oracle_adapters import (
    OracleAdapter,
    OraclePayloadError,
    SentimentAdapter,
    ProbabilityAdapter,
    NarrativeAdapter,
    ModelForecastAdapter,
    ConsensusAdapter,
    ADAPTER_TYPES,
    OracleHub,
    UpdateThrottle,
    get_adapter,
    signal_from_record,
)

__all__ = [
    "OracleAdapter",
    "OraclePayloadError",
    "SentimentAdapter",
    "ProbabilityAdapter",
    "NarrativeAdapter",
    "ModelForecastAdapter",
    "ConsensusAdapter",
    "ADAPTER_TYPES",
    "OracleHub",
    "UpdateThrottle",
    "get_adapter",
    "signal_from_record",
]
