"""
Confidence Calculator

Calculates BSI confidence from three normalized components.

The confidence formula is:
    confidence = 0.40 * diversity +
                 0.35 * agreement +
                 0.25 * recency

where
    diversity = min(1, source_count / target_sources)
    agreement = 1 - min(1, dispersion / (domain_width / 2))
    recency   = max(0, 1 - freshest_age / recency_horizon)

Confidence is monotonic increasing in diversity and recency and decreasing
in dispersion.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


# Default weights for the confidence components
DEFAULT_WEIGHTS = {
    "diversity": 0.40,
    "agreement": 0.35,
    "recency": 0.25
}


@dataclass(frozen=True)
class ConfidenceComponents:
    """
    Normalized confidence inputs.

    All components in [0.0, 1.0].
    """
    diversity: float
    agreement: float
    recency: float

    def __post_init__(self):
        """Validate all components are in range."""
        for field_name in ["diversity", "agreement", "recency"]:
            value = getattr(self, field_name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{field_name} must be between 0.0 and 1.0, got {value}")

    def to_dict(self) -> dict:
        return {
            "diversity": round(self.diversity, 4),
            "agreement": round(self.agreement, 4),
            "recency": round(self.recency, 4)
        }


def diversity_factor(source_count: int, target_sources: int) -> float:
    """Share of the target source count that is present, capped at 1."""
    if target_sources <= 0:
        return 1.0
    return min(1.0, source_count / target_sources)


def agreement_factor(dispersion: float, domain_width: float) -> float:
    """
    Inverse spread of signal values.

    The largest possible standard deviation of values confined to a domain
    of width w is w / 2, so dispersion is normalized against that.
    """
    max_dispersion = domain_width / 2.0
    if max_dispersion <= 0:
        return 1.0
    return 1.0 - min(1.0, max(0.0, dispersion) / max_dispersion)


def recency_factor(freshest_age: float, recency_horizon: float) -> float:
    """Linear credit for the freshest contributing signal."""
    if freshest_age <= 0:
        return 1.0
    return max(0.0, 1.0 - freshest_age / recency_horizon)


def calculate_confidence(
    components: ConfidenceComponents,
    weights: Optional[dict] = None
) -> float:
    """
    Calculate confidence from its components.

    Args:
        components: Normalized components
        weights: Optional custom weights (normalized to sum to 1)

    Returns:
        Confidence score [0.0-1.0]
    """
    w = weights or DEFAULT_WEIGHTS
    total = sum(w.get(k, 0.0) for k in DEFAULT_WEIGHTS)
    if total <= 0:
        raise ValueError(f"confidence weights must have a positive sum, got {w}")

    confidence = (
        w.get("diversity", 0.0) * components.diversity +
        w.get("agreement", 0.0) * components.agreement +
        w.get("recency", 0.0) * components.recency
    ) / total

    # Ensure in valid range
    return min(1.0, max(0.0, confidence))


class ConfidenceCalculator:
    """
    Confidence calculator bound to a market's parameters.
    """

    def __init__(
        self,
        target_sources: int,
        domain_width: float,
        recency_horizon: float,
        weights: Optional[dict] = None
    ):
        """
        Initialize calculator.

        Args:
            target_sources: Source count that earns full diversity credit
            domain_width: Width of the BSI value domain
            recency_horizon: Age (seconds) at which recency credit reaches 0
            weights: Custom weights for the components
        """
        self.target_sources = target_sources
        self.domain_width = domain_width
        self.recency_horizon = recency_horizon
        self.weights = weights or DEFAULT_WEIGHTS.copy()

    def components(
        self,
        source_count: int,
        dispersion: float,
        freshest_age: float
    ) -> ConfidenceComponents:
        return ConfidenceComponents(
            diversity=diversity_factor(source_count, self.target_sources),
            agreement=agreement_factor(dispersion, self.domain_width),
            recency=recency_factor(freshest_age, self.recency_horizon)
        )

    def calculate(
        self,
        source_count: int,
        dispersion: float,
        freshest_age: float
    ) -> float:
        """
        Calculate confidence score.

        Args:
            source_count: Distinct sources in the snapshot
            dispersion: Weighted standard deviation of signal values
            freshest_age: Age in seconds of the newest contributing signal

        Returns:
            Confidence score
        """
        components = self.components(source_count, dispersion, freshest_age)
        confidence = calculate_confidence(components, self.weights)
        logger.debug(f"Confidence {confidence:.4f} from {components.to_dict()}")
        return confidence
