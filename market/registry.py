"""
Market Registry Module

Handles loading, validation, and lookup of market configurations.
Markets are declared in config/markets.json and validated before any
aggregation begins, so a malformed condition fails at load time.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from belief_index.config import MarketConfig
from belief_index.errors import InvalidConfiguration

logger = logging.getLogger(__name__)


class MarketRegistry:
    """
    Manages the market registry.

    Responsibilities:
    - Load market configurations from JSON
    - Validate each configuration (conditions, curves, bounds)
    - Provide lookup by market id
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the market registry.

        Args:
            config_path: Path to markets.json. If None, uses default location.
        """
        if config_path is None:
            # Default to config/markets.json relative to project root
            project_root = Path(__file__).parent.parent
            config_path = project_root / "config" / "markets.json"

        self.config_path = Path(config_path)
        self.markets: Dict[str, MarketConfig] = {}
        self.defaults: dict = {}

        self._load_markets()

    def _load_markets(self) -> None:
        """Load and validate markets from the configuration file."""
        logger.debug(f"Loading markets from: {self.config_path}")
        if not self.config_path.exists():
            raise FileNotFoundError(f"Market configuration not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)

        # Shared parameters, overridden per market
        self.defaults = config.get("defaults", {})

        for market_data in config.get("markets", []):
            market = self._parse_market(market_data)
            if market.market_id in self.markets:
                raise InvalidConfiguration(f"Duplicate market id in registry: {market.market_id}")
            self.markets[market.market_id] = market
            logger.debug(f"Loaded market: {market.market_id}")

        logger.info(f"Loaded {len(self.markets)} markets from registry")

    def _parse_market(self, data: dict) -> MarketConfig:
        """Merge defaults and build a validated MarketConfig."""
        merged = dict(self.defaults)
        merged.update(data)
        try:
            return MarketConfig.from_dict(merged)
        except InvalidConfiguration as e:
            raise InvalidConfiguration(f"Market '{data.get('market_id', '')}' validation failed: {e}") from e

    def get_market(self, market_id: str) -> Optional[MarketConfig]:
        """Get market configuration by id."""
        return self.markets.get(market_id)

    def get_all_markets(self) -> List[MarketConfig]:
        """Get all registered market configurations."""
        return list(self.markets.values())

    def get_markets_by_condition(self, condition_type: str) -> List[MarketConfig]:
        """Get markets filtered by condition type."""
        return [m for m in self.markets.values() if m.condition.condition_type == condition_type]

    def list_market_ids(self) -> List[str]:
        """Get list of all market ids."""
        return list(self.markets.keys())

    def __len__(self) -> int:
        return len(self.markets)

    def __iter__(self):
        return iter(self.markets.values())


# Module-level singleton for convenience
_registry: Optional[MarketRegistry] = None


def get_registry(config_path: Optional[str] = None, force_reload: bool = False) -> MarketRegistry:
    """
    Get the market registry singleton.

    Args:
        config_path: Optional path to markets.json
        force_reload: If True, reload the registry even if already loaded

    Returns:
        MarketRegistry instance
    """
    global _registry
    if _registry is None or force_reload:
        _registry = MarketRegistry(config_path)
    return _registry
