"""
Strategy Registry
Maps strategy ids to signal generators. Built once at start-up and passed
explicitly to whatever needs to resolve ids.
"""
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from backtester.models import StrategyInfo
from backtester.strategies import (
    Strategy,
    SMACrossoverStrategy,
    RSIStrategy,
    MACDStrategy,
    BollingerBandsStrategy,
)

logger = logging.getLogger(__name__)

CUSTOM_PREFIX = "custom_"


class StrategyRegistry:
    """Strategy id -> Strategy"""

    def __init__(self):
        self._strategies: Dict[str, Strategy] = {}

    def register(self, strategy_id: str, strategy: Strategy) -> None:
        self._strategies[strategy_id] = strategy
        logger.debug(f"[STRATEGY_REGISTRY] Registered strategy: {strategy_id}")

    def unregister(self, strategy_id: str) -> bool:
        return self._strategies.pop(strategy_id, None) is not None

    def get(self, strategy_id: str) -> Optional[Strategy]:
        return self._strategies.get(strategy_id)

    def has(self, strategy_id: str) -> bool:
        return strategy_id in self._strategies

    def items(self) -> Iterator[Tuple[str, Strategy]]:
        return iter(list(self._strategies.items()))

    def __len__(self):
        return len(self._strategies)

    def list_strategies(self) -> List[StrategyInfo]:
        result = []
        for strategy_id, strategy in self.items():
            config = strategy.get_config()
            result.append(StrategyInfo(
                id=strategy_id,
                name=config.name,
                description=config.description,
                parameters=config.parameters,
            ))
        return result


def build_default_registry() -> StrategyRegistry:
    """Registry holding the four built-in strategies"""
    registry = StrategyRegistry()
    registry.register("sma_crossover", SMACrossoverStrategy())
    registry.register("rsi", RSIStrategy())
    registry.register("macd", MACDStrategy())
    registry.register("bollinger_bands", BollingerBandsStrategy())
    return registry


def list_strategies(registry: StrategyRegistry, store=None) -> List[StrategyInfo]:
    """Built-in strategies followed by the store's custom strategies"""
    strategies = registry.list_strategies()
    if store is not None:
        for custom in store.list():
            strategies.append(StrategyInfo(
                id=custom.id if custom.id.startswith(CUSTOM_PREFIX) else f"{CUSTOM_PREFIX}{custom.id}",
                name=custom.name,
                description=custom.description,
                parameters=custom.parameters,
                isCustom=True,
            ))
    return strategies
