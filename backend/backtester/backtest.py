"""
Backtest Engine
candles -> signals -> simulated trades -> metrics
"""
import logging
import time
from typing import Any, Dict, Optional, Sequence

from backtester import (
    DEFAULT_INITIAL_CAPITAL,
    DEFAULT_POSITION_SIZE_PERCENTAGE,
    DEFAULT_FEE_PERCENTAGE,
)
from backtester.conditions import CustomStrategyEvaluator
from backtester.errors import NoDataError, StrategyNotFoundError
from backtester.metrics import compute_metrics
from backtester.models import BacktestResult, Candle, CustomStrategy
from backtester.portfolio import simulate_portfolio
from backtester.registry import CUSTOM_PREFIX, StrategyRegistry
from backtester.strategies import Strategy

logger = logging.getLogger(__name__)


class BacktestEngine:
    """Runs strategies over an already-fetched candle sequence"""

    def __init__(self, candles: Sequence[Candle]):
        if not candles:
            raise NoDataError("No data found for the given range")
        self.candles = list(candles)
        self.length = len(self.candles)

    def run(self, strategy: Strategy, params: Optional[Dict[str, Any]] = None,
            initial_capital: float = DEFAULT_INITIAL_CAPITAL,
            position_size_percentage: float = DEFAULT_POSITION_SIZE_PERCENTAGE,
            fee_percentage: float = DEFAULT_FEE_PERCENTAGE) -> BacktestResult:
        """Run backtest"""
        # Generate signals
        signals = strategy.generate_signals(self.candles, params or {})
        logger.info(f"[BACKTEST] Generated {len(signals)} signals with {strategy.get_config().name}")

        # Simulate trades
        sim = simulate_portfolio(signals, initial_capital, position_size_percentage, fee_percentage)

        # Calculate statistics
        metrics = compute_metrics(
            sim.trades,
            initial_capital=initial_capital,
            final_value=sim.final_value,
            max_drawdown=sim.max_drawdown,
            peak_portfolio_value=sim.peak_portfolio_value,
            total_fees=sim.total_fees,
        )
        return BacktestResult(**metrics, trades=sim.trades)


def resolve_strategy(registry: StrategyRegistry, strategy_id: Optional[str] = None,
                     custom_strategy: Optional[CustomStrategy] = None,
                     strategy_store=None) -> Strategy:
    """Explicit custom definition, then registry id, then the custom store"""
    if custom_strategy is not None:
        return CustomStrategyEvaluator(custom_strategy)

    if strategy_id:
        strategy = registry.get(strategy_id)
        if strategy is not None:
            return strategy

        if strategy_store is not None:
            stored = strategy_store.get(strategy_id)
            if stored is None and strategy_id.startswith(CUSTOM_PREFIX):
                stored = strategy_store.get(strategy_id[len(CUSTOM_PREFIX):])
            if stored is not None:
                return CustomStrategyEvaluator(stored)

    raise StrategyNotFoundError(f"Strategy not found: {strategy_id}")


def run_backtest(instrument_token: str, from_date, to_date, interval: str,
                 strategy_id: Optional[str] = None,
                 strategy_params: Optional[Dict[str, Any]] = None,
                 initial_capital: float = DEFAULT_INITIAL_CAPITAL,
                 position_size_percentage: float = DEFAULT_POSITION_SIZE_PERCENTAGE,
                 fee_percentage: float = DEFAULT_FEE_PERCENTAGE,
                 *, candle_source, registry: StrategyRegistry,
                 custom_strategy: Optional[CustomStrategy] = None,
                 strategy_store=None) -> BacktestResult:
    """Fetch candles, resolve the strategy and run a full backtest.

    Raises NoDataError when the candle source returns nothing and
    StrategyNotFoundError when neither ``custom_strategy`` nor ``strategy_id``
    resolves.
    """
    start_time = time.time()
    logger.info(
        f"[BACKTEST] ========== Starting Backtest ========== {instrument_token} "
        f"{from_date} -> {to_date} ({interval}) strategy={strategy_id or 'custom'}")

    strategy = resolve_strategy(registry, strategy_id, custom_strategy, strategy_store)

    candles = candle_source.get_candles(instrument_token, from_date, to_date, interval)
    logger.info(f"[BACKTEST] Fetched {len(candles) if candles else 0} data points")
    if not candles:
        logger.error("[BACKTEST] No data found for the given range")
        raise NoDataError("No data found for the given range")

    engine = BacktestEngine(candles)
    result = engine.run(strategy, strategy_params, initial_capital,
                        position_size_percentage, fee_percentage)

    elapsed = time.time() - start_time
    logger.info(
        f"⚡ [BACKTEST] Completed in {elapsed:.3f}s | return: {result.return_percentage:.2f}% | "
        f"trades: {result.total_trades}")
    return result
