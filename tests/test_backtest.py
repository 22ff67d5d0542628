import numpy as np
import pytest

from backtester.backtest import BacktestEngine, resolve_strategy, run_backtest
from backtester.conditions import CustomStrategyEvaluator
from backtester.data import InMemoryCandleSource
from backtester.errors import NoDataError, StrategyNotFoundError
from backtester.models import (
    CustomStrategy,
    CustomStrategyCondition,
    CustomStrategyIndicatorRef,
    CustomStrategyRule,
    StrategyConfig,
)
from backtester.registry import build_default_registry
from backtester.storage import CustomStrategyStore
from backtester.strategies import Strategy, build_signal_points


class FixedPositions(Strategy):
    """Emits a preset position stream"""

    def __init__(self, positions):
        self.positions = positions
        self.config = StrategyConfig(name="Fixed")

    def generate_signals(self, candles, params=None):
        signals, current = [], 0
        for p in self.positions:
            current += p
            signals.append(current)
        return build_signal_points(candles, signals, {})


@pytest.fixture
def source(sine_candles):
    src = InMemoryCandleSource()
    src.add_candles("256265", sine_candles, "day")
    return src


def test_end_to_end_sine_wave(source):
    result = run_backtest("256265", "2023-01-01", "2023-12-31", "day", "sma_crossover",
                          {"short_window": 5, "long_window": 20},
                          candle_source=source, registry=build_default_registry())
    actions = [t.action for t in result.trades]
    assert "BUY" in actions and "SELL" in actions
    assert result.total_trades == len(result.trades)
    for t in result.trades:
        assert t.cash_after >= 0 and t.holdings_after >= 0


def test_buy_then_sell_exact_values(make_candles):
    candles = make_candles([100, 100, 110])
    result = BacktestEngine(candles).run(FixedPositions([0, 1, -1]), initial_capital=100000,
                                         position_size_percentage=100, fee_percentage=0)
    assert result.total_trades == 2
    assert result.total_fees == 0
    assert result.final_value == 110000
    assert result.total_return == 10000
    assert result.return_percentage == 10
    assert result.winning_trades == 1
    assert result.win_rate == 100
    assert result.best_trade == 10000


def test_no_crossover_means_no_trades(make_candles):
    candles = make_candles(np.linspace(300, 100, 80))
    result = BacktestEngine(candles).run(build_default_registry().get("sma_crossover"),
                                         {"short_window": 5, "long_window": 20}, initial_capital=50000)
    assert result.total_trades == 0
    assert result.final_value == 50000
    assert result.max_drawdown == 0


def test_result_is_immutable(make_candles):
    result = BacktestEngine(make_candles([100, 110])).run(FixedPositions([0, 0]))
    with pytest.raises(Exception):
        result.final_value = 1


def test_empty_candles_raise_no_data():
    with pytest.raises(NoDataError):
        run_backtest("1", "2023-01-01", "2023-02-01", "day", "rsi",
                     candle_source=InMemoryCandleSource(), registry=build_default_registry())
    with pytest.raises(NoDataError):
        BacktestEngine([])


def test_date_range_outside_data_raises_no_data(source):
    with pytest.raises(NoDataError):
        run_backtest("256265", "2030-01-01", "2030-02-01", "day", "rsi",
                     candle_source=source, registry=build_default_registry())


def test_unknown_strategy(source):
    with pytest.raises(StrategyNotFoundError):
        run_backtest("256265", "2023-01-01", "2023-12-31", "day", "nope",
                     candle_source=source, registry=build_default_registry())


def _custom():
    price = CustomStrategyIndicatorRef(type="price")
    sma = CustomStrategyIndicatorRef(type="sma", period=10)
    return CustomStrategy(
        name="Price vs SMA",
        buyRules=[CustomStrategyRule(type="buy", conditions=[
            CustomStrategyCondition(id="b1", indicator1=price, operator="crosses_above", indicator2=sma)])],
        sellRules=[CustomStrategyRule(type="sell", conditions=[
            CustomStrategyCondition(id="s1", indicator1=price, operator="crosses_below", indicator2=sma)])],
    )


def test_custom_strategy_definition(source):
    result = run_backtest("256265", "2023-01-01", "2023-12-31", "day", None,
                          candle_source=source, registry=build_default_registry(),
                          custom_strategy=_custom())
    assert result.total_trades >= 2
    assert result.trades[0].action == "BUY"


def test_resolve_from_store_with_prefix():
    registry = build_default_registry()
    store = CustomStrategyStore()
    saved = store.save(_custom())
    assert isinstance(resolve_strategy(registry, saved.id, strategy_store=store), CustomStrategyEvaluator)
    assert isinstance(resolve_strategy(registry, f"custom_{saved.id}", strategy_store=store),
                      CustomStrategyEvaluator)
    assert resolve_strategy(registry, "macd") is registry.get("macd")
    with pytest.raises(StrategyNotFoundError):
        resolve_strategy(registry, None)
