"""
Built-in Signal Generators
SMA Crossover, RSI, MACD and Bollinger Bands on top of the indicator library
"""
import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from backtester.errors import InvalidParameterError
from backtester.indicators import (
    calculate_sma,
    calculate_rsi,
    calculate_macd,
    calculate_bollinger_bands,
)
from backtester.models import Candle, SignalPoint, StrategyConfig, StrategyParameter

logger = logging.getLogger(__name__)


class Strategy:
    """Signal generator interface.

    Implementations turn a candle sequence into one ``SignalPoint`` per bar.
    """

    config: StrategyConfig

    def get_config(self) -> StrategyConfig:
        return self.config

    def generate_signals(self, candles: Sequence[Candle],
                         params: Optional[Dict[str, Any]] = None) -> List[SignalPoint]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def positions_from_signals(signals: Sequence[int]) -> List[int]:
    """position[0] = 0, position[i] = signal[i] - signal[i-1]"""
    if len(signals) == 0:
        return []
    diffs = np.diff(np.asarray(signals, dtype=np.int64))
    return [0] + [int(d) for d in diffs]


def resolve_params(config: StrategyConfig, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill missing parameters from the config defaults and coerce numbers"""
    params = params or {}
    resolved: Dict[str, Any] = {}
    for param in config.parameters:
        value = params.get(param.name)
        if value is None or value == "":
            value = param.default
        if param.type == "number":
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise InvalidParameterError(f"Parameter '{param.name}' must be numeric (got {value!r})")
            if math.isnan(value):
                raise InvalidParameterError(f"Parameter '{param.name}' must be numeric (got NaN)")
        resolved[param.name] = value
    return resolved


def _window(params: Dict[str, Any], name: str) -> int:
    value = int(params[name])
    if value < 1:
        raise InvalidParameterError(f"Parameter '{name}' must be >= 1 (got {value})")
    return value


def _clean(value) -> Optional[float]:
    value = float(value)
    return None if math.isnan(value) else value


def closes_of(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([c.close for c in candles], dtype=np.float64)


def build_signal_points(candles: Sequence[Candle], raw_signals: Sequence[int],
                        indicators: Dict[str, Any]) -> List[SignalPoint]:
    """Zip candles, raw 0/1 signals and indicator series into SignalPoints"""
    positions = positions_from_signals(raw_signals)
    points = []
    for i, candle in enumerate(candles):
        values = {}
        for name, series in indicators.items():
            values[name] = _clean(series[i] if np.ndim(series) else series)
        points.append(SignalPoint(
            date=candle.date,
            close=candle.close,
            signal=int(raw_signals[i]),
            position=positions[i],
            indicators=values,
        ))
    return points


def _log_summary(tag: str, points: List[SignalPoint]):
    buys = sum(1 for p in points if p.position == 1)
    sells = sum(1 for p in points if p.position == -1)
    logger.info(f"📈 [{tag}] {len(points)} bars | BUY signals: {buys} | SELL signals: {sells}")


def _number(name: str, label: str, default: float, min_value: float, max_value: float,
            step: float, description: str) -> StrategyParameter:
    return StrategyParameter(
        name=name, label=label, type="number", default=default,
        min=min_value, max=max_value, step=step, description=description,
    )


# ---------------------------------------------------------------------------
# SMA Crossover
# ---------------------------------------------------------------------------

class SMACrossoverStrategy(Strategy):
    """Long while the short SMA is above the long SMA"""

    def __init__(self):
        self.config = StrategyConfig(
            name="SMA Crossover",
            description="Buy when short-term SMA crosses above long-term SMA, sell when it crosses below",
            parameters=[
                _number("short_window", "Short Window", 20, 5, 100, 1,
                        "Period for short-term moving average"),
                _number("long_window", "Long Window", 50, 20, 200, 1,
                        "Period for long-term moving average"),
            ],
        )

    def generate_signals(self, candles, params=None):
        params = resolve_params(self.config, params)
        short_window = _window(params, "short_window")
        long_window = _window(params, "long_window")

        closes = closes_of(candles)
        short_sma = calculate_sma(closes, short_window)
        long_sma = calculate_sma(closes, long_window)

        raw_signals = []
        for i in range(len(closes)):
            signal = 0
            if i >= long_window - 1 and not np.isnan(short_sma[i]) and not np.isnan(long_sma[i]):
                signal = 1 if short_sma[i] > long_sma[i] else 0
            raw_signals.append(signal)

        points = build_signal_points(candles, raw_signals, {
            "short_sma": short_sma,
            "long_sma": long_sma,
        })
        _log_summary("SMA_CROSSOVER", points)
        return points


# ---------------------------------------------------------------------------
# RSI
# ---------------------------------------------------------------------------

class RSIStrategy(Strategy):
    """Enter when oversold, hold until overbought"""

    def __init__(self):
        self.config = StrategyConfig(
            name="RSI",
            description="Buy when RSI crosses below oversold level, sell when it crosses above overbought level",
            parameters=[
                _number("rsi_period", "RSI Period", 14, 5, 30, 1, "Period for RSI calculation"),
                _number("oversold", "Oversold Level", 30, 10, 40, 1,
                        "RSI level considered oversold (buy signal)"),
                _number("overbought", "Overbought Level", 70, 60, 90, 1,
                        "RSI level considered overbought (sell signal)"),
            ],
        )

    def generate_signals(self, candles, params=None):
        params = resolve_params(self.config, params)
        period = _window(params, "rsi_period")
        oversold = params["oversold"]
        overbought = params["overbought"]

        closes = closes_of(candles)
        rsi = calculate_rsi(closes, period)

        raw_signals: List[int] = []
        for i in range(len(closes)):
            signal = 0
            if i >= period and not np.isnan(rsi[i]):
                previous = raw_signals[i - 1] if i > 0 else 0
                if rsi[i] < overbought and previous == 1:
                    signal = 1
                elif rsi[i] >= overbought:
                    signal = 0
                elif rsi[i] <= oversold:
                    signal = 1
            raw_signals.append(signal)

        points = build_signal_points(candles, raw_signals, {
            "rsi": rsi,
            "oversold": oversold,
            "overbought": overbought,
        })
        _log_summary("RSI", points)
        return points


# ---------------------------------------------------------------------------
# MACD
# ---------------------------------------------------------------------------

class MACDStrategy(Strategy):
    """Long while the MACD line is above its signal line"""

    def __init__(self):
        self.config = StrategyConfig(
            name="MACD",
            description="Buy when MACD line crosses above signal line, sell when it crosses below",
            parameters=[
                _number("fast_period", "Fast Period", 12, 5, 20, 1, "Fast EMA period"),
                _number("slow_period", "Slow Period", 26, 20, 50, 1, "Slow EMA period"),
                _number("signal_period", "Signal Period", 9, 5, 20, 1, "Signal line EMA period"),
            ],
        )

    def generate_signals(self, candles, params=None):
        params = resolve_params(self.config, params)
        fast = _window(params, "fast_period")
        slow = _window(params, "slow_period")
        signal_period = _window(params, "signal_period")

        closes = closes_of(candles)
        macd, signal_line, histogram = calculate_macd(closes, fast, slow, signal_period)

        raw_signals = []
        for i in range(len(closes)):
            signal = 0
            if i >= slow and not np.isnan(macd[i]) and not np.isnan(signal_line[i]):
                signal = 1 if macd[i] > signal_line[i] else 0
            raw_signals.append(signal)

        points = build_signal_points(candles, raw_signals, {
            "macd": macd,
            "macd_signal": signal_line,
            "histogram": histogram,
        })
        _log_summary("MACD", points)
        return points


# ---------------------------------------------------------------------------
# Bollinger Bands
# ---------------------------------------------------------------------------

class BollingerBandsStrategy(Strategy):
    """Mean reversion: buy the lower band touch, sell the upper band touch"""

    def __init__(self):
        self.config = StrategyConfig(
            name="Bollinger Bands",
            description="Buy when price touches lower band, sell when it touches upper band",
            parameters=[
                _number("period", "Period", 15, 10, 50, 1,
                        "Period for moving average and standard deviation"),
                _number("std_dev", "Standard Deviation", 1.8, 1, 3, 0.1,
                        "Number of standard deviations for bands"),
            ],
        )

    def generate_signals(self, candles, params=None):
        params = resolve_params(self.config, params)
        period = _window(params, "period")
        std_dev = params["std_dev"]

        closes = closes_of(candles)
        upper, middle, lower = calculate_bollinger_bands(closes, period, std_dev)

        raw_signals: List[int] = []
        for i in range(len(closes)):
            signal = 0
            if i >= period - 1 and not np.isnan(lower[i]) and not np.isnan(upper[i]):
                if closes[i] <= lower[i]:
                    signal = 1
                elif closes[i] >= upper[i]:
                    signal = 0
                elif i > 0:
                    signal = raw_signals[i - 1]
            raw_signals.append(signal)

        points = build_signal_points(candles, raw_signals, {
            "upper_band": upper,
            "middle_band": middle,
            "lower_band": lower,
        })
        _log_summary("BOLLINGER_BANDS", points)
        return points
