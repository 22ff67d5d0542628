"""
Technical Indicators
Optimized with NumPy + Numba. Every function returns an array the same length
as its input, with NaN where the window is not yet full.
"""
import numpy as np
from numba import jit
from typing import Dict, Tuple


class IndicatorBank:
    """Memoised indicator series over a single close-price array.

    Keys follow ``<indicator>_<params>`` (``sma_20``, ``rsi_14``,
    ``macd_12_26_9``, ``bb_20_2.0``). All indicators are causal, so the
    value at index ``i`` only depends on prices ``[0..i]``.
    """

    def __init__(self, closes):
        self.close = _as_float_array(closes)
        self.length = len(self.close)
        self.indicators: Dict[str, np.ndarray] = {}

    def sma(self, period: int) -> np.ndarray:
        key = f"sma_{period}"
        if key not in self.indicators:
            self.indicators[key] = calculate_sma(self.close, period)
        return self.indicators[key]

    def ema(self, period: int) -> np.ndarray:
        key = f"ema_{period}"
        if key not in self.indicators:
            self.indicators[key] = calculate_ema(self.close, period)
        return self.indicators[key]

    def rsi(self, period: int = 14) -> np.ndarray:
        key = f"rsi_{period}"
        if key not in self.indicators:
            self.indicators[key] = calculate_rsi(self.close, period)
        return self.indicators[key]

    def macd(self, fast: int = 12, slow: int = 26, signal: int = 9) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        key = f"macd_{fast}_{slow}_{signal}"
        if key not in self.indicators:
            macd, signal_line, hist = calculate_macd(self.close, fast, slow, signal)
            self.indicators[key] = macd
            self.indicators[f"macd_signal_{fast}_{slow}_{signal}"] = signal_line
            self.indicators[f"macd_hist_{fast}_{slow}_{signal}"] = hist
        return (
            self.indicators[key],
            self.indicators[f"macd_signal_{fast}_{slow}_{signal}"],
            self.indicators[f"macd_hist_{fast}_{slow}_{signal}"],
        )

    def bollinger(self, period: int = 20, std_dev: float = 2.0) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        key = f"bb_{period}_{float(std_dev)}"
        if f"{key}_upper" not in self.indicators:
            upper, middle, lower = calculate_bollinger_bands(self.close, period, std_dev)
            self.indicators[f"{key}_upper"] = upper
            self.indicators[f"{key}_middle"] = middle
            self.indicators[f"{key}_lower"] = lower
        return (
            self.indicators[f"{key}_upper"],
            self.indicators[f"{key}_middle"],
            self.indicators[f"{key}_lower"],
        )


# ==================== INDICATOR FUNCTIONS ====================

def _as_float_array(values) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def _check_window(window: int, name: str = "window") -> int:
    window = int(window)
    if window < 1:
        raise ValueError(f"{name} must be >= 1 (got {window})")
    return window


@jit(nopython=True)
def _sma_core(values: np.ndarray, period: int) -> np.ndarray:
    """SMA Core (Numba optimized)"""
    n = len(values)
    result = np.full(n, np.nan)

    for i in range(period - 1, n):
        result[i] = np.mean(values[i - period + 1:i + 1])

    return result


def calculate_sma(values, period: int) -> np.ndarray:
    """Simple Moving Average"""
    values = _as_float_array(values)
    period = _check_window(period, "period")
    if len(values) < period:
        return np.full(len(values), np.nan)
    return _sma_core(values, period)


@jit(nopython=True)
def _ema_core(values: np.ndarray, period: int) -> np.ndarray:
    """EMA Core (Numba optimized)"""
    n = len(values)
    ema = np.full(n, np.nan)
    if n == 0:
        return ema

    multiplier = 2.0 / (period + 1)
    running_sum = 0.0
    for i in range(n):
        running_sum += values[i]
        if i == 0:
            ema[i] = values[i]
        elif i < period:
            # Seed with the cumulative mean of the values seen so far
            ema[i] = running_sum / (i + 1)
        else:
            ema[i] = ema[i - 1] + multiplier * (values[i] - ema[i - 1])

    return ema


def calculate_ema(values, period: int) -> np.ndarray:
    """Exponential Moving Average.

    Index 0 is the raw value, indices ``1..period-1`` the cumulative simple
    average, and the exponential recurrence applies from ``period`` onwards.
    """
    values = _as_float_array(values)
    period = _check_window(period, "period")
    return _ema_core(values, period)


@jit(nopython=True)
def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0.0:
        if avg_gain == 0.0:
            return 50.0
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


@jit(nopython=True)
def _rsi_core(values: np.ndarray, period: int) -> np.ndarray:
    """RSI Core (Numba optimized)"""
    n = len(values)
    rsi = np.full(n, np.nan)

    # Calculate price changes
    deltas = np.diff(values)

    # Separate gains and losses
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    # Initial averages
    avg_gain = np.mean(gains[:period])
    avg_loss = np.mean(losses[:period])
    rsi[period] = _rsi_value(avg_gain, avg_loss)

    # Wilder smoothing
    for i in range(period + 1, n):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        rsi[i] = _rsi_value(avg_gain, avg_loss)

    return rsi


def calculate_rsi(values, period: int = 14) -> np.ndarray:
    """Relative Strength Index.

    RSI is 100 when the average loss is zero and 50 when the series did not
    move at all (both averages zero).
    """
    values = _as_float_array(values)
    period = _check_window(period, "period")
    if len(values) < period + 1:
        return np.full(len(values), np.nan)
    return _rsi_core(values, period)


def calculate_macd(values, fast: int = 12, slow: int = 26, signal: int = 9):
    """MACD line, signal line (EMA of the MACD line) and histogram"""
    values = _as_float_array(values)
    ema_fast = calculate_ema(values, fast)
    ema_slow = calculate_ema(values, slow)

    macd = ema_fast - ema_slow
    signal_line = calculate_ema(macd, signal)
    histogram = macd - signal_line

    return macd, signal_line, histogram


@jit(nopython=True)
def _rolling_std_core(values: np.ndarray, period: int) -> np.ndarray:
    """Population std-dev over a trailing window"""
    n = len(values)
    std = np.full(n, np.nan)
    for i in range(period - 1, n):
        std[i] = np.std(values[i - period + 1:i + 1])
    return std


def calculate_bollinger_bands(values, period: int = 20, std_dev: float = 2.0):
    """Bollinger Bands"""
    values = _as_float_array(values)
    period = _check_window(period, "period")
    middle = calculate_sma(values, period)

    if len(values) >= period:
        std = _rolling_std_core(values, period)
    else:
        std = np.full(len(values), np.nan)

    upper = middle + (std * std_dev)
    lower = middle - (std * std_dev)

    return upper, middle, lower
