"""
Custom Strategy Evaluator
Interprets user-authored buy/sell rules bar by bar against the indicator bank.
"""
import logging
import math
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from backtester import EQUALITY_TOLERANCE
from backtester.errors import InvalidParameterError
from backtester.indicators import IndicatorBank
from backtester.models import (
    Candle,
    CustomStrategy,
    CustomStrategyCondition,
    CustomStrategyIndicatorRef,
    CustomStrategyRule,
    SignalPoint,
    StrategyConfig,
)
from backtester.strategies import Strategy, closes_of

logger = logging.getLogger(__name__)

DEFAULT_PERIODS = {
    "sma": 20,
    "ema": 20,
    "rsi": 14,
    "bollinger": 20,
}


class Operand:
    """One side of a condition, resolved against an indicator bank"""

    def __init__(self, label: str, period: int, series: Optional[np.ndarray] = None,
                 constant: Optional[float] = None):
        self.label = label
        self.period = period
        self.series = series
        self.constant = constant

    def at(self, index: int) -> Optional[float]:
        """Value at ``index`` or None while the indicator is undefined"""
        if index < 0 or index < self.period - 1:
            return None
        if self.series is None:
            return self.constant
        value = float(self.series[index])
        return None if math.isnan(value) else value


def indicator_period(ref: CustomStrategyIndicatorRef) -> int:
    """Number of bars an indicator reference needs before it is defined"""
    if ref.type in ("price", "value"):
        return int(ref.period or 0)
    if ref.type == "macd":
        return int(ref.params.get("slow", ref.period or 26))
    return int(ref.period or DEFAULT_PERIODS[ref.type])


def resolve_operand(bank: IndicatorBank, ref: CustomStrategyIndicatorRef) -> Operand:
    period = indicator_period(ref)
    params = ref.params or {}

    if ref.type == "price":
        return Operand("price", period, series=bank.close)
    if ref.type == "value":
        value = float(params.get("value", ref.period or 0))
        return Operand(f"value_{value:g}", 0, constant=value)
    if ref.type == "sma":
        return Operand(f"sma_{period}", period, series=bank.sma(period))
    if ref.type == "ema":
        return Operand(f"ema_{period}", period, series=bank.ema(period))
    if ref.type == "rsi":
        return Operand(f"rsi_{period}", period, series=bank.rsi(period))
    if ref.type == "macd":
        fast = int(params.get("fast", 12))
        signal = int(params.get("signal", 9))
        line = params.get("line", "macd")
        macd, signal_line, histogram = bank.macd(fast, period, signal)
        series = {"macd": macd, "signal": signal_line, "histogram": histogram}.get(line)
        if series is None:
            raise InvalidParameterError(f"Unknown MACD line '{line}'")
        return Operand(f"macd_{line}_{fast}_{period}_{signal}", period, series=series)
    if ref.type == "bollinger":
        std_dev = float(params.get("std_dev", 2.0))
        band = params.get("band", "middle")
        upper, middle, lower = bank.bollinger(period, std_dev)
        series = {"upper": upper, "middle": middle, "lower": lower}.get(band)
        if series is None:
            raise InvalidParameterError(f"Unknown Bollinger band '{band}'")
        return Operand(f"bb_{band}_{period}_{std_dev:g}", period, series=series)

    raise InvalidParameterError(f"Unsupported indicator type '{ref.type}'")


# ---------------------------------------------------------------------------
# Operators
# Each handler receives both operands and the bar index. Current values are
# already known to be defined when a handler runs.
# ---------------------------------------------------------------------------

def greater_than(left: Operand, right: Operand, index: int) -> bool:
    return left.at(index) > right.at(index)


def less_than(left: Operand, right: Operand, index: int) -> bool:
    return left.at(index) < right.at(index)


def greater_or_equal(left: Operand, right: Operand, index: int) -> bool:
    return left.at(index) >= right.at(index)


def less_or_equal(left: Operand, right: Operand, index: int) -> bool:
    return left.at(index) <= right.at(index)


def approximately_equal(left: Operand, right: Operand, index: int) -> bool:
    return abs(left.at(index) - right.at(index)) < EQUALITY_TOLERANCE


def crosses_above(left: Operand, right: Operand, index: int) -> bool:
    if index == 0:
        return False
    prev1, prev2 = left.at(index - 1), right.at(index - 1)
    if prev1 is None or prev2 is None:
        return False
    return prev1 <= prev2 and left.at(index) > right.at(index)


def crosses_below(left: Operand, right: Operand, index: int) -> bool:
    if index == 0:
        return False
    prev1, prev2 = left.at(index - 1), right.at(index - 1)
    if prev1 is None or prev2 is None:
        return False
    return prev1 >= prev2 and left.at(index) < right.at(index)


OPERATOR_HANDLERS: Dict[str, Callable[[Operand, Operand, int], bool]] = {
    '>': greater_than,
    '<': less_than,
    '>=': greater_or_equal,
    '<=': less_or_equal,
    '==': approximately_equal,
    'crosses_above': crosses_above,
    'crosses_below': crosses_below,
}


def evaluate_condition(condition: CustomStrategyCondition, bank: IndicatorBank, index: int) -> bool:
    left = resolve_operand(bank, condition.indicator1)
    right = resolve_operand(bank, condition.indicator2)
    if left.at(index) is None or right.at(index) is None:
        return False
    handler = OPERATOR_HANDLERS.get(condition.operator)
    if handler is None:
        return False
    return bool(handler(left, right, index))


def evaluate_rule(rule: CustomStrategyRule, bank: IndicatorBank, index: int) -> bool:
    """Combine a rule's conditions with its declared logic (and / or)"""
    if not rule.conditions:
        return False
    results = (evaluate_condition(c, bank, index) for c in rule.conditions)
    if rule.logic == "or":
        return any(results)
    return all(results)


def evaluate_rules(rules: Sequence[CustomStrategyRule], bank: IndicatorBank, index: int) -> bool:
    """A rule list fires when any of its rules fires"""
    return any(evaluate_rule(rule, bank, index) for rule in rules)


class CustomStrategyEvaluator(Strategy):
    """Runs a ``CustomStrategy`` as a signal generator"""

    def __init__(self, custom_strategy: CustomStrategy):
        self.custom_strategy = custom_strategy
        self.config = StrategyConfig(
            name=custom_strategy.name,
            description=custom_strategy.description,
            parameters=custom_strategy.parameters,
        )

    def _all_conditions(self) -> List[CustomStrategyCondition]:
        rules = list(self.custom_strategy.buyRules) + list(self.custom_strategy.sellRules)
        return [c for rule in rules for c in rule.conditions]

    def max_period(self) -> int:
        max_period = 0
        for condition in self._all_conditions():
            max_period = max(
                max_period,
                indicator_period(condition.indicator1),
                indicator_period(condition.indicator2),
            )
        return max_period

    def generate_signals(self, candles: Sequence[Candle], params=None) -> List[SignalPoint]:
        strategy = self.custom_strategy
        logger.info(f"🧩 [CUSTOM_STRATEGY] Generating signals for: {strategy.name}")

        bank = IndicatorBank(closes_of(candles))
        operands: Dict[str, Operand] = {}
        for condition in self._all_conditions():
            for ref in (condition.indicator1, condition.indicator2):
                operand = resolve_operand(bank, ref)
                operands.setdefault(operand.label, operand)

        max_period = self.max_period()
        current_position = 0
        results = []

        for i, candle in enumerate(candles):
            signal = 0
            position = 0

            if i >= max_period:
                buy_signal = evaluate_rules(strategy.buyRules, bank, i)
                sell_signal = evaluate_rules(strategy.sellRules, bank, i)

                if buy_signal and current_position == 0:
                    position = 1
                    current_position = 1
                    logger.debug(f"[CUSTOM_STRATEGY] Buy signal at index {i}")
                elif sell_signal and current_position == 1:
                    position = -1
                    current_position = 0
                    logger.debug(f"[CUSTOM_STRATEGY] Sell signal at index {i}")
                signal = current_position

            results.append(SignalPoint(
                date=candle.date,
                close=candle.close,
                signal=signal,
                position=position,
                indicators={label: op.at(i) for label, op in operands.items() if op.series is not None},
            ))

        signal_count = sum(1 for r in results if r.position != 0)
        logger.info(f"🧩 [CUSTOM_STRATEGY] Generated {signal_count} signals (warm-up {max_period} bars)")
        return results
