"""
Data Models for the Strategy Backtester
"""
from datetime import datetime
from typing import List, Dict, Any, Optional, Union, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backtester import (
    DEFAULT_INITIAL_CAPITAL,
    DEFAULT_POSITION_SIZE_PERCENTAGE,
    DEFAULT_FEE_PERCENTAGE,
)


class Candle(BaseModel):
    """OHLCV Candle Data"""
    model_config = ConfigDict(frozen=True)

    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class SignalPoint(BaseModel):
    """Per-bar strategy output.

    ``signal`` is the desired exposure (0 = flat, 1 = long) and ``position``
    the change against the previous bar (+1 buy, -1 sell, 0 hold).
    """
    date: datetime
    close: float
    signal: Literal[0, 1]
    position: Literal[-1, 0, 1]
    indicators: Dict[str, Optional[float]] = {}


# ---------------------------------------------------------------------------
# Strategy metadata
# ---------------------------------------------------------------------------

class ParameterOption(BaseModel):
    value: Union[str, float]
    label: str


class StrategyParameter(BaseModel):
    """Declarative parameter descriptor (UI / introspection only)"""
    name: str
    label: str
    type: Literal["number", "select"] = "number"
    default: Union[float, str]
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None
    options: Optional[List[ParameterOption]] = None
    description: Optional[str] = None


class StrategyConfig(BaseModel):
    """Strategy Configuration"""
    name: str
    description: str = ""
    parameters: List[StrategyParameter] = []


class StrategyInfo(BaseModel):
    """Strategy listing entry"""
    id: str
    name: str
    description: str = ""
    parameters: List[StrategyParameter] = []
    isCustom: bool = False


# ---------------------------------------------------------------------------
# Custom strategy DSL
# ---------------------------------------------------------------------------

IndicatorType = Literal["sma", "ema", "rsi", "macd", "bollinger", "price", "value"]
Operator = Literal[">", "<", ">=", "<=", "==", "crosses_above", "crosses_below"]


class CustomStrategyIndicatorRef(BaseModel):
    """Indicator operand of a custom condition"""
    type: IndicatorType
    period: Optional[int] = None
    params: Dict[str, Any] = {}

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value):
        return value.lower() if isinstance(value, str) else value


class CustomStrategyCondition(BaseModel):
    """Custom Strategy Condition"""
    id: str = ""
    indicator1: CustomStrategyIndicatorRef
    operator: Operator
    indicator2: CustomStrategyIndicatorRef


class CustomStrategyRule(BaseModel):
    """Group of conditions combined with ``logic``"""
    type: Literal["buy", "sell"]
    conditions: List[CustomStrategyCondition] = []
    logic: Literal["and", "or"] = "and"

    @field_validator("logic", mode="before")
    @classmethod
    def _lower_logic(cls, value):
        return value.lower() if isinstance(value, str) else value


class CustomStrategy(BaseModel):
    """User-authored strategy"""
    id: str = ""
    name: str
    description: str = ""
    buyRules: List[CustomStrategyRule] = []
    sellRules: List[CustomStrategyRule] = []
    parameters: List[StrategyParameter] = []
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


# ---------------------------------------------------------------------------
# Backtest input / output
# ---------------------------------------------------------------------------

class Trade(BaseModel):
    """Executed simulator trade"""
    date: datetime
    action: Literal["BUY", "SELL"]
    price: float
    quantity: int = Field(ge=1)
    value: float
    fee: float = 0.0
    cash_after: float
    holdings_after: int
    portfolio_value: float
    indicators: Optional[Dict[str, Optional[float]]] = None


class BacktestResult(BaseModel):
    """Backtest Result"""
    model_config = ConfigDict(frozen=True)

    initial_capital: float
    final_value: float
    total_return: float
    return_percentage: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    max_drawdown: float
    max_drawdown_percentage: float
    sharpe_ratio: float
    total_fees: float
    avg_trade_return: float
    best_trade: float
    worst_trade: float
    trades: List[Trade] = []


class BacktestRequest(BaseModel):
    """Backtest Request"""
    instrument_token: str
    from_date: str
    to_date: str
    interval: str = "day"
    strategy_id: Optional[str] = None
    strategy_params: Dict[str, Any] = {}
    custom_strategy: Optional[CustomStrategy] = None
    initial_capital: float = DEFAULT_INITIAL_CAPITAL
    position_size_percentage: float = DEFAULT_POSITION_SIZE_PERCENTAGE
    fee_percentage: float = DEFAULT_FEE_PERCENTAGE

    @model_validator(mode="after")
    def _require_strategy(self):
        if not self.strategy_id and self.custom_strategy is None:
            raise ValueError("strategy_id or custom_strategy is required")
        return self
