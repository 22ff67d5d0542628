"""
Portfolio Simulator
Replays a signal stream against starting capital: long-only, all-in/all-out,
flat percentage fee on both legs.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from backtester import DEFAULT_POSITION_SIZE_PERCENTAGE, DEFAULT_FEE_PERCENTAGE
from backtester.errors import InvalidParameterError
from backtester.models import SignalPoint, Trade

logger = logging.getLogger(__name__)


@dataclass
class PortfolioSimulation:
    initial_capital: float
    cash: float
    holdings: int = 0
    peak_portfolio_value: float = 0.0
    max_drawdown: float = 0.0
    total_fees: float = 0.0
    final_value: float = 0.0
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[Dict[str, Any]] = field(default_factory=list)


def _validate(initial_capital: float, position_size_percentage: float, fee_percentage: float):
    if not initial_capital or math.isnan(initial_capital) or initial_capital <= 0:
        raise InvalidParameterError(f"initial_capital must be > 0 (got {initial_capital})")
    if math.isnan(position_size_percentage) or not 0 < position_size_percentage <= 100:
        raise InvalidParameterError(
            f"position_size_percentage must be in (0, 100] (got {position_size_percentage})")
    if math.isnan(fee_percentage) or fee_percentage < 0:
        raise InvalidParameterError(f"fee_percentage must be >= 0 (got {fee_percentage})")


def simulate_portfolio(signals: Sequence[SignalPoint], initial_capital: float,
                       position_size_percentage: float = DEFAULT_POSITION_SIZE_PERCENTAGE,
                       fee_percentage: float = DEFAULT_FEE_PERCENTAGE) -> PortfolioSimulation:
    """Execute BUY/SELL trades from ``position`` changes.

    Trades fill at the bar's close. A buy that cannot be paid for in full
    (including its fee) is skipped. Sells always liquidate the whole holding.
    """
    _validate(initial_capital, position_size_percentage, fee_percentage)

    sim = PortfolioSimulation(
        initial_capital=initial_capital,
        cash=initial_capital,
        peak_portfolio_value=initial_capital,
        final_value=initial_capital,
    )
    fee_rate = fee_percentage / 100.0

    for point in signals:
        price = point.close

        # 1. Buy (no pyramiding)
        if point.position == 1 and sim.holdings == 0:
            _buy(sim, point, price, position_size_percentage, fee_rate)
        # 2. Sell (full exit)
        elif point.position == -1 and sim.holdings > 0:
            _sell(sim, point, price, fee_rate)
        elif point.position != 0:
            logger.debug(
                f"[PORTFOLIO] {'BUY' if point.position == 1 else 'SELL'} signal at {point.date} ignored "
                f"(holdings: {sim.holdings})")

        # 3. Mark to market
        portfolio_value = sim.cash + sim.holdings * price
        sim.peak_portfolio_value = max(sim.peak_portfolio_value, portfolio_value)
        sim.max_drawdown = max(sim.max_drawdown, sim.peak_portfolio_value - portfolio_value)
        sim.equity_curve.append({"date": point.date, "equity": portfolio_value})

    if signals:
        sim.final_value = sim.cash + sim.holdings * signals[-1].close

    logger.info(
        f"💼 [PORTFOLIO] {len(sim.trades)} trades | cash: {sim.cash:.2f} | holdings: {sim.holdings} | "
        f"final value: {sim.final_value:.2f} | max drawdown: {sim.max_drawdown:.2f}")
    return sim


def _buy(sim: PortfolioSimulation, point: SignalPoint, price: float,
         position_size_percentage: float, fee_rate: float):
    if math.isnan(price) or price <= 0:
        logger.warning(f"[PORTFOLIO] BUY at {point.date} SKIPPED - invalid price {price}")
        return

    investable = sim.cash * position_size_percentage / 100.0
    quantity = int(math.floor(investable / price))
    cost = quantity * price
    fee = cost * fee_rate

    if quantity <= 0 or sim.cash < cost + fee:
        logger.warning(
            f"[PORTFOLIO] BUY at {point.date} SKIPPED - insufficient cash. "
            f"Required: {cost + fee:.2f} for {quantity} shares, available: {sim.cash:.2f}")
        return

    sim.cash -= cost + fee
    sim.holdings += quantity
    sim.total_fees += fee
    sim.trades.append(Trade(
        date=point.date,
        action="BUY",
        price=price,
        quantity=quantity,
        value=cost,
        fee=fee,
        cash_after=sim.cash,
        holdings_after=sim.holdings,
        portfolio_value=sim.cash + sim.holdings * price,
        indicators=dict(point.indicators) or None,
    ))
    logger.info(f"🟢 [PORTFOLIO] BUY {quantity} @ {price:.2f} on {point.date} | fee: {fee:.2f} | cash: {sim.cash:.2f}")


def _sell(sim: PortfolioSimulation, point: SignalPoint, price: float, fee_rate: float):
    if math.isnan(price) or price < 0:
        logger.warning(f"[PORTFOLIO] SELL at {point.date} SKIPPED - invalid price {price}")
        return

    quantity = sim.holdings
    proceeds = quantity * price
    fee = proceeds * fee_rate

    sim.cash += proceeds - fee
    sim.holdings = 0
    sim.total_fees += fee
    sim.trades.append(Trade(
        date=point.date,
        action="SELL",
        price=price,
        quantity=quantity,
        value=proceeds,
        fee=fee,
        cash_after=sim.cash,
        holdings_after=sim.holdings,
        portfolio_value=sim.cash,
        indicators=dict(point.indicators) or None,
    ))
    logger.info(f"🔴 [PORTFOLIO] SELL {quantity} @ {price:.2f} on {point.date} | fee: {fee:.2f} | cash: {sim.cash:.2f}")
