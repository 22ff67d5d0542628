"""
Metrics Calculator
Trade statistics and risk metrics from the executed trade list
"""
import logging
from typing import Any, Dict, List, Sequence

import numpy as np

from backtester.models import Trade

logger = logging.getLogger(__name__)


def pair_trades(trades: Sequence[Trade]) -> List[tuple]:
    """Pair trades by position: 0 with 1, 2 with 3, ...

    A trailing unpaired trade (position still open) is left out.
    """
    if len(trades) % 2:
        logger.debug(f"[METRICS] Trailing open trade on {trades[-1].date} excluded from pair statistics")
    return list(zip(trades[0::2], trades[1::2]))


def compute_metrics(trades: Sequence[Trade], initial_capital: float, final_value: float,
                    max_drawdown: float, peak_portfolio_value: float,
                    total_fees: float = 0.0) -> Dict[str, Any]:
    """Return BacktestResult fields (except ``trades``) rounded to 2 dp"""
    pairs = pair_trades(trades)

    winning_trades = 0
    losing_trades = 0
    total_pnl = 0.0
    best_trade = 0.0
    worst_trade = 0.0
    pair_returns = []

    for buy, sell in pairs:
        pnl = sell.value - buy.value
        total_pnl += pnl
        if pnl > 0:
            winning_trades += 1
        else:
            losing_trades += 1
        # Seeded at 0: a run of only losing trades reports best_trade = 0
        if pnl > best_trade:
            best_trade = pnl
        if pnl < worst_trade:
            worst_trade = pnl
        if buy.value > 0:
            pair_returns.append(pnl / buy.value * 100.0)

    completed = winning_trades + losing_trades
    win_rate = (winning_trades / completed * 100) if completed > 0 else 0.0
    avg_trade_return = (total_pnl / completed) if completed > 0 else 0.0

    if len(pair_returns) >= 2:
        returns = np.array(pair_returns)
        std_return = np.std(returns)
        sharpe_ratio = (np.mean(returns) / std_return) if std_return > 0 else 0.0
    else:
        sharpe_ratio = 0.0

    max_drawdown_percentage = (max_drawdown / peak_portfolio_value * 100) if peak_portfolio_value > 0 else 0.0
    total_return = final_value - initial_capital
    return_percentage = (total_return / initial_capital * 100) if initial_capital > 0 else 0.0

    return {
        "initial_capital": round(float(initial_capital), 2),
        "final_value": round(float(final_value), 2),
        "total_return": round(float(total_return), 2),
        "return_percentage": round(float(return_percentage), 2),
        "total_trades": len(trades),
        "winning_trades": winning_trades,
        "losing_trades": losing_trades,
        "win_rate": round(float(win_rate), 2),
        "max_drawdown": round(float(max_drawdown), 2),
        "max_drawdown_percentage": round(float(max_drawdown_percentage), 2),
        "sharpe_ratio": round(float(sharpe_ratio), 2),
        "total_fees": round(float(total_fees), 2),
        "avg_trade_return": round(float(avg_trade_return), 2),
        "best_trade": round(float(best_trade), 2),
        "worst_trade": round(float(worst_trade), 2),
    }
