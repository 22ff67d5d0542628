#!/usr/bin/env python3
"""
Runs SMA Crossover over synthetic sine-wave candles and prints the trades.
Usage: python scripts/sine_wave_check.py [short_window] [long_window]
"""
import sys
from datetime import datetime, timedelta

import numpy as np

from backtester.backtest import BacktestEngine
from backtester.models import Candle
from backtester.strategies import SMACrossoverStrategy


def main():
    short_window = int(sys.argv[1]) if len(sys.argv) > 1 else 5
    long_window = int(sys.argv[2]) if len(sys.argv) > 2 else 20

    start = datetime(2023, 1, 1)
    closes = 100 + 10 * np.sin(0.1 * np.arange(100))
    candles = [
        Candle(date=start + timedelta(days=i), open=100, high=110, low=90, close=float(c), volume=1000)
        for i, c in enumerate(closes)
    ]

    strategy = SMACrossoverStrategy()
    params = {"short_window": short_window, "long_window": long_window}
    signals = strategy.generate_signals(candles, params)
    buys = sum(1 for s in signals if s.position == 1)
    sells = sum(1 for s in signals if s.position == -1)

    print(f"=== SMA Crossover ({short_window}/{long_window}) on {len(candles)} sine candles ===\n")
    print(f"Signals: {len(signals)} | BUY: {buys} | SELL: {sells}\n")

    result = BacktestEngine(candles).run(strategy, params)
    print("date       | action | price    | qty  | portfolio")
    print("-" * 52)
    for t in result.trades:
        print(f"{t.date:%Y-%m-%d} | {t.action:<6} | {t.price:8.2f} | {t.quantity:4d} | {t.portfolio_value:10.2f}")

    print(f"\nFinal value: {result.final_value:.2f} | Return: {result.return_percentage:.2f}% | "
          f"Win rate: {result.win_rate:.1f}% | Sharpe: {result.sharpe_ratio:.2f}")

    if len(signals) != 100 or buys == 0 or sells == 0:
        print("FAILED: expected 100 signals with at least one BUY and one SELL")
        sys.exit(1)


if __name__ == "__main__":
    main()
