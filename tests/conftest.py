from datetime import datetime, timedelta

import numpy as np
import pytest

from backtester.models import Candle


def build_candles(closes, start=datetime(2023, 1, 1)):
    return [
        Candle(date=start + timedelta(days=i), open=float(c), high=float(c) + 1,
               low=float(c) - 1, close=float(c), volume=1000)
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def make_candles():
    return build_candles


@pytest.fixture
def sine_candles():
    closes = 100 + 10 * np.sin(0.1 * np.arange(100))
    return build_candles(closes)
