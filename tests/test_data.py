from io import StringIO
from datetime import datetime

import numpy as np
import pandas as pd
import pytest

from backtester.data import (
    CsvCandleSource,
    InMemoryCandleSource,
    candles_to_arrays,
    parse_ohlcv_frame,
)
from backtester.errors import InvalidParameterError

CSV = """Date,Open,High,Low,Close,Volume
2024-01-03,11,12,10,11.5,300
2024-01-01,10,11,9,10.5,100
2024-01-02,10.5,11.5,10,11,200
2024-01-02,10.5,11.5,10,11.2,250
"""


def test_parse_normalises_columns_order_and_duplicates():
    df = parse_ohlcv_frame(pd.read_csv(StringIO(CSV)))
    assert list(df.columns) == ['date', 'open', 'high', 'low', 'close', 'volume']
    assert df['date'].is_monotonic_increasing
    assert len(df) == 3
    assert df.loc[1, 'close'] == 11.2


def test_parse_epoch_time_column():
    df = parse_ohlcv_frame(pd.DataFrame({
        'time': [1704067200, 1704153600], 'open': [1, 2], 'high': [1, 2],
        'low': [1, 2], 'close': [1, 2], 'volume': [1, 1],
    }))
    assert df.loc[0, 'date'] == pd.Timestamp('2024-01-01')


def test_parse_missing_columns():
    with pytest.raises(InvalidParameterError, match="missing"):
        parse_ohlcv_frame(pd.DataFrame({'date': ['2024-01-01'], 'close': [1]}))


def test_in_memory_source_filters_inclusive():
    source = InMemoryCandleSource()
    assert source.load_csv_text("42", CSV, "day") == 3
    candles = source.get_candles("42", "2024-01-02", "2024-01-03", "day")
    assert [c.date for c in candles] == [datetime(2024, 1, 2), datetime(2024, 1, 3)]
    assert source.get_candles("42", "2025-01-01", "2025-02-01", "day") == []
    assert source.get_candles("unknown", "2024-01-01", "2024-01-03", "day") == []


def test_in_memory_source_interval_fallback():
    source = InMemoryCandleSource()
    source.load_csv_text("42", CSV)
    assert len(source.get_candles("42", None, None, "minute")) == 3


def test_date_only_upper_bound_covers_whole_day():
    source = InMemoryCandleSource()
    source.add_frame("7", pd.DataFrame({
        'date': ['2024-01-01 09:15', '2024-01-01 15:29', '2024-01-02 09:15'],
        'open': [1, 2, 3], 'high': [1, 2, 3], 'low': [1, 2, 3], 'close': [1, 2, 3], 'volume': [1, 1, 1],
    }), "minute")
    assert len(source.get_candles("7", "2024-01-01", "2024-01-01", "minute")) == 2


def test_csv_source_reads_files(tmp_path):
    (tmp_path / "42_day.csv").write_text(CSV)
    (tmp_path / "99.csv").write_text(CSV)
    source = CsvCandleSource(str(tmp_path))
    assert len(source.get_candles("42", "2024-01-01", "2024-01-31", "day")) == 3
    assert len(source.get_candles("99", "2024-01-01", "2024-01-31", "minute")) == 3
    assert source.get_candles("missing", "2024-01-01", "2024-01-31", "day") == []


def test_candles_to_arrays(make_candles):
    arrays = candles_to_arrays(make_candles([1, 2, 3]))
    assert arrays['close'].dtype == np.float64
    assert arrays['close'].tolist() == [1.0, 2.0, 3.0]
    assert len(arrays['date']) == 3
