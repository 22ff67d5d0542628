"""
Candle Sources
In-memory and CSV-backed OHLCV providers (pandas)
"""
import logging
import os
from io import StringIO
from threading import Lock
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np
import pandas as pd

from backtester.errors import InvalidParameterError
from backtester.models import Candle

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['date', 'open', 'high', 'low', 'close', 'volume']
DATE_ALIASES = ('datetime', 'time', 'timestamp')


class CandleSource(Protocol):
    def get_candles(self, instrument_token: str, from_date, to_date, interval: str) -> List[Candle]:
        ...


def parse_ohlcv_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Normalise a raw OHLCV DataFrame: columns, dtypes, order, duplicates"""
    df = df.copy()
    df.columns = df.columns.str.lower().str.strip()
    if 'date' not in df.columns:
        for alias in DATE_ALIASES:
            if alias in df.columns:
                df.rename(columns={alias: 'date'}, inplace=True)
                break
    if 'volume' not in df.columns:
        df['volume'] = 0.0

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidParameterError(
            f"CSV must contain: {REQUIRED_COLUMNS} (missing: {missing}, found: {list(df.columns)})")

    if pd.api.types.is_numeric_dtype(df['date']):
        df['date'] = pd.to_datetime(df['date'].astype(np.int64), unit='s')
    else:
        df['date'] = pd.to_datetime(df['date'])

    for col in ['open', 'high', 'low', 'close', 'volume']:
        df[col] = df[col].astype(float)

    df = df[REQUIRED_COLUMNS].sort_values('date', kind='mergesort')
    df = df.drop_duplicates(subset='date', keep='last').reset_index(drop=True)
    return df


def _bound(value, tz, end: bool = False) -> Optional[pd.Timestamp]:
    if value is None or value == "":
        return None
    ts = pd.Timestamp(value)
    if tz is not None and ts.tzinfo is None:
        ts = ts.tz_localize(tz)
    elif tz is None and ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    # A date-only upper bound covers the whole day
    if end and isinstance(value, str) and len(value.strip()) <= 10:
        ts = ts + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)
    return ts


def filter_frame(df: pd.DataFrame, from_date=None, to_date=None) -> pd.DataFrame:
    """Inclusive date-range filter"""
    tz = df['date'].dt.tz
    lower = _bound(from_date, tz)
    upper = _bound(to_date, tz, end=True)
    mask = pd.Series(True, index=df.index)
    if lower is not None:
        mask &= df['date'] >= lower
    if upper is not None:
        mask &= df['date'] <= upper
    return df[mask]


def frame_to_candles(df: pd.DataFrame) -> List[Candle]:
    return [
        Candle(date=row.date.to_pydatetime(), open=row.open, high=row.high,
               low=row.low, close=row.close, volume=row.volume)
        for row in df.itertuples(index=False)
    ]


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    return pd.DataFrame([c.model_dump() for c in candles], columns=REQUIRED_COLUMNS)


def candles_to_arrays(candles: Sequence[Candle]) -> Dict[str, np.ndarray]:
    """Column arrays in the layout the indicator functions take"""
    return {
        'date': np.array([c.date for c in candles], dtype=object),
        'open': np.array([c.open for c in candles], dtype=np.float64),
        'high': np.array([c.high for c in candles], dtype=np.float64),
        'low': np.array([c.low for c in candles], dtype=np.float64),
        'close': np.array([c.close for c in candles], dtype=np.float64),
        'volume': np.array([c.volume for c in candles], dtype=np.float64),
    }


class InMemoryCandleSource:
    """Frames keyed by (instrument_token, interval)"""

    def __init__(self):
        self._frames: Dict[Tuple[str, Optional[str]], pd.DataFrame] = {}
        self._lock = Lock()

    def add_frame(self, instrument_token: str, df: pd.DataFrame, interval: Optional[str] = None) -> int:
        frame = parse_ohlcv_frame(df)
        with self._lock:
            self._frames[(str(instrument_token), interval)] = frame
        logger.info(f"✅ Loaded {len(frame)} bars for {instrument_token} ({interval or 'any interval'})")
        return len(frame)

    def add_candles(self, instrument_token: str, candles: Sequence[Candle], interval: Optional[str] = None) -> int:
        return self.add_frame(instrument_token, candles_to_frame(candles), interval)

    def load_csv_text(self, instrument_token: str, text: str, interval: Optional[str] = None) -> int:
        try:
            df = pd.read_csv(StringIO(text))
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise InvalidParameterError(f"Could not parse CSV: {e}")
        return self.add_frame(instrument_token, df, interval)

    def instruments(self) -> List[Tuple[str, Optional[str]]]:
        with self._lock:
            return list(self._frames.keys())

    def _lookup(self, instrument_token: str, interval: Optional[str]) -> Optional[pd.DataFrame]:
        with self._lock:
            frame = self._frames.get((str(instrument_token), interval))
            if frame is None:
                frame = self._frames.get((str(instrument_token), None))
            return frame

    def get_candles(self, instrument_token: str, from_date, to_date, interval: str) -> List[Candle]:
        frame = self._lookup(instrument_token, interval)
        if frame is None:
            return []
        return frame_to_candles(filter_frame(frame, from_date, to_date))


class CsvCandleSource(InMemoryCandleSource):
    """Reads ``<token>_<interval>.csv`` or ``<token>.csv`` from a directory on first use"""

    def __init__(self, data_dir: str):
        super().__init__()
        self.data_dir = data_dir

    def _lookup(self, instrument_token, interval):
        frame = super()._lookup(instrument_token, interval)
        if frame is not None:
            return frame

        candidates = [(f"{instrument_token}_{interval}.csv", interval), (f"{instrument_token}.csv", None)]
        for filename, key_interval in candidates:
            path = os.path.join(self.data_dir, filename)
            if os.path.exists(path):
                logger.info(f"🚀 Loading candles from {path}...")
                self.add_frame(instrument_token, pd.read_csv(path), key_interval)
                return super()._lookup(instrument_token, interval)

        logger.warning(f"⚠️ No CSV found for {instrument_token} ({interval}) in {self.data_dir}")
        return None
