"""
Price series helpers.

A price series is a `pandas.DataFrame` indexed by candle time with the
float columns ``open``, ``high``, ``low``, ``close`` and ``volume``,
oldest candle first.  Providers return this shape and the indicator
engine only ever reads it.
"""

from __future__ import annotations

from typing import Iterable, Mapping
import pandas as pd

from ..errors import MalformedCandle

CANDLE_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


def validate_series(df: pd.DataFrame) -> pd.DataFrame:
    """Check that `df` is a well formed price series and return it.

    A missing ``volume`` column is filled with zeros; every other
    problem raises `MalformedCandle`.
    """
    missing = [c for c in CANDLE_COLUMNS if c not in df.columns and c != 'volume']
    if missing:
        raise MalformedCandle(f"Price series is missing columns: {missing}")
    if 'volume' not in df.columns:
        df = df.assign(volume=0.0)

    prices = df[['open', 'high', 'low', 'close']]
    if prices.isna().any().any():
        raise MalformedCandle("Price series contains NaN prices")
    if (prices <= 0).any().any():
        raise MalformedCandle("Price series contains non-positive prices")
    if (df['high'] < df['low']).any():
        bad = df.index[df['high'] < df['low']][0]
        raise MalformedCandle(f"Candle at {bad} has high below low")
    if not df.index.is_monotonic_increasing or df.index.has_duplicates:
        raise MalformedCandle("Candle times must be strictly increasing")
    return df[CANDLE_COLUMNS].astype(float)


def series_from_candles(candles: Iterable[Mapping]) -> pd.DataFrame:
    """Build a validated series from dicts with a ``time`` key.

    ``time`` may be a datetime, an ISO string or a UNIX epoch in
    milliseconds.
    """
    df = pd.DataFrame(list(candles))
    if df.empty or 'time' not in df.columns:
        raise MalformedCandle("Candles must be a non-empty sequence with a 'time' field")
    if pd.api.types.is_numeric_dtype(df['time']):
        df['time'] = pd.to_datetime(df['time'], unit='ms', utc=True)
    else:
        df['time'] = pd.to_datetime(df['time'], utc=True)
    return validate_series(df.set_index('time'))


def closes(series: pd.DataFrame) -> pd.Series:
    """Return the close column as floats."""
    return series['close'].astype(float)
