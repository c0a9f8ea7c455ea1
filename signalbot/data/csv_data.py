"""
CSV market data feed.

This module provides a file-backed market data provider.  Another
process (an exporter, a cron job, a terminal script) keeps one CSV per
symbol up to date and the bot reads the most recent candles from it on
every tick.  The expected schema for each CSV is:

```
time,open,high,low,close,volume
```

`volume` is optional.  MetaTrader "export to CSV" files (tab
separated, with ``<DATE>``/``<TIME>`` columns) are accepted as well.
Timestamps without a timezone are localised to the configured one.
"""

from __future__ import annotations

from pathlib import Path
import pandas as pd

from ..errors import TransportError
from .series import validate_series


class CSVDataFeed:
    """Serve price series and current prices from CSV files.

    Parameters
    ----------
    csv_dir : str
        Directory where the CSV files are located.  Each symbol's file
        must be named `{SYMBOL}.csv`.
    timezone : str
        IANA timezone name used to localise naive timestamps.
    """

    def __init__(self, csv_dir: str, timezone: str = "UTC") -> None:
        self.csv_dir = Path(csv_dir)
        self.timezone = timezone

    def _path(self, symbol: str) -> Path:
        return self.csv_dir / f"{symbol}.csv"

    def load(self, symbol: str) -> pd.DataFrame:
        """Read and validate the whole file for `symbol`."""
        file_path = self._path(symbol)
        if not file_path.exists():
            raise TransportError(f"CSV file not found for symbol {symbol}: {file_path}")

        with file_path.open("r", encoding="utf-8") as fh:
            header = fh.readline()
        try:
            if "<DATE>" in header:
                df = self._read_mt5_export(file_path)
            else:
                df = self._read_standard(file_path)
        except (OSError, KeyError, ValueError, pd.errors.ParserError) as exc:
            raise TransportError(f"Could not read {file_path}: {exc}") from exc
        return validate_series(df)

    def _localise(self, index: pd.DatetimeIndex) -> pd.DatetimeIndex:
        if index.tz is None:
            return index.tz_localize(self.timezone)
        return index.tz_convert(self.timezone)

    def _read_standard(self, file_path: Path) -> pd.DataFrame:
        df = pd.read_csv(file_path)
        df["time"] = pd.to_datetime(df["time"])
        df = df.set_index("time").sort_index()
        df.index = self._localise(pd.DatetimeIndex(df.index))
        return df

    def _read_mt5_export(self, file_path: Path) -> pd.DataFrame:
        df = pd.read_csv(file_path, sep="\t", engine="python")
        df.columns = [c.strip() for c in df.columns]
        dt = df["<DATE>"].astype(str).str.strip() + " " + df["<TIME>"].astype(str).str.strip()
        ts = pd.to_datetime(dt, format="%Y.%m.%d %H:%M:%S", errors="coerce")
        if ts.isna().any():
            bad = dt[ts.isna()].head(5).tolist()
            raise TransportError(f"Could not parse MT5 DATE/TIME in {file_path}. Examples: {bad}")
        volume = df["<TICKVOL>"] if "<TICKVOL>" in df.columns else 0.0
        out = pd.DataFrame(
            {
                "open": df["<OPEN>"].astype(float),
                "high": df["<HIGH>"].astype(float),
                "low": df["<LOW>"].astype(float),
                "close": df["<CLOSE>"].astype(float),
                "volume": volume,
            }
        )
        out.index = self._localise(pd.DatetimeIndex(ts))
        return out.sort_index()

    def get_price_series(self, symbol: str, interval: str, limit: int) -> pd.DataFrame:
        """Return the latest `limit` candles.

        The file is expected to already be at the requested `interval`;
        it is not resampled.
        """
        return self.load(symbol).tail(limit)

    def get_current_price(self, symbol: str) -> float:
        """The last close in the file stands in for the live price."""
        df = self.load(symbol)
        if df.empty:
            raise TransportError(f"CSV file for {symbol} has no candles")
        return float(df['close'].iloc[-1])
