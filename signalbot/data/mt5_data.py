"""
MetaTrader 5 data feed.

This module wraps the `MetaTrader5` Python package to fetch candles
and quotes for live and paper trading.  If the package is not
installed or initialisation fails, the code raises a clear exception.
Users can skip installing MetaTrader5 when trading from a CSV feed.
"""

from __future__ import annotations

import pandas as pd

from ..config.schema import MT5Config
from ..errors import InsufficientData, TransportError
from .series import validate_series

# Attempt to import MetaTrader5.  If unavailable, mt5 will be None.
try:
    import MetaTrader5 as mt5  # type: ignore
except ImportError:
    mt5 = None  # Will be checked at runtime


def connect_terminal(config: MT5Config) -> None:
    """Initialise the MetaTrader 5 terminal.

    Raises
    ------
    TransportError
        If the MetaTrader5 package is not installed or initialisation fails.
    """
    if mt5 is None:
        raise TransportError(
            "MetaTrader5 package is not installed.  Install it with 'pip install MetaTrader5' to use the MT5 feed."
        )
    if not mt5.initialize(path=config.path, login=config.login, password=config.password, server=config.server):
        raise TransportError(f"MT5 initialisation failed: {mt5.last_error()}")


class MT5DataFeed:
    """Handle connection to MetaTrader 5 and retrieval of rates."""

    def __init__(self, config: MT5Config, timezone: str = "UTC") -> None:
        self.config = config
        self.timezone = timezone
        self._connected = False

    def connect(self) -> None:
        connect_terminal(self.config)
        self._connected = True

    def shutdown(self) -> None:
        """Shutdown the MT5 connection if it was opened."""
        if mt5 and self._connected:
            mt5.shutdown()
            self._connected = False

    def _require_connection(self) -> None:
        if not self._connected:
            raise TransportError("MT5DataFeed is not connected.  Call connect() before requesting data.")

    @staticmethod
    def _get_mt5_timeframe(interval: str) -> int:
        """Map an interval string (``15m``, ``1h``...) to the MT5 constant."""
        timeframe_map = {
            '1m': mt5.TIMEFRAME_M1,
            '5m': mt5.TIMEFRAME_M5,
            '15m': mt5.TIMEFRAME_M15,
            '30m': mt5.TIMEFRAME_M30,
            '1h': mt5.TIMEFRAME_H1,
            '4h': mt5.TIMEFRAME_H4,
            '1d': mt5.TIMEFRAME_D1,
        }
        tf = timeframe_map.get(interval.lower())
        if tf is None:
            raise ValueError(f"Unsupported interval for MT5: {interval}")
        return tf

    def get_price_series(self, symbol: str, interval: str, limit: int) -> pd.DataFrame:
        """Retrieve the latest `limit` candles for `symbol`.

        Returns
        -------
        pandas.DataFrame
            Columns ``open``, ``high``, ``low``, ``close``, ``volume``
            indexed by timezone-aware candle open time.
        """
        self._require_connection()
        tf = self._get_mt5_timeframe(interval)
        rates = mt5.copy_rates_from_pos(symbol, tf, 0, limit)
        if rates is None:
            raise TransportError(f"MT5 returned no rates for {symbol}: {mt5.last_error()}")
        df = pd.DataFrame(rates)
        if df.empty:
            raise InsufficientData(limit, 0, f"{symbol} candles")
        df['time'] = pd.to_datetime(df['time'], unit='s', utc=True)
        df = df.rename(columns={'tick_volume': 'volume'})
        df = df.set_index('time').sort_index()
        df.index = df.index.tz_convert(self.timezone)
        return validate_series(df)

    def get_current_price(self, symbol: str) -> float:
        """Last traded price, falling back to the bid for FX symbols."""
        self._require_connection()
        tick = mt5.symbol_info_tick(symbol)
        if tick is None:
            raise TransportError(f"MT5 returned no tick for {symbol}: {mt5.last_error()}")
        return float(tick.last or tick.bid)
