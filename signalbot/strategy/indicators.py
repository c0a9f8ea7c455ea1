"""
Technical indicators.

Pure functions that turn a sequence of closes (oldest first) into the
indicator values the signal generator reads: EMA, Wilder RSI,
Bollinger Bands and MACD.  `compute_snapshot()` bundles them for one
tick and either returns every value or raises `InsufficientData`; a
partial snapshot is never produced.

EMAs are seeded with the simple average of the first `period` closes
and rolled forward with ``k = 2 / (period + 1)``, so they differ from
``pandas.Series.ewm(adjust=False)`` which seeds with the first close.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Union
import pandas as pd

from ..config.schema import IndicatorConfig
from ..data.series import closes as series_closes
from ..errors import InsufficientData

Prices = Union[Sequence[float], pd.Series]


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class MACDResult:
    line: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """All indicator values for one instrument at one tick."""
    short_ema: float
    medium_ema: float
    rsi: float
    bollinger: BollingerBands
    macd: MACDResult
    last_close: float


def _as_list(prices: Prices) -> List[float]:
    if isinstance(prices, pd.Series):
        return prices.astype(float).tolist()
    return [float(p) for p in prices]


def _check_period(period: int) -> None:
    if period <= 0:
        raise ValueError(f"Indicator period must be positive, got {period}")


def ema_series(prices: Prices, period: int) -> List[float]:
    """EMA value at every index from ``period - 1`` onwards.

    The first element is the seed (mean of the first `period` values).
    """
    _check_period(period)
    values = _as_list(prices)
    if len(values) < period:
        raise InsufficientData(period, len(values), f"EMA({period})")
    k = 2.0 / (period + 1)
    current = sum(values[:period]) / period
    out = [current]
    for price in values[period:]:
        current = price * k + current * (1 - k)
        out.append(current)
    return out


def ema(prices: Prices, period: int) -> float:
    """Exponential moving average of the whole series."""
    return ema_series(prices, period)[-1]


def rsi(prices: Prices, period: int = 14) -> float:
    """Relative Strength Index with Wilder smoothing.

    Returns exactly 100 when the smoothed average loss is zero.
    """
    _check_period(period)
    values = _as_list(prices)
    if len(values) < period + 1:
        raise InsufficientData(period + 1, len(values), f"RSI({period})")

    deltas = pd.Series(values).diff().dropna().tolist()
    gains = [d if d > 0 else 0.0 for d in deltas]
    losses = [-d if d < 0 else 0.0 for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def bollinger_bands(prices: Prices, period: int = 20, num_std: float = 2.0) -> BollingerBands:
    """Simple average of the last `period` closes ± `num_std` population std devs."""
    _check_period(period)
    window = pd.Series(_as_list(prices)[-period:], dtype=float)
    if len(window) < period:
        raise InsufficientData(period, len(window), f"Bollinger({period})")
    middle = float(window.mean())
    # population standard deviation
    band = num_std * float(window.std(ddof=0))
    return BollingerBands(upper=middle + band, middle=middle, lower=middle - band)


def macd(
    prices: Prices,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
    zero_pad: bool = True,
) -> MACDResult:
    """MACD line, signal line and histogram.

    With `zero_pad` the signal line is the EMA of the latest MACD value
    preceded by ``len(prices) - signal`` zeros, which makes it a damped
    copy of the line rather than a smoothed history.  Without it the
    signal line is the EMA of the full MACD line history.
    """
    values = _as_list(prices)
    if zero_pad:
        line = ema(values, fast) - ema(values, slow)
        padded = [0.0] * max(len(values) - signal, 0) + [line]
        signal_line = ema(padded, signal)
    else:
        fast_path = ema_series(values, fast)
        slow_path = ema_series(values, slow)
        # align both paths on the candles where the slow EMA exists
        offset = slow - fast
        history = [f - s for f, s in zip(fast_path[offset:], slow_path)]
        if len(history) < signal:
            raise InsufficientData(slow + signal - 1, len(values), "MACD signal line")
        line = history[-1]
        signal_line = ema(history, signal)
    return MACDResult(line=line, signal=signal_line, histogram=line - signal_line)


def required_history(config: IndicatorConfig) -> int:
    """Minimum number of closes for a full snapshot."""
    if config.macd_zero_pad:
        macd_needed = max(config.macd_slow, 2 * config.macd_signal - 1)
    else:
        macd_needed = config.macd_slow + config.macd_signal - 1
    return max(
        config.medium_ema,
        config.short_ema,
        config.rsi_period + 1,
        config.bollinger_period,
        macd_needed,
    )


def compute_snapshot(series: Union[pd.DataFrame, Prices], config: IndicatorConfig) -> IndicatorSnapshot:
    """Compute every indicator for the latest candle.

    Raises
    ------
    InsufficientData
        When the series is shorter than the longest configured period.
    """
    prices = series_closes(series) if isinstance(series, pd.DataFrame) else series
    values = _as_list(prices)
    needed = required_history(config)
    if len(values) < needed:
        raise InsufficientData(needed, len(values), "indicator snapshot")

    return IndicatorSnapshot(
        short_ema=ema(values, config.short_ema),
        medium_ema=ema(values, config.medium_ema),
        rsi=rsi(values, config.rsi_period),
        bollinger=bollinger_bands(values, config.bollinger_period, config.bollinger_std_dev),
        macd=macd(values, config.macd_fast, config.macd_slow, config.macd_signal, config.macd_zero_pad),
        last_close=values[-1],
    )
