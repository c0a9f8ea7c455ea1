"""
Trend / mean-reversion signal generator.

The trend comes from the short and medium EMAs; an entry needs the
oscillators to agree: an oversold RSI or a price hugging the lower
Bollinger band in an uptrend gives a BUY, the mirror image in a
downtrend gives a SELL.  Every signal carries a confidence in
``[0, 1]``.  The generator only describes the market; deciding whether
a signal is strong enough to trade is left to the caller through
`Signal.is_actionable()`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
import pandas as pd

from ..config.schema import SignalConfig
from .indicators import IndicatorSnapshot

BUY = 'BUY'
SELL = 'SELL'


@dataclass(frozen=True)
class Signal:
    """A directional trade idea for one instrument."""
    symbol: str
    action: str  # 'BUY' or 'SELL'
    confidence: float
    reason: str
    price: float
    time: Optional[pd.Timestamp] = None

    def is_actionable(self, threshold: float) -> bool:
        return self.confidence >= threshold


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class SignalGenerator:
    """Generate trading signals from an indicator snapshot."""

    def __init__(self, config: SignalConfig) -> None:
        self.config = config

    def near_lower_band(self, price: float, snapshot: IndicatorSnapshot) -> bool:
        return price <= snapshot.bollinger.lower * (1.0 + self.config.band_proximity)

    def near_upper_band(self, price: float, snapshot: IndicatorSnapshot) -> bool:
        return price >= snapshot.bollinger.upper * (1.0 - self.config.band_proximity)

    def _rsi_strength(self, action: str, rsi: float) -> float:
        cfg = self.config
        if action == BUY:
            if cfg.rsi_oversold <= 0:
                return 0.0
            return _clamp((cfg.rsi_oversold - rsi) / cfg.rsi_oversold)
        if cfg.rsi_overbought >= 100:
            return 0.0
        return _clamp((rsi - cfg.rsi_overbought) / (100.0 - cfg.rsi_overbought))

    @staticmethod
    def _band_strength(action: str, price: float, snapshot: IndicatorSnapshot) -> float:
        bands = snapshot.bollinger
        if action == BUY:
            width = bands.middle - bands.lower
            if width <= 0:
                return 1.0 if price <= bands.lower else 0.0
            return _clamp((bands.middle - price) / width)
        width = bands.upper - bands.middle
        if width <= 0:
            return 1.0 if price >= bands.upper else 0.0
        return _clamp((price - bands.middle) / width)

    def _momentum_strength(self, action: str, histogram: float) -> float:
        direction = 1.0 if action == BUY else -1.0
        return _clamp(direction * histogram / self.config.momentum_scale)

    def confidence(self, action: str, price: float, snapshot: IndicatorSnapshot) -> float:
        """Weighted average of the oscillator, band and momentum strengths.

        Each component is normalised to ``[0, 1]`` and grows as the
        reading becomes more extreme in the direction of `action`.
        """
        cfg = self.config
        total_weight = cfg.rsi_weight + cfg.band_weight + cfg.momentum_weight
        score = (
            cfg.rsi_weight * self._rsi_strength(action, snapshot.rsi)
            + cfg.band_weight * self._band_strength(action, price, snapshot)
            + cfg.momentum_weight * self._momentum_strength(action, snapshot.macd.histogram)
        )
        return _clamp(score / total_weight)

    def evaluate(
        self,
        symbol: str,
        price: float,
        snapshot: IndicatorSnapshot,
        time: Optional[pd.Timestamp] = None,
    ) -> Optional[Signal]:
        """Evaluate the latest snapshot.

        Returns
        -------
        Signal or None
            A BUY or SELL signal, or `None` when the conditions for
            neither are met.
        """
        cfg = self.config
        bullish = snapshot.short_ema > snapshot.medium_ema
        histogram = snapshot.macd.histogram

        if bullish:
            oversold = snapshot.rsi < cfg.rsi_oversold
            at_band = self.near_lower_band(price, snapshot)
            if not (oversold or at_band):
                return None
            if cfg.require_macd_confirmation and not histogram > 0:
                return None
            action = BUY
            reasons: List[str] = [f"EMA bullish ({snapshot.short_ema:.2f} > {snapshot.medium_ema:.2f})"]
            if oversold:
                reasons.append(f"RSI oversold ({snapshot.rsi:.2f})")
            if at_band:
                reasons.append("price at lower Bollinger Band")
        else:
            overbought = snapshot.rsi > cfg.rsi_overbought
            at_band = self.near_upper_band(price, snapshot)
            if not (overbought or at_band):
                return None
            if cfg.require_macd_confirmation and not histogram < 0:
                return None
            action = SELL
            reasons = [f"EMA bearish ({snapshot.short_ema:.2f} <= {snapshot.medium_ema:.2f})"]
            if overbought:
                reasons.append(f"RSI overbought ({snapshot.rsi:.2f})")
            if at_band:
                reasons.append("price at upper Bollinger Band")

        if cfg.require_macd_confirmation:
            reasons.append(f"MACD histogram {histogram:+.4f}")

        return Signal(
            symbol=symbol,
            action=action,
            confidence=self.confidence(action, price, snapshot),
            reason=", ".join(reasons),
            price=price,
            time=time,
        )
