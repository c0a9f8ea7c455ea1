"""
Fixed-fractional position sizing.

A trade risks ``capital * risk_per_trade``.  The distance to the stop,
as a fraction of the entry price, converts that risk into a notional
size which is then leveraged and capped at ``capital * leverage``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ..config.schema import RiskConfig
from ..errors import ZeroRiskDistance
from .models import LONG, SHORT


@dataclass(frozen=True)
class Sizing:
    risk_amount: float
    risk_per_unit: float
    notional_size: float
    quantity: float


def bracket_prices(entry_price: float, side: str, stop_loss_pct: float, take_profit_pct: float) -> Tuple[float, float]:
    """Return ``(stop_loss_price, take_profit_price)`` for an entry."""
    if side == LONG:
        return entry_price * (1.0 - stop_loss_pct), entry_price * (1.0 + take_profit_pct)
    if side == SHORT:
        return entry_price * (1.0 + stop_loss_pct), entry_price * (1.0 - take_profit_pct)
    raise ValueError(f"Unknown side: {side}")


def size_position(
    capital: float,
    entry_price: float,
    stop_loss_price: float,
    risk_per_trade: float,
    leverage: float,
) -> Sizing:
    """Size a trade so that hitting the stop loses the risked amount.

    Raises
    ------
    ZeroRiskDistance
        If the stop equals the entry price.
    ValueError
        If the entry price is not positive.
    """
    if entry_price <= 0:
        raise ValueError(f"Entry price must be positive, got {entry_price}")
    risk_amount = capital * risk_per_trade
    risk_per_unit = abs(entry_price - stop_loss_price) / entry_price
    if risk_per_unit == 0:
        raise ZeroRiskDistance(f"Stop loss {stop_loss_price} equals entry price {entry_price}")
    notional_size = min(risk_amount / risk_per_unit * leverage, capital * leverage)
    return Sizing(
        risk_amount=risk_amount,
        risk_per_unit=risk_per_unit,
        notional_size=notional_size,
        quantity=notional_size / entry_price,
    )


class PositionSizer:
    """Bind `size_position` to a capital base and risk configuration."""

    def __init__(self, capital: float, risk: RiskConfig) -> None:
        self.capital = capital
        self.risk = risk

    def brackets(self, entry_price: float, side: str) -> Tuple[float, float]:
        return bracket_prices(entry_price, side, self.risk.stop_loss_pct, self.risk.take_profit_pct)

    def size(self, entry_price: float, stop_loss_price: float) -> Sizing:
        return size_position(
            self.capital,
            entry_price,
            stop_loss_price,
            self.risk.risk_per_trade,
            self.risk.leverage,
        )
