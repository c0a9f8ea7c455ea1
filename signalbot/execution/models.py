"""
Position and order models.

These dataclasses represent the objects passed between the strategy,
the position manager and the execution gateways.  Keeping them in a
separate module improves readability and makes unit testing easier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import pandas as pd

LONG = 'LONG'
SHORT = 'SHORT'

OPEN = 'OPEN'
CLOSED = 'CLOSED'

STOP_LOSS = 'STOP_LOSS'
TAKE_PROFIT = 'TAKE_PROFIT'
UNKNOWN = 'UNKNOWN'


def side_for_action(action: str) -> str:
    """Map a signal action (``BUY``/``SELL``) to a position side."""
    if action == 'BUY':
        return LONG
    if action == 'SELL':
        return SHORT
    raise ValueError(f"Unknown signal action: {action}")


def pnl(side: str, entry_price: float, price: float, quantity: float, leverage: float) -> float:
    """Leveraged P&L of closing `quantity` units at `price`."""
    move = price - entry_price
    if side == SHORT:
        move = -move
    return move * quantity * leverage


@dataclass
class Position:
    """A position from open to close.

    `stop_loss_price` < `entry_price` < `take_profit_price` for LONG,
    reversed for SHORT.  The close fields are only set once `status`
    is CLOSED.
    """
    id: str
    symbol: str
    side: str  # 'LONG' or 'SHORT'
    entry_price: float
    quantity: float
    stop_loss_price: float
    take_profit_price: float
    notional_size: float
    leverage: float
    opened_at: pd.Timestamp
    simulated: bool = True
    status: str = OPEN
    order_id: Optional[str] = None
    current_price: Optional[float] = None
    unrealized_pnl: float = 0.0
    close_price: Optional[float] = None
    closed_at: Optional[pd.Timestamp] = None
    result: Optional[str] = None  # 'STOP_LOSS', 'TAKE_PROFIT' or 'UNKNOWN'
    realized_pnl: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.status == OPEN

    @property
    def unrealized_pnl_pct(self) -> float:
        """Unrealized P&L as a percentage of notional size."""
        if not self.notional_size:
            return 0.0
        return self.unrealized_pnl / self.notional_size * 100.0

    def pnl_at(self, price: float) -> float:
        return pnl(self.side, self.entry_price, price, self.quantity, self.leverage)


@dataclass(frozen=True)
class OrderStatus:
    """What an execution gateway knows about an order.

    `state` is OPEN or CLOSED.  For a closed position `close_price` is
    the fill and `result` tells which bracket filled, when the venue
    reports it.
    """
    order_id: str
    state: str
    close_price: Optional[float] = None
    result: Optional[str] = None
