"""
Execution gateways.

The engine talks to a venue only through `ExecutionGateway`.  Paper
trading uses `SimulatedGateway`, which records orders in memory and
never knows whether a bracket filled, so positions are closed by price
comparison.  Live gateways (see `mt5_exec.py`) send real orders and
report fills when the venue exposes them.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from .models import CLOSED, LONG, OPEN, OrderStatus


logger = logging.getLogger(__name__)


def exit_side(side: str) -> str:
    """Order direction that reduces a position on `side`."""
    return 'SELL' if side == LONG else 'BUY'


class ExecutionGateway(ABC):
    """Order routing capability used by the trading engine.

    `side` arguments are order directions, ``BUY`` or ``SELL``.
    """

    simulated: bool = False

    @abstractmethod
    def place_market_order(self, symbol: str, side: str, quantity: float) -> str:
        """Send a market order and return its id."""

    @abstractmethod
    def place_stop_order(self, symbol: str, side: str, quantity: float, stop_price: float) -> str:
        """Send a reduce-only stop order and return its id."""

    @abstractmethod
    def place_take_profit_order(self, symbol: str, side: str, quantity: float, price: float) -> str:
        """Send a reduce-only take-profit order and return its id."""

    @abstractmethod
    def close_order(self, order_id: str) -> None:
        """Cancel an order or flatten the position it opened."""

    @abstractmethod
    def get_order_status(self, order_id: str) -> Optional[OrderStatus]:
        """Return the order's status, or `None` when it cannot be determined."""

    def fill_price(self, order_id: str) -> Optional[float]:
        """Price a market order filled at, when the venue reports one."""
        return None


@dataclass
class SimulatedOrder:
    order_id: str
    symbol: str
    side: str
    quantity: float
    kind: str  # 'MARKET', 'STOP_MARKET' or 'TAKE_PROFIT_MARKET'
    price: Optional[float] = None
    state: str = OPEN


class SimulatedGateway(ExecutionGateway):
    """Paper trading gateway.  Orders are accepted and remembered, nothing is sent."""

    simulated = True

    def __init__(self) -> None:
        self.orders: Dict[str, SimulatedOrder] = {}
        self._ids = itertools.count(1)

    def _record(self, symbol: str, side: str, quantity: float, kind: str, price: Optional[float] = None) -> str:
        order_id = f"sim-{next(self._ids)}"
        self.orders[order_id] = SimulatedOrder(order_id, symbol, side, quantity, kind, price)
        logger.debug("[SIMULATION] %s %s %s qty=%.6f price=%s", kind, side, symbol, quantity, price)
        return order_id

    def place_market_order(self, symbol: str, side: str, quantity: float) -> str:
        return self._record(symbol, side, quantity, 'MARKET')

    def place_stop_order(self, symbol: str, side: str, quantity: float, stop_price: float) -> str:
        return self._record(symbol, side, quantity, 'STOP_MARKET', stop_price)

    def place_take_profit_order(self, symbol: str, side: str, quantity: float, price: float) -> str:
        return self._record(symbol, side, quantity, 'TAKE_PROFIT_MARKET', price)

    def close_order(self, order_id: str) -> None:
        order = self.orders.get(order_id)
        if order is not None:
            order.state = CLOSED

    def get_order_status(self, order_id: str) -> Optional[OrderStatus]:
        # fills are never simulated; the position manager closes by price
        return None
