"""
MetaTrader 5 execution gateway.

This module routes live orders through a MetaTrader 5 terminal.  A
market order opens the position; the stop-loss and take-profit are
then attached to that position with ``TRADE_ACTION_SLTP`` requests.
Fill information comes from the terminal's open positions and deal
history.

**Note**: Running this gateway requires the `MetaTrader5` package and
a locally installed MT5 terminal.  In environments where MT5 is not
available, `connect()` raises `TransportError`.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Optional

from ..config.schema import MT5Config
from ..data.mt5_data import connect_terminal, mt5
from ..errors import TransportError
from .gateway import ExecutionGateway
from .models import CLOSED, OPEN, STOP_LOSS, TAKE_PROFIT, UNKNOWN, OrderStatus


logger = logging.getLogger(__name__)

MAGIC = 240601
DEVIATION_POINTS = 20


class MT5Gateway(ExecutionGateway):
    """Send real orders to a MetaTrader 5 account."""

    simulated = False

    def __init__(self, config: MT5Config) -> None:
        self.config = config
        self._tickets: Dict[str, int] = {}
        self._fills: Dict[str, float] = {}

    def connect(self) -> None:
        connect_terminal(self.config)

    def shutdown(self) -> None:
        if mt5 is not None:
            mt5.shutdown()

    @staticmethod
    def _require_mt5() -> None:
        if mt5 is None:
            raise TransportError("MetaTrader5 package is not installed.")

    def _volume(self, symbol: str, quantity: float) -> float:
        info = mt5.symbol_info(symbol)
        if info is None:
            raise TransportError(f"Unknown MT5 symbol {symbol}: {mt5.last_error()}")
        step = info.volume_step or 0.01
        volume = math.floor(quantity / step) * step
        return max(info.volume_min, min(volume, info.volume_max))

    def _send(self, request: dict):
        result = mt5.order_send(request)
        if result is None:
            raise TransportError(f"MT5 order_send failed: {mt5.last_error()}")
        if result.retcode != mt5.TRADE_RETCODE_DONE:
            raise TransportError(f"MT5 rejected order (retcode={result.retcode}): {result.comment}")
        return result

    def place_market_order(self, symbol: str, side: str, quantity: float) -> str:
        self._require_mt5()
        tick = mt5.symbol_info_tick(symbol)
        if tick is None:
            raise TransportError(f"No tick for {symbol}: {mt5.last_error()}")
        is_buy = side == 'BUY'
        request = {
            'action': mt5.TRADE_ACTION_DEAL,
            'symbol': symbol,
            'volume': self._volume(symbol, quantity),
            'type': mt5.ORDER_TYPE_BUY if is_buy else mt5.ORDER_TYPE_SELL,
            'price': tick.ask if is_buy else tick.bid,
            'deviation': DEVIATION_POINTS,
            'magic': MAGIC,
            'comment': 'signalbot entry',
            'type_time': mt5.ORDER_TIME_GTC,
            'type_filling': mt5.ORDER_FILLING_IOC,
        }
        result = self._send(request)
        self._tickets[symbol] = int(result.order)
        if result.price:
            self._fills[str(result.order)] = float(result.price)
        logger.info("MT5 %s %s volume=%s ticket=%s", side, symbol, request['volume'], result.order)
        return str(result.order)

    def _attach(self, symbol: str, **levels: float) -> str:
        self._require_mt5()
        ticket = self._tickets.get(symbol)
        if ticket is None:
            raise TransportError(f"No MT5 position ticket recorded for {symbol}")
        positions = mt5.positions_get(ticket=ticket)
        current = positions[0] if positions else None
        request = {
            'action': mt5.TRADE_ACTION_SLTP,
            'symbol': symbol,
            'position': ticket,
            'sl': levels.get('sl', current.sl if current else 0.0),
            'tp': levels.get('tp', current.tp if current else 0.0),
            'magic': MAGIC,
        }
        self._send(request)
        return str(ticket)

    def place_stop_order(self, symbol: str, side: str, quantity: float, stop_price: float) -> str:
        return self._attach(symbol, sl=stop_price)

    def place_take_profit_order(self, symbol: str, side: str, quantity: float, price: float) -> str:
        return self._attach(symbol, tp=price)

    def fill_price(self, order_id: str) -> Optional[float]:
        return self._fills.get(order_id)

    def close_order(self, order_id: str) -> None:
        self._require_mt5()
        positions = mt5.positions_get(ticket=int(order_id))
        if not positions:
            return
        pos = positions[0]
        tick = mt5.symbol_info_tick(pos.symbol)
        if tick is None:
            raise TransportError(f"No tick for {pos.symbol}: {mt5.last_error()}")
        closing_buy = pos.type == mt5.POSITION_TYPE_SELL
        self._send({
            'action': mt5.TRADE_ACTION_DEAL,
            'symbol': pos.symbol,
            'volume': pos.volume,
            'type': mt5.ORDER_TYPE_BUY if closing_buy else mt5.ORDER_TYPE_SELL,
            'position': pos.ticket,
            'price': tick.ask if closing_buy else tick.bid,
            'deviation': DEVIATION_POINTS,
            'magic': MAGIC,
            'comment': 'signalbot close',
            'type_time': mt5.ORDER_TIME_GTC,
            'type_filling': mt5.ORDER_FILLING_IOC,
        })

    def get_order_status(self, order_id: str) -> Optional[OrderStatus]:
        if mt5 is None:
            return None
        ticket = int(order_id)
        positions = mt5.positions_get(ticket=ticket)
        if positions:
            return OrderStatus(order_id=order_id, state=OPEN)
        deals = mt5.history_deals_get(position=ticket)
        if not deals:
            # the terminal may not have synchronised history yet
            return None
        exits = [d for d in deals if d.entry == mt5.DEAL_ENTRY_OUT]
        if not exits:
            return None
        deal = exits[-1]
        if deal.reason == mt5.DEAL_REASON_SL:
            result = STOP_LOSS
        elif deal.reason == mt5.DEAL_REASON_TP:
            result = TAKE_PROFIT
        else:
            result = UNKNOWN
        return OrderStatus(order_id=order_id, state=CLOSED, close_price=float(deal.price), result=result)
