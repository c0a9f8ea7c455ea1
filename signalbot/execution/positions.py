"""
Position lifecycle management.

`PositionManager` owns every position the bot opens.  A position is
created OPEN, is re-priced on every tick while it stays open, and is
moved to an append-only history when one of its brackets fills.  A
closed position is never reopened.

At most one position per instrument may be OPEN.  The check and the
insert happen under a per-instrument lock, so two workers ticking the
same instrument cannot both open a position.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple
import pandas as pd

from ..errors import InvariantViolation
from ..strategy.signal_generator import Signal
from .models import (
    CLOSED,
    LONG,
    SHORT,
    STOP_LOSS,
    TAKE_PROFIT,
    UNKNOWN,
    Position,
    side_for_action,
)
from .sizing import Sizing


logger = logging.getLogger(__name__)


def _now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


def bracket_hit(position: Position, price: float, tolerance: float = 0.0) -> Optional[Tuple[str, float]]:
    """Return ``(result, fill_price)`` if `price` triggers a bracket.

    Thresholds are inclusive.  A non-zero `tolerance` requires price to
    travel that fraction past the bracket before it counts as filled.
    The fill price is always the bracket level itself.
    """
    stop = position.stop_loss_price
    take = position.take_profit_price
    if position.side == LONG:
        if price <= stop * (1.0 - tolerance):
            return STOP_LOSS, stop
        if price >= take * (1.0 + tolerance):
            return TAKE_PROFIT, take
    elif position.side == SHORT:
        if price >= stop * (1.0 + tolerance):
            return STOP_LOSS, stop
        if price <= take * (1.0 - tolerance):
            return TAKE_PROFIT, take
    return None


class PositionManager:
    """Track open positions per instrument and the closed history."""

    def __init__(self) -> None:
        self._active: Dict[str, Position] = {}
        self._history: List[Position] = []
        self._registry_lock = threading.Lock()
        self._symbol_locks: Dict[str, threading.RLock] = defaultdict(threading.RLock)

    def _symbol_lock(self, symbol: str) -> threading.RLock:
        with self._registry_lock:
            return self._symbol_locks[symbol]

    @contextmanager
    def instrument_lock(self, symbol: str) -> Iterator[None]:
        """Serialise a check-then-act sequence on `symbol`.

        The lock is re-entrant, so `open()` and `monitor()` may be called
        while holding it.
        """
        lock = self._symbol_lock(symbol)
        with lock:
            yield

    def active_positions(self, symbol: Optional[str] = None) -> List[Position]:
        with self._registry_lock:
            positions = list(self._active.values())
        if symbol is not None:
            positions = [p for p in positions if p.symbol == symbol]
        return positions

    def history(self) -> List[Position]:
        with self._registry_lock:
            return list(self._history)

    def open_position(self, symbol: str) -> Optional[Position]:
        for position in self.active_positions(symbol):
            return position
        return None

    def has_open(self, symbol: str) -> bool:
        return self.open_position(symbol) is not None

    def get(self, position_id: str) -> Optional[Position]:
        with self._registry_lock:
            return self._active.get(position_id)

    def _insert(self, position: Position) -> None:
        if self.has_open(position.symbol):
            raise InvariantViolation(f"{position.symbol} already has an OPEN position")
        with self._registry_lock:
            self._active[position.id] = position

    def open(
        self,
        signal: Signal,
        sizing: Sizing,
        stop_loss_price: float,
        take_profit_price: float,
        leverage: float,
        simulated: bool = True,
        position_id: Optional[str] = None,
        opened_at: Optional[pd.Timestamp] = None,
        entry_price: Optional[float] = None,
    ) -> Optional[Position]:
        """Open a position for `signal`.

        `entry_price` defaults to the signal price; live trading passes
        the venue fill instead.  Returns `None`, without raising, when
        the instrument already has an OPEN position.
        """
        side = side_for_action(signal.action)
        entry = signal.price if entry_price is None else entry_price
        position = Position(
            id=position_id or f"sim-{uuid.uuid4().hex[:12]}",
            symbol=signal.symbol,
            side=side,
            entry_price=entry,
            quantity=sizing.quantity,
            stop_loss_price=stop_loss_price,
            take_profit_price=take_profit_price,
            notional_size=sizing.notional_size,
            leverage=leverage,
            opened_at=opened_at if opened_at is not None else _now(),
            simulated=simulated,
            order_id=position_id,
            current_price=entry,
        )
        with self.instrument_lock(signal.symbol):
            try:
                self._insert(position)
            except InvariantViolation as exc:
                logger.info("Rejected %s %s: %s", side, signal.symbol, exc)
                return None
        logger.info(
            "Opened %s %s at %s (qty=%.6f, notional=%.2f, SL=%.4f, TP=%.4f)%s",
            side,
            position.symbol,
            position.entry_price,
            position.quantity,
            position.notional_size,
            stop_loss_price,
            take_profit_price,
            " [simulated]" if simulated else "",
        )
        return position

    def close(
        self,
        position_id: str,
        close_price: float,
        result: Optional[str] = None,
        closed_at: Optional[pd.Timestamp] = None,
    ) -> Optional[Position]:
        """Close an OPEN position at `close_price` and move it to history.

        Returns `None` if no OPEN position has this id.
        """
        position = self.get(position_id)
        if position is None:
            return None
        with self.instrument_lock(position.symbol):
            with self._registry_lock:
                if self._active.pop(position_id, None) is None:
                    return None
                position.status = CLOSED
                position.close_price = close_price
                position.closed_at = closed_at if closed_at is not None else _now()
                position.result = result or UNKNOWN
                position.realized_pnl = position.pnl_at(close_price)
                position.current_price = close_price
                position.unrealized_pnl = 0.0
                self._history.append(position)
        logger.info(
            "Closed %s %s at %s (%s), P&L %.2f",
            position.side,
            position.symbol,
            close_price,
            position.result,
            position.realized_pnl,
        )
        return position

    def monitor(
        self,
        symbol: str,
        price: float,
        tolerance: float = 0.0,
        now: Optional[pd.Timestamp] = None,
    ) -> List[Position]:
        """Close positions on `symbol` whose bracket `price` has reached.

        Positions that stay open get their unrealized P&L refreshed.

        Returns
        -------
        list of Position
            The positions closed by this call.
        """
        closed: List[Position] = []
        with self.instrument_lock(symbol):
            for position in self.active_positions(symbol):
                hit = bracket_hit(position, price, tolerance)
                if hit is None:
                    self.mark(position, price)
                    continue
                result, fill_price = hit
                closed_position = self.close(position.id, fill_price, result, now)
                if closed_position is not None:
                    closed.append(closed_position)
        return closed

    @staticmethod
    def mark(position: Position, price: float) -> None:
        """Re-price an OPEN position.  Never closes it."""
        position.current_price = price
        position.unrealized_pnl = position.pnl_at(price)

    def reset(self) -> None:
        """Forget every active position and the closed history."""
        with self._registry_lock:
            self._active.clear()
            self._history.clear()
        logger.info("Position manager reset")
