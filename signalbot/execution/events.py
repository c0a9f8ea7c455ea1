"""
Engine notifications.

The engine reports what it does through a `TradingListener`.  A
dashboard, a chat notifier or a test can subclass it and override the
hooks it cares about; the defaults do nothing.
"""

from __future__ import annotations

import logging
from typing import List

from ..strategy.signal_generator import Signal
from .models import Position


logger = logging.getLogger(__name__)


class TradingListener:
    """No-op base listener."""

    def on_signal(self, signal: Signal, actionable: bool) -> None:
        pass

    def on_position_opened(self, position: Position) -> None:
        pass

    def on_position_closed(self, position: Position) -> None:
        pass

    def on_tick(self, active_positions: List[Position], summary) -> None:
        pass


class LoggingListener(TradingListener):
    """Write every event to the log."""

    def on_signal(self, signal: Signal, actionable: bool) -> None:
        logger.info(
            "Signal %s %s (confidence %.2f%s): %s",
            signal.action,
            signal.symbol,
            signal.confidence,
            "" if actionable else ", below threshold",
            signal.reason,
        )

    def on_position_closed(self, position: Position) -> None:
        logger.info(
            "%s %s closed by %s: %s %.2f",
            position.side,
            position.symbol,
            position.result,
            "profit" if (position.realized_pnl or 0) > 0 else "loss",
            position.realized_pnl or 0.0,
        )

    def on_tick(self, active_positions: List[Position], summary) -> None:
        for position in active_positions:
            logger.debug(
                "%s %s unrealized %.2f (%.2f%%)",
                position.side,
                position.symbol,
                position.unrealized_pnl,
                position.unrealized_pnl_pct,
            )
        logger.info(
            "Performance: %d trades, win rate %.2f%%, total P&L %.2f, %d open",
            summary.total_trades,
            summary.win_rate,
            summary.total_profit,
            len(active_positions),
        )
