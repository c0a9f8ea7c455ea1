"""
Performance metrics calculations.

This module aggregates the closed-position history into the figures
reported after every tick and written to the end-of-session report:
trade counts, win rate, total profit, and a few statistics of the
cumulative realized P&L curve.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable, List

from ..execution.models import Position


@dataclass(frozen=True)
class PerformanceSummary:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0  # percent
    total_profit: float = 0.0
    profit_factor: float = 0.0
    avg_trade: float = 0.0
    max_drawdown: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def summarize(history: Iterable[Position]) -> PerformanceSummary:
    """Compute a summary of closed positions.

    Parameters
    ----------
    history : iterable of Position
        Closed positions in the order they were closed.

    Returns
    -------
    PerformanceSummary
        `win_rate` is a percentage and is 0 when there are no trades.
        `max_drawdown` is the largest peak-to-trough fall of cumulative
        realized P&L, in account currency.
    """
    pnls: List[float] = [p.realized_pnl or 0.0 for p in history]
    total_trades = len(pnls)
    if total_trades == 0:
        return PerformanceSummary()

    wins = [x for x in pnls if x > 0]
    losses = [x for x in pnls if x <= 0]
    gross_profit = sum(wins)
    gross_loss = -sum(x for x in losses if x < 0)
    profit_factor = gross_profit / gross_loss if gross_loss > 0 else 0.0

    # Drawdown of the cumulative P&L curve, starting flat
    cumulative = 0.0
    peak = 0.0
    max_drawdown = 0.0
    for x in pnls:
        cumulative += x
        peak = max(peak, cumulative)
        max_drawdown = max(max_drawdown, peak - cumulative)

    total_profit = sum(pnls)
    return PerformanceSummary(
        total_trades=total_trades,
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / total_trades * 100.0,
        total_profit=total_profit,
        profit_factor=profit_factor,
        avg_trade=total_profit / total_trades,
        max_drawdown=max_drawdown,
    )


class PerformanceTracker:
    """Read the position manager's history on demand."""

    def __init__(self, manager) -> None:
        self.manager = manager

    def summary(self) -> PerformanceSummary:
        return summarize(self.manager.history())
