"""
Trading engine.

This module contains the `TradingEngine` class which runs one polling
tick: it re-prices and closes open positions, then walks the
configured symbols, computes indicators, evaluates signals and opens
positions for the ones confident enough.  The engine is the same for
paper and live trading; the difference lives entirely in the
`ExecutionGateway` it is given.

Failures are contained per symbol.  A data, transport or sizing error
on one symbol is logged and recorded in the tick report, and the
engine moves on to the next symbol.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ..config.schema import Config
from ..errors import DataError, SignalBotError, ZeroRiskDistance
from ..reporting.metrics import PerformanceSummary, PerformanceTracker
from ..strategy.indicators import IndicatorSnapshot, compute_snapshot
from ..strategy.signal_generator import Signal, SignalGenerator
from .events import LoggingListener, TradingListener
from .gateway import ExecutionGateway, exit_side
from .models import CLOSED, Position, side_for_action
from .positions import PositionManager, bracket_hit
from .sizing import PositionSizer


logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """What happened during one tick."""
    signals: List[Signal] = field(default_factory=list)
    opened: List[Position] = field(default_factory=list)
    closed: List[Position] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MarketAnalysis:
    """Current price and indicators of one symbol, without trading."""
    symbol: str
    price: float
    snapshot: IndicatorSnapshot
    time: Optional[object] = None


@dataclass
class EngineStatus:
    """Point-in-time view of the bot for dashboards and shutdown logs.

    `config` omits the MetaTrader 5 credentials.
    """
    running: bool
    mode: str
    symbols: List[str]
    capital: float
    active_positions: List[Position]
    history: List[Position]
    summary: PerformanceSummary
    config: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TradingEngine:
    """Run the strategy against a market data provider and a gateway."""

    def __init__(
        self,
        config: Config,
        provider,
        gateway: ExecutionGateway,
        manager: Optional[PositionManager] = None,
        listener: Optional[TradingListener] = None,
    ) -> None:
        self.config = config
        self.provider = provider
        self.gateway = gateway
        self.manager = manager or PositionManager()
        self.listener = listener or LoggingListener()
        self.generator = SignalGenerator(config.signal)
        self.sizer = PositionSizer(config.capital, config.risk)
        self.tracker = PerformanceTracker(self.manager)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------
    def _monitor_live(self, position: Position, price: float) -> List[Position]:
        order_id = position.order_id or position.id
        status = self.gateway.get_order_status(order_id)
        if status is not None and status.state == CLOSED:
            fill = status.close_price if status.close_price is not None else price
            closed = self.manager.close(position.id, fill, status.result)
            return [closed] if closed is not None else []

        hit = bracket_hit(position, price, self.config.live.slippage_tolerance)
        if hit is None:
            self.manager.mark(position, price)
            return []

        result, bracket_price = hit
        # The venue still holds the position, or cannot say: flatten it.
        # A gateway failure leaves the position OPEN for the next tick.
        self.gateway.close_order(order_id)
        if status is None:
            fill = bracket_price
        else:
            # brackets are not working at the venue, so the exit is at market
            logger.warning(
                "%s %s passed its %s at %s without a venue fill, closed at market",
                position.side,
                position.symbol,
                result,
                bracket_price,
            )
            fill = price
        closed = self.manager.close(position.id, fill, result)
        return [closed] if closed is not None else []

    def monitor_positions(self, report: TickReport) -> None:
        """Check every open position against the latest price."""
        for symbol in sorted({p.symbol for p in self.manager.active_positions()}):
            try:
                price = self.provider.get_current_price(symbol)
                if self.gateway.simulated:
                    closed = self.manager.monitor(symbol, price)
                else:
                    closed = []
                    for position in self.manager.active_positions(symbol):
                        closed.extend(self._monitor_live(position, price))
            except Exception as exc:
                self._record_error(report, symbol, exc)
                continue
            for position in closed:
                report.closed.append(position)
                self.listener.on_position_closed(position)

    # ------------------------------------------------------------------
    # Signals and entries
    # ------------------------------------------------------------------
    def analyze(self, symbol: str) -> MarketAnalysis:
        """Fetch data for `symbol` and compute its indicators.

        Raises
        ------
        DataError
            If the history is too short or malformed.
        TransportError
            If the provider fails.
        """
        series = self.provider.get_price_series(symbol, self.config.interval, self.config.lookback)
        snapshot = compute_snapshot(series, self.config.indicators)
        price = self.provider.get_current_price(symbol)
        time = series.index[-1] if len(series.index) else None
        return MarketAnalysis(symbol=symbol, price=price, snapshot=snapshot, time=time)

    def evaluate_symbol(self, symbol: str) -> Optional[Signal]:
        """Return the signal for `symbol`, if any.  Raises like `analyze`."""
        analysis = self.analyze(symbol)
        return self.generator.evaluate(symbol, analysis.price, analysis.snapshot, analysis.time)

    def execute_signal(self, signal: Signal) -> Optional[Position]:
        """Size `signal`, place its orders and open the position.

        Returns `None` if the symbol already has an open position.

        Raises
        ------
        ZeroRiskDistance
            If the bracket collapses onto the entry price; nothing has
            been sent to the gateway at that point.
        """
        side = side_for_action(signal.action)
        stop_loss, take_profit = self.sizer.brackets(signal.price, side)
        sizing = self.sizer.size(signal.price, stop_loss)

        with self.manager.instrument_lock(signal.symbol):
            if self.manager.has_open(signal.symbol):
                logger.info("Already have an active position for %s, skipping", signal.symbol)
                return None

            order_id = self.gateway.place_market_order(signal.symbol, signal.action, sizing.quantity)
            entry_price = self.gateway.fill_price(order_id)
            if entry_price is not None and entry_price != signal.price:
                # brackets are measured from the actual fill
                logger.info("%s filled at %s (signal price %s)", signal.symbol, entry_price, signal.price)
                stop_loss, take_profit = self.sizer.brackets(entry_price, side)
            bracket_side = exit_side(side)
            for place, level, label in (
                (self.gateway.place_stop_order, stop_loss, "stop loss"),
                (self.gateway.place_take_profit_order, take_profit, "take profit"),
            ):
                try:
                    place(signal.symbol, bracket_side, sizing.quantity, level)
                except SignalBotError as exc:
                    # The entry is filled; keep tracking it and let monitoring close it
                    logger.warning("Failed to place %s order for %s: %s", label, signal.symbol, exc)

            return self.manager.open(
                signal,
                sizing,
                stop_loss,
                take_profit,
                leverage=self.config.risk.leverage,
                simulated=self.gateway.simulated,
                position_id=None if self.gateway.simulated else order_id,
                entry_price=entry_price,
            )

    def process_symbol(self, symbol: str, report: TickReport) -> None:
        try:
            signal = self.evaluate_symbol(symbol)
            if signal is None:
                logger.debug("No signal for %s", symbol)
                return
            actionable = signal.is_actionable(self.config.signal.confidence_threshold)
            report.signals.append(signal)
            self.listener.on_signal(signal, actionable)
            if not actionable:
                return
            position = self.execute_signal(signal)
        except Exception as exc:
            self._record_error(report, symbol, exc)
            return
        if position is not None:
            report.opened.append(position)
            self.listener.on_position_opened(position)

    @staticmethod
    def _record_error(report: TickReport, symbol: str, exc: Exception) -> None:
        report.errors[symbol] = str(exc)
        if isinstance(exc, DataError):
            logger.warning("Skipping %s this tick: %s", symbol, exc)
        elif isinstance(exc, ZeroRiskDistance):
            logger.error("Cannot size %s: %s", symbol, exc)
        elif isinstance(exc, SignalBotError):
            logger.error("Error processing %s: %s", symbol, exc)
        else:
            logger.exception("Unexpected error processing %s", symbol)

    def run_tick(self) -> TickReport:
        """Run one full polling cycle over all configured symbols."""
        report = TickReport()
        self.monitor_positions(report)
        for symbol in self.config.symbols:
            self.process_symbol(symbol, report)
        self.listener.on_tick(self.manager.active_positions(), self.tracker.summary())
        return report

    def status(self, running: bool = False) -> EngineStatus:
        """Snapshot of positions, performance and effective settings.

        `running` is supplied by whoever drives the engine, usually
        `Scheduler.running`.
        """
        settings = asdict(self.config)
        settings.pop('mt5', None)
        return EngineStatus(
            running=running,
            mode=self.config.mode,
            symbols=list(self.config.symbols),
            capital=self.config.capital,
            active_positions=self.manager.active_positions(),
            history=self.manager.history(),
            summary=self.tracker.summary(),
            config=settings,
        )
