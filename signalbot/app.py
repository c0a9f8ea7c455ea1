"""
Application entry point.

This module defines a simple command-line interface for running the
trading bot in paper or live mode.  It loads the configuration, wires
the market data feed and the execution gateway into a `TradingEngine`,
and drives it with a fixed-interval `Scheduler` until interrupted.
When the session ends a report of the closed positions is written.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .config.schema import Config, load_config
from .data.csv_data import CSVDataFeed
from .data.mt5_data import MT5DataFeed
from .execution.engine import TradingEngine
from .execution.gateway import SimulatedGateway
from .execution.mt5_exec import MT5Gateway
from .execution.scheduler import Scheduler
from .reporting.report import generate_report


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def build_engine(config: Config) -> TradingEngine:
    """Create the engine for `config.mode` and `config.data.feed`.

    Connections to MetaTrader 5 are opened here, so this raises
    `TransportError` if the terminal is unavailable.
    """
    if config.data.feed == 'mt5':
        provider = MT5DataFeed(config.mt5, config.data.timezone)
        provider.connect()
    else:
        provider = CSVDataFeed(config.data.csv_dir, config.data.timezone)

    if config.mode == 'live':
        gateway = MT5Gateway(config.mt5)
        gateway.connect()
    else:
        gateway = SimulatedGateway()
    return TradingEngine(config, provider, gateway)


def main(argv: Optional[List[str]] = None) -> None:
    """Parse command-line arguments and run the bot."""
    parser = argparse.ArgumentParser(description="EMA/RSI/Bollinger trading bot")
    parser.add_argument('mode', choices=['paper', 'live'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--once', action='store_true', help="Run a single tick and exit")
    parser.add_argument('--report-dir', default='results', help="Where to write the session report")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = load_config(args.config)
    # Override mode from CLI if provided
    config.mode = args.mode

    logging.info(
        "Starting %s trading on %s (interval %s, capital %.2f, risk %.1f%%, leverage %sx)",
        config.mode,
        ", ".join(config.symbols),
        config.interval,
        config.capital,
        config.risk.risk_per_trade * 100,
        config.risk.leverage,
    )
    engine = build_engine(config)
    scheduler = Scheduler(engine.run_tick, config.schedule.poll_interval_seconds)
    try:
        scheduler.run(max_ticks=1 if args.once else None)
    except KeyboardInterrupt:
        logging.info("Shutting down...")
    finally:
        scheduler.stop()
        status = engine.status(running=scheduler.running)
        logging.info(
            "Session ended: %d trade(s), win rate %.2f%%, total P&L %.2f",
            status.summary.total_trades,
            status.summary.win_rate,
            status.summary.total_profit,
        )
        if status.active_positions:
            logging.info("Leaving %d position(s) open", len(status.active_positions))
        for resource in (engine.provider, engine.gateway):
            shutdown = getattr(resource, 'shutdown', None)
            if shutdown is not None:
                shutdown()
        generate_report(engine.manager.history(), out_dir=args.report_dir)
        logging.info("Report saved to the '%s' directory.", args.report_dir)


if __name__ == '__main__':
    main()
