"""
Exception hierarchy.

Every failure the trading loop knows how to handle derives from
`SignalBotError`.  The engine uses the concrete class to decide whether
an instrument is skipped for the current tick (data problems, transport
failures, sizing errors) or whether the condition is simply expected
(a duplicate position attempt).
"""

from __future__ import annotations


class SignalBotError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(SignalBotError, ValueError):
    """Invalid configuration value."""


class DataError(SignalBotError, ValueError):
    """The price history cannot be used for this tick."""


class InsufficientData(DataError):
    """Fewer candles than an indicator period requires."""

    def __init__(self, required: int, available: int, what: str = "series") -> None:
        super().__init__(f"{what} needs at least {required} values, got {available}")
        self.required = required
        self.available = available


class MalformedCandle(DataError):
    """A candle is missing fields, out of order or not a valid price."""


class TransportError(SignalBotError, RuntimeError):
    """A market data provider or execution gateway call failed."""


class InvariantViolation(SignalBotError):
    """An OPEN position already exists for the instrument."""


class ZeroRiskDistance(SignalBotError, ValueError):
    """Stop-loss equals entry, so the risk per unit is zero."""
