"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields, then validates it.

When extending the configuration, add new fields to the appropriate
dataclass; `load_config()` builds every section from the dataclass
defaults so nothing else needs updating.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List
import yaml

from ..errors import ConfigError
from ..utils.timeutils import parse_interval


@dataclass
class RiskConfig:
    """Position sizing and bracket parameters.

    Attributes
    ----------
    risk_per_trade : float
        Fraction of capital put at risk by a single trade (0.05 = 5 %).
    take_profit_pct : float
        Take-profit distance as a fraction of the entry price.
    stop_loss_pct : float
        Stop-loss distance as a fraction of the entry price.
    leverage : float
        Multiplier applied to notional exposure and to P&L.
    """

    risk_per_trade: float = 0.05
    take_profit_pct: float = 0.05
    stop_loss_pct: float = 0.02
    leverage: float = 10.0


@dataclass
class IndicatorConfig:
    """Indicator periods.

    Attributes
    ----------
    short_ema, medium_ema : int
        Periods of the two trend EMAs.
    rsi_period : int
        Wilder RSI period.
    bollinger_period : int
        Window of the Bollinger middle band.
    bollinger_std_dev : float
        Band half-width in population standard deviations.
    macd_fast, macd_slow, macd_signal : int
        MACD EMA periods.
    macd_zero_pad : bool
        Compute the MACD signal line from a zero-padded history of the
        latest MACD value instead of the full MACD line history.
    """

    short_ema: int = 9
    medium_ema: int = 21
    rsi_period: int = 14
    bollinger_period: int = 20
    bollinger_std_dev: float = 2.0
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    macd_zero_pad: bool = True


@dataclass
class SignalConfig:
    """Signal thresholds and confidence weighting.

    Attributes
    ----------
    rsi_overbought, rsi_oversold : float
        RSI levels that qualify a SELL or BUY.
    band_proximity : float
        How close (as a fraction of the band) price must be to a
        Bollinger band to count as touching it.
    require_macd_confirmation : bool
        Additionally require the MACD histogram to agree with the trade
        direction.
    confidence_threshold : float
        Signals below this confidence are reported but never executed.
    rsi_weight, band_weight, momentum_weight : float
        Relative weights of the confidence components.  They are
        normalised by their sum.
    momentum_scale : float
        MACD histogram value that counts as full momentum strength.
    """

    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    band_proximity: float = 0.02
    require_macd_confirmation: bool = False
    confidence_threshold: float = 0.7
    rsi_weight: float = 0.3
    band_weight: float = 0.3
    momentum_weight: float = 0.4
    momentum_scale: float = 2.0


@dataclass
class ScheduleConfig:
    """Polling loop configuration."""

    poll_interval_seconds: float = 60.0


@dataclass
class LiveConfig:
    """Live trading parameters.

    Attributes
    ----------
    slippage_tolerance : float
        When the gateway cannot report an order's status, a bracket is
        only considered filled once price has moved this fraction past
        it (0.01 = 1 %).
    """

    slippage_tolerance: float = 0.01


@dataclass
class MT5Config:
    """Holds parameters required to connect to a MetaTrader 5 terminal.

    Attributes
    ----------
    login : int
        Account login number.  Use `0` when trading from a CSV feed.
    password : str
        Password for the account.
    server : str
        Broker server name (e.g. ``Bidget-MT5-Live``).
    path : str
        File system path to the MetaTrader 5 terminal executable
        (`terminal64.exe`).
    """

    login: int = 0
    password: str = ""
    server: str = ""
    path: str = ""


@dataclass
class DataConfig:
    """Market data source configuration.

    Attributes
    ----------
    feed : str
        ``csv`` to read candles from files in `csv_dir`, ``mt5`` to
        request them from the MetaTrader 5 terminal.
    csv_dir : str
        Directory containing one `{SYMBOL}.csv` file per instrument.
    timezone : str
        IANA timezone name used to localise naive timestamps.
    """

    feed: str = "csv"
    csv_dir: str = "data"
    timezone: str = "UTC"


@dataclass
class Config:
    """Root configuration for the trading program.

    Attributes
    ----------
    symbols : List[str]
        Instruments to trade (e.g. ``["BTCUSDT", "ETHUSDT"]``).
    interval : str
        Candle interval such as ``15m`` or ``1h``.
    lookback : int
        Number of candles requested per tick.
    mode : str
        ``paper`` for simulated execution, ``live`` for real orders.
    capital : float
        Capital base used for sizing.
    """

    symbols: List[str] = field(default_factory=lambda: ["BTCUSDT"])
    interval: str = "15m"
    lookback: int = 100
    mode: str = "paper"
    capital: float = 1000.0
    risk: RiskConfig = field(default_factory=RiskConfig)
    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    signal: SignalConfig = field(default_factory=SignalConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    data: DataConfig = field(default_factory=DataConfig)
    mt5: MT5Config = field(default_factory=MT5Config)


_SECTIONS = {
    'risk': RiskConfig,
    'indicators': IndicatorConfig,
    'signal': SignalConfig,
    'schedule': ScheduleConfig,
    'live': LiveConfig,
    'data': DataConfig,
    'mt5': MT5Config,
}


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _build_section(cls, values: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**values)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def validate_config(cfg: Config) -> Config:
    """Check value ranges and cross-field constraints.

    Raises
    ------
    ConfigError
        On the first invalid value found.
    """
    _require(bool(cfg.symbols), "At least one symbol must be configured")
    _require(cfg.mode in ('paper', 'live'), f"Unknown mode: {cfg.mode}")
    _require(cfg.capital > 0, "capital must be positive")
    _require(cfg.lookback > 0, "lookback must be positive")
    try:
        parse_interval(cfg.interval)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    risk = cfg.risk
    for name in ('risk_per_trade', 'take_profit_pct', 'stop_loss_pct'):
        value = getattr(risk, name)
        _require(0 < value <= 1, f"risk.{name} must be in (0, 1], got {value}")
    _require(risk.leverage >= 1, f"risk.leverage must be >= 1, got {risk.leverage}")

    ind = cfg.indicators
    for name in ('short_ema', 'medium_ema', 'rsi_period', 'bollinger_period',
                 'macd_fast', 'macd_slow', 'macd_signal'):
        value = getattr(ind, name)
        _require(int(value) == value and value > 0, f"indicators.{name} must be a positive integer")
    _require(ind.short_ema < ind.medium_ema, "indicators.short_ema must be below medium_ema")
    _require(ind.macd_fast < ind.macd_slow, "indicators.macd_fast must be below macd_slow")
    _require(ind.bollinger_std_dev > 0, "indicators.bollinger_std_dev must be positive")

    sig = cfg.signal
    _require(0 <= sig.rsi_oversold < sig.rsi_overbought <= 100,
             "signal.rsi_oversold must be below rsi_overbought, both within [0, 100]")
    _require(sig.band_proximity >= 0, "signal.band_proximity must be non-negative")
    _require(0 <= sig.confidence_threshold <= 1, "signal.confidence_threshold must be in [0, 1]")
    weights = (sig.rsi_weight, sig.band_weight, sig.momentum_weight)
    _require(all(w >= 0 for w in weights) and sum(weights) > 0,
             "signal weights must be non-negative and not all zero")
    _require(sig.momentum_scale > 0, "signal.momentum_scale must be positive")

    _require(cfg.schedule.poll_interval_seconds > 0, "schedule.poll_interval_seconds must be positive")
    _require(cfg.live.slippage_tolerance >= 0, "live.slippage_tolerance must be non-negative")
    _require(cfg.data.feed in ('csv', 'mt5'), f"Unknown data feed: {cfg.data.feed}")
    return cfg


def config_from_dict(raw: Dict[str, Any]) -> Config:
    """Build and validate a `Config` from a (possibly partial) mapping."""
    defaults = asdict(Config())
    merged = _merge_dict(defaults, raw)

    sections = {name: _build_section(cls, merged.pop(name)) for name, cls in _SECTIONS.items()}
    unknown = set(merged) - {f.name for f in fields(Config)}
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")

    cfg = Config(
        symbols=[str(s) for s in merged['symbols']],
        interval=str(merged['interval']),
        lookback=int(merged['lookback']),
        mode=str(merged['mode']).lower(),
        capital=float(merged['capital']),
        **sections,
    )
    return validate_config(cfg)


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated, validated configuration object.  Missing fields are
        filled with the defaults defined in the dataclasses.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}
    return config_from_dict(raw)
