"""Core: config, types, errors, logging."""

from tunnel_bot.core.config import load_config, Config
from tunnel_bot.core.errors import (
    TunnelBotError,
    InsufficientHistory,
    InvalidBar,
    OutOfOrderBar,
    InvalidParameters,
)
from tunnel_bot.core.types import (
    PriceBar,
    TunnelState,
    TrendDirection,
    TradingSignal,
    SignalType,
    SignalSide,
    Position,
    Trade,
    bars_from_frame,
    to_decimal,
)
from tunnel_bot.core.logger import setup_logging

__all__ = [
    "load_config",
    "Config",
    "TunnelBotError",
    "InsufficientHistory",
    "InvalidBar",
    "OutOfOrderBar",
    "InvalidParameters",
    "PriceBar",
    "TunnelState",
    "TrendDirection",
    "TradingSignal",
    "SignalType",
    "SignalSide",
    "Position",
    "Trade",
    "bars_from_frame",
    "to_decimal",
    "setup_logging",
]
