"""Strategies: Vegas dual-tunnel engine and the named registry."""

from tunnel_bot.strategies.vegas_tunnel import VegasTunnelParams, VegasTunnelStrategy
from tunnel_bot.strategies.registry import (
    StrategyRegistry,
    StrategyResult,
    best_signal,
    filter_by_confidence,
)

__all__ = [
    "VegasTunnelParams",
    "VegasTunnelStrategy",
    "StrategyRegistry",
    "StrategyResult",
    "best_signal",
    "filter_by_confidence",
]
