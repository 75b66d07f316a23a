"""Backtesting engine: fast/slow replay with slippage and fees."""

from tunnel_bot.backtesting.engine import BacktestEngine, BacktestResult

__all__ = ["BacktestEngine", "BacktestResult"]
