"""Execution: exchange abstraction, Binance Futures client and trade executor."""

from tunnel_bot.execution.base import ExecutionClient, OrderResult
from tunnel_bot.execution.binance_futures import BinanceFuturesClient
from tunnel_bot.execution.executor import OpenTrade, TradeExecutor

__all__ = ["ExecutionClient", "OrderResult", "BinanceFuturesClient", "OpenTrade", "TradeExecutor"]
