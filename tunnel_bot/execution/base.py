"""Abstract execution interface: market data, account state and order placement."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

import pandas as pd

from tunnel_bot.core.types import Position, SignalSide


@dataclass
class OrderResult:
    """Result of placing an order (or batch)."""
    success: bool
    order_id: Optional[str] = None
    avg_price: Optional[Decimal] = None
    quantity: Optional[Decimal] = None
    message: str = ""


class ExecutionClient(ABC):
    """Exchange adapter. Implementations are synchronous; callers offload to threads."""

    @abstractmethod
    def get_klines(self, symbol: str, interval: str, limit: int = 500) -> pd.DataFrame:
        """Return closed OHLCV bars as a DataFrame: time, open, high, low, close, volume."""

    @abstractmethod
    def get_symbol_info(self, symbol: str) -> Optional[dict]:
        """Exchange symbol info (filters, etc.)."""

    @abstractmethod
    def get_open_position(self, symbol: str) -> Optional[Position]:
        """Current open position for symbol, or None."""

    @abstractmethod
    def get_account_equity(self) -> Optional[Decimal]:
        """Wallet balance in the quote asset, or None if unavailable."""

    @abstractmethod
    def set_leverage(self, symbol: str, leverage: int) -> None:
        """Set leverage for symbol."""

    @abstractmethod
    def place_market_order(self, symbol: str, side: SignalSide, quantity: Decimal) -> OrderResult:
        """Open a position with a market order."""

    @abstractmethod
    def place_protective_orders(
        self,
        symbol: str,
        side: SignalSide,
        quantity: Decimal,
        stop_price: Decimal,
        take_profit_price: Decimal,
    ) -> OrderResult:
        """Attach reduce-only stop-market and take-profit orders to an open position."""

    @abstractmethod
    def close_position(self, symbol: str, side: SignalSide, quantity: Decimal) -> OrderResult:
        """Close a position with a reduce-only market order."""

    @abstractmethod
    def cancel_open_orders(self, symbol: str) -> None:
        """Cancel all resting orders for symbol."""

    def fetch_recent_trades(self, symbol: str, limit: int = 100) -> List[dict]:
        """Optional: recent fills for PnL reconciliation. Default empty."""
        return []
