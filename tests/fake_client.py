"""In-memory ExecutionClient used by the executor and live-runner tests."""

from decimal import Decimal

import pandas as pd

from tunnel_bot.execution.base import ExecutionClient, OrderResult


class FakeClient(ExecutionClient):
    def __init__(self, fill_price="100", fail_close=False, raise_on=()):
        self.fill_price = Decimal(fill_price)
        self.fail_close = fail_close
        self.raise_on = set(raise_on)
        self.calls = []
        self.position = None
        self.equity = Decimal("10000")
        self.trades = []

    def get_klines(self, symbol, interval, limit=500):
        return pd.DataFrame(columns=["time", "open", "high", "low", "close", "volume"])

    def get_symbol_info(self, symbol):
        return None

    def get_open_position(self, symbol):
        return self.position

    def get_account_equity(self):
        return self.equity

    def set_leverage(self, symbol, leverage):
        self.calls.append(("leverage", symbol, leverage))

    def place_market_order(self, symbol, side, quantity):
        self.calls.append(("market", symbol, side, quantity))
        return OrderResult(success=True, order_id="1", avg_price=self.fill_price, quantity=quantity)

    def place_protective_orders(self, symbol, side, quantity, stop_price, take_profit_price):
        self.calls.append(("protective", symbol, side, quantity, stop_price, take_profit_price))
        self._maybe_raise("protective")
        return OrderResult(success=True, order_id="2", quantity=quantity)

    def close_position(self, symbol, side, quantity):
        self.calls.append(("close", symbol, side, quantity))
        self._maybe_raise("close")
        if self.fail_close:
            return OrderResult(success=False, message="rejected")
        return OrderResult(success=True, order_id="3", avg_price=self.fill_price, quantity=quantity)

    def cancel_open_orders(self, symbol):
        self.calls.append(("cancel", symbol))
        self._maybe_raise("cancel")

    def fetch_recent_trades(self, symbol, limit=100):
        return self.trades

    def _maybe_raise(self, kind):
        if kind in self.raise_on:
            raise ConnectionError(f"{kind} failed: network down")

    def kinds(self):
        return [c[0] for c in self.calls]
