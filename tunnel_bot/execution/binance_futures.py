"""
Binance USDT-M Futures execution with retry and rate-limit handling.
"""

from __future__ import annotations
import logging
import time
from decimal import Decimal
from functools import wraps
from typing import List, Optional

import pandas as pd

from binance.client import Client
from binance.exceptions import BinanceAPIException

from tunnel_bot.core.types import Position, SignalSide, to_decimal
from tunnel_bot.execution.base import ExecutionClient, OrderResult
from tunnel_bot.utils.exchange_filters import parse_symbol_filters, round_price

logger = logging.getLogger("tunnel_bot.execution.binance")

KLINE_COLUMNS = [
    "open_time", "open", "high", "low", "close", "volume",
    "close_time", "quote_av", "num_trades", "tb_base_av", "tb_quote_av", "ignore",
]


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: retry on 429 or 418 (rate limit) with exponential back-off."""
    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            last_exc = None
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except BinanceAPIException as e:
                    last_exc = e
                    if e.status_code in (429, 418) and attempt < max_retries - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                        time.sleep(delay)
                    else:
                        raise
            raise last_exc
        return wrapped
    return decorator


def _fmt(value: Decimal) -> str:
    return format(value, "f")


class BinanceFuturesClient(ExecutionClient):
    """Binance USDT-M Futures client (testnet and live)."""

    def __init__(self, api_key: str, api_secret: str, testnet: bool = True):
        self._client = Client(api_key, api_secret, testnet=testnet)
        logger.info("Binance Futures: using %s", "TESTNET" if testnet else "LIVE")
        self._symbol_info: dict[str, dict] = {}

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_klines(self, symbol: str, interval: str, limit: int = 500) -> pd.DataFrame:
        raw = self._client.futures_klines(symbol=symbol, interval=interval, limit=limit)
        df = pd.DataFrame(raw, columns=KLINE_COLUMNS)
        # The last row is usually the still-forming candle.
        now_ms = int(time.time() * 1000)
        df = df[df["close_time"].astype("int64") < now_ms].copy()
        df["time"] = pd.to_datetime(df["open_time"].astype("int64"), unit="ms", utc=True)
        return df[["time", "open", "high", "low", "close", "volume"]].reset_index(drop=True)

    @retry_on_rate_limit(max_retries=2)
    def get_symbol_info(self, symbol: str) -> Optional[dict]:
        if symbol in self._symbol_info:
            return self._symbol_info[symbol]
        info = self._client.futures_exchange_info()
        for s in info.get("symbols", []):
            if s.get("symbol") == symbol:
                self._symbol_info[symbol] = s
                return s
        return None

    @retry_on_rate_limit(max_retries=2)
    def get_open_position(self, symbol: str) -> Optional[Position]:
        for p in self._client.futures_position_information(symbol=symbol):
            amt = to_decimal(p.get("positionAmt", "0"))
            if amt != 0:
                return Position(
                    symbol=symbol,
                    side=SignalSide.LONG if amt > 0 else SignalSide.SHORT,
                    quantity=abs(amt),
                    entry_price=to_decimal(p.get("entryPrice", "0")),
                    unrealized_pnl=to_decimal(p.get("unRealizedProfit", "0")),
                    leverage=int(p.get("leverage", 1)),
                )
        return None

    @retry_on_rate_limit(max_retries=2)
    def get_account_equity(self) -> Optional[Decimal]:
        for bal in self._client.futures_account_balance():
            if bal.get("asset") == "USDT":
                return to_decimal(bal.get("balance", "0"))
        return None

    def set_leverage(self, symbol: str, leverage: int) -> None:
        try:
            self._client.futures_change_leverage(symbol=symbol, leverage=leverage)
            logger.info("Leverage set to %sx for %s", leverage, symbol)
        except BinanceAPIException as e:
            logger.warning("Could not set leverage: %s", e)

    @retry_on_rate_limit(max_retries=2)
    def place_market_order(self, symbol: str, side: SignalSide, quantity: Decimal) -> OrderResult:
        try:
            res = self._client.futures_create_order(
                symbol=symbol, side=side.value, type="MARKET", quantity=_fmt(quantity)
            )
        except BinanceAPIException as e:
            logger.error("Binance market order error: %s", e)
            return OrderResult(success=False, message=str(e))
        avg = res.get("avgPrice") or res.get("price")
        return OrderResult(
            success=True,
            order_id=str(res.get("orderId")),
            avg_price=to_decimal(avg) if avg and to_decimal(avg) > 0 else None,
            quantity=quantity,
        )

    @retry_on_rate_limit(max_retries=2)
    def place_protective_orders(
        self,
        symbol: str,
        side: SignalSide,
        quantity: Decimal,
        stop_price: Decimal,
        take_profit_price: Decimal,
    ) -> OrderResult:
        """Reduce-only LIMIT take-profit plus STOP_MARKET stop-loss."""
        _, _, price_tick = parse_symbol_filters(self.get_symbol_info(symbol))
        stop_r = round_price(stop_price, price_tick)
        tp_r = round_price(take_profit_price, price_tick)
        try:
            self._client.futures_create_order(
                symbol=symbol, side=side.close_side, type="LIMIT", timeInForce="GTC",
                quantity=_fmt(quantity), price=_fmt(tp_r), reduceOnly=True,
            )
            res = self._client.futures_create_order(
                symbol=symbol, side=side.close_side, type="STOP_MARKET",
                stopPrice=_fmt(stop_r), quantity=_fmt(quantity), reduceOnly=True,
            )
        except BinanceAPIException as e:
            logger.error("Binance protective order error: %s", e)
            return OrderResult(success=False, message=str(e))
        return OrderResult(success=True, order_id=str(res.get("orderId")), quantity=quantity)

    @retry_on_rate_limit(max_retries=2)
    def close_position(self, symbol: str, side: SignalSide, quantity: Decimal) -> OrderResult:
        try:
            res = self._client.futures_create_order(
                symbol=symbol, side=side.close_side, type="MARKET",
                quantity=_fmt(quantity), reduceOnly=True,
            )
        except BinanceAPIException as e:
            logger.error("Binance close order error: %s", e)
            return OrderResult(success=False, message=str(e))
        avg = res.get("avgPrice")
        return OrderResult(
            success=True,
            order_id=str(res.get("orderId")),
            avg_price=to_decimal(avg) if avg and to_decimal(avg) > 0 else None,
            quantity=quantity,
        )

    @retry_on_rate_limit(max_retries=2)
    def cancel_open_orders(self, symbol: str) -> None:
        self._client.futures_cancel_all_open_orders(symbol=symbol)
        logger.info("Cancelled open orders for %s", symbol)

    def fetch_recent_trades(self, symbol: str, limit: int = 100) -> List[dict]:
        try:
            return self._client.futures_account_trades(symbol=symbol, limit=limit)
        except BinanceAPIException as e:
            logger.warning("fetch_recent_trades: %s", e)
            return []
