"""
Trade executor: turns signals into orders exactly once.

Protective stop/target orders are placed by a delayed task tied to the open
trade. Closing the trade cancels the task, so a closed position never gets a
late stop or target attached.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from tunnel_bot.core.types import Position, SignalSide, TradingSignal
from tunnel_bot.execution.base import ExecutionClient, OrderResult
from tunnel_bot.risk.manager import RiskManager

logger = logging.getLogger("tunnel_bot.execution.executor")


@dataclass
class OpenTrade:
    """Position opened (or adopted) by this process."""
    symbol: str
    side: SignalSide
    quantity: Decimal
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    confidence: float = 0.0
    protective_task: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    @property
    def is_long(self) -> bool:
        return self.side == SignalSide.LONG

    def pnl(self, exit_price: Decimal) -> Decimal:
        move = exit_price - self.entry_price if self.is_long else self.entry_price - exit_price
        return move * self.quantity


class TradeExecutor:
    """One open trade per symbol; blocking client calls run in worker threads."""

    def __init__(
        self,
        client: ExecutionClient,
        risk_manager: RiskManager,
        protective_delay_s: float = 2.0,
        notifier: Optional[Any] = None,
    ):
        self._client = client
        self._risk = risk_manager
        self._delay = protective_delay_s
        self._notifier = notifier
        self._trades: Dict[str, OpenTrade] = {}

    @property
    def risk_manager(self) -> RiskManager:
        return self._risk

    def has_position(self, symbol: str) -> bool:
        return symbol.upper() in self._trades

    def get_trade(self, symbol: str) -> Optional[OpenTrade]:
        return self._trades.get(symbol.upper())

    @property
    def open_trades(self) -> Dict[str, OpenTrade]:
        return dict(self._trades)

    async def execute(self, signal: TradingSignal, equity: Optional[Any] = None) -> Optional[OrderResult]:
        """Route an entry or exit signal. Returns the order result, or None when nothing was sent."""
        if signal.is_entry:
            return await self._open(signal, equity)
        if signal.is_exit:
            return await self._close(signal)
        logger.warning("Ignoring signal of type %s for %s", signal.type.value, signal.symbol)
        return None

    async def _open(self, signal: TradingSignal, equity: Optional[Any]) -> Optional[OrderResult]:
        symbol = signal.symbol.upper()
        if symbol in self._trades:
            logger.info("%s already has an open trade, skipping %s", symbol, signal.type.value)
            return None
        check = self._risk.validate_signal(signal, equity)
        if not check.allowed:
            logger.info("%s %s rejected by risk: %s", symbol, signal.type.value, check.reason)
            return None

        side = signal.side
        order = await asyncio.to_thread(self._client.place_market_order, symbol, side, check.quantity)
        if not order.success:
            logger.error("%s entry failed: %s", symbol, order.message)
            return order

        trade = OpenTrade(
            symbol=symbol,
            side=side,
            quantity=check.quantity,
            entry_price=order.avg_price or signal.price,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            confidence=signal.confidence,
        )
        self._track(trade)
        logger.info(
            "Opened %s %s qty=%s entry=%s SL=%s TP=%s",
            side.value, symbol, trade.quantity, trade.entry_price, trade.stop_loss, trade.take_profit,
        )
        await self._notify(
            f"Entry {side.value} {symbol} qty={trade.quantity} entry={trade.entry_price} "
            f"SL={trade.stop_loss:.4f} TP={trade.take_profit:.4f} conf={signal.confidence:.0%}"
        )
        return order

    def adopt(self, position: Position, stop_loss: Decimal, take_profit: Decimal) -> OpenTrade:
        """Track a position found on the exchange at startup and protect it."""
        trade = OpenTrade(
            symbol=position.symbol.upper(),
            side=position.side,
            quantity=position.quantity,
            entry_price=position.entry_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        self._track(trade)
        logger.info("Adopted %s %s qty=%s entry=%s", trade.side.value, trade.symbol, trade.quantity, trade.entry_price)
        return trade

    def _track(self, trade: OpenTrade) -> None:
        self._trades[trade.symbol] = trade
        trade.protective_task = asyncio.create_task(
            self._place_protective(trade), name=f"protective-{trade.symbol}"
        )

    async def _place_protective(self, trade: OpenTrade) -> None:
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            logger.info("Protective orders for %s cancelled before placement", trade.symbol)
            raise
        if self._trades.get(trade.symbol) is not trade:
            return
        try:
            res = await asyncio.to_thread(
                self._client.place_protective_orders,
                trade.symbol, trade.side, trade.quantity, trade.stop_loss, trade.take_profit,
            )
        except Exception as e:
            logger.exception("Protective orders raised for %s: %s", trade.symbol, e)
            res = OrderResult(success=False, message=str(e))
        if res.success:
            logger.info("Protective orders placed for %s", trade.symbol)
        else:
            logger.error("Protective orders failed for %s: %s", trade.symbol, res.message)
            await self._notify(f"WARNING {trade.symbol}: stop/target not placed ({res.message})")

    @staticmethod
    def _cancel_protective(trade: OpenTrade) -> None:
        task = trade.protective_task
        if task is not None and not task.done():
            task.cancel()

    async def _close(self, signal: TradingSignal) -> Optional[OrderResult]:
        symbol = signal.symbol.upper()
        trade = self._trades.pop(symbol, None)
        if trade is None:
            logger.debug("Exit signal for %s without an open trade", symbol)
            return None
        self._cancel_protective(trade)
        try:
            await asyncio.to_thread(self._client.cancel_open_orders, symbol)
            order = await asyncio.to_thread(self._client.close_position, symbol, trade.side, trade.quantity)
        except Exception as e:
            logger.exception("%s exit raised, keeping trade tracked: %s", symbol, e)
            self._track(trade)
            return OrderResult(success=False, message=str(e))
        if not order.success:
            logger.error("%s exit failed, keeping trade tracked: %s", symbol, order.message)
            self._track(trade)
            return order

        exit_price = order.avg_price or signal.price
        pnl = trade.pnl(exit_price)
        self._risk.record_trade_pnl(pnl)
        logger.info("Closed %s %s @ %s pnl=%s (%s)", trade.side.value, symbol, exit_price, pnl, signal.type.value)
        await self._notify(f"Exit {symbol} {signal.type.value} @ {exit_price} pnl={pnl:.2f} | {signal.reason}")
        return order

    def forget(self, symbol: str) -> None:
        """Drop tracking for a position closed on the exchange (stop or target filled)."""
        trade = self._trades.pop(symbol.upper(), None)
        if trade is not None:
            self._cancel_protective(trade)
            logger.info("%s position no longer open on exchange", symbol.upper())

    async def shutdown(self) -> None:
        """Cancel pending protective placements and wait for them to finish."""
        tasks = [t.protective_task for t in self._trades.values() if t.protective_task is not None]
        for trade in self._trades.values():
            self._cancel_protective(trade)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _notify(self, text: str) -> None:
        if self._notifier is None:
            return
        await asyncio.to_thread(self._notifier.notify, text)
