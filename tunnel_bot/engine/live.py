"""
Live runner: reacts to each closed fast bar for one symbol.

With a tracked trade it asks the core for an exit (after confirming the
position still exists on the exchange); otherwise it asks for an entry.
Errors are logged per symbol and never reach the stream tasks.
"""

from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from tunnel_bot.core.types import TradingSignal, to_decimal
from tunnel_bot.engine.core import SignalCore
from tunnel_bot.execution.base import ExecutionClient
from tunnel_bot.execution.executor import TradeExecutor
from tunnel_bot.utils.telegram import TelegramNotifier, format_tunnel

logger = logging.getLogger("tunnel_bot.engine.live")


class LiveTrader:
    """Glue between the kline stream, the signal core and the executor."""

    def __init__(
        self,
        core: SignalCore,
        executor: TradeExecutor,
        client: ExecutionClient,
        notifier: Optional[TelegramNotifier] = None,
    ):
        self.core = core
        self.executor = executor
        self.client = client
        self.notifier = notifier

    async def on_fast_bar(self, symbol: str) -> Optional[TradingSignal]:
        symbol = symbol.upper()
        try:
            signal = await self._decide(symbol)
            if signal is None:
                return None
            await self._notify(signal=signal)
            if signal.is_entry:
                await self._enter(signal)
            else:
                await self.executor.execute(signal)
            return signal
        except Exception as e:
            logger.exception("%s fast-bar processing failed: %s", symbol, e)
            return None

    async def _decide(self, symbol: str) -> Optional[TradingSignal]:
        trade = self.executor.get_trade(symbol)
        if trade is None:
            return self.core.evaluate(symbol)
        pos = await asyncio.to_thread(self.client.get_open_position, symbol)
        if pos is None:
            # Stop or target filled on the exchange.
            self.executor.forget(symbol)
            return None
        return self.core.check_exit(symbol, trade.is_long, trade.stop_loss)

    async def _enter(self, signal: TradingSignal) -> None:
        risk = self.executor.risk_manager
        equity = await asyncio.to_thread(self.client.get_account_equity)
        info = await asyncio.to_thread(self.client.get_symbol_info, signal.symbol)
        if equity is not None:
            risk.set_equity(equity)
        # No await between the filter update and the risk check inside execute().
        risk.update_symbol_info(info)
        await self.executor.execute(signal, equity)

    async def refresh_daily_loss(self, symbols: Iterable[str]) -> None:
        """Pull today's realized PnL from the exchange into the risk manager."""
        now = datetime.now(timezone.utc)
        day_start_ms = int(datetime(now.year, now.month, now.day, tzinfo=timezone.utc).timestamp() * 1000)
        realized = to_decimal(0)
        for symbol in symbols:
            trades = await asyncio.to_thread(self.client.fetch_recent_trades, symbol, 500)
            realized += sum(
                (to_decimal(t.get("realizedPnl", "0")) for t in trades if int(t.get("time", 0)) >= day_start_ms),
                to_decimal(0),
            )
        self.executor.risk_manager.set_daily_loss(max(to_decimal(0), -realized), now.date())

    def status_report(self, symbols: Iterable[str]) -> str:
        lines = []
        for symbol in symbols:
            for tf in (self.core.slow_timeframe, self.core.fast_timeframe):
                lines.append(format_tunnel(symbol, tf.upper(), self.core.get_tunnel_state(symbol, tf)))
            trade = self.executor.get_trade(symbol)
            if trade is not None:
                lines.append(
                    f"  open {trade.side.value} qty={trade.quantity} entry={trade.entry_price} "
                    f"SL={trade.stop_loss:.4f} TP={trade.take_profit:.4f}"
                )
        return "\n".join(lines)

    async def run_status(self, symbols: Iterable[str], interval_s: float, stop: asyncio.Event) -> None:
        """Periodic daily-loss refresh and tunnel summary until stop is set."""
        symbols = list(symbols)
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_s)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.refresh_daily_loss(symbols)
                await self._notify(text=self.status_report(symbols))
            except Exception as e:
                logger.exception("Status update failed: %s", e)

    async def _notify(self, signal: Optional[TradingSignal] = None, text: str = "") -> None:
        if self.notifier is None or not self.notifier.enabled:
            return
        if signal is not None:
            await asyncio.to_thread(self.notifier.notify_signal, signal)
        elif text:
            await asyncio.to_thread(self.notifier.notify, text)
