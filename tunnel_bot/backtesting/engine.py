"""
Backtest engine: replays fast/slow klines through a fresh SignalCore.

No lookahead: a slow bar is ingested only once its close time is at or
before the close of the fast bar being processed. Entries fill at the signal
bar's close; stop and target are checked intrabar from the next bar on
(stop first), then the trailing EMA exit at the close. Slippage and fees are
simulated in bps.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

import pandas as pd

from tunnel_bot.analytics.metrics import PerformanceMetrics, compute_metrics
from tunnel_bot.core.types import PriceBar, SignalSide, Trade, TradingSignal, bars_from_frame
from tunnel_bot.data.series_store import AppendResult, SeriesStore
from tunnel_bot.engine.core import SignalCore
from tunnel_bot.risk.manager import RiskManager
from tunnel_bot.strategies.vegas_tunnel import VegasTunnelStrategy
from tunnel_bot.utils.timeframes import timeframe_delta

logger = logging.getLogger("tunnel_bot.backtest")


@dataclass
class BacktestResult:
    """Backtest output: trades, equity curve, metrics and the signals seen."""
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    signals: List[TradingSignal] = field(default_factory=list)
    metrics: Optional[PerformanceMetrics] = None


@dataclass
class _OpenPosition:
    side: SignalSide
    entry_price: float
    quantity: float
    stop: float
    target: float
    entry_time: datetime
    confidence: float

    @property
    def is_long(self) -> bool:
        return self.side == SignalSide.LONG


class BacktestEngine:
    """Bar-by-bar simulation of the tunnel strategy on one symbol."""

    def __init__(
        self,
        strategy: VegasTunnelStrategy,
        risk_manager: RiskManager,
        initial_capital: float = 10000.0,
        slippage_bps: float = 5.0,
        fee_bps: float = 4.0,
        history_caps: Optional[Dict[str, int]] = None,
    ):
        self.strategy = strategy
        self.risk_manager = risk_manager
        self.initial_capital = initial_capital
        self.slippage_bps = slippage_bps
        self.fee_bps = fee_bps
        self.history_caps = history_caps

    def run(self, fast_df: pd.DataFrame, slow_df: pd.DataFrame, symbol: str = "BTCUSDT") -> BacktestResult:
        """
        Run on OHLCV DataFrames (columns: time, open, high, low, close, volume),
        time being the bar open time.
        """
        symbol = symbol.upper()
        core = SignalCore(self.strategy, SeriesStore(self.history_caps))
        fast_tf, slow_tf = core.fast_timeframe, core.slow_timeframe
        fast_delta, slow_delta = timeframe_delta(fast_tf), timeframe_delta(slow_tf)
        fast_bars = bars_from_frame(fast_df, symbol)
        slow_bars = bars_from_frame(slow_df, symbol)

        capital = self.initial_capital
        self.risk_manager.set_equity(capital)
        self.risk_manager.set_daily_loss(0.0)
        result = BacktestResult(equity_curve=[capital])
        pos: Optional[_OpenPosition] = None
        last_date: Optional[date] = None
        slow_idx = 0
        last_bar: Optional[PriceBar] = None

        for bar in fast_bars:
            close_time = bar.open_time + fast_delta
            while slow_idx < len(slow_bars) and slow_bars[slow_idx].open_time + slow_delta <= close_time:
                core.on_closed_bar(symbol, slow_tf, slow_bars[slow_idx])
                slow_idx += 1
            if core.on_closed_bar(symbol, fast_tf, bar) != AppendResult.APPENDED:
                continue
            last_bar = bar

            bar_date = bar.open_time.date()
            if last_date is not None and bar_date != last_date:
                self.risk_manager.set_daily_loss(0.0, bar_date)
            last_date = bar_date

            if pos is not None:
                exit_price, reason = self._check_exit(core, symbol, pos, bar)
                if exit_price is not None:
                    capital += self._close(result, symbol, pos, exit_price, bar.open_time, reason)
                    self.risk_manager.set_equity(capital)
                    pos = None
                result.equity_curve.append(capital)
                continue

            signal = core.evaluate(symbol)
            if signal is not None and signal.is_entry:
                result.signals.append(signal)
                pos = self._open(signal, capital)
            result.equity_curve.append(capital)

        if pos is not None and last_bar is not None:
            capital += self._close(result, symbol, pos, float(last_bar.close), last_bar.open_time, "end_of_data")
            self.risk_manager.set_equity(capital)
            result.equity_curve.append(capital)

        result.metrics = compute_metrics(result.trades, result.equity_curve, self.initial_capital)
        logger.info(
            "Backtest %s: %d fast bars, %d trades, final capital %.2f",
            symbol, len(fast_bars), len(result.trades), capital,
        )
        return result

    def _slip(self) -> float:
        return 1 + self.slippage_bps / 10000.0

    def _open(self, signal: TradingSignal, capital: float) -> Optional[_OpenPosition]:
        check = self.risk_manager.validate_signal(signal, capital)
        if not check.allowed or check.quantity <= 0:
            logger.debug("Backtest entry rejected: %s", check.reason)
            return None
        side = signal.side
        price = float(signal.price)
        entry = price * self._slip() if side == SignalSide.LONG else price / self._slip()
        return _OpenPosition(
            side=side,
            entry_price=entry,
            quantity=float(check.quantity),
            stop=float(signal.stop_loss),
            target=float(signal.take_profit),
            entry_time=signal.timestamp,
            confidence=signal.confidence,
        )

    def _check_exit(self, core: SignalCore, symbol: str, pos: _OpenPosition, bar: PriceBar):
        high, low = float(bar.high), float(bar.low)
        if pos.is_long:
            if low <= pos.stop:
                return pos.stop, "stop_loss"
            if high >= pos.target:
                return pos.target, "take_profit"
        else:
            if high >= pos.stop:
                return pos.stop, "stop_loss"
            if low <= pos.target:
                return pos.target, "take_profit"
        if core.check_exit(symbol, pos.is_long) is not None:
            return float(bar.close), "trailing_exit"
        return None, ""

    def _close(
        self,
        result: BacktestResult,
        symbol: str,
        pos: _OpenPosition,
        exit_price: float,
        exit_time: datetime,
        reason: str,
    ) -> float:
        exit_adj = exit_price / self._slip() if pos.is_long else exit_price * self._slip()
        fee = (pos.quantity * pos.entry_price + pos.quantity * exit_adj) * (self.fee_bps / 10000.0)
        move = exit_adj - pos.entry_price if pos.is_long else pos.entry_price - exit_adj
        pnl = move * pos.quantity - fee
        self.risk_manager.record_trade_pnl(pnl)
        result.trades.append(Trade(
            symbol=symbol,
            side=pos.side,
            quantity=pos.quantity,
            entry_price=pos.entry_price,
            exit_price=exit_adj,
            stop_price=pos.stop,
            pnl=pnl,
            pnl_pct=pnl / (pos.quantity * pos.entry_price) * 100,
            entry_time=pos.entry_time,
            exit_time=exit_time,
            exit_reason=reason,
            confidence=pos.confidence,
            fees=fee,
        ))
        return pnl
