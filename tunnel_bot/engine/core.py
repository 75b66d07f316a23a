"""
Signal core: the entry points the feed, position monitor and notifier call.
Bar history lives in the SeriesStore; the strategy is stateless.
"""

from __future__ import annotations
import logging
from typing import Any, Iterable, Optional

from tunnel_bot.core.errors import InsufficientHistory, InvalidParameters
from tunnel_bot.core.types import PriceBar, TradingSignal, TunnelState
from tunnel_bot.data.series_store import AppendResult, SeriesStore
from tunnel_bot.indicators.tunnel import warmup_length
from tunnel_bot.strategies.vegas_tunnel import VegasTunnelStrategy
from tunnel_bot.utils.timeframes import normalize_timeframe

logger = logging.getLogger("tunnel_bot.engine.core")


class SignalCore:
    """Ingests closed bars for the strategy's fast/slow timeframes and answers signal queries."""

    def __init__(self, strategy: VegasTunnelStrategy, store: Optional[SeriesStore] = None):
        """Raises InvalidParameters when a history cap cannot hold the tunnel warm-up."""
        self.strategy = strategy
        self.store = store or SeriesStore()
        self._timeframes = {strategy.fast_timeframe, strategy.slow_timeframe}
        need = self.warmup_bars
        for tf in sorted(self._timeframes):
            cap = self.store.cap_for(tf)
            if cap < need:
                raise InvalidParameters(f"{tf} history cap {cap} is below the {need} bars the tunnels need")

    @property
    def warmup_bars(self) -> int:
        p = self.strategy.params
        return warmup_length(p.short_period, p.mid_periods, p.long_periods)

    @property
    def fast_timeframe(self) -> str:
        return self.strategy.fast_timeframe

    @property
    def slow_timeframe(self) -> str:
        return self.strategy.slow_timeframe

    def on_closed_bar(self, symbol: str, timeframe: str, bar: PriceBar) -> AppendResult:
        """Ingestion entry point for the market-data layer."""
        timeframe = normalize_timeframe(timeframe)
        if timeframe not in self._timeframes:
            logger.debug("Ignoring %s bar for untracked timeframe %s", symbol, timeframe)
            return AppendResult.IGNORED
        if bar.symbol.upper() != symbol.upper():
            logger.warning("Bar symbol %s does not match feed symbol %s", bar.symbol, symbol)
            return AppendResult.REJECTED_INVALID
        return self.store.append(timeframe, bar)

    def seed(self, symbol: str, timeframe: str, bars: Iterable[PriceBar]) -> int:
        """Warm up history from REST klines before the stream starts."""
        return self.store.seed(symbol, normalize_timeframe(timeframe), bars)

    def evaluate(self, symbol: str) -> Optional[TradingSignal]:
        """Fresh entry decision from current fast and slow history."""
        fast = self.store.window(symbol, self.fast_timeframe)
        slow = self.store.window(symbol, self.slow_timeframe)
        signal = self.strategy.evaluate(symbol.upper(), fast, slow)
        if signal is not None:
            logger.info(
                "Signal %s %s @ %s SL=%s TP=%s conf=%.2f",
                signal.symbol, signal.type.value, signal.price,
                signal.stop_loss, signal.take_profit, signal.confidence,
            )
        return signal

    def check_exit(self, symbol: str, is_long: bool, stop_price: Optional[Any] = None) -> Optional[TradingSignal]:
        """Exit decision for an open position: stop breach first, then the trailing EMA."""
        fast = self.store.window(symbol, self.fast_timeframe)
        if stop_price is not None:
            signal = self.strategy.check_stop_exit(symbol.upper(), fast, is_long, stop_price)
            if signal is not None:
                return signal
        return self.strategy.check_trailing_exit(symbol.upper(), fast, is_long)

    def get_tunnel_state(self, symbol: str, timeframe: str) -> Optional[TunnelState]:
        """Latest TunnelState for diagnostics; None during warm-up."""
        bars = self.store.window(symbol, normalize_timeframe(timeframe))
        try:
            return self.strategy.tunnel_state(bars)
        except InsufficientHistory:
            return None

    def ready(self, symbol: str) -> bool:
        return (
            self.get_tunnel_state(symbol, self.fast_timeframe) is not None
            and self.get_tunnel_state(symbol, self.slow_timeframe) is not None
        )
