"""
Vegas dual-tunnel strategy.

Slow timeframe: macro trend filter (mid tunnel fully above/below long tunnel).
Fast timeframe: pullback into the mid or long tunnel, then a close back across
the momentum EMA. Stops sit just beyond the nearest adverse tunnel bound and
targets are a fixed multiple of that risk. Exits trail the fast momentum EMA.

Evaluation is pure: the same bar windows always give the same signal.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Sequence, Tuple

from tunnel_bot.core.errors import InsufficientHistory, InvalidParameters
from tunnel_bot.core.types import (
    PriceBar,
    SignalType,
    TradingSignal,
    TrendDirection,
    TunnelState,
    to_decimal,
)
from tunnel_bot.indicators.tunnel import is_near_band, latest_state
from tunnel_bot.utils.timeframes import normalize_timeframe, timeframe_minutes

logger = logging.getLogger("tunnel_bot.strategies.vegas")

BASE_CONFIDENCE = Decimal("0.6")
MACRO_BONUS = Decimal("0.2")
MOMENTUM_BONUS = Decimal("0.1")
TRAILING_EXIT_CONFIDENCE = 0.9
STOP_EXIT_CONFIDENCE = 1.0
MAX_TOLERANCE = Decimal("0.05")


@dataclass(frozen=True)
class VegasTunnelParams:
    """EMA periods and ratios. Ratios accept float/str/Decimal and are stored as Decimal."""
    short_period: int = 12
    mid_periods: Tuple[int, int] = (144, 169)
    long_periods: Tuple[int, int] = (288, 338)
    near_tolerance: Decimal = field(default=Decimal("0.002"))
    stop_buffer: Decimal = field(default=Decimal("0.002"))
    risk_reward_ratio: Decimal = field(default=Decimal("2.0"))
    stop_loss_pct: Decimal = field(default=Decimal("0.02"))
    take_profit_pct: Decimal = field(default=Decimal("0.04"))
    fast_timeframe: str = "15m"
    slow_timeframe: str = "4h"

    def __post_init__(self) -> None:
        for name in ("near_tolerance", "stop_buffer", "risk_reward_ratio", "stop_loss_pct", "take_profit_pct"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        object.__setattr__(self, "mid_periods", tuple(int(p) for p in self.mid_periods))
        object.__setattr__(self, "long_periods", tuple(int(p) for p in self.long_periods))

    def validate(self) -> None:
        """Raise InvalidParameters on any ordering or bound violation."""
        if len(self.mid_periods) != 2 or len(self.long_periods) != 2:
            raise InvalidParameters("mid and long tunnels need exactly two periods each")
        if self.short_period <= 0:
            raise InvalidParameters("short EMA period must be positive")
        if min(self.mid_periods) <= self.short_period:
            raise InvalidParameters("mid tunnel periods must be greater than short EMA period")
        if min(self.long_periods) <= max(self.mid_periods):
            raise InvalidParameters("long tunnel periods must be greater than mid tunnel periods")
        if not (0 < self.stop_loss_pct <= Decimal("0.1")):
            raise InvalidParameters("stop loss percent must be in (0, 0.1]")
        if not (0 < self.take_profit_pct <= Decimal("0.2")):
            raise InvalidParameters("take profit percent must be in (0, 0.2]")
        if self.risk_reward_ratio <= 1:
            raise InvalidParameters("risk reward ratio must be greater than 1.0")
        if not (0 <= self.near_tolerance <= MAX_TOLERANCE):
            raise InvalidParameters(f"near tolerance must be in [0, {MAX_TOLERANCE}]")
        if not (0 <= self.stop_buffer <= MAX_TOLERANCE):
            raise InvalidParameters(f"stop buffer must be in [0, {MAX_TOLERANCE}]")
        try:
            fast_minutes = timeframe_minutes(self.fast_timeframe)
            slow_minutes = timeframe_minutes(self.slow_timeframe)
        except ValueError as e:
            raise InvalidParameters(str(e)) from None
        if slow_minutes <= fast_minutes:
            raise InvalidParameters("slow timeframe must be longer than fast timeframe")


class VegasTunnelStrategy:
    """Signal and exit engine. Holds parameters only; bar history is passed in."""

    name = "Vegas Dual Tunnel Strategy"

    def __init__(self, params: Optional[VegasTunnelParams] = None):
        self.params = params or VegasTunnelParams()
        self.params.validate()

    @property
    def fast_timeframe(self) -> str:
        return normalize_timeframe(self.params.fast_timeframe)

    @property
    def slow_timeframe(self) -> str:
        return normalize_timeframe(self.params.slow_timeframe)

    @property
    def fast_tag(self) -> str:
        return self.params.fast_timeframe.upper()

    @property
    def slow_tag(self) -> str:
        return self.params.slow_timeframe.upper()

    def tunnel_state(self, bars: Sequence[PriceBar]) -> TunnelState:
        """Latest TunnelState for a window. Raises InsufficientHistory."""
        p = self.params
        return latest_state(bars, p.short_period, p.mid_periods, p.long_periods)

    # ------------------------------------------------------------------ entries

    def evaluate(
        self,
        symbol: str,
        fast_bars: Sequence[PriceBar],
        slow_bars: Sequence[PriceBar],
    ) -> Optional[TradingSignal]:
        """Return a Buy/Sell signal for the latest fast bar, or None when there is no setup."""
        try:
            slow = self.tunnel_state(slow_bars)
        except InsufficientHistory as e:
            logger.debug("%s %s not ready: %s", symbol, self.slow_tag, e)
            return None
        if slow.direction not in (TrendDirection.BULLISH, TrendDirection.BEARISH):
            logger.debug("%s %s trend %s, no setup", symbol, self.slow_tag, slow.direction.value)
            return None
        try:
            fast = self.tunnel_state(fast_bars)
        except InsufficientHistory as e:
            logger.debug("%s %s not ready: %s", symbol, self.fast_tag, e)
            return None

        if slow.direction == TrendDirection.BULLISH:
            return self._check_long(symbol, slow, fast)
        return self._check_short(symbol, slow, fast)

    def _is_near_tunnel(self, price: Decimal, fast: TunnelState) -> bool:
        tol = self.params.near_tolerance
        return (
            is_near_band(price, fast.mid_lower, fast.mid_upper, tol)
            or is_near_band(price, fast.long_lower, fast.long_upper, tol)
        )

    def _check_long(self, symbol: str, slow: TunnelState, fast: TunnelState) -> Optional[TradingSignal]:
        # Slow close must still sit above the slow mid tunnel floor.
        if slow.close <= slow.mid_lower:
            return None
        if not self._is_near_tunnel(fast.close, fast):
            return None
        if fast.close <= fast.short_ema:
            return None
        stop, target = self._long_levels(fast)
        if stop is None:
            return None
        return TradingSignal(
            symbol=symbol,
            type=SignalType.BUY,
            price=fast.close,
            stop_loss=stop,
            take_profit=target,
            confidence=self._confidence(slow, fast, is_long=True),
            reason=(
                f"{self.slow_tag} bullish tunnel stack; {self.fast_tag} pullback to tunnel support "
                f"then close above EMA{self.params.short_period}"
            ),
            timestamp=fast.timestamp,
            timeframe=self.fast_tag,
        )

    def _check_short(self, symbol: str, slow: TunnelState, fast: TunnelState) -> Optional[TradingSignal]:
        if slow.close >= slow.mid_upper:
            return None
        if not self._is_near_tunnel(fast.close, fast):
            return None
        if fast.close >= fast.short_ema:
            return None
        stop, target = self._short_levels(fast)
        if stop is None:
            return None
        return TradingSignal(
            symbol=symbol,
            type=SignalType.SELL,
            price=fast.close,
            stop_loss=stop,
            take_profit=target,
            confidence=self._confidence(slow, fast, is_long=False),
            reason=(
                f"{self.slow_tag} bearish tunnel stack; {self.fast_tag} rally into tunnel resistance "
                f"then close below EMA{self.params.short_period}"
            ),
            timestamp=fast.timestamp,
            timeframe=self.fast_tag,
        )

    def _confidence(self, slow: TunnelState, fast: TunnelState, is_long: bool) -> float:
        confidence = BASE_CONFIDENCE
        if is_long:
            if slow.mid_lower > slow.long_upper:
                confidence += MACRO_BONUS
            if fast.short_ema > fast.mid_lower:
                confidence += MOMENTUM_BONUS
        else:
            if slow.mid_upper < slow.long_lower:
                confidence += MACRO_BONUS
            if fast.short_ema < fast.mid_upper:
                confidence += MOMENTUM_BONUS
        return float(max(Decimal(0), min(confidence, Decimal(1))))

    def _long_levels(self, fast: TunnelState) -> Tuple[Optional[Decimal], Optional[Decimal]]:
        p = self.params
        price = fast.close
        supports = [lvl for lvl in (fast.mid_lower, fast.long_upper) if lvl <= price]
        if supports:
            stop = max(supports) * (1 - p.stop_buffer)
        else:
            stop = price * (1 - p.stop_loss_pct)
        if stop <= 0 or stop >= price:
            logger.debug("%s long stop %s not below trigger %s", fast.timestamp, stop, price)
            return None, None
        return stop, price + (price - stop) * p.risk_reward_ratio

    def _short_levels(self, fast: TunnelState) -> Tuple[Optional[Decimal], Optional[Decimal]]:
        p = self.params
        price = fast.close
        resistances = [lvl for lvl in (fast.mid_upper, fast.long_lower) if lvl >= price]
        if resistances:
            stop = min(resistances) * (1 + p.stop_buffer)
        else:
            stop = price * (1 + p.stop_loss_pct)
        if stop <= price:
            logger.debug("%s short stop %s not above trigger %s", fast.timestamp, stop, price)
            return None, None
        return stop, price - (stop - price) * p.risk_reward_ratio

    # -------------------------------------------------------------------- exits

    def check_trailing_exit(
        self,
        symbol: str,
        fast_bars: Sequence[PriceBar],
        is_long: bool,
    ) -> Optional[TradingSignal]:
        """Exit when the fast close crosses the momentum EMA against the position."""
        if len(fast_bars) < 2:
            return None
        try:
            fast = self.tunnel_state(fast_bars)
        except InsufficientHistory as e:
            logger.debug("%s %s exit check not ready: %s", symbol, self.fast_tag, e)
            return None
        ema_label = f"EMA{self.params.short_period}"
        if is_long:
            if not fast.close < fast.short_ema:
                return None
            reason = f"{self.fast_tag} close below {ema_label} trailing line"
        else:
            if not fast.close > fast.short_ema:
                return None
            reason = f"{self.fast_tag} close above {ema_label} trailing line"
        return TradingSignal(
            symbol=symbol,
            type=SignalType.TAKE_PROFIT_EXIT,
            price=fast.close,
            stop_loss=None,
            take_profit=None,
            confidence=TRAILING_EXIT_CONFIDENCE,
            reason=reason,
            timestamp=fast.timestamp,
            timeframe=self.fast_tag,
        )

    def check_stop_exit(
        self,
        symbol: str,
        fast_bars: Sequence[PriceBar],
        is_long: bool,
        stop_price: Any,
    ) -> Optional[TradingSignal]:
        """Exit when the latest fast close is through the protective stop."""
        if not fast_bars:
            return None
        bar = fast_bars[-1]
        stop = to_decimal(stop_price)
        hit = bar.close <= stop if is_long else bar.close >= stop
        if not hit:
            return None
        return TradingSignal(
            symbol=symbol,
            type=SignalType.STOP_LOSS_EXIT,
            price=bar.close,
            stop_loss=stop,
            take_profit=None,
            confidence=STOP_EXIT_CONFIDENCE,
            reason=f"{self.fast_tag} close {bar.close} through stop {stop}",
            timestamp=bar.open_time,
            timeframe=self.fast_tag,
        )

    def default_levels(self, entry_price: Any, is_long: bool) -> Tuple[Decimal, Decimal]:
        """Percentage stop and target for a position without tunnel-derived levels."""
        entry = to_decimal(entry_price)
        sl, tp = self.params.stop_loss_pct, self.params.take_profit_pct
        if is_long:
            return entry * (1 - sl), entry * (1 + tp)
        return entry * (1 + sl), entry * (1 - tp)

    def info(self) -> dict[str, Any]:
        p = self.params
        return {
            "name": self.name,
            "short_ema_period": p.short_period,
            "mid_tunnel_periods": list(p.mid_periods),
            "long_tunnel_periods": list(p.long_periods),
            "near_tolerance": str(p.near_tolerance),
            "stop_buffer": str(p.stop_buffer),
            "risk_reward_ratio": str(p.risk_reward_ratio),
            "stop_loss_pct": str(p.stop_loss_pct),
            "take_profit_pct": str(p.take_profit_pct),
            "fast_timeframe": self.fast_timeframe,
            "slow_timeframe": self.slow_timeframe,
        }
