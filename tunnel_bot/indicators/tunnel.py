"""
Tunnel classification: a momentum EMA plus two EMA pairs whose high/low form
the mid and long tunnels. Trend is directional only on full separation.
"""

from __future__ import annotations
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from tunnel_bot.core.errors import InsufficientHistory
from tunnel_bot.core.types import PriceBar, TrendDirection, TunnelState
from tunnel_bot.indicators.ema import ema


def classify_direction(
    mid_upper: Decimal,
    mid_lower: Decimal,
    long_upper: Decimal,
    long_lower: Decimal,
) -> TrendDirection:
    """Bullish iff mid_lower > long_upper, bearish iff mid_upper < long_lower."""
    if mid_lower > long_upper:
        return TrendDirection.BULLISH
    if mid_upper < long_lower:
        return TrendDirection.BEARISH
    return TrendDirection.SIDEWAYS


def is_near_band(price: Decimal, lower: Decimal, upper: Decimal, tolerance: Decimal) -> bool:
    """True when price lies in [lower*(1-tol), upper*(1+tol)]."""
    return lower * (1 - tolerance) <= price <= upper * (1 + tolerance)


def warmup_length(short_period: int, mid_periods: Tuple[int, int], long_periods: Tuple[int, int]) -> int:
    """Bars needed before the first defined TunnelState."""
    return max(short_period, *mid_periods, *long_periods)


def classify(
    bars: Sequence[PriceBar],
    short_period: int,
    mid_periods: Tuple[int, int],
    long_periods: Tuple[int, int],
) -> List[Optional[TunnelState]]:
    """
    TunnelState per bar, aligned with `bars`. Entries before the longest
    period has filled are None; with too little history all are None.
    """
    states: List[Optional[TunnelState]] = [None] * len(bars)
    start = warmup_length(short_period, mid_periods, long_periods) - 1
    if len(bars) <= start:
        return states

    closes = [b.close for b in bars]
    short = ema(closes, short_period)
    mid_a, mid_b = ema(closes, mid_periods[0]), ema(closes, mid_periods[1])
    long_a, long_b = ema(closes, long_periods[0]), ema(closes, long_periods[1])

    for i in range(start, len(bars)):
        mid_upper, mid_lower = max(mid_a[i], mid_b[i]), min(mid_a[i], mid_b[i])
        long_upper, long_lower = max(long_a[i], long_b[i]), min(long_a[i], long_b[i])
        states[i] = TunnelState(
            timestamp=bars[i].open_time,
            close=bars[i].close,
            short_ema=short[i],
            mid_ema_a=mid_a[i],
            mid_ema_b=mid_b[i],
            long_ema_a=long_a[i],
            long_ema_b=long_b[i],
            mid_upper=mid_upper,
            mid_lower=mid_lower,
            long_upper=long_upper,
            long_lower=long_lower,
            direction=classify_direction(mid_upper, mid_lower, long_upper, long_lower),
        )
    return states


def latest_state(
    bars: Sequence[PriceBar],
    short_period: int,
    mid_periods: Tuple[int, int],
    long_periods: Tuple[int, int],
) -> TunnelState:
    """TunnelState of the last bar. Raises InsufficientHistory during warm-up."""
    need = warmup_length(short_period, mid_periods, long_periods)
    if len(bars) < need:
        raise InsufficientHistory(f"have {len(bars)} bars, need {need}")
    state = classify(bars, short_period, mid_periods, long_periods)[-1]
    if state is None:
        raise InsufficientHistory(f"no tunnel state for {len(bars)} bars")
    return state
