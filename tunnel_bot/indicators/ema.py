"""
Exponential moving averages in exact decimal arithmetic.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from tunnel_bot.core.types import to_decimal

ONE = Decimal(1)


def smoothing_factor(period: int) -> Decimal:
    """alpha = 2 / (period + 1) as a decimal ratio."""
    return Decimal(2) / Decimal(period + 1)


def ema(closes: Sequence[Any], period: int) -> List[Optional[Decimal]]:
    """
    EMA aligned index-for-index with closes.

    Entries before period-1 are None. Entry period-1 is the simple mean of the
    first `period` closes; after that ema[i] = close[i]*a + ema[i-1]*(1-a).
    When fewer than `period` closes are given every entry is None.
    """
    if period < 1:
        raise ValueError(f"EMA period must be >= 1, got {period}")
    prices = [to_decimal(c) for c in closes]
    result: List[Optional[Decimal]] = [None] * len(prices)
    if len(prices) < period:
        return result

    alpha = smoothing_factor(period)
    keep = ONE - alpha
    result[period - 1] = sum(prices[:period], Decimal(0)) / Decimal(period)
    for i in range(period, len(prices)):
        result[i] = prices[i] * alpha + result[i - 1] * keep
    return result


def latest_ema(closes: Sequence[Any], period: int) -> Optional[Decimal]:
    """Last EMA value, or None when history is shorter than the period."""
    values = ema(closes, period)
    return values[-1] if values else None
