"""
Rolling per-(symbol, timeframe) bar history. Only closed, valid, strictly
newer bars are appended; the oldest bar is evicted once the cap is exceeded.
"""

from __future__ import annotations
import logging
import threading
from collections import deque
from enum import Enum
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from tunnel_bot.core.errors import InvalidBar, OutOfOrderBar
from tunnel_bot.core.types import PriceBar
from tunnel_bot.utils.timeframes import normalize_timeframe

logger = logging.getLogger("tunnel_bot.data.series")

DEFAULT_CAP = 1000


class AppendResult(str, Enum):
    APPENDED = "appended"
    IGNORED = "ignored"
    REJECTED_INVALID = "rejected_invalid"
    REJECTED_OUT_OF_ORDER = "rejected_out_of_order"


class _Series:
    """One bounded series guarded by its own lock."""

    __slots__ = ("bars", "lock")

    def __init__(self, cap: int):
        self.bars: Deque[PriceBar] = deque(maxlen=cap)
        self.lock = threading.Lock()


def _check_order(series: _Series, bar: PriceBar, timeframe: str) -> None:
    # Duplicates (same open time) arrive with at-least-once delivery.
    if series.bars and bar.open_time <= series.bars[-1].open_time:
        raise OutOfOrderBar(
            f"{bar.symbol} {timeframe}: {bar.open_time} <= last {series.bars[-1].open_time}"
        )


class SeriesStore:
    """
    Owns bar history. Each series has a single producer (its feed task);
    readers receive tuple snapshots taken under the series lock.
    """

    def __init__(self, caps: Optional[Dict[str, int]] = None, default_cap: int = DEFAULT_CAP):
        self._caps = {normalize_timeframe(tf): int(c) for tf, c in (caps or {}).items()}
        self._default_cap = default_cap
        for tf, cap in self._caps.items():
            if cap < 1:
                raise ValueError(f"history cap for {tf} must be >= 1, got {cap}")
        self._series: Dict[Tuple[str, str], _Series] = {}
        self._registry_lock = threading.Lock()

    def cap_for(self, timeframe: str) -> int:
        return self._caps.get(normalize_timeframe(timeframe), self._default_cap)

    def _get(self, symbol: str, timeframe: str, create: bool = False) -> Optional[_Series]:
        key = (symbol.upper(), normalize_timeframe(timeframe))
        series = self._series.get(key)
        if series is None and create:
            with self._registry_lock:
                series = self._series.setdefault(key, _Series(self.cap_for(timeframe)))
        return series

    def append(self, timeframe: str, bar: PriceBar) -> AppendResult:
        """Append a closed bar. Invalid or out-of-order bars are logged and dropped."""
        if not bar.closed:
            return AppendResult.IGNORED
        try:
            bar.validate()
        except InvalidBar as e:
            logger.warning("Rejected invalid bar: %s", e)
            return AppendResult.REJECTED_INVALID

        series = self._get(bar.symbol, timeframe, create=True)
        with series.lock:
            try:
                _check_order(series, bar, timeframe)
            except OutOfOrderBar as e:
                logger.debug("Rejected out-of-order bar: %s", e)
                return AppendResult.REJECTED_OUT_OF_ORDER
            series.bars.append(bar)
        return AppendResult.APPENDED

    def seed(self, symbol: str, timeframe: str, bars: Iterable[PriceBar]) -> int:
        """Bulk warm-up; same rules as append. Returns number of bars appended."""
        appended = 0
        for bar in bars:
            if bar.symbol.upper() != symbol.upper():
                logger.warning("Seed for %s skipped bar of %s", symbol, bar.symbol)
                continue
            if self.append(timeframe, bar) == AppendResult.APPENDED:
                appended += 1
        logger.info("Seeded %s %s with %d bars", symbol.upper(), timeframe, appended)
        return appended

    def window(self, symbol: str, timeframe: str, n: Optional[int] = None) -> Tuple[PriceBar, ...]:
        """Most recent n bars (all when n is None), oldest first."""
        series = self._get(symbol, timeframe)
        if series is None:
            return ()
        with series.lock:
            snapshot = tuple(series.bars)
        if n is None:
            return snapshot
        if n <= 0:
            return ()
        return snapshot[-n:]

    def last(self, symbol: str, timeframe: str) -> Optional[PriceBar]:
        series = self._get(symbol, timeframe)
        if series is None:
            return None
        with series.lock:
            return series.bars[-1] if series.bars else None

    def length(self, symbol: str, timeframe: str) -> int:
        series = self._get(symbol, timeframe)
        if series is None:
            return 0
        with series.lock:
            return len(series.bars)

    def keys(self) -> List[Tuple[str, str]]:
        with self._registry_lock:
            return sorted(self._series)
