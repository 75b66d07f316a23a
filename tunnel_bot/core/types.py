"""
Core data types: price bars, tunnel states, trading signals, positions, trades.
Prices are Decimal end to end inside the signal core.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Sequence, TYPE_CHECKING

from tunnel_bot.core.errors import InvalidBar

if TYPE_CHECKING:
    import pandas as pd


def to_decimal(value: Any) -> Decimal:
    """Exact conversion: floats (numpy included) go through str() so 0.1 stays 0.1."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def ms_to_datetime(ms: Any) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000.0, tz=timezone.utc)


class SignalSide(str, Enum):
    LONG = "BUY"
    SHORT = "SELL"

    @property
    def close_side(self) -> str:
        return "SELL" if self is SignalSide.LONG else "BUY"


class TrendDirection(str, Enum):
    NONE = "NONE"
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    SIDEWAYS = "SIDEWAYS"


class SignalType(str, Enum):
    NONE = "NONE"
    BUY = "BUY"
    SELL = "SELL"
    STOP_LOSS_EXIT = "STOP_LOSS"
    TAKE_PROFIT_EXIT = "TAKE_PROFIT"


@dataclass(frozen=True)
class PriceBar:
    """OHLCV candle for one symbol. Only closed bars enter the series store."""
    symbol: str
    open_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    closed: bool = True

    def validate(self) -> None:
        """Raise InvalidBar unless low <= open/close <= high and nothing is negative."""
        for name in ("open", "high", "low", "close", "volume"):
            if getattr(self, name) < 0:
                raise InvalidBar(f"{self.symbol} {self.open_time}: negative {name}")
        if self.high < self.low:
            raise InvalidBar(f"{self.symbol} {self.open_time}: high {self.high} < low {self.low}")
        if not (self.low <= self.open <= self.high and self.low <= self.close <= self.high):
            raise InvalidBar(f"{self.symbol} {self.open_time}: open/close outside [low, high]")

    @classmethod
    def from_kline_payload(cls, symbol: str, k: dict) -> "PriceBar":
        """Build from a Binance websocket kline object (the "k" field)."""
        return cls(
            symbol=(k.get("s") or symbol).upper(),
            open_time=ms_to_datetime(k["t"]),
            open=to_decimal(k["o"]),
            high=to_decimal(k["h"]),
            low=to_decimal(k["l"]),
            close=to_decimal(k["c"]),
            volume=to_decimal(k["v"]),
            closed=bool(k.get("x", False)),
        )

    @classmethod
    def from_rest_row(cls, symbol: str, row: Sequence[Any], closed: bool = True) -> "PriceBar":
        """Build from a REST kline row: [open_time, open, high, low, close, volume, ...]."""
        return cls(
            symbol=symbol.upper(),
            open_time=ms_to_datetime(row[0]),
            open=to_decimal(row[1]),
            high=to_decimal(row[2]),
            low=to_decimal(row[3]),
            close=to_decimal(row[4]),
            volume=to_decimal(row[5]),
            closed=closed,
        )


def bars_from_frame(df: "pd.DataFrame", symbol: str) -> List[PriceBar]:
    """Convert an OHLCV DataFrame (time, open, high, low, close, volume) to closed bars."""
    import pandas as pd

    bars: List[PriceBar] = []
    for row in df.itertuples(index=False):
        ts = pd.Timestamp(row.time)
        if ts.tzinfo is None:
            ts = ts.tz_localize("UTC")
        bars.append(PriceBar(
            symbol=symbol.upper(),
            open_time=ts.to_pydatetime(),
            open=to_decimal(row.open),
            high=to_decimal(row.high),
            low=to_decimal(row.low),
            close=to_decimal(row.close),
            volume=to_decimal(row.volume),
        ))
    return bars


@dataclass(frozen=True)
class TunnelState:
    """EMA values and classified trend at one bar. Replaced, never mutated."""
    timestamp: datetime
    close: Decimal
    short_ema: Decimal
    mid_ema_a: Decimal
    mid_ema_b: Decimal
    long_ema_a: Decimal
    long_ema_b: Decimal
    mid_upper: Decimal
    mid_lower: Decimal
    long_upper: Decimal
    long_lower: Decimal
    direction: TrendDirection


@dataclass(frozen=True)
class TradingSignal:
    """Entry or exit decision with risk levels. Consumed once by the executor."""
    symbol: str
    type: SignalType
    price: Decimal
    stop_loss: Optional[Decimal]
    take_profit: Optional[Decimal]
    confidence: float
    reason: str
    timestamp: datetime
    timeframe: str

    @property
    def is_entry(self) -> bool:
        return self.type in (SignalType.BUY, SignalType.SELL)

    @property
    def is_exit(self) -> bool:
        return self.type in (SignalType.STOP_LOSS_EXIT, SignalType.TAKE_PROFIT_EXIT)

    @property
    def side(self) -> Optional[SignalSide]:
        if self.type == SignalType.BUY:
            return SignalSide.LONG
        if self.type == SignalType.SELL:
            return SignalSide.SHORT
        return None


@dataclass
class Position:
    """Open position state."""
    symbol: str
    side: SignalSide
    quantity: Decimal
    entry_price: Decimal
    unrealized_pnl: Decimal = Decimal("0")
    leverage: int = 1

    @property
    def is_long(self) -> bool:
        return self.side == SignalSide.LONG


@dataclass
class Trade:
    """Closed trade for analytics."""
    symbol: str
    side: SignalSide
    quantity: float
    entry_price: float
    exit_price: float
    stop_price: float
    pnl: float
    pnl_pct: float
    entry_time: datetime
    exit_time: datetime
    exit_reason: str  # "stop_loss" | "take_profit" | "trailing_exit" | "end_of_data"
    confidence: float = 0.0
    fees: float = 0.0
