"""
Backtest performance metrics from closed trades and the equity curve.
Drawdown is reported as a positive percent of the running peak.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np

from tunnel_bot.core.types import SignalSide, Trade


@dataclass
class PerformanceMetrics:
    """Aggregate performance metrics."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    long_trades: int = 0
    short_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    total_fees: float = 0.0
    total_return_pct: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    avg_r_multiple: float = 0.0
    avg_confidence: float = 0.0
    max_drawdown_pct: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    exit_reasons: Dict[str, int] = field(default_factory=dict)


def equity_returns(equity_curve: Sequence[float]) -> np.ndarray:
    """Step-to-step fractional returns of an equity curve."""
    arr = np.asarray(equity_curve, dtype=float)
    if arr.size < 2:
        return np.array([], dtype=float)
    prev = arr[:-1]
    return np.diff(arr) / np.where(prev != 0, prev, 1.0)


def sharpe_ratio(returns: Sequence[float], periods_per_year: float = 252.0) -> float:
    arr = np.asarray(returns, dtype=float)
    if arr.size < 2:
        return 0.0
    std = arr.std(ddof=1)
    if std <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * arr.mean() / std)


def sortino_ratio(returns: Sequence[float], periods_per_year: float = 252.0) -> float:
    """Like Sharpe but divides by downside deviation; 0 with no losing periods."""
    arr = np.asarray(returns, dtype=float)
    if arr.size < 2:
        return 0.0
    downside = np.minimum(arr, 0.0)
    dd = np.sqrt(np.mean(downside ** 2))
    if dd <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * arr.mean() / dd)


def max_drawdown_pct(equity_curve: Sequence[float]) -> float:
    arr = np.asarray(equity_curve, dtype=float)
    if arr.size == 0:
        return 0.0
    peak = np.maximum.accumulate(arr)
    dd = (peak - arr) / np.where(peak > 0, peak, 1.0)
    return float(dd.max()) * 100.0


def win_rate(pnls: Sequence[float]) -> float:
    if len(pnls) == 0:
        return 0.0
    return float(np.count_nonzero(np.asarray(pnls) > 0)) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / gross loss; inf with wins and no losses, 0 with neither."""
    arr = np.asarray(pnls, dtype=float)
    gross_win = arr[arr > 0].sum()
    gross_loss = -arr[arr < 0].sum()
    if gross_loss <= 0:
        return float("inf") if gross_win > 0 else 0.0
    return float(gross_win / gross_loss)


def expectancy(pnls: Sequence[float]) -> float:
    if len(pnls) == 0:
        return 0.0
    return float(np.mean(pnls))


def r_multiple(trade: Trade) -> float:
    """PnL in units of the initial risk (entry to stop)."""
    risk = abs(trade.entry_price - trade.stop_price) * trade.quantity
    if risk <= 0:
        return 0.0
    return trade.pnl / risk


def exit_breakdown(trades: Sequence[Trade]) -> Dict[str, int]:
    return dict(Counter(t.exit_reason for t in trades))


def compute_metrics(
    trades: Sequence[Trade],
    equity_curve: Sequence[float],
    initial_capital: float,
    periods_per_year: float = 252.0,
) -> PerformanceMetrics:
    """Full metrics for a finished run."""
    curve: List[float] = list(equity_curve) or [initial_capital]
    rets = equity_returns(curve)
    m = PerformanceMetrics(
        max_drawdown_pct=max_drawdown_pct(curve),
        sharpe_ratio=sharpe_ratio(rets, periods_per_year),
        sortino_ratio=sortino_ratio(rets, periods_per_year),
    )
    if initial_capital > 0:
        m.total_return_pct = (curve[-1] - initial_capital) / initial_capital * 100.0
    if not trades:
        return m

    pnls = np.array([t.pnl for t in trades], dtype=float)
    wins = pnls[pnls > 0]
    losses = pnls[pnls < 0]
    m.total_trades = len(trades)
    m.winning_trades = int(wins.size)
    m.losing_trades = int(losses.size)
    m.long_trades = sum(1 for t in trades if t.side == SignalSide.LONG)
    m.short_trades = m.total_trades - m.long_trades
    m.win_rate = win_rate(pnls)
    m.total_pnl = float(pnls.sum())
    m.total_fees = float(sum(t.fees for t in trades))
    m.profit_factor = profit_factor(pnls)
    m.expectancy = expectancy(pnls)
    m.avg_win = float(wins.mean()) if wins.size else 0.0
    m.avg_loss = float(losses.mean()) if losses.size else 0.0
    m.avg_r_multiple = float(np.mean([r_multiple(t) for t in trades]))
    m.avg_confidence = float(np.mean([t.confidence for t in trades]))
    m.exit_reasons = exit_breakdown(trades)
    return m
