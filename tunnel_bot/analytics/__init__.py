"""Analytics: backtest performance metrics."""

from tunnel_bot.analytics.metrics import (
    PerformanceMetrics,
    compute_metrics,
    equity_returns,
    exit_breakdown,
    expectancy,
    max_drawdown_pct,
    profit_factor,
    r_multiple,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)

__all__ = [
    "PerformanceMetrics",
    "compute_metrics",
    "equity_returns",
    "exit_breakdown",
    "expectancy",
    "max_drawdown_pct",
    "profit_factor",
    "r_multiple",
    "sharpe_ratio",
    "sortino_ratio",
    "win_rate",
]
