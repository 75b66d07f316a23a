"""Data: rolling bar history per symbol and timeframe."""

from tunnel_bot.data.series_store import SeriesStore, AppendResult

__all__ = ["SeriesStore", "AppendResult"]
