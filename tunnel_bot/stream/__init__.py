"""Stream: per-subscription kline consumer tasks."""

from tunnel_bot.stream.feed import BinanceKlineSockets, KlineStream

__all__ = ["BinanceKlineSockets", "KlineStream"]
