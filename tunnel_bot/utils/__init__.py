"""Utils: Telegram, timeframes, exchange filters."""

from tunnel_bot.utils.telegram import TelegramNotifier, format_signal, send_telegram
from tunnel_bot.utils.timeframes import timeframe_delta, timeframe_minutes

__all__ = ["TelegramNotifier", "format_signal", "send_telegram", "timeframe_delta", "timeframe_minutes"]
