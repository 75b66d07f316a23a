"""Telegram notifications for signals and fills. Never log token or chat_id."""

from __future__ import annotations
import logging
from typing import Optional

import requests

from tunnel_bot.core.types import TradingSignal, TunnelState

logger = logging.getLogger("tunnel_bot.utils.telegram")


def format_signal(signal: TradingSignal) -> str:
    """Plain-text summary of a signal."""
    lines = [
        f"{signal.type.value} {signal.symbol} @ {signal.price} [{signal.timeframe}]",
        f"Confidence: {signal.confidence:.0%}",
    ]
    if signal.stop_loss is not None:
        lines.append(f"SL: {signal.stop_loss:.4f}")
    if signal.take_profit is not None:
        lines.append(f"TP: {signal.take_profit:.4f}")
    lines.append(f"Reason: {signal.reason}")
    lines.append(f"Bar: {signal.timestamp:%Y-%m-%d %H:%M} UTC")
    return "\n".join(lines)


def format_tunnel(symbol: str, timeframe: str, state: Optional[TunnelState]) -> str:
    if state is None:
        return f"{symbol} {timeframe}: warming up"
    return (
        f"{symbol} {timeframe}: {state.direction.value} close={state.close} "
        f"mid=[{state.mid_lower:.4f}, {state.mid_upper:.4f}] "
        f"long=[{state.long_lower:.4f}, {state.long_upper:.4f}] momentum={state.short_ema:.4f}"
    )


def send_telegram(text: str, bot_token: str = "", chat_id: str = "", session: Optional[requests.Session] = None) -> bool:
    """Send message to Telegram. Returns True on success; False when not configured or on error."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    http = session or requests
    try:
        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        r = http.post(url, json={"chat_id": chat_id, "text": text}, timeout=10)
        if r.status_code != 200:
            logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
            return False
        return True
    except requests.RequestException as e:
        logger.warning("Telegram error: %s", e)
        return False


class TelegramNotifier:
    """Holds credentials and a pooled session; a no-op when unconfigured."""

    def __init__(self, bot_token: str = "", chat_id: str = ""):
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._session = requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    def notify(self, text: str) -> bool:
        return send_telegram(text, self._bot_token, self._chat_id, session=self._session)

    def notify_signal(self, signal: TradingSignal) -> bool:
        return self.notify(format_signal(signal))

    def close(self) -> None:
        self._session.close()
