"""Unit tests for utils.telegram."""

from datetime import datetime, timezone
from decimal import Decimal

import requests
from tunnel_bot.core.types import SignalType, TradingSignal
from tunnel_bot.utils.telegram import TelegramNotifier, format_signal, format_tunnel, send_telegram


class _Response:
    def __init__(self, status_code):
        self.status_code = status_code
        self.text = ""


class _Session:
    def __init__(self, status_code=200, exc=None):
        self.status_code = status_code
        self.exc = exc
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json))
        if self.exc:
            raise self.exc
        return _Response(self.status_code)


def _signal():
    return TradingSignal(
        symbol="BTCUSDT",
        type=SignalType.BUY,
        price=Decimal("114.1"),
        stop_loss=Decimal("113.8219"),
        take_profit=Decimal("114.6562"),
        confidence=0.8,
        reason="pullback",
        timestamp=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        timeframe="15M",
    )


def test_format_signal():
    text = format_signal(_signal())
    assert "BUY BTCUSDT @ 114.1 [15M]" in text
    assert "Confidence: 80%" in text
    assert "SL: 113.8219" in text
    assert "TP: 114.6562" in text


def test_format_tunnel_warming_up():
    assert format_tunnel("BTCUSDT", "4H", None) == "BTCUSDT 4H: warming up"


def test_send_unconfigured():
    assert send_telegram("hi") is False


def test_send_with_session():
    session = _Session()
    assert send_telegram("hi", "token", "chat", session=session) is True
    assert session.calls[0][1] == {"chat_id": "chat", "text": "hi"}


def test_send_failures():
    assert send_telegram("hi", "token", "chat", session=_Session(status_code=500)) is False
    assert send_telegram("hi", "token", "chat", session=_Session(exc=requests.ConnectionError("down"))) is False


def test_notifier_disabled():
    notifier = TelegramNotifier()
    assert notifier.enabled is False
    assert notifier.notify_signal(_signal()) is False
    notifier.close()
