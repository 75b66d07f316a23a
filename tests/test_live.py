"""Unit tests for engine.live.LiveTrader."""

import asyncio
from decimal import Decimal

from tunnel_bot.core.types import Position, SignalSide, SignalType
from tunnel_bot.engine.core import SignalCore
from tunnel_bot.engine.live import LiveTrader
from tunnel_bot.execution.executor import TradeExecutor
from tunnel_bot.risk.manager import RiskManager

from fake_client import FakeClient


class RecordingNotifier:
    enabled = True

    def __init__(self):
        self.messages = []

    def notify(self, text):
        self.messages.append(text)
        return True

    def notify_signal(self, signal):
        self.messages.append(signal.type.value)
        return True


def _setup(strategy, slow, fast, fill_price="114.1"):
    core = SignalCore(strategy)
    core.seed("BTCUSDT", "4h", slow)
    core.seed("BTCUSDT", "15m", fast)
    client = FakeClient(fill_price=fill_price)
    risk = RiskManager(10.0, 50.0, 20.0, 5.0, 100.0, 1.0, min_confidence=0.6)
    executor = TradeExecutor(client, risk, protective_delay_s=10)
    notifier = RecordingNotifier()
    return LiveTrader(core, executor, client, notifier=notifier), client, notifier


def test_entry_on_fast_bar(strategy, slow_up, fast_long_setup):
    trader, client, notifier = _setup(strategy, slow_up, fast_long_setup)

    async def scenario():
        signal = await trader.on_fast_bar("btcusdt")
        has = trader.executor.has_position("BTCUSDT")
        await trader.executor.shutdown()
        return signal, has

    signal, has = asyncio.run(scenario())
    assert signal.type == SignalType.BUY
    assert has
    assert client.kinds() == ["market"]
    assert notifier.messages[0] == "BUY"


def test_trailing_exit_for_tracked_trade(strategy, slow_up, fast_long_setup):
    trader, client, _ = _setup(strategy, slow_up, fast_long_setup[:21], fill_price="110")
    client.position = Position("BTCUSDT", SignalSide.LONG, Decimal(1), Decimal(112))

    async def scenario():
        trader.executor.adopt(client.position, Decimal(100), Decimal(130))
        return await trader.on_fast_bar("BTCUSDT")

    signal = asyncio.run(scenario())
    assert signal.type == SignalType.TAKE_PROFIT_EXIT
    assert client.kinds() == ["cancel", "close"]
    assert not trader.executor.has_position("BTCUSDT")


def test_position_gone_on_exchange_is_forgotten(strategy, slow_up, fast_long_setup):
    trader, client, _ = _setup(strategy, slow_up, fast_long_setup[:21])
    pos = Position("BTCUSDT", SignalSide.LONG, Decimal(1), Decimal(112))

    async def scenario():
        trader.executor.adopt(pos, Decimal(100), Decimal(130))
        return await trader.on_fast_bar("BTCUSDT")

    assert asyncio.run(scenario()) is None
    assert not trader.executor.has_position("BTCUSDT")
    assert client.calls == []


def test_errors_are_contained(strategy, slow_up, fast_long_setup):
    trader, client, _ = _setup(strategy, slow_up, fast_long_setup)

    def broken():
        raise RuntimeError("exchange down")

    client.get_account_equity = broken
    assert asyncio.run(trader.on_fast_bar("BTCUSDT")) is None


def test_refresh_daily_loss_and_status(strategy, slow_up, fast_long_setup):
    trader, client, _ = _setup(strategy, slow_up, fast_long_setup)
    client.trades = [{"realizedPnl": "-60", "time": 9_999_999_999_999}]
    asyncio.run(trader.refresh_daily_loss(["BTCUSDT"]))
    assert trader.executor.risk_manager.check_daily_loss() is False
    report = trader.status_report(["BTCUSDT"])
    assert "BTCUSDT 4H: BULLISH" in report
    assert "BTCUSDT 15M:" in report
