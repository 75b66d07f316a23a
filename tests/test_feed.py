"""Unit tests for stream.feed.KlineStream."""

import asyncio

from tunnel_bot.data.series_store import AppendResult
from tunnel_bot.engine.core import SignalCore
from tunnel_bot.stream.feed import KlineStream

from bars import BASE_TIME, FAST_STEP, SLOW_STEP

T0_MS = int(BASE_TIME.timestamp() * 1000)


def _kline(i, close, step=FAST_STEP, closed=True, symbol="BTCUSDT"):
    c = str(close)
    return {
        "e": "continuous_kline",
        "ps": symbol,
        "k": {
            "t": T0_MS + i * int(step.total_seconds() * 1000),
            "o": c, "h": str(close + 1), "l": str(close - 1), "c": c, "v": "10",
            "x": closed,
        },
    }


class FakeSocket:
    def __init__(self, messages):
        self.queue = asyncio.Queue()
        for m in messages:
            self.queue.put_nowait(m)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def recv(self):
        return await self.queue.get()


def test_handle_message_routes_closed_bars(strategy):
    core = SignalCore(strategy)
    seen = []

    async def on_fast(symbol):
        seen.append(symbol)

    async def scenario():
        stream = KlineStream(core, ["BTCUSDT"], socket_factory=None, on_fast_bar=on_fast)
        results = [
            await stream.handle_message("BTCUSDT", "15m", _kline(0, 100)),
            await stream.handle_message("BTCUSDT", "15m", _kline(1, 101, closed=False)),
            await stream.handle_message("BTCUSDT", "15m", {"data": _kline(1, 101)}),
            await stream.handle_message("BTCUSDT", "15m", _kline(1, 101)),
            await stream.handle_message("BTCUSDT", "4h", _kline(0, 100, step=SLOW_STEP)),
        ]
        return results

    results = asyncio.run(scenario())
    assert results == [
        AppendResult.APPENDED,
        AppendResult.IGNORED,
        AppendResult.APPENDED,
        AppendResult.REJECTED_OUT_OF_ORDER,
        AppendResult.APPENDED,
    ]
    # Only appended fast bars trigger evaluation.
    assert seen == ["BTCUSDT", "BTCUSDT"]
    assert core.store.length("BTCUSDT", "15m") == 2
    assert core.store.length("BTCUSDT", "4h") == 1


def test_handle_message_tolerates_garbage(strategy):
    core = SignalCore(strategy)

    async def scenario():
        stream = KlineStream(core, ["BTCUSDT"], socket_factory=None)
        bad_price = _kline(0, 100)
        bad_price["k"]["c"] = "abc"
        missing = _kline(0, 100)
        del missing["k"]["t"]
        return [
            await stream.handle_message("BTCUSDT", "15m", "not a dict"),
            await stream.handle_message("BTCUSDT", "15m", {"e": "error", "m": "closed"}),
            await stream.handle_message("BTCUSDT", "15m", {"result": None, "id": 1}),
            await stream.handle_message("BTCUSDT", "15m", bad_price),
            await stream.handle_message("BTCUSDT", "15m", missing),
        ]

    assert asyncio.run(scenario()) == [None] * 5
    assert core.store.length("BTCUSDT", "15m") == 0


def test_handler_errors_do_not_stop_ingestion(strategy):
    core = SignalCore(strategy)

    async def boom(symbol):
        raise RuntimeError("handler failed")

    async def scenario():
        stream = KlineStream(core, ["BTCUSDT"], socket_factory=None, on_fast_bar=boom)
        await stream.handle_message("BTCUSDT", "15m", _kline(0, 100))
        return await stream.handle_message("BTCUSDT", "15m", _kline(1, 101))

    assert asyncio.run(scenario()) == AppendResult.APPENDED
    assert core.store.length("BTCUSDT", "15m") == 2


def test_run_and_stop(strategy):
    core = SignalCore(strategy)
    opened = []
    messages = {
        ("BTCUSDT", "15m"): [_kline(i, 100 + i) for i in range(3)],
        ("BTCUSDT", "4h"): [_kline(0, 100, step=SLOW_STEP)],
        ("ETHUSDT", "15m"): [_kline(0, 50, symbol="ETHUSDT")],
        ("ETHUSDT", "4h"): [],
    }

    def factory(symbol, interval):
        opened.append((symbol, interval))
        return FakeSocket(messages[(symbol, interval)])

    async def scenario():
        stream = KlineStream(core, ["btcusdt", "ETHUSDT"], socket_factory=factory, recv_timeout=0.01)
        stream.start()
        for _ in range(200):
            if core.store.length("BTCUSDT", "15m") == 3 and core.store.length("ETHUSDT", "15m") == 1:
                break
            await asyncio.sleep(0.01)
        subs = stream.subscriptions
        await stream.stop()
        return stream, subs

    stream, subs = asyncio.run(scenario())
    assert len(subs) == 4
    assert sorted(opened) == sorted(messages)
    assert not stream.running
    assert core.store.length("BTCUSDT", "15m") == 3
    assert core.store.length("BTCUSDT", "4h") == 1
    assert core.store.length("ETHUSDT", "15m") == 1


def test_connection_errors_are_retried(strategy):
    core = SignalCore(strategy)
    attempts = []

    def factory(symbol, interval):
        attempts.append(interval)
        if len([a for a in attempts if a == interval]) == 1:
            raise ConnectionError("refused")
        return FakeSocket([_kline(0, 100, step=SLOW_STEP if interval == "4h" else FAST_STEP)])

    async def scenario():
        stream = KlineStream(core, ["BTCUSDT"], socket_factory=factory, recv_timeout=0.01, reconnect_delay=0.01)
        stream.start()
        for _ in range(200):
            if core.store.length("BTCUSDT", "15m") == 1 and core.store.length("BTCUSDT", "4h") == 1:
                break
            await asyncio.sleep(0.01)
        await stream.stop()

    asyncio.run(scenario())
    assert core.store.length("BTCUSDT", "15m") == 1
    assert core.store.length("BTCUSDT", "4h") == 1
    assert attempts.count("15m") >= 2


def test_quiet_socket_is_reopened(strategy):
    core = SignalCore(strategy)
    opened = []

    def factory(symbol, interval):
        opened.append(interval)
        return FakeSocket([])

    async def scenario():
        stream = KlineStream(
            core, ["BTCUSDT"], socket_factory=factory,
            recv_timeout=0.01, stale_after_s=0.03,
        )
        stream.start()
        for _ in range(300):
            if opened.count("15m") >= 3 and opened.count("4h") >= 3:
                break
            await asyncio.sleep(0.01)
        age = stream.last_data_age("BTCUSDT", "15m")
        await stream.stop()
        return age

    age = asyncio.run(scenario())
    assert opened.count("15m") >= 3
    assert opened.count("4h") >= 3
    assert age is not None and age < 1.0


def test_messages_keep_subscription_open(strategy):
    core = SignalCore(strategy)
    opened = []

    class TickingSocket(FakeSocket):
        async def recv(self):
            await asyncio.sleep(0.005)
            return {"e": "kline", "k": None}

    def factory(symbol, interval):
        opened.append(interval)
        return TickingSocket([])

    async def scenario():
        stream = KlineStream(core, ["BTCUSDT"], socket_factory=factory, recv_timeout=0.05, stale_after_s=0.5)
        stream.start()
        await asyncio.sleep(0.2)
        await stream.stop()

    asyncio.run(scenario())
    assert opened.count("15m") == 1
    assert opened.count("4h") == 1


def test_default_stale_limit_is_two_bars(strategy):
    stream = KlineStream(SignalCore(strategy), ["BTCUSDT"], socket_factory=None)
    assert stream._stale_limit("15m") == 1800
    assert stream._stale_limit("4h") == 28800
