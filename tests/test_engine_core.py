"""Unit tests for engine.core.SignalCore."""

from decimal import Decimal

import pytest
from tunnel_bot.core.errors import InvalidParameters
from tunnel_bot.core.types import SignalType, TrendDirection
from tunnel_bot.data.series_store import AppendResult, SeriesStore
from tunnel_bot.engine.core import SignalCore

from bars import BASE_TIME, make_bar


def _core(strategy, slow_bars, fast_bars):
    core = SignalCore(strategy)
    core.seed("BTCUSDT", "4h", slow_bars)
    core.seed("BTCUSDT", "15m", fast_bars)
    return core


def test_untracked_timeframe_ignored(strategy):
    core = SignalCore(strategy)
    assert core.on_closed_bar("BTCUSDT", "1h", make_bar(1, BASE_TIME)) == AppendResult.IGNORED


def test_symbol_mismatch_rejected(strategy):
    core = SignalCore(strategy)
    bar = make_bar(1, BASE_TIME, symbol="ETHUSDT")
    assert core.on_closed_bar("BTCUSDT", "15m", bar) == AppendResult.REJECTED_INVALID


def test_timeframe_case(strategy):
    core = SignalCore(strategy)
    assert core.on_closed_bar("BTCUSDT", "4H", make_bar(1, BASE_TIME)) == AppendResult.APPENDED
    assert core.store.length("BTCUSDT", "4h") == 1
    # "15M" is fifteen months, not the fast timeframe.
    assert core.on_closed_bar("BTCUSDT", "15M", make_bar(1, BASE_TIME)) == AppendResult.IGNORED
    assert core.store.length("BTCUSDT", "15m") == 0


def test_evaluate_entry_after_live_bars(strategy, slow_up, fast_long_setup):
    core = _core(strategy, slow_up, fast_long_setup[:20])
    assert core.evaluate("BTCUSDT") is None
    assert core.on_closed_bar("BTCUSDT", "15m", fast_long_setup[20]) == AppendResult.APPENDED
    assert core.evaluate("BTCUSDT") is None
    core.on_closed_bar("BTCUSDT", "15m", fast_long_setup[21])
    signal = core.evaluate("btcusdt")
    assert signal.type == SignalType.BUY
    assert signal.symbol == "BTCUSDT"


def test_duplicate_bar_does_not_change_decision(strategy, slow_up, fast_long_setup):
    core = _core(strategy, slow_up, fast_long_setup)
    before = core.evaluate("BTCUSDT")
    assert core.on_closed_bar("BTCUSDT", "15m", fast_long_setup[-1]) == AppendResult.REJECTED_OUT_OF_ORDER
    assert core.evaluate("BTCUSDT") == before


def test_check_exit_trailing(strategy, slow_up, fast_long_setup):
    core = _core(strategy, slow_up, fast_long_setup[:21])
    signal = core.check_exit("BTCUSDT", is_long=True)
    assert signal.type == SignalType.TAKE_PROFIT_EXIT


def test_check_exit_stop_first(strategy, slow_up, fast_long_setup):
    core = _core(strategy, slow_up, fast_long_setup[:21])
    signal = core.check_exit("BTCUSDT", is_long=True, stop_price=Decimal(111))
    assert signal.type == SignalType.STOP_LOSS_EXIT


def test_check_exit_none_while_trend_holds(strategy, slow_up, fast_long_setup):
    core = _core(strategy, slow_up, fast_long_setup[:20])
    assert core.check_exit("BTCUSDT", is_long=True, stop_price=Decimal(100)) is None


def test_get_tunnel_state(strategy, slow_up, fast_long_setup):
    core = _core(strategy, slow_up, fast_long_setup[:3])
    assert core.get_tunnel_state("BTCUSDT", "4h").direction == TrendDirection.BULLISH
    assert core.get_tunnel_state("BTCUSDT", "15m") is None
    assert core.get_tunnel_state("ETHUSDT", "4h") is None
    assert not core.ready("BTCUSDT")


def test_ready(strategy, slow_up, fast_long_setup):
    core = _core(strategy, slow_up, fast_long_setup)
    assert core.ready("BTCUSDT")


def test_uses_given_store(strategy):
    store = SeriesStore(caps={"15m": 6})
    core = SignalCore(strategy, store)
    assert core.store is store
    assert core.fast_timeframe == "15m"
    assert core.slow_timeframe == "4h"
    assert core.warmup_bars == 6


def test_history_cap_below_warmup_rejected(strategy):
    with pytest.raises(InvalidParameters):
        SignalCore(strategy, SeriesStore(caps={"4h": 5}))
    with pytest.raises(InvalidParameters):
        SignalCore(strategy, SeriesStore(caps={"15m": 3}))
