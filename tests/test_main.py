"""Unit tests for the main.py builders."""

import pytest
from tunnel_bot.core.config import Config
from tunnel_bot.core.errors import InvalidParameters

from main import build_core, build_strategy


def test_build_core_defaults():
    config = Config()
    core = build_core(config, build_strategy(config))
    assert core.warmup_bars == 338
    assert core.store.cap_for("4h") == 500


@pytest.mark.parametrize("overrides", [
    {"slow_history_cap": 300},
    {"fast_history_cap": 337},
    {"warmup_bars": 100},
])
def test_build_core_rejects_short_history(overrides):
    config = Config(**overrides)
    with pytest.raises(InvalidParameters):
        build_core(config, build_strategy(config))


def test_build_strategy_rejects_bad_timeframes():
    with pytest.raises(InvalidParameters):
        build_strategy(Config(fast_timeframe="4h", slow_timeframe="15m"))
    with pytest.raises(InvalidParameters):
        build_strategy(Config(slow_timeframe="4x"))
