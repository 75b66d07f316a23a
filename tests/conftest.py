"""Shared fixtures: small-period strategy and synthetic bar series."""

import pytest

from tunnel_bot.strategies.vegas_tunnel import VegasTunnelParams, VegasTunnelStrategy

from bars import DOWNTREND, FAST_START, LONG_SETUP, SHORT_SETUP, SLOW_STEP, UPTREND, series


@pytest.fixture
def params():
    return VegasTunnelParams(
        short_period=2,
        mid_periods=(3, 4),
        long_periods=(5, 6),
        near_tolerance="0.002",
        stop_buffer="0.002",
        risk_reward_ratio="2",
        stop_loss_pct="0.02",
        take_profit_pct="0.04",
        fast_timeframe="15m",
        slow_timeframe="4h",
    )


@pytest.fixture
def strategy(params):
    return VegasTunnelStrategy(params)


@pytest.fixture
def slow_up():
    return series(UPTREND, step=SLOW_STEP)


@pytest.fixture
def slow_down():
    return series(DOWNTREND, step=SLOW_STEP)


@pytest.fixture
def fast_long_setup():
    return series(LONG_SETUP, start=FAST_START)


@pytest.fixture
def fast_short_setup():
    return series(SHORT_SETUP, start=FAST_START)
