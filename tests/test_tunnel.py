"""Unit tests for indicators.tunnel."""

from decimal import Decimal

import pytest
from tunnel_bot.core.errors import InsufficientHistory
from tunnel_bot.core.types import TrendDirection
from tunnel_bot.indicators.tunnel import (
    classify,
    classify_direction,
    is_near_band,
    latest_state,
    warmup_length,
)

from bars import DOWNTREND, UPTREND, series

PERIODS = (2, (3, 4), (5, 6))


def test_warmup_length_is_longest_period():
    assert warmup_length(12, (144, 169), (288, 338)) == 338
    assert warmup_length(*PERIODS) == 6


def test_classify_direction():
    d = Decimal
    assert classify_direction(d(12), d(11), d(10), d(9)) == TrendDirection.BULLISH
    assert classify_direction(d(9), d(8), d(11), d(10)) == TrendDirection.BEARISH
    # Overlapping tunnels.
    assert classify_direction(d(11), d(9), d(10), d(8)) == TrendDirection.SIDEWAYS


def test_classify_direction_ties_are_sideways():
    d = Decimal
    assert classify_direction(d(10), d(10), d(10), d(10)) == TrendDirection.SIDEWAYS
    # mid_lower == long_upper touches, no full separation
    assert classify_direction(d(12), d(10), d(10), d(9)) == TrendDirection.SIDEWAYS
    assert classify_direction(d(10), d(9), d(11), d(10)) == TrendDirection.SIDEWAYS


def test_is_near_band_edges_inclusive():
    tol = Decimal("0.002")
    lo, hi = Decimal(100), Decimal(101)
    assert is_near_band(Decimal("99.8"), lo, hi, tol)
    assert not is_near_band(Decimal("99.79"), lo, hi, tol)
    assert is_near_band(Decimal("101.202"), lo, hi, tol)
    assert not is_near_band(Decimal("101.21"), lo, hi, tol)


def test_classify_alignment_and_warmup():
    bars = series(UPTREND)
    states = classify(bars, *PERIODS)
    assert len(states) == len(bars)
    assert all(s is None for s in states[:5])
    assert all(s is not None for s in states[5:])
    assert states[5].timestamp == bars[5].open_time


def test_classify_too_short_all_none():
    assert classify(series([1, 2, 3]), *PERIODS) == [None, None, None]


def test_latest_state_uptrend_is_bullish():
    state = latest_state(series(UPTREND), *PERIODS)
    assert state.direction == TrendDirection.BULLISH
    assert state.close == Decimal(119)
    assert state.mid_upper == Decimal(118)
    assert state.mid_lower == Decimal("117.5")
    assert float(state.long_upper) == pytest.approx(117.0)
    assert float(state.long_lower) == pytest.approx(116.5)
    assert state.mid_upper >= state.mid_lower
    assert state.long_upper >= state.long_lower


def test_latest_state_downtrend_is_bearish():
    state = latest_state(series(DOWNTREND), *PERIODS)
    assert state.direction == TrendDirection.BEARISH
    assert state.mid_lower == Decimal(182)
    assert state.mid_upper == Decimal("182.5")


def test_latest_state_flat_is_sideways():
    state = latest_state(series([100] * 10), *PERIODS)
    assert state.direction == TrendDirection.SIDEWAYS


def test_latest_state_insufficient_history():
    with pytest.raises(InsufficientHistory):
        latest_state(series(UPTREND[:5]), *PERIODS)


def test_classify_is_idempotent():
    bars = series(UPTREND + [110, 114.1])
    assert classify(bars, *PERIODS) == classify(tuple(bars), *PERIODS)
