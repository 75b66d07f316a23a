"""Indicators: decimal EMAs and tunnel classification."""

from tunnel_bot.indicators.ema import ema, latest_ema, smoothing_factor
from tunnel_bot.indicators.tunnel import (
    classify,
    classify_direction,
    is_near_band,
    latest_state,
    warmup_length,
)

__all__ = [
    "ema",
    "latest_ema",
    "smoothing_factor",
    "classify",
    "classify_direction",
    "is_near_band",
    "latest_state",
    "warmup_length",
]
