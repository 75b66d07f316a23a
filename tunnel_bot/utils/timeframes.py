"""Timeframe string helpers (Binance interval notation)."""

from datetime import timedelta

# "M" is a calendar month in Binance notation, taken as 30 days here.
_UNIT_MINUTES = {"m": 1, "h": 60, "d": 60 * 24, "w": 60 * 24 * 7, "M": 60 * 24 * 30}


def normalize_timeframe(tf: str) -> str:
    """Canonical interval string: lower case, except the month unit '1M'."""
    tf = tf.strip()
    if tf.endswith("M"):
        return tf
    return tf.lower()


def timeframe_minutes(tf: str) -> int:
    """Convert Binance-style timeframe (e.g. '15m', '4h', '1d', '1M') to minutes."""
    tf = normalize_timeframe(tf)
    unit = tf[-1:] if tf else ""
    if unit not in _UNIT_MINUTES or not tf[:-1].isdigit():
        raise ValueError(f"Unsupported timeframe: {tf}")
    return int(tf[:-1]) * _UNIT_MINUTES[unit]


def timeframe_delta(tf: str) -> timedelta:
    """Bar duration as a timedelta."""
    return timedelta(minutes=timeframe_minutes(tf))
