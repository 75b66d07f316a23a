"""Lot size and price filter helpers from exchange info, in Decimal."""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Optional, Tuple

DEFAULT_MIN_QTY = Decimal("0.001")
DEFAULT_LOT_STEP = Decimal("0.001")
DEFAULT_PRICE_TICK = Decimal("0.01")


def parse_symbol_filters(symbol_info: Optional[dict]) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Extract (min_qty, lot_step, price_tick) from symbol filters.
    Defaults apply when symbol_info is None or a filter is missing.
    """
    min_qty, lot_step, price_tick = DEFAULT_MIN_QTY, DEFAULT_LOT_STEP, DEFAULT_PRICE_TICK
    if not symbol_info:
        return min_qty, lot_step, price_tick
    for f in symbol_info.get("filters", []):
        if f.get("filterType") == "LOT_SIZE":
            min_qty = Decimal(str(f.get("minQty", min_qty)))
            lot_step = Decimal(str(f.get("stepSize", lot_step)))
        if f.get("filterType") == "PRICE_FILTER":
            price_tick = Decimal(str(f.get("tickSize", price_tick)))
    return min_qty, lot_step, price_tick


def round_quantity(qty: Decimal, min_qty: Decimal, step_size: Decimal) -> Decimal:
    """Round down to step size; return 0 if below min_qty."""
    if qty <= 0 or step_size <= 0:
        return Decimal(0)
    rounded = (qty / step_size).to_integral_value(rounding=ROUND_DOWN) * step_size
    if rounded < min_qty:
        return Decimal(0)
    return rounded


def round_price(price: Decimal, tick_size: Decimal) -> Decimal:
    """Round price to the nearest exchange tick."""
    if tick_size <= 0:
        return price
    return (price / tick_size).to_integral_value(rounding=ROUND_HALF_UP) * tick_size
