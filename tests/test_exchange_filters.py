"""Unit tests for utils.exchange_filters."""

from decimal import Decimal

from tunnel_bot.utils.exchange_filters import (
    DEFAULT_LOT_STEP,
    DEFAULT_MIN_QTY,
    DEFAULT_PRICE_TICK,
    parse_symbol_filters,
    round_price,
    round_quantity,
)

BTC_INFO = {
    "symbol": "BTCUSDT",
    "filters": [
        {"filterType": "PRICE_FILTER", "tickSize": "0.10"},
        {"filterType": "LOT_SIZE", "minQty": "0.001", "stepSize": "0.001"},
    ],
}


def test_parse_symbol_filters():
    assert parse_symbol_filters(BTC_INFO) == (Decimal("0.001"), Decimal("0.001"), Decimal("0.10"))


def test_parse_symbol_filters_defaults():
    assert parse_symbol_filters(None) == (DEFAULT_MIN_QTY, DEFAULT_LOT_STEP, DEFAULT_PRICE_TICK)
    assert parse_symbol_filters({"filters": []}) == (DEFAULT_MIN_QTY, DEFAULT_LOT_STEP, DEFAULT_PRICE_TICK)


def test_round_quantity():
    assert round_quantity(Decimal("1.23456"), Decimal("0.001"), Decimal("0.001")) == Decimal("1.234")
    assert round_quantity(Decimal("0.0009"), Decimal("0.001"), Decimal("0.001")) == 0
    assert round_quantity(Decimal("-1"), Decimal("0.001"), Decimal("0.001")) == 0


def test_round_price():
    assert round_price(Decimal("100.05"), Decimal("0.1")) == Decimal("100.1")
    assert round_price(Decimal("113.8219"), Decimal("0.01")) == Decimal("113.82")
    assert round_price(Decimal("5"), Decimal("0")) == Decimal("5")
