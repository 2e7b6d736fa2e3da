from decimal import Decimal

import pytest

from pricing import discounted_price, order_total


@pytest.mark.parametrize(
    "price, discount, expected",
    [
        ("6000", 10, "5400"),
        ("19.99", 15, "16.9915"),
        ("100", 100, "0"),
        ("0", 50, "0"),
        ("250.50", 0, "250.50"),
    ],
)
def test_discounted_price(price, discount, expected):
    assert discounted_price(Decimal(price), discount) == Decimal(expected)


def test_zero_discount_is_identity():
    for price in ("0", "1", "0.10", "6000", "123.456"):
        assert discounted_price(Decimal(price), 0) == Decimal(price)


def test_order_total_multiplies_discounted_unit_price():
    assert order_total(Decimal("6000"), 10, 3) == Decimal("16200")


def test_repeated_calculation_has_no_drift():
    total = sum((discounted_price(Decimal("0.10"), 0) for _ in range(3)), Decimal(0))
    assert total == Decimal("0.30")
