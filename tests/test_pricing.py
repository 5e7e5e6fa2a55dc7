from decimal import Decimal

import pytest

from keyshop_service.pricing import compute_amount, parse_wholesale, unit_price_for
from keyshop_service.tables import Commodity


def make_commodity(price="100", wholesale=None, enabled=True):
    return Commodity(price=Decimal(price), wholesale_enabled=enabled, wholesale=wholesale)


def test_flat_price_when_wholesale_disabled():
    commodity = make_commodity(wholesale="5-90\n10-80", enabled=False)
    assert compute_amount(12, commodity) == Decimal("1200")


@pytest.mark.parametrize("quantity, expected", [
    (1, Decimal("100")),
    (3, Decimal("300")),
    (5, Decimal("450")),
    (7, Decimal("630")),
    (10, Decimal("800")),
    (25, Decimal("2000")),
])
def test_largest_threshold_not_above_quantity_wins(quantity, expected):
    commodity = make_commodity(wholesale="5-90\n10-80")
    assert compute_amount(quantity, commodity) == expected


def test_tier_order_in_table_does_not_matter():
    ascending = make_commodity(wholesale="5-90\n10-80")
    descending = make_commodity(wholesale="10-80\n5-90")
    for quantity in range(1, 15):
        assert compute_amount(quantity, ascending) == compute_amount(quantity, descending)


def test_malformed_rows_are_skipped():
    assert parse_wholesale("5-90\nbroken\n1-2-3\n\nx-5\n10-80\n") == {5: Decimal("90"), 10: Decimal("80")}


def test_enabled_without_tiers_falls_back_to_flat_price():
    commodity = make_commodity(price="9.90", wholesale="")
    assert unit_price_for(4, commodity) == Decimal("9.90")
    assert compute_amount(4, commodity) == Decimal("39.60")
