"""
pricing.py — Order Amount Computation

Flat pricing: quantity × unit price.
Wholesale pricing: the commodity carries a tier table, one "threshold-price"
row per line, e.g.

    5-90
    10-80

The tier with the largest threshold that is still <= quantity sets the unit
price for the whole quantity (not incrementally). Without a matching tier
the flat price applies.
"""

from decimal import Decimal, InvalidOperation
from typing import Dict

from .tables import Commodity


def parse_wholesale(text: str) -> Dict[int, Decimal]:
    """
    Parses a wholesale tier table into {threshold: unit_price}.

    Rows that do not split into exactly two fields, or whose fields are not
    numeric, are skipped.
    """
    tiers = {}
    for line in (text or "").strip().splitlines():
        fields = line.strip().split("-")
        if len(fields) != 2:
            continue
        try:
            tiers[int(fields[0])] = Decimal(fields[1].strip())
        except (ValueError, InvalidOperation):
            continue
    return tiers


def unit_price_for(quantity: int, commodity: Commodity) -> Decimal:
    price = Decimal(commodity.price)
    if not commodity.wholesale_enabled:
        return price
    tiers = parse_wholesale(commodity.wholesale)
    for threshold in sorted(tiers, reverse=True):
        if quantity >= threshold:
            return tiers[threshold]
    return price


def compute_amount(quantity: int, commodity: Commodity) -> Decimal:
    """
    Computes the undiscounted order amount.

    Args:
        quantity (int): Number of units requested (>= 1).
        commodity (Commodity): Commodity carrying price and wholesale settings.

    Returns:
        Decimal: quantity × applicable unit price.
    """
    return quantity * unit_price_for(quantity, commodity)
