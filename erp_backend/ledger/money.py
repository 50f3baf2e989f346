# ledger/money.py

"""
MONEY HELPERS

All money is fixed-point Decimal with 2 decimal places.
Floats never enter a sum or a comparison.
"""

from decimal import ROUND_HALF_UP, Decimal

from django.db.models import Sum
from django.db.models.functions import Coalesce

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def money(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def percent(part, whole) -> Decimal:
    whole = money(whole)
    if whole <= ZERO:
        return ZERO
    return (money(part) / whole * HUNDRED).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def sum_money(queryset, field: str) -> Decimal:
    """
    Aggregate SUM(field) over a queryset, 0.00 when empty.
    """
    total = queryset.aggregate(
        total=Coalesce(Sum(field), ZERO)
    )["total"]
    return money(total)
