# purchases/tests/helpers.py

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from purchases.models import PurchaseOrder
from purchases.services.balance_service import create_supplier
from purchases.services.payment_service import complete_payment, create_purchase_payment


def make_supplier(code: str = "SUP-001", *, credit_limit="0.00", terms: int = 30, **kwargs):
    return create_supplier(
        code=code,
        name=kwargs.pop("name", f"Supplier {code}"),
        credit_limit=Decimal(str(credit_limit)),
        payment_terms_days=terms,
        **kwargs,
    )


def make_order(supplier, amount, *, today, days_ago: int = 0, status=PurchaseOrder.STATUS_APPROVED):
    """
    Order dated `days_ago` before `today`, due after the supplier's terms.
    """
    return PurchaseOrder.objects.create(
        supplier=supplier,
        status=status,
        subtotal_amount=Decimal(str(amount)),
        total_amount=Decimal(str(amount)),
        order_date=today - timedelta(days=days_ago),
    )


def make_payment(supplier, amount, *, completed: bool = False, user=None, now=None):
    now = now or timezone.now()
    payment = create_purchase_payment(
        supplier_id=supplier.id,
        amount=Decimal(str(amount)),
        payment_method="bank",
        user=user,
        now=now,
    )
    if completed:
        result = complete_payment(payment, now=now)
        assert result, result.detail
        payment = result.value
    return payment
