# receivables/tests/helpers.py

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from customers.services.customer_service import create_customer
from receivables.services.receipt_service import create_payment_receive, verify_receipt
from sales.models import Sale

User = get_user_model()


def make_user(username: str = "ar-clerk"):
    return User.objects.create_user(username=username, password="pass1234")


def make_customer(code: str = "CUST-001", *, credit_limit="1000000.00", now=None, **kwargs):
    return create_customer(
        code=code,
        name=kwargs.pop("name", f"Customer {code}"),
        credit_limit=Decimal(str(credit_limit)),
        now=now,
        **kwargs,
    )


def make_sale(customer, amount, *, today, days_ago: int = 0, terms: int = 30) -> Sale:
    """
    Completed credit sale dated `days_ago` before `today`,
    due `terms` days after that.
    """
    return Sale.objects.create(
        customer=customer,
        subtotal_amount=Decimal(str(amount)),
        total_amount=Decimal(str(amount)),
        sale_date=today - timedelta(days=days_ago),
        payment_terms_days=terms,
    )


def make_verified_receipt(customer, amount, *, user=None, now=None):
    now = now or timezone.now()
    receipt = create_payment_receive(
        customer=customer,
        total_amount=Decimal(str(amount)),
        payment_method="bank",
        user=user,
        now=now,
    )
    result = verify_receipt(receipt, user=user, now=now)
    assert result, result.detail
    return result.value
