# purchases/services/balance_service.py

"""
SUPPLIER BALANCE AGGREGATOR

SupplierBalance is a cache of PurchaseOrder / PurchasePayment rows.

RULES (full recompute, never incremental):
- total_outstanding = Σ outstanding of payable, unpaid/partial orders
- total_paid        = Σ completed payments
- advance_balance   = Σ completed payments whose type is advance
- last_payment_date = payment_date of the latest completed payment
- payment_status:
    credit_limit > 0 and outstanding > limit  -> blocked
    any open order past its due date          -> overdue
    otherwise                                 -> current
"""

import logging

from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from ledger.money import ZERO, money, sum_money
from purchases.exceptions import SupplierPaymentError
from purchases.models import PurchaseOrder, PurchasePayment, Supplier, SupplierBalance

logger = logging.getLogger("payments")


# ======================================================
# SUPPLIER
# ======================================================


@transaction.atomic
def create_supplier(
    *,
    code: str,
    name: str,
    phone: str = "",
    email: str = "",
    address: str = "",
    payment_terms_days: int = 30,
    credit_limit="0.00",
    now=None,
) -> Supplier:
    """
    Supplier plus its (single) balance row.
    """
    supplier = Supplier.objects.create(
        code=code,
        name=name,
        phone=phone,
        email=email,
        address=address,
        payment_terms_days=payment_terms_days,
    )
    SupplierBalance.objects.create(supplier=supplier, credit_limit=money(credit_limit))

    logger.info(
        "Supplier created",
        extra={"supplier_id": str(supplier.id), "code": supplier.code},
    )
    return supplier


def get_supplier_balance(supplier) -> SupplierBalance:
    balance, _ = SupplierBalance.objects.get_or_create(supplier=supplier)
    return balance


# ======================================================
# RECOMPUTE
# ======================================================


def derive_payment_status(*, total_outstanding, credit_limit, has_overdue: bool) -> str:
    limit = money(credit_limit)
    if limit > ZERO and money(total_outstanding) > limit:
        return SupplierBalance.STATUS_BLOCKED
    if has_overdue:
        return SupplierBalance.STATUS_OVERDUE
    return SupplierBalance.STATUS_CURRENT


def refresh_supplier_balance(balance: SupplierBalance, *, now=None) -> SupplierBalance:
    now = now or timezone.now()
    today = timezone.localdate(now)
    supplier = balance.supplier

    open_orders = PurchaseOrder.objects.for_supplier(supplier).outstanding()
    completed = PurchasePayment.objects.for_supplier(supplier).completed()

    balance.total_outstanding = sum_money(open_orders, "outstanding_amount")
    balance.total_paid = sum_money(completed, "amount")
    balance.advance_balance = sum_money(completed.advances(), "amount")
    balance.last_payment_date = completed.aggregate(last=Max("payment_date"))["last"]
    balance.payment_status = derive_payment_status(
        total_outstanding=balance.total_outstanding,
        credit_limit=balance.credit_limit,
        has_overdue=open_orders.filter(due_date__lt=today).exists(),
    )
    balance.save()

    logger.info(
        "Supplier balance recomputed",
        extra={
            "supplier_id": str(supplier.id),
            "total_outstanding": str(balance.total_outstanding),
            "payment_status": balance.payment_status,
        },
    )
    return balance


@transaction.atomic
def refresh_for_supplier(supplier, *, now=None) -> SupplierBalance:
    balance = get_supplier_balance(supplier)
    balance = SupplierBalance.objects.select_for_update().get(pk=balance.pk)
    return refresh_supplier_balance(balance, now=now)


def refresh_all_balances(*, now=None) -> int:
    count = 0
    for supplier in Supplier.objects.filter(is_active=True).iterator():
        refresh_for_supplier(supplier, now=now)
        count += 1
    return count


# ======================================================
# CREDIT
# ======================================================


def can_make_new_purchase(balance: SupplierBalance, amount) -> bool:
    """
    RULES:
    - blocked supplier -> never
    - no limit (0)     -> always
    - otherwise outstanding + amount must stay within the limit
    """
    if balance.payment_status == SupplierBalance.STATUS_BLOCKED:
        return False

    limit = money(balance.credit_limit)
    if limit <= ZERO:
        return True

    return money(balance.total_outstanding) + money(amount) <= limit


@transaction.atomic
def update_credit_limit(balance: SupplierBalance, new_limit, *, user=None, now=None) -> SupplierBalance:
    new_limit = money(new_limit)
    if new_limit < ZERO:
        raise SupplierPaymentError("credit_limit cannot be negative")

    balance = SupplierBalance.objects.select_for_update().get(pk=balance.pk)
    old_limit = balance.credit_limit
    balance.credit_limit = new_limit
    balance.save(update_fields=["credit_limit", "updated_at"])

    logger.info(
        "Supplier credit limit changed",
        extra={
            "supplier_id": str(balance.supplier_id),
            "old_limit": str(old_limit),
            "new_limit": str(new_limit),
            "user_id": getattr(user, "pk", None),
        },
    )
    return refresh_supplier_balance(balance, now=now)


def get_balance_summary(supplier, *, now=None) -> dict:
    now = now or timezone.now()
    today = timezone.localdate(now)
    balance = get_supplier_balance(supplier)

    return {
        "supplier": supplier.name,
        "total_outstanding": money(balance.total_outstanding),
        "total_paid": money(balance.total_paid),
        "advance_balance": money(balance.advance_balance),
        "credit_limit": money(balance.credit_limit),
        "available_credit": balance.available_credit,
        "credit_utilization_percentage": balance.credit_utilization_percentage,
        "payment_status": balance.payment_status,
        "last_payment_date": balance.last_payment_date,
        "days_without_payment": balance.days_without_payment(today),
        "overdue_orders": PurchaseOrder.objects.for_supplier(supplier).past_due(today).count(),
    }
