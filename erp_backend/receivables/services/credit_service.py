# receivables/services/credit_service.py

"""
CUSTOMER CREDIT AGGREGATOR

Every number on CustomerCreditLimit except credit_limit and the scoring
inputs is re-derived from Sale / CustomerPaymentReceive rows here.

GUARANTEES:
- refresh_credit_limit() is a full recompute: calling it twice yields the
  same row
- A manual credit hold (block_credit) survives recomputes until
  unblock_credit()
"""

import logging
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Min, Q
from django.utils import timezone

from ledger.money import ZERO, money, sum_money
from receivables.conf import receivables_setting
from receivables.models import CustomerCreditLimit, CustomerPaymentReceive
from sales.models import Sale

logger = logging.getLogger("receivables")


# ======================================================
# ACCOUNT
# ======================================================


@transaction.atomic
def open_credit_account(customer, *, credit_limit=None, approved_by=None, now=None):
    """
    Create the customer's credit row (one per customer).
    Returns the existing row when already opened.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)

    existing = CustomerCreditLimit.objects.filter(customer=customer).first()
    if existing is not None:
        return existing

    if credit_limit is None:
        credit_limit = receivables_setting("DEFAULT_CREDIT_LIMIT")

    account = CustomerCreditLimit.objects.create(
        customer=customer,
        credit_limit=money(credit_limit),
        payment_terms_days=customer.payment_terms_days,
        last_review_date=today,
        next_review_date=today
        + timedelta(days=receivables_setting("CREDIT_REVIEW_INTERVAL_DAYS")),
        approved_by=approved_by,
        approved_at=now if approved_by is not None else None,
    )

    logger.info(
        "Credit account opened",
        extra={
            "customer_id": str(customer.id),
            "credit_limit": str(account.credit_limit),
        },
    )

    return refresh_credit_limit(account, now=now)


def get_credit_account(customer, *, now=None) -> CustomerCreditLimit:
    account = CustomerCreditLimit.objects.filter(customer=customer).first()
    if account is None:
        account = open_credit_account(customer, now=now)
    return account


# ======================================================
# RECOMPUTE
# ======================================================


def _open_sales(customer):
    return Sale.objects.for_customer(customer).outstanding()


def refresh_credit_limit(account: CustomerCreditLimit, *, now=None) -> CustomerCreditLimit:
    """
    Full re-derivation of the customer's balances and credit_status.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)
    customer = account.customer

    Sale.objects.for_customer(customer).flag_overdue(today)
    open_sales = _open_sales(customer)
    past_due = open_sales.filter(due_date__lt=today)

    current_balance = sum_money(open_sales, "outstanding_amount")
    overdue_amount = sum_money(past_due, "outstanding_amount")

    oldest_due = past_due.aggregate(oldest=Min("due_date"))["oldest"]
    days_past_due = (today - oldest_due).days if oldest_due else 0

    total_paid = sum_money(
        CustomerPaymentReceive.objects.for_customer(customer).counted(),
        "total_amount",
    )

    account.current_balance = current_balance
    account.overdue_amount = overdue_amount
    account.days_past_due = days_past_due
    account.total_paid = total_paid
    account.available_credit = max(ZERO, money(account.credit_limit) - current_balance)

    if account.credit_hold:
        account.credit_status = CustomerCreditLimit.STATUS_BLOCKED
    else:
        account.credit_status = account.derive_credit_status()

    account.save(
        update_fields=[
            "current_balance",
            "overdue_amount",
            "days_past_due",
            "total_paid",
            "available_credit",
            "credit_status",
            "updated_at",
        ]
    )

    return account


@transaction.atomic
def refresh_customer_balance(customer, *, now=None) -> CustomerCreditLimit:
    account = get_credit_account(customer, now=now)
    account = CustomerCreditLimit.objects.select_for_update().get(pk=account.pk)
    return refresh_credit_limit(account, now=now)


# ======================================================
# CREDIT DECISIONS
# ======================================================


def can_approve_credit(account: CustomerCreditLimit, amount) -> bool:
    amount = money(amount)

    if account.is_credit_blocked:
        return False

    if account.requires_approval and amount > money(account.auto_approval_limit):
        return False

    return money(account.current_balance) + amount <= money(account.credit_limit)


def can_make_credit_sale(customer, amount, *, now=None) -> dict:
    account = refresh_customer_balance(customer, now=now)
    amount = money(amount)

    result = {
        "can_proceed": False,
        "reason": "",
        "available_credit": account.available_credit,
        "credit_status": account.credit_status,
        "requires_approval": False,
    }

    if account.is_credit_blocked:
        result["reason"] = f"Customer credit is {account.credit_status}"
        return result

    if amount > money(account.available_credit):
        result["reason"] = "Sale amount exceeds available credit limit"
        return result

    if amount > money(account.auto_approval_limit):
        result["requires_approval"] = True

    if money(account.payment_reliability_score) < Decimal("70"):
        result["requires_approval"] = True

    result["can_proceed"] = True
    return result


# ======================================================
# SCORING
# ======================================================


def update_credit_score(account: CustomerCreditLimit) -> int:
    """
    100 minus penalties for late payments, delays, days past due and
    utilization, clamped to 0..100.
    """
    score = Decimal("100")
    score -= min(Decimal("30"), Decimal(account.late_payment_count * 2))
    score -= min(Decimal("20"), Decimal(account.payment_delay_count))

    if account.days_past_due > 0:
        score -= min(Decimal("25"), Decimal(account.days_past_due) / 2)

    utilization = account.credit_utilization_percentage
    if utilization > Decimal("80"):
        score -= Decimal("15")
    elif utilization > Decimal("60"):
        score -= Decimal("10")

    account.credit_score = int(max(Decimal("0"), min(Decimal("100"), score)))
    account.save(update_fields=["credit_score", "updated_at"])
    return account.credit_score


def update_payment_reliability_score(account: CustomerCreditLimit, *, now=None) -> Decimal:
    """
    Share of the customer's sales that were settled on time.
    Leaves the score untouched when the customer has no sales.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)

    sales = list(Sale.objects.for_customer(account.customer))
    if not sales:
        return money(account.payment_reliability_score)

    settled = [s for s in sales if s.payment_status in (Sale.PAYMENT_PAID, Sale.PAYMENT_OVERPAID)]
    on_time = sum(1 for s in settled if s.get_days_overdue(today) == 0)
    late = len(settled) - on_time
    delayed = sum(
        1
        for s in sales
        if s.payment_status in Sale.OPEN_PAYMENT_STATUSES and s.is_past_due(today)
    )

    account.payment_reliability_score = money(Decimal(on_time) / Decimal(len(sales)) * 100)
    account.late_payment_count = late
    account.payment_delay_count = delayed
    account.save(
        update_fields=[
            "payment_reliability_score",
            "late_payment_count",
            "payment_delay_count",
            "updated_at",
        ]
    )
    return account.payment_reliability_score


# ======================================================
# REVIEW & LIMIT CHANGES
# ======================================================


@transaction.atomic
def conduct_review(account: CustomerCreditLimit, *, reviewed_by=None, notes: str = "", now=None):
    now = now or timezone.now()
    today = timezone.localdate(now)

    account = CustomerCreditLimit.objects.select_for_update().get(pk=account.pk)

    update_payment_reliability_score(account, now=now)
    refresh_credit_limit(account, now=now)
    update_credit_score(account)

    account.reviewed_by = reviewed_by
    account.last_reviewed_at = now
    account.last_review_date = today
    account.next_review_date = today + timedelta(
        days=receivables_setting("CREDIT_REVIEW_INTERVAL_DAYS")
    )
    account.risk_assessment = (notes or "").strip()
    account.save(
        update_fields=[
            "reviewed_by",
            "last_reviewed_at",
            "last_review_date",
            "next_review_date",
            "risk_assessment",
            "updated_at",
        ]
    )

    logger.info(
        "Credit review conducted",
        extra={
            "customer_id": str(account.customer_id),
            "credit_status": account.credit_status,
            "credit_score": account.credit_score,
        },
    )
    return account


def _change_credit_limit(account, new_limit, *, approved_by, reason, now):
    account.credit_limit = new_limit
    account.approved_by = approved_by
    account.approved_at = now
    account.credit_notes = (reason or "").strip()
    account.save(
        update_fields=["credit_limit", "approved_by", "approved_at", "credit_notes", "updated_at"]
    )
    refresh_credit_limit(account, now=now)


@transaction.atomic
def increase_credit_limit(account, new_limit, *, approved_by=None, reason: str = "", now=None) -> bool:
    now = now or timezone.now()
    new_limit = money(new_limit)

    account = CustomerCreditLimit.objects.select_for_update().get(pk=account.pk)
    if new_limit <= money(account.credit_limit):
        logger.warning(
            "Credit limit increase rejected: not above current limit",
            extra={
                "customer_id": str(account.customer_id),
                "current_limit": str(account.credit_limit),
                "new_limit": str(new_limit),
            },
        )
        return False

    old_limit = account.credit_limit
    _change_credit_limit(account, new_limit, approved_by=approved_by, reason=reason, now=now)

    logger.info(
        "Credit limit increased",
        extra={
            "customer_id": str(account.customer_id),
            "old_limit": str(old_limit),
            "new_limit": str(new_limit),
        },
    )
    return True


@transaction.atomic
def decrease_credit_limit(account, new_limit, *, approved_by=None, reason: str = "", now=None) -> bool:
    now = now or timezone.now()
    new_limit = money(new_limit)

    account = CustomerCreditLimit.objects.select_for_update().get(pk=account.pk)
    if new_limit >= money(account.credit_limit) or new_limit < ZERO:
        logger.warning(
            "Credit limit decrease rejected",
            extra={
                "customer_id": str(account.customer_id),
                "current_limit": str(account.credit_limit),
                "new_limit": str(new_limit),
            },
        )
        return False

    old_limit = account.credit_limit
    _change_credit_limit(account, new_limit, approved_by=approved_by, reason=reason, now=now)

    logger.info(
        "Credit limit decreased",
        extra={
            "customer_id": str(account.customer_id),
            "old_limit": str(old_limit),
            "new_limit": str(new_limit),
        },
    )
    return True


@transaction.atomic
def block_credit(account, *, reason: str = "", user=None, now=None):
    account = CustomerCreditLimit.objects.select_for_update().get(pk=account.pk)
    account.credit_hold = True
    account.credit_status = CustomerCreditLimit.STATUS_BLOCKED
    account.credit_notes = (reason or "").strip()
    account.save(update_fields=["credit_hold", "credit_status", "credit_notes", "updated_at"])

    logger.info(
        "Customer credit blocked",
        extra={
            "customer_id": str(account.customer_id),
            "user_id": getattr(user, "pk", None),
            "reason": account.credit_notes,
        },
    )
    return account


@transaction.atomic
def unblock_credit(account, *, approved_by=None, reason: str = "", now=None):
    now = now or timezone.now()

    account = CustomerCreditLimit.objects.select_for_update().get(pk=account.pk)
    account.credit_hold = False
    account.approved_by = approved_by
    account.approved_at = now
    account.credit_notes = (reason or "").strip()
    account.save(
        update_fields=["credit_hold", "approved_by", "approved_at", "credit_notes", "updated_at"]
    )
    refresh_credit_limit(account, now=now)

    logger.info(
        "Customer credit unblocked",
        extra={
            "customer_id": str(account.customer_id),
            "credit_status": account.credit_status,
        },
    )
    return account


# ======================================================
# READ MODELS
# ======================================================


def get_credit_summary(customer, *, now=None) -> dict:
    account = get_credit_account(customer, now=now)

    return {
        "customer_id": str(customer.id),
        "customer_name": customer.name,
        "credit_limit": account.credit_limit,
        "current_balance": account.current_balance,
        "available_credit": account.available_credit,
        "overdue_amount": account.overdue_amount,
        "total_paid": account.total_paid,
        "credit_status": account.credit_status,
        "credit_score": account.credit_score,
        "payment_reliability_score": account.payment_reliability_score,
        "payment_terms": {
            "days": account.payment_terms_days,
            "type": account.payment_terms_type,
            "display": account.payment_terms_display,
            "early_discount_percentage": account.early_payment_discount_percentage,
            "early_discount_days": account.early_payment_discount_days,
        },
        "utilization_ratio": account.credit_utilization_percentage,
        "days_past_due": account.days_past_due,
        "last_review_date": account.last_review_date,
        "next_review_date": account.next_review_date,
    }


def customers_requiring_review(*, now=None):
    now = now or timezone.now()
    today = timezone.localdate(now)

    return (
        CustomerCreditLimit.objects.select_related("customer")
        .filter(
            Q(next_review_date__lte=today)
            | Q(credit_status__in=[
                CustomerCreditLimit.STATUS_WARNING,
                CustomerCreditLimit.STATUS_BLOCKED,
            ])
            | Q(days_past_due__gt=30)
            | Q(payment_reliability_score__lt=Decimal("70"))
        )
        .order_by("next_review_date")
    )
