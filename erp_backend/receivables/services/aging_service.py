# receivables/services/aging_service.py

"""
AR AGING

Buckets a customer's open sales by days past due and persists the result as
an immutable CustomerAgingSnapshot.

BUCKETS (days past due):
    <= 30     current_amount
    31 - 60   days_31_60
    61 - 90   days_61_90
    91 - 120  days_91_120
    > 120     days_over_120

RISK CASCADE (first match wins, then one-level escalation when credit
utilization exceeds HIGH_UTILIZATION_PERCENT):
    over 120 or reliability < 50   -> critical / legal
    91-120  or reliability < 70    -> high     / collection
    61-90   or reliability < 85    -> medium   / follow_up
    any overdue amount             -> medium   / follow_up
    otherwise                      -> low      / current
"""

import calendar
import logging
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, Min, Sum
from django.utils import timezone

from customers.models import Customer
from ledger.money import ZERO, money, percent
from receivables.conf import receivables_setting
from receivables.models import CustomerAgingSnapshot
from receivables.models.aging_snapshot import BUCKET_FIELDS
from receivables.services.credit_service import refresh_customer_balance
from sales.models import Sale

logger = logging.getLogger("receivables")


def bucket_for_days(days: int) -> str:
    if days <= 30:
        return "current_amount"
    if days <= 60:
        return "days_31_60"
    if days <= 90:
        return "days_61_90"
    if days <= 120:
        return "days_91_120"
    return "days_over_120"


def risk_for_days(days: int) -> str:
    if days <= 30:
        return CustomerAgingSnapshot.RISK_LOW
    if days <= 60:
        return CustomerAgingSnapshot.RISK_MEDIUM
    if days <= 90:
        return CustomerAgingSnapshot.RISK_HIGH
    return CustomerAgingSnapshot.RISK_CRITICAL


# ======================================================
# PERIODS
# ======================================================


def period_window(snapshot_type: str, today):
    """
    (start, end) dates of the period a snapshot of this type covers.
    """
    if snapshot_type == CustomerAgingSnapshot.TYPE_WEEKLY:
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)

    if snapshot_type == CustomerAgingSnapshot.TYPE_MONTHLY:
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last_day)

    if snapshot_type == CustomerAgingSnapshot.TYPE_QUARTERLY:
        first_month = 3 * ((today.month - 1) // 3) + 1
        last_month = first_month + 2
        last_day = calendar.monthrange(today.year, last_month)[1]
        return (
            today.replace(month=first_month, day=1),
            today.replace(month=last_month, day=last_day),
        )

    return today, today


def snapshot_exists(customer, snapshot_type: str, today) -> bool:
    start, end = period_window(snapshot_type, today)
    return (
        CustomerAgingSnapshot.objects.for_customer(customer)
        .by_type(snapshot_type)
        .between(start, end)
        .exists()
    )


# ======================================================
# CALCULATIONS
# ======================================================


def _open_sales(customer):
    return Sale.objects.for_customer(customer).outstanding().oldest_debt_first()


def calculate_aging_buckets(customer, *, today) -> dict:
    buckets = {field: ZERO for field in BUCKET_FIELDS}
    data = {
        "total_outstanding": ZERO,
        "overdue_amount": ZERO,
        "overdue_invoices_count": 0,
        "total_invoices_count": 0,
        "days_oldest_invoice": 0,
    }
    invoices = []

    for sale in _open_sales(customer):
        days = sale.get_days_overdue(today)
        amount = money(sale.outstanding_amount)
        bucket = bucket_for_days(days)

        buckets[bucket] += amount
        data["total_outstanding"] += amount
        data["total_invoices_count"] += 1

        if bucket != "current_amount":
            data["overdue_amount"] += amount
            data["overdue_invoices_count"] += 1

        data["days_oldest_invoice"] = max(data["days_oldest_invoice"], days)

        invoices.append(
            {
                "sale_id": str(sale.pk),
                "invoice_no": sale.invoice_no,
                "days_overdue": days,
                "bucket": bucket,
                "amount": str(amount),
            }
        )

    data.update(buckets)
    data["invoices"] = invoices
    return data


def calculate_credit_info(customer, *, now) -> dict:
    account = refresh_customer_balance(customer, now=now)

    return {
        "credit_limit": money(account.credit_limit),
        "available_credit": money(account.available_credit),
        "credit_utilization_percentage": account.credit_utilization_percentage,
    }


def calculate_payment_behavior(customer, *, today) -> dict:
    """
    Derived from settled sales only.
    """
    settled = list(
        Sale.objects.for_customer(customer).filter(
            payment_status__in=[Sale.PAYMENT_PAID, Sale.PAYMENT_OVERPAID]
        )
    )

    if not settled:
        return {
            "average_days_to_pay": ZERO,
            "payment_terms_days": customer.payment_terms_days,
            "payment_reliability_score": Decimal("100.00"),
            "late_payments_count": 0,
        }

    total_days = 0
    late = 0
    for sale in settled:
        paid_on = sale.last_payment_date
        if paid_on is None and sale.completed_at is not None:
            paid_on = timezone.localdate(sale.completed_at)
        if paid_on is not None:
            total_days += max(0, (paid_on - sale.sale_date).days)
        if sale.get_days_overdue(today) > 0:
            late += 1

    count = len(settled)
    return {
        "average_days_to_pay": money(Decimal(total_days) / Decimal(count)),
        "payment_terms_days": customer.payment_terms_days,
        "payment_reliability_score": percent(count - late, count),
        "late_payments_count": late,
    }


def assess_risk(
    *,
    days_61_90,
    days_91_120,
    days_over_120,
    overdue_amount,
    payment_reliability_score,
    credit_utilization_percentage,
):
    reliability = money(payment_reliability_score)

    if money(days_over_120) > ZERO or reliability < Decimal("50"):
        risk = CustomerAgingSnapshot.RISK_CRITICAL
        collection = CustomerAgingSnapshot.COLLECTION_LEGAL
    elif money(days_91_120) > ZERO or reliability < Decimal("70"):
        risk = CustomerAgingSnapshot.RISK_HIGH
        collection = CustomerAgingSnapshot.COLLECTION_COLLECTION
    elif (
        money(days_61_90) > ZERO
        or reliability < Decimal("85")
        or money(overdue_amount) > ZERO
    ):
        risk = CustomerAgingSnapshot.RISK_MEDIUM
        collection = CustomerAgingSnapshot.COLLECTION_FOLLOW_UP
    else:
        risk = CustomerAgingSnapshot.RISK_LOW
        collection = CustomerAgingSnapshot.COLLECTION_CURRENT

    threshold = Decimal(str(receivables_setting("HIGH_UTILIZATION_PERCENT")))
    if money(credit_utilization_percentage) > threshold:
        risk = CustomerAgingSnapshot.RISK_ESCALATION.get(risk, risk)

    return risk, collection


def _compute(customer, *, now) -> dict:
    today = timezone.localdate(now)

    data = calculate_aging_buckets(customer, today=today)
    data.update(calculate_credit_info(customer, now=now))
    data.update(calculate_payment_behavior(customer, today=today))

    data["risk_level"], data["collection_status"] = assess_risk(
        days_61_90=data["days_61_90"],
        days_91_120=data["days_91_120"],
        days_over_120=data["days_over_120"],
        overdue_amount=data["overdue_amount"],
        payment_reliability_score=data["payment_reliability_score"],
        credit_utilization_percentage=data["credit_utilization_percentage"],
    )
    return data


# ======================================================
# GENERATION
# ======================================================


@transaction.atomic
def generate_for_customer(
    customer,
    snapshot_type: str = CustomerAgingSnapshot.TYPE_DAILY,
    *,
    generated_by=None,
    now=None,
) -> CustomerAgingSnapshot:
    """
    Always creates a new snapshot row. Duplicate avoidance is the caller's
    job (see snapshot_exists / generate_snapshots).
    """
    now = now or timezone.now()
    today = timezone.localdate(now)

    data = _compute(customer, now=now)
    invoices = data.pop("invoices")

    snapshot = CustomerAgingSnapshot.objects.create(
        customer=customer,
        snapshot_date=today,
        snapshot_type=snapshot_type,
        generated_by=generated_by,
        generated_at=now,
        calculation_metadata={
            "as_of": today.isoformat(),
            "invoices": invoices,
            "high_utilization_percent": str(receivables_setting("HIGH_UTILIZATION_PERCENT")),
        },
        **data,
    )

    logger.info(
        "Aging snapshot generated",
        extra={
            "customer_id": str(customer.pk),
            "snapshot_id": str(snapshot.pk),
            "snapshot_type": snapshot_type,
            "total_outstanding": str(snapshot.total_outstanding),
            "risk_level": snapshot.risk_level,
        },
    )
    return snapshot


def customers_with_open_sales():
    return Customer.objects.filter(
        sales__payment_status__in=Sale.OPEN_PAYMENT_STATUSES,
        sales__outstanding_amount__gt=ZERO,
    ).distinct()


@transaction.atomic
def generate_snapshots(
    snapshot_type: str = CustomerAgingSnapshot.TYPE_DAILY,
    *,
    generated_by=None,
    now=None,
) -> int:
    """
    One snapshot per customer with open sales, skipping customers that
    already have one for the current period. Returns the number created.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)

    created = 0
    for customer in customers_with_open_sales():
        if snapshot_exists(customer, snapshot_type, today):
            continue
        generate_for_customer(customer, snapshot_type, generated_by=generated_by, now=now)
        created += 1

    logger.info(
        "Aging snapshots generated",
        extra={"snapshot_type": snapshot_type, "snapshots_created": created},
    )
    return created


# ======================================================
# READ MODELS
# ======================================================


def get_customer_aging(customer, *, now=None) -> dict:
    """
    Live aging for one customer (nothing persisted beyond the credit refresh).
    """
    now = now or timezone.now()

    data = _compute(customer, now=now)
    data["customer_id"] = str(customer.pk)
    data["customer_name"] = customer.name
    data["as_of"] = timezone.localdate(now)
    data["overdue_percentage"] = percent(data["overdue_amount"], data["total_outstanding"])
    return data


def get_aging_summary(*, now=None) -> dict:
    now = now or timezone.now()
    today = timezone.localdate(now)

    buckets = {field: ZERO for field in BUCKET_FIELDS}
    total = ZERO
    customers = set()
    high_risk_customers = set()

    for sale in Sale.objects.outstanding():
        days = sale.get_days_overdue(today)
        amount = money(sale.outstanding_amount)
        buckets[bucket_for_days(days)] += amount
        total += amount
        customers.add(sale.customer_id)
        if days > 60:
            high_risk_customers.add(sale.customer_id)

    overdue = total - buckets["current_amount"]

    return {
        "as_of": today,
        "total_outstanding": total,
        **buckets,
        "overdue_amount": overdue,
        "overdue_percentage": percent(overdue, total),
        "customer_count": len(customers - {None}),
        "high_risk_customers": len(high_risk_customers - {None}),
    }


def get_overdue_customers(days_past_due: int = 1, *, now=None) -> list[dict]:
    now = now or timezone.now()
    today = timezone.localdate(now)
    cutoff = today - timedelta(days=days_past_due)

    rows = (
        Sale.objects.outstanding()
        .filter(customer__isnull=False, due_date__lt=cutoff)
        .values("customer")
        .annotate(
            overdue_sales_count=Count("id"),
            total_overdue_amount=Sum("outstanding_amount"),
            oldest_due_date=Min("due_date"),
        )
        .order_by("-total_overdue_amount")
    )
    rows = list(rows)

    customers = Customer.objects.in_bulk([r["customer"] for r in rows])

    result = []
    for row in rows:
        max_days = (today - row["oldest_due_date"]).days
        result.append(
            {
                "customer": customers[row["customer"]],
                "overdue_sales_count": row["overdue_sales_count"],
                "total_overdue_amount": money(row["total_overdue_amount"]),
                "oldest_due_date": row["oldest_due_date"],
                "max_days_overdue": max_days,
                "risk_level": risk_for_days(max_days),
            }
        )
    return result
