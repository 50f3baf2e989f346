# receivables/services/allocation_service.py

"""
CUSTOMER PAYMENT ALLOCATION SERVICE

Assigns slices of a CustomerPaymentReceive to the customer's sales and
drives every allocation through its lifecycle (ledger.lifecycle).

GUARANTEES:
- Σ applied allocations per receipt   <= receipt.total_amount
- Σ applied allocations per sale      <= sale.total_amount
- Every state change runs the same cascade, explicitly:
    receipt.refresh_allocation_amounts()
    sale.refresh_payment_status()
    refresh_customer_balance()
- Rule violations return a failed AllocationResult and write nothing

LOCK ORDER (select_for_update):
    receipt -> sale(s) in pk order -> allocation
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from ledger import lifecycle
from ledger.money import ZERO, money, sum_money
from ledger.results import AllocationError, AllocationResult
from receivables.models import CustomerPaymentAllocation, CustomerPaymentReceive
from receivables.services.credit_service import refresh_customer_balance
from sales.models import Sale

logger = logging.getLogger("payments")

AUTO_ALLOCATION_NOTE = "Auto-allocated payment"


# ======================================================
# LOCKING / CASCADE HELPERS
# ======================================================


def _pk(obj_or_pk):
    return getattr(obj_or_pk, "pk", obj_or_pk)


def _lock_receipt(receipt) -> CustomerPaymentReceive:
    return CustomerPaymentReceive.objects.select_for_update().get(pk=_pk(receipt))


def _lock_sale(sale) -> Sale:
    return Sale.objects.select_for_update().get(pk=_pk(sale))


def _lock_allocation(allocation) -> CustomerPaymentAllocation:
    return CustomerPaymentAllocation.all_objects.select_for_update().get(pk=_pk(allocation))


def _receipt_unallocated(receipt) -> Decimal:
    return money(receipt.total_amount) - sum_money(
        receipt.applied_allocations(), "allocated_amount"
    )


def _sale_room(sale) -> Decimal:
    return money(sale.total_amount) - sale.applied_allocation_total()


def _cascade(receipt, sale, *, now):
    receipt.refresh_allocation_amounts()
    sale.refresh_payment_status(now=now)
    refresh_customer_balance(receipt.customer, now=now)


def _reject(operation: str, error: AllocationError, detail: str, **context) -> AllocationResult:
    logger.warning(
        f"{operation} rejected: {detail}",
        extra={"error": error.value, **context},
    )
    return AllocationResult.failure(error, detail)


# ======================================================
# VALIDATION
# ======================================================


def _capacity_problem(receipt, sale, amount):
    if amount > _receipt_unallocated(receipt):
        return (
            AllocationError.INSUFFICIENT_UNALLOCATED,
            "Allocation amount exceeds unallocated payment amount",
        )
    if amount > _sale_room(sale):
        return (
            AllocationError.EXCEEDS_LEDGER_TOTAL,
            "Allocation amount exceeds sale outstanding amount",
        )
    return None


def _allocation_problem(receipt, sale, amount, *, require_allocatable: bool = True):
    if amount <= ZERO:
        return AllocationError.INVALID_AMOUNT, "Allocation amount must be greater than zero"

    if require_allocatable and receipt.status not in CustomerPaymentReceive.ALLOCATABLE_STATUSES:
        return AllocationError.WRONG_STATE, f"Payment is {receipt.status} and cannot be allocated"

    if receipt.status == CustomerPaymentReceive.STATUS_CANCELLED:
        return AllocationError.WRONG_STATE, "Payment is cancelled"

    if sale.customer_id != receipt.customer_id:
        return AllocationError.CUSTOMER_MISMATCH, "Sale does not belong to the paying customer"

    return _capacity_problem(receipt, sale, amount)


def validate_allocation(receipt, sale, amount) -> list[str]:
    """
    Human-readable problems with a prospective allocation. Read-only.
    """
    errors = []
    amount = money(amount)

    if amount <= ZERO:
        errors.append("Allocation amount must be greater than zero")

    if sale.customer_id != receipt.customer_id:
        errors.append("Sale does not belong to the same customer")

    if receipt.status not in CustomerPaymentReceive.ALLOCATABLE_STATUSES:
        errors.append(f"Payment is {receipt.status} and cannot be allocated")

    if amount > _receipt_unallocated(receipt):
        errors.append("Allocation amount exceeds unallocated payment amount")

    if sale.payment_status in (Sale.PAYMENT_PAID, Sale.PAYMENT_OVERPAID):
        errors.append("Sale is already fully paid")
    elif amount > _sale_room(sale):
        errors.append("Allocation amount exceeds sale outstanding amount")

    already = (
        CustomerPaymentAllocation.objects.for_payment(receipt)
        .for_sale(sale)
        .filter(status__in=[lifecycle.STATUS_PENDING, lifecycle.STATUS_APPLIED])
        .exists()
    )
    if already:
        errors.append("Payment is already allocated to this sale")

    return errors


# ======================================================
# CREATE
# ======================================================


@transaction.atomic
def create_allocation(
    receipt,
    sale,
    amount,
    *,
    user=None,
    allocation_type: str = CustomerPaymentAllocation.TYPE_MANUAL,
    notes: str = "",
    now=None,
) -> AllocationResult:
    """
    Create a PENDING allocation. Pending rows are never counted, so nothing
    is recomputed until apply_allocation().
    """
    now = now or timezone.now()
    amount = money(amount)

    receipt = _lock_receipt(receipt)
    sale = _lock_sale(sale)

    problem = _allocation_problem(receipt, sale, amount, require_allocatable=False)
    if problem:
        return _reject(
            "Pending allocation",
            *problem,
            payment_id=str(receipt.pk),
            sale_id=str(sale.pk),
            amount=str(amount),
        )

    allocation = CustomerPaymentAllocation.objects.create(
        payment_receive=receipt,
        sale=sale,
        customer_id=receipt.customer_id,
        allocated_amount=amount,
        allocation_type=allocation_type,
        allocation_date=timezone.localdate(now),
        allocated_by=user,
        notes=(notes or "").strip(),
    )

    logger.info(
        "Pending allocation created",
        extra={
            "allocation_id": str(allocation.pk),
            "payment_id": str(receipt.pk),
            "sale_id": str(sale.pk),
            "amount": str(amount),
        },
    )
    return AllocationResult.success(allocation)


@transaction.atomic
def allocate_to_sale(receipt, sale, amount, *, user=None, notes: str = "", now=None) -> AllocationResult:
    """
    MANUAL ALLOCATION (atomic)

    RULES:
    - receipt must be allocatable (verified / allocated)
    - 0 < amount <= receipt unallocated amount
    - amount <= sale outstanding amount
    - sale must belong to the receipt's customer
    On failure nothing is created and nothing is recomputed.
    """
    now = now or timezone.now()
    amount = money(amount)

    receipt = _lock_receipt(receipt)
    sale = _lock_sale(sale)

    problem = _allocation_problem(receipt, sale, amount)
    if problem:
        return _reject(
            "Manual allocation",
            *problem,
            payment_id=str(receipt.pk),
            sale_id=str(sale.pk),
            amount=str(amount),
        )

    allocation = CustomerPaymentAllocation.objects.create(
        payment_receive=receipt,
        sale=sale,
        customer_id=receipt.customer_id,
        allocated_amount=amount,
        allocation_type=CustomerPaymentAllocation.TYPE_MANUAL,
        allocation_date=timezone.localdate(now),
        status=lifecycle.STATUS_APPLIED,
        applied_at=now,
        allocated_by=user,
        notes=(notes or "").strip(),
    )

    _cascade(receipt, sale, now=now)

    logger.info(
        "Payment allocated to sale",
        extra={
            "allocation_id": str(allocation.pk),
            "payment_id": str(receipt.pk),
            "sale_id": str(sale.pk),
            "amount": str(amount),
            "unallocated_amount": str(receipt.unallocated_amount),
        },
    )
    return AllocationResult.success(allocation)


@transaction.atomic
def auto_allocate_payment(receipt, *, user=None, now=None) -> AllocationResult:
    """
    WATERFALL ALLOCATION (atomic)

    Oldest debt first: due_date (nulls last), sale_date, created_at.
    Each open sale receives min(remaining, outstanding) as an applied
    automatic allocation until the receipt is exhausted.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)

    receipt = _lock_receipt(receipt)

    if receipt.status not in CustomerPaymentReceive.ALLOCATABLE_STATUSES:
        return _reject(
            "Auto allocation",
            AllocationError.WRONG_STATE,
            f"Payment is {receipt.status} and cannot be allocated",
            payment_id=str(receipt.pk),
        )

    remaining = _receipt_unallocated(receipt)
    if remaining <= ZERO:
        return AllocationResult.success([])

    ordered_ids = list(
        Sale.objects.for_customer(receipt.customer)
        .outstanding()
        .oldest_debt_first()
        .values_list("pk", flat=True)
    )
    locked = {
        s.pk: s
        for s in Sale.objects.select_for_update().filter(pk__in=ordered_ids).order_by("pk")
    }

    allocations = []
    for sale_id in ordered_ids:
        if remaining <= ZERO:
            break

        sale = locked[sale_id]
        amount = min(remaining, _sale_room(sale))
        if amount <= ZERO:
            continue

        allocation = CustomerPaymentAllocation.objects.create(
            payment_receive=receipt,
            sale=sale,
            customer_id=receipt.customer_id,
            allocated_amount=amount,
            allocation_type=CustomerPaymentAllocation.TYPE_AUTOMATIC,
            allocation_date=today,
            status=lifecycle.STATUS_APPLIED,
            applied_at=now,
            allocated_by=user,
            notes=AUTO_ALLOCATION_NOTE,
        )
        sale.refresh_payment_status(now=now)

        allocations.append(allocation)
        remaining -= amount

    receipt.refresh_allocation_amounts()
    refresh_customer_balance(receipt.customer, now=now)

    logger.info(
        "Payment auto-allocated",
        extra={
            "payment_id": str(receipt.pk),
            "allocations": len(allocations),
            "allocated_amount": str(receipt.allocated_amount),
            "unallocated_amount": str(receipt.unallocated_amount),
        },
    )
    return AllocationResult.success(allocations)


# ======================================================
# LIFECYCLE
# ======================================================


def _lock_for_transition(allocation):
    receipt = _lock_receipt(allocation.payment_receive_id)
    sale = _lock_sale(allocation.sale_id)
    allocation = _lock_allocation(allocation)
    return receipt, sale, allocation


def _transition_problem(allocation, to_status):
    if allocation.is_deleted:
        return AllocationError.ALREADY_TERMINAL, "Allocation has been deleted"

    error = lifecycle.transition_error(from_status=allocation.status, to_status=to_status)
    if error:
        return error, f"Cannot move allocation from {allocation.status} to {to_status}"
    return None


@transaction.atomic
def apply_allocation(allocation, *, approved_by=None, now=None) -> AllocationResult:
    now = now or timezone.now()
    receipt, sale, allocation = _lock_for_transition(allocation)

    problem = _transition_problem(allocation, lifecycle.STATUS_APPLIED)
    if problem is None and receipt.status not in CustomerPaymentReceive.ALLOCATABLE_STATUSES:
        problem = AllocationError.WRONG_STATE, f"Payment is {receipt.status} and cannot be allocated"
    if problem is None:
        problem = _capacity_problem(receipt, sale, money(allocation.allocated_amount))
    if problem:
        return _reject("Apply allocation", *problem, allocation_id=str(allocation.pk))

    allocation.mark_applied(approved_by=approved_by, now=now)
    _cascade(receipt, sale, now=now)

    logger.info(
        "Allocation applied",
        extra={
            "allocation_id": str(allocation.pk),
            "approved_by": getattr(approved_by, "pk", None),
        },
    )
    return AllocationResult.success(allocation)


@transaction.atomic
def reverse_allocation(allocation, *, user=None, reason: str = "", now=None) -> AllocationResult:
    now = now or timezone.now()
    receipt, sale, allocation = _lock_for_transition(allocation)

    problem = _transition_problem(allocation, lifecycle.STATUS_REVERSED)
    if problem:
        return _reject("Reverse allocation", *problem, allocation_id=str(allocation.pk))

    allocation.mark_reversed(reason=reason, now=now)
    _cascade(receipt, sale, now=now)

    logger.info(
        "Allocation reversed",
        extra={
            "allocation_id": str(allocation.pk),
            "user_id": getattr(user, "pk", None),
            "reason": allocation.reversal_reason,
        },
    )
    return AllocationResult.success(allocation)


@transaction.atomic
def cancel_allocation(allocation, *, reason: str = "", user=None, now=None) -> AllocationResult:
    now = now or timezone.now()
    receipt, sale, allocation = _lock_for_transition(allocation)

    problem = _transition_problem(allocation, lifecycle.STATUS_CANCELLED)
    if problem:
        return _reject("Cancel allocation", *problem, allocation_id=str(allocation.pk))

    was_applied = allocation.is_applied
    allocation.mark_cancelled(reason=reason)

    if was_applied:
        _cascade(receipt, sale, now=now)

    logger.info(
        "Allocation cancelled",
        extra={
            "allocation_id": str(allocation.pk),
            "user_id": getattr(user, "pk", None),
            "was_applied": was_applied,
        },
    )
    return AllocationResult.success(allocation)


@transaction.atomic
def delete_allocation(allocation, *, user=None, now=None) -> AllocationResult:
    """
    Soft delete. Removing an applied row is equivalent to reversing it.
    """
    now = now or timezone.now()
    receipt, sale, allocation = _lock_for_transition(allocation)

    if allocation.is_deleted:
        return _reject(
            "Delete allocation",
            AllocationError.ALREADY_TERMINAL,
            "Allocation has been deleted",
            allocation_id=str(allocation.pk),
        )

    was_applied = allocation.is_applied
    allocation.soft_delete(now=now)

    if was_applied:
        _cascade(receipt, sale, now=now)

    logger.info(
        "Allocation deleted",
        extra={
            "allocation_id": str(allocation.pk),
            "user_id": getattr(user, "pk", None),
            "was_applied": was_applied,
        },
    )
    return AllocationResult.success(allocation)


def reverse_receipt_allocation(receipt, allocation, *, user=None, reason: str = "", now=None) -> AllocationResult:
    if allocation.payment_receive_id != receipt.pk:
        return _reject(
            "Reverse allocation",
            AllocationError.NOT_OWNED,
            "Allocation belongs to another payment",
            allocation_id=str(allocation.pk),
            payment_id=str(receipt.pk),
        )
    return reverse_allocation(allocation, user=user, reason=reason, now=now)


# ======================================================
# READ MODELS
# ======================================================


def _priority_score(sale, *, today) -> Decimal:
    """
    Overdue days weigh most (max 100), then age (max 50),
    then size (max 25, one point per million outstanding).
    """
    score = Decimal("0")

    days_overdue = sale.get_days_overdue(today)
    if days_overdue > 0:
        score += min(Decimal(days_overdue * 2), Decimal("100"))

    days_old = max(0, (today - sale.sale_date).days)
    score += min(Decimal(days_old) / 2, Decimal("50"))

    score += min(money(sale.outstanding_amount) / Decimal("1000000"), Decimal("25"))

    return money(score)


def get_allocation_suggestions(receipt, *, now=None) -> list[dict]:
    now = now or timezone.now()
    today = timezone.localdate(now)

    remaining = _receipt_unallocated(receipt)
    if remaining <= ZERO:
        return []

    sales = list(Sale.objects.for_customer(receipt.customer).outstanding())
    ranked = sorted(
        ((sale, _priority_score(sale, today=today)) for sale in sales),
        key=lambda pair: pair[1],
        reverse=True,
    )

    suggestions = []
    for sale, score in ranked:
        if remaining <= ZERO:
            break

        suggested = min(remaining, money(sale.outstanding_amount))
        suggestions.append(
            {
                "sale_id": str(sale.pk),
                "invoice_no": sale.invoice_no,
                "due_date": sale.due_date,
                "outstanding_amount": money(sale.outstanding_amount),
                "suggested_amount": suggested,
                "priority_score": score,
                "days_overdue": sale.get_days_overdue(today),
                "is_overdue": sale.is_past_due(today),
            }
        )
        remaining -= suggested

    return suggestions


def get_allocation_summary(receipt) -> dict:
    allocations = receipt.allocations.select_related("sale").order_by("created_at")

    return {
        "payment_number": receipt.payment_number,
        "total_amount": money(receipt.total_amount),
        "allocated_amount": money(receipt.allocated_amount),
        "unallocated_amount": money(receipt.unallocated_amount),
        "allocation_status": receipt.allocation_status,
        "allocation_count": allocations.count(),
        "allocations": [
            {
                "id": str(a.pk),
                "invoice_no": a.sale.invoice_no,
                "allocated_amount": money(a.allocated_amount),
                "allocation_type": a.allocation_type,
                "status": a.status,
                "allocation_date": a.allocation_date,
                "notes": a.notes,
            }
            for a in allocations
        ],
    }
