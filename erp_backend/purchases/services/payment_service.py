# purchases/services/payment_service.py

"""
SUPPLIER PAYMENT SERVICE (Accounts Payable)

Payment lifecycle:
    pending -> completed
    pending -> cancelled
    pending -> failed

Allocation to purchase orders follows ledger.lifecycle, like AR.

GUARANTEES:
- Σ applied allocations per payment  <= payment.amount
- Σ applied allocations per order    <= order.total_amount
- Every allocation change runs the same cascade:
    order.refresh_payment_status()
    payment.refresh_payment_type()
    refresh_for_supplier()
- Bad input on create raises SupplierPaymentError; rule violations on
  existing rows return a failed AllocationResult and write nothing

LOCK ORDER (select_for_update):
    payment -> order(s) in pk order -> allocation
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from ledger import lifecycle
from ledger.money import ZERO, money, sum_money
from ledger.results import AllocationError, AllocationResult
from purchases.exceptions import SupplierPaymentError
from purchases.models import (
    PurchaseOrder,
    PurchasePayment,
    PurchasePaymentAllocation,
    Supplier,
)
from purchases.services.balance_service import refresh_for_supplier

logger = logging.getLogger("payments")


# ======================================================
# HELPERS
# ======================================================


def _pk(obj_or_pk):
    return getattr(obj_or_pk, "pk", obj_or_pk)


def _lock_payment(payment) -> PurchasePayment:
    return PurchasePayment.objects.select_for_update().get(pk=_pk(payment))


def _lock_order(order) -> PurchaseOrder:
    return PurchaseOrder.objects.select_for_update().get(pk=_pk(order))


def _lock_allocation(allocation) -> PurchasePaymentAllocation:
    return PurchasePaymentAllocation.all_objects.select_for_update().get(pk=_pk(allocation))


def _order_room(order, *, excluding_payment=None) -> Decimal:
    applied = order.applied_allocations()
    if excluding_payment is not None:
        applied = applied.exclude(purchase_payment=excluding_payment)
    return money(order.total_amount) - sum_money(applied, "allocated_amount")


def _reject(operation: str, error: AllocationError, detail: str, **context) -> AllocationResult:
    logger.warning(
        f"{operation} rejected: {detail}",
        extra={"error": error.value, **context},
    )
    return AllocationResult.failure(error, detail)


def _cascade(payment, orders, *, now):
    for order in orders:
        order.refresh_payment_status(now=now)
    payment.refresh_payment_type()
    refresh_for_supplier(payment.supplier, now=now)


# ======================================================
# CREATE
# ======================================================


@transaction.atomic
def create_purchase_payment(
    *,
    supplier_id,
    amount,
    payment_method: str = PurchasePayment.METHOD_CASH,
    purchase_order_id=None,
    payment_date=None,
    reference_number: str = "",
    notes: str = "",
    user=None,
    now=None,
) -> PurchasePayment:
    """
    CREATE SUPPLIER PAYMENT (atomic, status pending)
    """
    now = now or timezone.now()

    logger.info(
        "Initiating supplier payment",
        extra={
            "supplier_id": str(supplier_id),
            "purchase_order_id": str(purchase_order_id) if purchase_order_id else None,
            "amount": str(amount),
            "payment_method": payment_method,
        },
    )

    try:
        supplier = Supplier.objects.get(id=supplier_id, is_active=True)
    except Supplier.DoesNotExist as exc:
        logger.error(
            "Supplier not found during payment",
            extra={"supplier_id": str(supplier_id)},
        )
        raise SupplierPaymentError("Supplier not found") from exc

    order = None
    if purchase_order_id:
        try:
            order = PurchaseOrder.objects.get(id=purchase_order_id, supplier=supplier)
        except PurchaseOrder.DoesNotExist as exc:
            logger.error(
                "Purchase order not found for supplier",
                extra={
                    "purchase_order_id": str(purchase_order_id),
                    "supplier_id": str(supplier_id),
                },
            )
            raise SupplierPaymentError("Purchase order not found for supplier") from exc

    amt = money(amount)
    if amt <= ZERO:
        logger.error("Invalid payment amount", extra={"amount": str(amount)})
        raise SupplierPaymentError("Amount must be > 0")

    method = (payment_method or PurchasePayment.METHOD_CASH).lower().strip()
    if method not in dict(PurchasePayment.METHODS):
        raise SupplierPaymentError(f"Unsupported payment_method: {payment_method}")

    payment = PurchasePayment.objects.create(
        supplier=supplier,
        purchase_order=order,
        payment_date=payment_date or timezone.localdate(now),
        amount=amt,
        payment_method=method,
        reference_number=reference_number,
        notes=(notes or "").strip(),
        processed_by=user,
    )

    logger.info(
        "Supplier payment recorded",
        extra={
            "payment_id": str(payment.id),
            "payment_number": payment.payment_number,
        },
    )
    return payment


# ======================================================
# PAYMENT LIFECYCLE
# ======================================================


@transaction.atomic
def approve_payment(payment, *, user, now=None) -> AllocationResult:
    now = now or timezone.now()
    payment = _lock_payment(payment)

    if not payment.can_be_approved:
        return _reject(
            "Approve payment",
            AllocationError.WRONG_STATE,
            f"Payment is {payment.status} or already approved",
            payment_id=str(payment.pk),
        )

    payment.approved_by = user
    payment.approved_at = now
    payment.save(update_fields=["approved_by", "approved_at", "updated_at"])

    logger.info(
        "Supplier payment approved",
        extra={"payment_id": str(payment.pk), "user_id": getattr(user, "pk", None)},
    )
    return AllocationResult.success(payment)


@transaction.atomic
def complete_payment(payment, *, now=None) -> AllocationResult:
    """
    pending -> completed. The money now counts towards the supplier balance.
    """
    now = now or timezone.now()
    payment = _lock_payment(payment)

    if payment.status != PurchasePayment.STATUS_PENDING:
        return _reject(
            "Complete payment",
            AllocationError.WRONG_STATE,
            f"Payment is {payment.status} and cannot be completed",
            payment_id=str(payment.pk),
        )

    payment.status = PurchasePayment.STATUS_COMPLETED
    payment.completed_at = now
    payment.save(update_fields=["status", "completed_at", "updated_at"])

    if payment.purchase_order_id:
        _lock_order(payment.purchase_order_id).refresh_payment_status(now=now)
    refresh_for_supplier(payment.supplier, now=now)

    logger.info(
        "Supplier payment completed",
        extra={"payment_id": str(payment.pk), "amount": str(payment.amount)},
    )
    return AllocationResult.success(payment)


def _close_payment(payment, *, to_status: str, operation: str, reason: str, now) -> AllocationResult:
    payment = _lock_payment(payment)

    if payment.status != PurchasePayment.STATUS_PENDING:
        return _reject(
            operation,
            AllocationError.WRONG_STATE,
            f"Payment is {payment.status} and cannot be {to_status}",
            payment_id=str(payment.pk),
        )

    active = list(payment.allocations.active().order_by("purchase_order_id"))
    orders = [_lock_order(pk) for pk in sorted({a.purchase_order_id for a in active})]
    for allocation in active:
        _lock_allocation(allocation).mark_cancelled(reason=reason)

    payment.status = to_status
    if reason:
        payment.notes = f"{payment.notes}\n{to_status.title()}: {reason}".strip()
    payment.save(update_fields=["status", "notes", "updated_at"])

    _cascade(payment, orders, now=now)

    logger.info(
        f"Supplier payment {to_status}",
        extra={
            "payment_id": str(payment.pk),
            "cancelled_allocations": len(active),
            "reason": reason,
        },
    )
    return AllocationResult.success(payment)


@transaction.atomic
def cancel_payment(payment, *, reason: str = "", now=None) -> AllocationResult:
    """
    pending -> cancelled. Active allocations are cancelled with it.
    """
    return _close_payment(
        payment,
        to_status=PurchasePayment.STATUS_CANCELLED,
        operation="Cancel payment",
        reason=reason,
        now=now or timezone.now(),
    )


@transaction.atomic
def fail_payment(payment, *, reason: str = "", now=None) -> AllocationResult:
    """
    pending -> failed (bounced cheque, rejected transfer).
    """
    return _close_payment(
        payment,
        to_status=PurchasePayment.STATUS_FAILED,
        operation="Fail payment",
        reason=reason,
        now=now or timezone.now(),
    )


# ======================================================
# ALLOCATION
# ======================================================


def _normalise_lines(lines):
    """
    Accepts [(order, amount), ...] or [{"purchase_order": ..., "amount": ..., "notes": ...}, ...].
    """
    normalised = []
    for line in lines:
        if isinstance(line, dict):
            order = line.get("purchase_order") or line.get("purchase_order_id")
            amount = line.get("amount")
            notes = line.get("notes", "")
        else:
            order, amount = line[0], line[1]
            notes = line[2] if len(line) > 2 else ""
        normalised.append((_pk(order), money(amount), notes or ""))
    return normalised


@transaction.atomic
def allocate_to_orders(payment, lines, *, user=None, now=None) -> AllocationResult:
    """
    REPLACE the payment's allocations with `lines` (all or nothing).

    RULES:
    - payment must be pending or completed
    - every amount > 0, every order payable and owned by the payment's supplier
    - Σ amounts <= payment.amount
    - per order: amount <= total - Σ applied from OTHER payments
    On success existing active allocations are cancelled and the new ones
    are created applied.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)

    payment = _lock_payment(payment)
    if payment.status not in PurchasePayment.ALLOCATABLE_STATUSES:
        return _reject(
            "Allocate to orders",
            AllocationError.WRONG_STATE,
            f"Payment is {payment.status} and cannot be allocated",
            payment_id=str(payment.pk),
        )

    lines = _normalise_lines(lines)

    existing = list(payment.allocations.active())
    order_ids = sorted({pk for pk, _, _ in lines} | {a.purchase_order_id for a in existing})
    orders = {pk: _lock_order(pk) for pk in order_ids}

    requested = {}
    for order_pk, amount, _ in lines:
        order = orders[order_pk]
        if amount <= ZERO:
            return _reject(
                "Allocate to orders",
                AllocationError.INVALID_AMOUNT,
                "Allocation amount must be greater than zero",
                payment_id=str(payment.pk),
            )
        if order.supplier_id != payment.supplier_id:
            return _reject(
                "Allocate to orders",
                AllocationError.CUSTOMER_MISMATCH,
                "Purchase order belongs to another supplier",
                payment_id=str(payment.pk),
                purchase_order_id=str(order.pk),
            )
        if not order.is_payable:
            return _reject(
                "Allocate to orders",
                AllocationError.WRONG_STATE,
                f"Purchase order is {order.status}",
                purchase_order_id=str(order.pk),
            )
        requested[order_pk] = requested.get(order_pk, ZERO) + amount

    if sum(requested.values(), ZERO) > money(payment.amount):
        return _reject(
            "Allocate to orders",
            AllocationError.INSUFFICIENT_UNALLOCATED,
            "Total allocation exceeds payment amount",
            payment_id=str(payment.pk),
        )

    for order_pk, amount in requested.items():
        if amount > _order_room(orders[order_pk], excluding_payment=payment):
            return _reject(
                "Allocate to orders",
                AllocationError.EXCEEDS_LEDGER_TOTAL,
                "Allocation amount exceeds order outstanding amount",
                payment_id=str(payment.pk),
                purchase_order_id=str(order_pk),
            )

    for allocation in existing:
        _lock_allocation(allocation).mark_cancelled(reason="Replaced by new allocation")

    created = []
    for order_pk, amount, notes in lines:
        created.append(
            PurchasePaymentAllocation.objects.create(
                purchase_payment=payment,
                purchase_order=orders[order_pk],
                allocated_amount=amount,
                status=lifecycle.STATUS_APPLIED,
                applied_at=now,
                approved_by=user,
                approved_at=now if user is not None else None,
                notes=notes,
            )
        )

    _cascade(payment, [orders[pk] for pk in order_ids], now=now)

    logger.info(
        "Supplier payment allocated",
        extra={
            "payment_id": str(payment.pk),
            "allocations": len(created),
            "replaced": len(existing),
            "payment_type": payment.payment_type,
            "allocation_date": str(today),
        },
    )
    return AllocationResult.success(created)


def _capacity_problem(payment, order, amount):
    if amount > payment.unallocated_amount:
        return (
            AllocationError.INSUFFICIENT_UNALLOCATED,
            "Allocation amount exceeds unallocated payment amount",
        )
    if amount > _order_room(order):
        return (
            AllocationError.EXCEEDS_LEDGER_TOTAL,
            "Allocation amount exceeds order outstanding amount",
        )
    return None


@transaction.atomic
def create_allocation(payment, order, amount, *, notes: str = "", now=None) -> AllocationResult:
    """
    Pending allocation; counted only once apply_allocation() runs.
    """
    amount = money(amount)
    payment = _lock_payment(payment)
    order = _lock_order(order)

    problem = None
    if amount <= ZERO:
        problem = AllocationError.INVALID_AMOUNT, "Allocation amount must be greater than zero"
    elif payment.status not in PurchasePayment.ALLOCATABLE_STATUSES:
        problem = AllocationError.WRONG_STATE, f"Payment is {payment.status} and cannot be allocated"
    elif order.supplier_id != payment.supplier_id:
        problem = AllocationError.CUSTOMER_MISMATCH, "Purchase order belongs to another supplier"
    elif not order.is_payable:
        problem = AllocationError.WRONG_STATE, f"Purchase order is {order.status}"
    else:
        problem = _capacity_problem(payment, order, amount)

    if problem:
        return _reject(
            "Pending allocation",
            *problem,
            payment_id=str(payment.pk),
            purchase_order_id=str(order.pk),
            amount=str(amount),
        )

    allocation = PurchasePaymentAllocation.objects.create(
        purchase_payment=payment,
        purchase_order=order,
        allocated_amount=amount,
        notes=notes,
    )

    logger.info(
        "Pending supplier allocation created",
        extra={"allocation_id": str(allocation.pk), "amount": str(amount)},
    )
    return AllocationResult.success(allocation)


def _lock_for_transition(allocation):
    payment = _lock_payment(allocation.purchase_payment_id)
    order = _lock_order(allocation.purchase_order_id)
    allocation = _lock_allocation(allocation)
    return payment, order, allocation


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
    payment, order, allocation = _lock_for_transition(allocation)

    problem = _transition_problem(allocation, lifecycle.STATUS_APPLIED)
    if problem is None and payment.status not in PurchasePayment.ALLOCATABLE_STATUSES:
        problem = AllocationError.WRONG_STATE, f"Payment is {payment.status} and cannot be allocated"
    if problem is None and not order.is_payable:
        problem = AllocationError.WRONG_STATE, f"Purchase order is {order.status}"
    if problem is None:
        problem = _capacity_problem(payment, order, money(allocation.allocated_amount))
    if problem:
        return _reject("Apply supplier allocation", *problem, allocation_id=str(allocation.pk))

    allocation.mark_applied(approved_by=approved_by, now=now)
    _cascade(payment, [order], now=now)

    logger.info("Supplier allocation applied", extra={"allocation_id": str(allocation.pk)})
    return AllocationResult.success(allocation)


@transaction.atomic
def reverse_allocation(allocation, *, reason: str = "", now=None) -> AllocationResult:
    now = now or timezone.now()
    payment, order, allocation = _lock_for_transition(allocation)

    problem = _transition_problem(allocation, lifecycle.STATUS_REVERSED)
    if problem:
        return _reject("Reverse supplier allocation", *problem, allocation_id=str(allocation.pk))

    allocation.mark_reversed(reason=reason, now=now)
    _cascade(payment, [order], now=now)

    logger.info(
        "Supplier allocation reversed",
        extra={"allocation_id": str(allocation.pk), "reason": allocation.reversal_reason},
    )
    return AllocationResult.success(allocation)


@transaction.atomic
def cancel_allocation(allocation, *, reason: str = "", now=None) -> AllocationResult:
    now = now or timezone.now()
    payment, order, allocation = _lock_for_transition(allocation)

    problem = _transition_problem(allocation, lifecycle.STATUS_CANCELLED)
    if problem:
        return _reject("Cancel supplier allocation", *problem, allocation_id=str(allocation.pk))

    was_applied = allocation.is_applied
    allocation.mark_cancelled(reason=reason)
    if was_applied:
        _cascade(payment, [order], now=now)

    logger.info(
        "Supplier allocation cancelled",
        extra={"allocation_id": str(allocation.pk), "was_applied": was_applied},
    )
    return AllocationResult.success(allocation)


@transaction.atomic
def delete_allocation(allocation, *, now=None) -> AllocationResult:
    now = now or timezone.now()
    payment, order, allocation = _lock_for_transition(allocation)

    if allocation.is_deleted:
        return _reject(
            "Delete supplier allocation",
            AllocationError.ALREADY_TERMINAL,
            "Allocation has been deleted",
            allocation_id=str(allocation.pk),
        )

    was_applied = allocation.is_applied
    allocation.soft_delete(now=now)
    if was_applied:
        _cascade(payment, [order], now=now)

    logger.info(
        "Supplier allocation deleted",
        extra={"allocation_id": str(allocation.pk), "was_applied": was_applied},
    )
    return AllocationResult.success(allocation)
