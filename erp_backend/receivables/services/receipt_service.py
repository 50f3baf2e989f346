# receivables/services/receipt_service.py

"""
CUSTOMER PAYMENT RECEIPT WORKFLOW

pending -> verified -> (allocated -> completed via allocations)
pending | verified -> cancelled (only while nothing is applied;
pending allocations are cancelled with the receipt)

Every status change refreshes the customer's credit aggregate.
"""

import logging

from django.db import transaction
from django.utils import timezone

from ledger.money import ZERO, money
from ledger.results import AllocationError, AllocationResult
from receivables.exceptions import ReceivablesError
from receivables.models import CustomerPaymentReceive
from receivables.services.credit_service import refresh_customer_balance

logger = logging.getLogger("payments")


@transaction.atomic
def create_payment_receive(
    *,
    customer,
    total_amount,
    payment_method: str = CustomerPaymentReceive.METHOD_CASH,
    payment_date=None,
    reference_number: str = "",
    payment_reference: str = "",
    notes: str = "",
    user=None,
    now=None,
) -> CustomerPaymentReceive:
    """
    RECORD CUSTOMER PAYMENT (atomic)
    """
    now = now or timezone.now()

    amount = money(total_amount)
    if amount <= ZERO:
        logger.error("Invalid receipt amount", extra={"amount": str(total_amount)})
        raise ReceivablesError("Amount must be > 0")

    if not customer.is_active:
        logger.error("Receipt for inactive customer", extra={"customer_id": str(customer.pk)})
        raise ReceivablesError("Customer is not active")

    receipt = CustomerPaymentReceive.objects.create(
        customer=customer,
        total_amount=amount,
        payment_method=(payment_method or CustomerPaymentReceive.METHOD_CASH).lower().strip(),
        payment_date=payment_date or timezone.localdate(now),
        reference_number=reference_number,
        payment_reference=payment_reference,
        notes=notes or "",
        received_by=user,
    )

    refresh_customer_balance(customer, now=now)

    logger.info(
        "Customer payment recorded",
        extra={
            "payment_id": str(receipt.pk),
            "payment_number": receipt.payment_number,
            "customer_id": str(customer.pk),
            "amount": str(amount),
        },
    )
    return receipt


def _lock(receipt) -> CustomerPaymentReceive:
    return CustomerPaymentReceive.objects.select_for_update().get(pk=receipt.pk)


def _wrong_state(operation, receipt, detail) -> AllocationResult:
    logger.warning(
        f"{operation} rejected: {detail}",
        extra={"payment_id": str(receipt.pk), "status": receipt.status},
    )
    return AllocationResult.failure(AllocationError.WRONG_STATE, detail)


@transaction.atomic
def verify_receipt(receipt, *, user=None, now=None) -> AllocationResult:
    now = now or timezone.now()
    receipt = _lock(receipt)

    if receipt.status != CustomerPaymentReceive.STATUS_PENDING:
        return _wrong_state("Verify payment", receipt, "Only pending payments can be verified")

    receipt.status = CustomerPaymentReceive.STATUS_VERIFIED
    receipt.verified_by = user
    receipt.verified_at = now
    receipt.save(update_fields=["status", "verified_by", "verified_at", "updated_at"])

    refresh_customer_balance(receipt.customer, now=now)

    logger.info("Customer payment verified", extra={"payment_id": str(receipt.pk)})
    return AllocationResult.success(receipt)


@transaction.atomic
def approve_receipt(receipt, *, user=None, now=None) -> AllocationResult:
    now = now or timezone.now()
    receipt = _lock(receipt)

    if receipt.status not in CustomerPaymentReceive.COUNTED_STATUSES:
        return _wrong_state("Approve payment", receipt, "Payment must be verified before approval")

    if receipt.is_approved:
        return _wrong_state("Approve payment", receipt, "Payment is already approved")

    receipt.approved_by = user
    receipt.approved_at = now
    receipt.save(update_fields=["approved_by", "approved_at", "updated_at"])

    logger.info("Customer payment approved", extra={"payment_id": str(receipt.pk)})
    return AllocationResult.success(receipt)


@transaction.atomic
def cancel_receipt(receipt, *, reason: str = "", user=None, now=None) -> AllocationResult:
    now = now or timezone.now()
    receipt = _lock(receipt)

    if receipt.status not in (
        CustomerPaymentReceive.STATUS_PENDING,
        CustomerPaymentReceive.STATUS_VERIFIED,
    ):
        return _wrong_state("Cancel payment", receipt, f"Payment is {receipt.status}")

    if receipt.applied_allocations().exists():
        return _wrong_state("Cancel payment", receipt, "Reverse applied allocations first")

    pending = list(
        receipt.allocations.pending().select_for_update().order_by("pk")
    )
    for allocation in pending:
        allocation.mark_cancelled(reason=reason or "Payment cancelled")

    receipt.status = CustomerPaymentReceive.STATUS_CANCELLED
    receipt.internal_notes = (reason or "").strip()
    receipt.save(update_fields=["status", "internal_notes", "updated_at"])

    refresh_customer_balance(receipt.customer, now=now)

    logger.info(
        "Customer payment cancelled",
        extra={
            "payment_id": str(receipt.pk),
            "user_id": getattr(user, "pk", None),
            "cancelled_allocations": len(pending),
        },
    )
    return AllocationResult.success(receipt)


@transaction.atomic
def reconcile_receipt(receipt, *, bank_reference: str, user=None, now=None) -> AllocationResult:
    now = now or timezone.now()
    receipt = _lock(receipt)

    if receipt.is_reconciled:
        return _wrong_state("Reconcile payment", receipt, "Payment is already reconciled")

    receipt.is_reconciled = True
    receipt.reconciled_date = timezone.localdate(now)
    receipt.bank_statement_reference = (bank_reference or "").strip()
    receipt.save(
        update_fields=[
            "is_reconciled",
            "reconciled_date",
            "bank_statement_reference",
            "updated_at",
        ]
    )

    logger.info(
        "Customer payment reconciled",
        extra={
            "payment_id": str(receipt.pk),
            "bank_reference": receipt.bank_statement_reference,
            "user_id": getattr(user, "pk", None),
        },
    )
    return AllocationResult.success(receipt)
