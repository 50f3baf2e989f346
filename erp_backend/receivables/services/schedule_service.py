# receivables/services/schedule_service.py

"""
CUSTOMER PAYMENT SCHEDULES

RULES:
- process_payment() advances exactly one installment per call
- Late fees are tracked in total_late_fees only: never deducted from the
  amount credited and never added to remaining_amount
- Final installment -> status completed, next_payment_date cleared

Outcomes are ledger.results.AllocationResult, shared with the receipt and
allocation services.
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from ledger.models import generate_document_number
from ledger.money import ZERO, money
from ledger.results import AllocationError, AllocationResult
from receivables.exceptions import ScheduleError
from receivables.models import CustomerPaymentSchedule

logger = logging.getLogger("receivables")

MODIFIABLE_FIELDS = (
    "installment_amount",
    "frequency",
    "frequency_days",
    "total_installments",
    "end_date",
    "late_fee_percentage",
    "late_fee_amount",
    "grace_period_days",
)


def _lock(schedule) -> CustomerPaymentSchedule:
    return CustomerPaymentSchedule.objects.select_for_update().get(pk=schedule.pk)


def _wrong_state(operation, schedule, detail) -> AllocationResult:
    logger.warning(
        f"{operation} rejected: {detail}",
        extra={"schedule_id": str(schedule.pk), "status": schedule.status},
    )
    return AllocationResult.failure(AllocationError.WRONG_STATE, detail)


# ======================================================
# CREATE
# ======================================================


@transaction.atomic
def create_schedule(
    *,
    customer,
    schedule_name: str,
    total_amount,
    total_installments: int,
    start_date,
    frequency: str = CustomerPaymentSchedule.FREQ_MONTHLY,
    frequency_days: int | None = None,
    installment_amount=None,
    sale=None,
    late_fee_percentage=None,
    late_fee_amount=None,
    grace_period_days: int = 0,
    reminder_days_before: int = 3,
    auto_generate_reminders: bool = True,
    description: str = "",
    user=None,
    now=None,
) -> CustomerPaymentSchedule:
    now = now or timezone.now()

    total = money(total_amount)
    if total <= ZERO:
        raise ScheduleError("total_amount must be > 0")
    if total_installments <= 0:
        raise ScheduleError("total_installments must be > 0")
    if sale is not None and sale.customer_id != customer.pk:
        raise ScheduleError("Sale does not belong to the customer")

    if installment_amount is None:
        installment_amount = total / total_installments

    prefix = f"SCH-{timezone.localdate(now):%Y%m%d}"
    schedule = CustomerPaymentSchedule.objects.create(
        customer=customer,
        sale=sale,
        schedule_number=generate_document_number(
            CustomerPaymentSchedule, "schedule_number", prefix, width=3
        ),
        schedule_name=schedule_name,
        description=description,
        total_amount=total,
        remaining_amount=total,
        installment_amount=money(installment_amount),
        frequency=frequency,
        frequency_days=frequency_days,
        total_installments=total_installments,
        start_date=start_date,
        next_payment_date=start_date,
        late_fee_percentage=money(late_fee_percentage),
        late_fee_amount=money(late_fee_amount),
        grace_period_days=grace_period_days,
        reminder_days_before=reminder_days_before,
        auto_generate_reminders=auto_generate_reminders,
        created_by=user,
    )

    if schedule.end_date is None:
        schedule.end_date = schedule.estimated_completion_date
        schedule.save(update_fields=["end_date", "updated_at"])

    logger.info(
        "Payment schedule created",
        extra={
            "schedule_id": str(schedule.pk),
            "schedule_number": schedule.schedule_number,
            "customer_id": str(customer.pk),
            "total_amount": str(total),
            "installments": total_installments,
        },
    )
    return schedule


# ======================================================
# ADVANCE
# ======================================================


@transaction.atomic
def process_payment(schedule, amount, *, reference: str = "", now=None) -> AllocationResult:
    now = now or timezone.now()
    today = timezone.localdate(now)
    amount = money(amount)

    schedule = _lock(schedule)

    if amount <= ZERO:
        logger.warning(
            "Schedule payment rejected: amount must be > 0",
            extra={"schedule_id": str(schedule.pk), "amount": str(amount)},
        )
        return AllocationResult.failure(
            AllocationError.INVALID_AMOUNT, "Payment amount must be greater than zero"
        )

    if not schedule.is_active:
        return _wrong_state("Schedule payment", schedule, f"Schedule is {schedule.status}")

    late_fee = ZERO
    if schedule.is_overdue(today) and not schedule.is_in_grace_period(today):
        late_fee = schedule.calculate_late_fee(amount)

    schedule.paid_amount = money(schedule.paid_amount) + amount
    schedule.remaining_amount = max(ZERO, money(schedule.total_amount) - schedule.paid_amount)
    schedule.completed_installments += 1
    schedule.last_payment_date = today
    schedule.last_payment_reference = (reference or "").strip()
    schedule.total_late_fees = money(schedule.total_late_fees) + late_fee

    if schedule.completed_installments < schedule.total_installments:
        schedule.next_payment_date = schedule.next_payment_date + timedelta(
            days=schedule.frequency_in_days
        )
    else:
        schedule.status = CustomerPaymentSchedule.STATUS_COMPLETED
        schedule.next_payment_date = None

    schedule.save()

    logger.info(
        "Schedule payment processed",
        extra={
            "schedule_id": str(schedule.pk),
            "amount": str(amount),
            "late_fee": str(late_fee),
            "completed_installments": schedule.completed_installments,
            "status": schedule.status,
        },
    )
    return AllocationResult.success(schedule)


# ======================================================
# STATUS CHANGES
# ======================================================


def _set_status(schedule, status, *, reason=None):
    schedule.status = status
    fields = ["status", "updated_at"]
    if reason is not None:
        schedule.notes = (reason or "").strip()
        fields.append("notes")
    schedule.save(update_fields=fields)


@transaction.atomic
def suspend(schedule, *, reason: str = "") -> AllocationResult:
    schedule = _lock(schedule)
    if not schedule.is_active:
        return _wrong_state("Suspend schedule", schedule, "Only active schedules can be suspended")

    _set_status(schedule, CustomerPaymentSchedule.STATUS_SUSPENDED, reason=reason)
    logger.info("Payment schedule suspended", extra={"schedule_id": str(schedule.pk)})
    return AllocationResult.success(schedule)


@transaction.atomic
def resume(schedule) -> AllocationResult:
    schedule = _lock(schedule)
    if not schedule.is_suspended:
        return _wrong_state("Resume schedule", schedule, "Only suspended schedules can be resumed")

    _set_status(schedule, CustomerPaymentSchedule.STATUS_ACTIVE)
    logger.info("Payment schedule resumed", extra={"schedule_id": str(schedule.pk)})
    return AllocationResult.success(schedule)


@transaction.atomic
def cancel(schedule, *, reason: str = "") -> AllocationResult:
    schedule = _lock(schedule)
    if schedule.is_completed or schedule.is_cancelled:
        return _wrong_state("Cancel schedule", schedule, f"Schedule is {schedule.status}")

    _set_status(schedule, CustomerPaymentSchedule.STATUS_CANCELLED, reason=reason)
    logger.info("Payment schedule cancelled", extra={"schedule_id": str(schedule.pk)})
    return AllocationResult.success(schedule)


@transaction.atomic
def mark_defaulted(schedule, *, reason: str = "") -> AllocationResult:
    schedule = _lock(schedule)
    if not schedule.is_active:
        return _wrong_state("Default schedule", schedule, "Only active schedules can default")

    _set_status(schedule, CustomerPaymentSchedule.STATUS_DEFAULTED, reason=reason)
    logger.info("Payment schedule defaulted", extra={"schedule_id": str(schedule.pk)})
    return AllocationResult.success(schedule)


@transaction.atomic
def modify_schedule(schedule, changes: dict, *, approved_by=None, now=None) -> AllocationResult:
    """
    Only MODIFIABLE_FIELDS are applied; anything else is ignored.
    """
    now = now or timezone.now()
    schedule = _lock(schedule)

    updates = {k: v for k, v in (changes or {}).items() if k in MODIFIABLE_FIELDS}
    if not updates:
        return _wrong_state("Modify schedule", schedule, "No modifiable fields supplied")

    for field, value in updates.items():
        setattr(schedule, field, value)

    if "installment_amount" in updates:
        schedule.remaining_amount = max(
            ZERO, money(schedule.total_amount) - money(schedule.paid_amount)
        )

    schedule.approved_by = approved_by
    schedule.approved_at = now
    schedule.save()

    logger.info(
        "Payment schedule modified",
        extra={"schedule_id": str(schedule.pk), "fields": sorted(updates)},
    )
    return AllocationResult.success(schedule)


# ======================================================
# REMINDERS
# ======================================================


def generate_reminder(schedule, *, now=None) -> dict | None:
    """
    Reminder payload once the next installment is within
    reminder_days_before, else None.
    """
    now = now or timezone.now()
    today = timezone.localdate(now)

    if not schedule.auto_generate_reminders or not schedule.is_active:
        return None
    if schedule.next_payment_date is None:
        return None

    reminder_date = schedule.next_payment_date - timedelta(days=schedule.reminder_days_before)
    if reminder_date > today:
        return None

    installment = money(schedule.installment_amount)
    return {
        "customer_id": str(schedule.customer_id),
        "schedule_id": str(schedule.pk),
        "type": "payment_reminder",
        "due_date": schedule.next_payment_date,
        "amount": installment,
        "message": (
            f"Payment reminder: {schedule.schedule_name} installment of "
            f"{installment:,.2f} is due on {schedule.next_payment_date:%d %b %Y}"
        ),
    }
