# receivables/models/payment_schedule.py

import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ledger.models import SoftDeleteManager, SoftDeleteModel, SoftDeleteQuerySet
from ledger.money import HUNDRED, ZERO, money, percent

User = settings.AUTH_USER_MODEL


class PaymentScheduleQuerySet(SoftDeleteQuerySet):
    def active(self):
        return self.filter(status=CustomerPaymentSchedule.STATUS_ACTIVE)

    def completed(self):
        return self.filter(status=CustomerPaymentSchedule.STATUS_COMPLETED)

    def suspended(self):
        return self.filter(status=CustomerPaymentSchedule.STATUS_SUSPENDED)

    def defaulted(self):
        return self.filter(status=CustomerPaymentSchedule.STATUS_DEFAULTED)

    def overdue(self, today):
        return self.active().filter(next_payment_date__lt=today)

    def due_on(self, day):
        return self.active().filter(next_payment_date=day)

    def due_between(self, start, end):
        return self.active().filter(next_payment_date__range=(start, end))

    def for_customer(self, customer):
        return self.filter(customer=customer)

    def for_sale(self, sale):
        return self.filter(sale=sale)


class PaymentScheduleManager(SoftDeleteManager.from_queryset(PaymentScheduleQuerySet)):
    pass


class CustomerPaymentSchedule(SoftDeleteModel):
    """
    Installment plan for a customer (optionally tied to one sale).

    Advances one installment per recorded payment
    (receivables.services.schedule_service.process_payment).
    Late fees accumulate in total_late_fees only.
    """

    STATUS_ACTIVE = "active"
    STATUS_COMPLETED = "completed"
    STATUS_SUSPENDED = "suspended"
    STATUS_CANCELLED = "cancelled"
    STATUS_DEFAULTED = "defaulted"

    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_SUSPENDED, "Suspended"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_DEFAULTED, "Defaulted"),
    ]

    FREQ_WEEKLY = "weekly"
    FREQ_BI_WEEKLY = "bi_weekly"
    FREQ_MONTHLY = "monthly"
    FREQ_QUARTERLY = "quarterly"
    FREQ_CUSTOM = "custom"

    FREQUENCY_CHOICES = [
        (FREQ_WEEKLY, "Weekly"),
        (FREQ_BI_WEEKLY, "Bi-weekly"),
        (FREQ_MONTHLY, "Monthly"),
        (FREQ_QUARTERLY, "Quarterly"),
        (FREQ_CUSTOM, "Custom"),
    ]

    FREQUENCY_DAYS = {
        FREQ_WEEKLY: 7,
        FREQ_BI_WEEKLY: 14,
        FREQ_MONTHLY: 30,
        FREQ_QUARTERLY: 90,
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="payment_schedules",
    )
    sale = models.ForeignKey(
        "sales.Sale",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payment_schedules",
    )

    schedule_number = models.CharField(max_length=40, unique=True, blank=True)
    schedule_name = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")

    total_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    paid_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    remaining_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    installment_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    frequency = models.CharField(
        max_length=20, choices=FREQUENCY_CHOICES, default=FREQ_MONTHLY
    )
    frequency_days = models.PositiveIntegerField(null=True, blank=True)
    total_installments = models.PositiveIntegerField(default=1)
    completed_installments = models.PositiveIntegerField(default=0)

    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)
    next_payment_date = models.DateField(null=True, blank=True)
    last_payment_date = models.DateField(null=True, blank=True)
    last_payment_reference = models.CharField(max_length=128, blank=True, default="")

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE
    )

    auto_generate_reminders = models.BooleanField(default=True)
    reminder_days_before = models.PositiveIntegerField(default=3)

    late_fee_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("0.00")
    )
    late_fee_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    grace_period_days = models.PositiveIntegerField(default=0)
    total_late_fees = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_schedules_created",
    )
    approved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_schedules_approved",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    terms_and_conditions = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PaymentScheduleManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["next_payment_date", "created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gt=Decimal("0.00")),
                name="schedule_total_gt_zero",
            ),
            models.CheckConstraint(
                condition=models.Q(total_installments__gt=0),
                name="schedule_installments_gt_zero",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "next_payment_date"], name="schedule_due_idx"),
            models.Index(fields=["customer", "status"], name="schedule_customer_idx"),
        ]
        permissions = [
            ("manage_payment_schedules", "Can manage customer payment schedules"),
        ]

    # ---------------- status ----------------

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    @property
    def is_completed(self) -> bool:
        return self.status == self.STATUS_COMPLETED

    @property
    def is_suspended(self) -> bool:
        return self.status == self.STATUS_SUSPENDED

    @property
    def is_cancelled(self) -> bool:
        return self.status == self.STATUS_CANCELLED

    @property
    def is_defaulted(self) -> bool:
        return self.status == self.STATUS_DEFAULTED

    # ---------------- progress ----------------

    @property
    def progress_percentage(self) -> Decimal:
        if self.total_installments <= 0:
            return ZERO
        return percent(self.completed_installments, self.total_installments)

    @property
    def amount_progress_percentage(self) -> Decimal:
        return percent(self.paid_amount, self.total_amount)

    @property
    def remaining_installments(self) -> int:
        return max(0, self.total_installments - self.completed_installments)

    @property
    def frequency_in_days(self) -> int:
        if self.frequency == self.FREQ_CUSTOM:
            return self.frequency_days or 30
        return self.FREQUENCY_DAYS.get(self.frequency, 30)

    @property
    def estimated_completion_date(self):
        if self.remaining_installments <= 0 or self.next_payment_date is None:
            return None
        return self.next_payment_date + timedelta(
            days=self.frequency_in_days * (self.remaining_installments - 1)
        )

    # ---------------- due dates ----------------

    def is_overdue(self, today) -> bool:
        return bool(
            self.is_active
            and self.next_payment_date
            and self.next_payment_date < today
        )

    def days_overdue(self, today) -> int:
        if not self.is_overdue(today):
            return 0
        return (today - self.next_payment_date).days

    def is_in_grace_period(self, today) -> bool:
        return self.is_overdue(today) and self.days_overdue(today) <= self.grace_period_days

    def calculate_late_fee(self, payment_amount) -> Decimal:
        if money(self.late_fee_percentage) > ZERO:
            return money(money(payment_amount) * money(self.late_fee_percentage) / HUNDRED)
        return money(self.late_fee_amount)

    # ---------------- validation ----------------

    def clean(self):
        if not (self.schedule_name or "").strip():
            raise ValidationError({"schedule_name": "schedule_name is required"})

        if self.frequency == self.FREQ_CUSTOM and not self.frequency_days:
            raise ValidationError(
                {"frequency_days": "frequency_days is required for custom frequency"}
            )

        if self.completed_installments > self.total_installments:
            raise ValidationError(
                {"completed_installments": "cannot exceed total_installments"}
            )

    def save(self, *args, **kwargs):
        self.schedule_name = (self.schedule_name or "").strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.schedule_number} | {self.customer}"
