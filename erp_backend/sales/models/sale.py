# sales/models/sale.py

import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from ledger.models import LedgerEntity

User = settings.AUTH_USER_MODEL


class SaleQuerySet(models.QuerySet):
    def for_customer(self, customer):
        return self.filter(customer=customer)

    def outstanding(self):
        """Open receivables: still owed, oldest debt first."""
        return self.filter(
            payment_status__in=Sale.OPEN_PAYMENT_STATUSES,
            outstanding_amount__gt=Decimal("0.00"),
        )

    def overdue(self, today=None):
        """Still owed and past due_date, whatever the stored status says."""
        today = today or timezone.localdate()
        return self.outstanding().filter(due_date__lt=today)

    def flag_overdue(self, today=None) -> int:
        """
        Bring stored payment_status in line with the calendar:
        unpaid / partial rows past due_date become overdue.
        """
        today = today or timezone.localdate()
        return self.filter(
            payment_status__in=(Sale.PAYMENT_UNPAID, Sale.PAYMENT_PARTIAL),
            outstanding_amount__gt=Decimal("0.00"),
            due_date__lt=today,
        ).update(payment_status=Sale.PAYMENT_OVERDUE)

    def settled(self):
        return self.filter(payment_status=Sale.PAYMENT_PAID)

    def oldest_debt_first(self):
        return self.order_by(
            models.F("due_date").asc(nulls_last=True),
            "sale_date",
            "created_at",
        )


class Sale(LedgerEntity):
    """
    A completed POS / credit sale. The AR ledger entity.

    GUARANTEES:
    - Financial totals are immutable once completed
    - paid_amount / outstanding_amount / payment_status are derived from
      applied CustomerPaymentAllocations (refresh_payment_status) and never
      edited by hand
    - overdue = still owed and past due_date; derived on create, on every
      allocation cascade and on each credit refresh (flag_overdue)
    """

    STATUS_DRAFT = "draft"
    STATUS_COMPLETED = "completed"
    STATUS_REFUNDED = "refunded"

    STATUS_CHOICES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_REFUNDED, "Refunded"),
    ]

    PAYMENT_OVERDUE = "overdue"

    PAYMENT_STATUS_CHOICES = LedgerEntity.PAYMENT_STATUS_CHOICES + [
        (PAYMENT_OVERDUE, "Overdue"),
    ]

    OPEN_PAYMENT_STATUSES = (
        LedgerEntity.PAYMENT_UNPAID,
        LedgerEntity.PAYMENT_PARTIAL,
        PAYMENT_OVERDUE,
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    invoice_no = models.CharField(
        max_length=64,
        unique=True,
        blank=True,
        help_text="System-generated invoice / receipt number",
    )

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sales",
        help_text="Empty for walk-in cash sales",
    )

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sales",
        help_text="Cashier / staff who processed the sale",
    )

    subtotal_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    tax_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    discount_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    payment_status = models.CharField(
        max_length=20,
        choices=PAYMENT_STATUS_CHOICES,
        default=LedgerEntity.PAYMENT_UNPAID,
    )

    sale_date = models.DateField(default=timezone.localdate)
    payment_terms_days = models.PositiveIntegerField(null=True, blank=True)

    status = models.CharField(
        max_length=32,
        choices=STATUS_CHOICES,
        default=STATUS_COMPLETED,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    objects = SaleQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=Decimal("0.00")),
                name="sale_total_nonnegative",
            ),
        ]
        indexes = [
            models.Index(fields=["created_at"], name="sale_created_idx"),
            models.Index(fields=["status"], name="sale_status_idx"),
            models.Index(fields=["payment_status", "due_date"], name="sale_payment_due_idx"),
            models.Index(fields=["customer", "payment_status"], name="sale_customer_payment_idx"),
        ]

    _IMMUTABLE_FIELDS_AFTER_POST = (
        "customer_id",
        "subtotal_amount",
        "tax_amount",
        "discount_amount",
        "total_amount",
        "sale_date",
        "completed_at",
    )

    # ---------------- ledger hooks ----------------

    def applied_allocations(self):
        return self.receivable_allocations.filter(status="applied")

    def derive_payment_status(self, paid, *, today=None) -> str:
        status = super().derive_payment_status(paid, today=today)
        if status in (self.PAYMENT_UNPAID, self.PAYMENT_PARTIAL) and self.is_past_due(today):
            return self.PAYMENT_OVERDUE
        return status

    # ---------------- immutability ----------------

    def _is_financially_locked(self, previous: "Sale") -> bool:
        return previous.status in (self.STATUS_COMPLETED, self.STATUS_REFUNDED)

    def _validate_immutable(self, previous: "Sale"):
        if not self._is_financially_locked(previous):
            return

        if not (
            self.status == previous.status
            or (
                previous.status == self.STATUS_COMPLETED
                and self.status == self.STATUS_REFUNDED
            )
        ):
            raise ValueError(
                f"Sale is immutable once {previous.status}. "
                f"Status change {previous.status} -> {self.status} is not allowed."
            )

        for field in self._IMMUTABLE_FIELDS_AFTER_POST:
            if getattr(self, field) != getattr(previous, field):
                raise ValueError(
                    f"Sale is immutable once {previous.status}. "
                    f"Field '{field}' cannot be changed."
                )

    def save(self, *args, **kwargs):
        adding = self._state.adding

        if self.pk and not adding:
            previous = Sale.objects.filter(pk=self.pk).first()
            if previous is not None:
                self._validate_immutable(previous)

        if not self.invoice_no:
            prefix = timezone.now().strftime("INV%Y%m%d")
            self.invoice_no = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"

        if self.status == self.STATUS_COMPLETED and not self.completed_at:
            self.completed_at = timezone.now()

        if adding:
            if self.payment_terms_days is None and self.customer_id:
                self.payment_terms_days = self.customer.payment_terms_days
            if self.due_date is None and self.payment_terms_days is not None:
                self.due_date = self.sale_date + timedelta(days=self.payment_terms_days)
            self.outstanding_amount = Decimal(self.total_amount) - Decimal(self.paid_amount)
            if Decimal(self.total_amount) > Decimal("0.00"):
                self.payment_status = self.derive_payment_status(
                    Decimal(self.paid_amount), today=timezone.localdate()
                )

        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.invoice_no} | {self.total_amount}"
