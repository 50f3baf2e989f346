# receivables/models/payment_receive.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from ledger.models import (
    SoftDeleteManager,
    SoftDeleteModel,
    SoftDeleteQuerySet,
    generate_document_number,
)
from ledger.money import ZERO, money, sum_money

User = settings.AUTH_USER_MODEL


class PaymentReceiveQuerySet(SoftDeleteQuerySet):
    def pending(self):
        return self.filter(status=CustomerPaymentReceive.STATUS_PENDING)

    def verified(self):
        return self.filter(status=CustomerPaymentReceive.STATUS_VERIFIED)

    def completed(self):
        return self.filter(status=CustomerPaymentReceive.STATUS_COMPLETED)

    def counted(self):
        """Receipts that count as money actually received."""
        return self.filter(status__in=CustomerPaymentReceive.COUNTED_STATUSES)

    def unallocated(self):
        return self.filter(allocation_status=CustomerPaymentReceive.ALLOCATION_NONE)

    def partially_allocated(self):
        return self.filter(allocation_status=CustomerPaymentReceive.ALLOCATION_PARTIAL)

    def fully_allocated(self):
        return self.filter(allocation_status=CustomerPaymentReceive.ALLOCATION_FULL)

    def for_customer(self, customer):
        return self.filter(customer=customer)

    def between(self, start, end):
        return self.filter(payment_date__range=(start, end))

    def reconciled(self):
        return self.filter(is_reconciled=True)

    def unreconciled(self):
        return self.filter(is_reconciled=False)

    def search(self, term: str):
        term = (term or "").strip()
        if not term:
            return self
        return self.filter(
            Q(payment_number__icontains=term)
            | Q(reference_number__icontains=term)
            | Q(payment_reference__icontains=term)
            | Q(customer__name__icontains=term)
            | Q(customer__code__icontains=term)
        )


class PaymentReceiveManager(SoftDeleteManager.from_queryset(PaymentReceiveQuerySet)):
    pass


class CustomerPaymentReceive(SoftDeleteModel):
    """
    Money received from a customer, not yet (fully) tied to invoices.

    GUARANTEES:
    - allocated_amount + unallocated_amount == total_amount after every
      refresh_allocation_amounts() call (full recompute from applied children)
    - Never hard-deleted (soft delete only)
    - Allocation cascades live in receivables.services.allocation_service
    """

    STATUS_PENDING = "pending"
    STATUS_VERIFIED = "verified"
    STATUS_ALLOCATED = "allocated"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_VERIFIED, "Verified"),
        (STATUS_ALLOCATED, "Allocated"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # completed with money left only happens after a reversal
    ALLOCATABLE_STATUSES = (STATUS_VERIFIED, STATUS_ALLOCATED, STATUS_COMPLETED)
    COUNTED_STATUSES = (STATUS_VERIFIED, STATUS_ALLOCATED, STATUS_COMPLETED)

    ALLOCATION_NONE = "unallocated"
    ALLOCATION_PARTIAL = "partially_allocated"
    ALLOCATION_FULL = "fully_allocated"

    ALLOCATION_STATUS_CHOICES = [
        (ALLOCATION_NONE, "Unallocated"),
        (ALLOCATION_PARTIAL, "Partially allocated"),
        (ALLOCATION_FULL, "Fully allocated"),
    ]

    METHOD_CASH = "cash"
    METHOD_BANK = "bank"
    METHOD_CARD = "card"
    METHOD_CHEQUE = "cheque"
    METHOD_MOBILE = "mobile"

    METHODS = [
        (METHOD_CASH, "Cash"),
        (METHOD_BANK, "Bank transfer"),
        (METHOD_CARD, "Card"),
        (METHOD_CHEQUE, "Cheque"),
        (METHOD_MOBILE, "Mobile money"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    payment_number = models.CharField(max_length=32, unique=True, blank=True)
    reference_number = models.CharField(max_length=64, blank=True, default="")

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="payment_receives",
    )

    payment_date = models.DateField(default=timezone.localdate)

    total_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    allocated_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    unallocated_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    payment_method = models.CharField(
        max_length=20, choices=METHODS, default=METHOD_CASH
    )
    payment_reference = models.CharField(max_length=128, blank=True, default="")

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING
    )
    allocation_status = models.CharField(
        max_length=24,
        choices=ALLOCATION_STATUS_CHOICES,
        default=ALLOCATION_NONE,
    )

    received_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_receives_received",
    )
    verified_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_receives_verified",
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_receives_approved",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True, default="")
    internal_notes = models.TextField(blank=True, default="")

    # Bank reconciliation
    is_reconciled = models.BooleanField(default=False)
    reconciled_date = models.DateField(null=True, blank=True)
    bank_statement_reference = models.CharField(max_length=128, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PaymentReceiveManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-payment_date", "-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gt=Decimal("0.00")),
                name="payment_receive_total_gt_zero",
            ),
            models.CheckConstraint(
                condition=models.Q(allocated_amount__gte=Decimal("0.00")),
                name="payment_receive_allocated_nonnegative",
            ),
        ]
        indexes = [
            models.Index(fields=["customer", "payment_date"], name="receive_customer_date_idx"),
            models.Index(fields=["status", "allocation_status"], name="receive_status_idx"),
        ]
        permissions = [
            ("process_ar_payments", "Can record customer payments"),
            ("verify_ar_payments", "Can verify customer payments"),
            ("approve_ar_payments", "Can approve customer payments"),
            ("allocate_payments", "Can allocate customer payments to sales"),
            ("reverse_payment_allocations", "Can reverse payment allocations"),
            ("reconcile_ar_payments", "Can reconcile customer payments"),
        ]

    # ---------------- accessors ----------------

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    @property
    def is_fully_allocated(self) -> bool:
        return self.allocation_status == self.ALLOCATION_FULL

    @property
    def is_partially_allocated(self) -> bool:
        return self.allocation_status == self.ALLOCATION_PARTIAL

    @property
    def is_unallocated(self) -> bool:
        return self.allocation_status == self.ALLOCATION_NONE

    @property
    def can_allocate(self) -> bool:
        return (
            self.status in self.ALLOCATABLE_STATUSES
            and money(self.unallocated_amount) > ZERO
        )

    @property
    def can_reverse(self) -> bool:
        return (
            self.status in self.COUNTED_STATUSES
            and money(self.allocated_amount) > ZERO
        )

    def days_old(self, today) -> int:
        return max(0, (today - self.payment_date).days)

    # ---------------- allocation split ----------------

    def applied_allocations(self):
        return self.allocations.filter(status="applied")

    def derive_allocation_status(self, allocated: Decimal, unallocated: Decimal) -> str:
        if allocated == ZERO:
            return self.ALLOCATION_NONE
        if unallocated == ZERO:
            return self.ALLOCATION_FULL
        return self.ALLOCATION_PARTIAL

    def refresh_allocation_amounts(self, *, commit: bool = True):
        """
        Full recompute from applied, non-deleted allocations.

        RULES:
        - fully allocated     -> status completed
        - partially allocated -> status allocated
        - unallocated         -> status unchanged
        """
        allocated = sum_money(self.applied_allocations(), "allocated_amount")
        unallocated = money(self.total_amount) - allocated

        self.allocated_amount = allocated
        self.unallocated_amount = unallocated
        self.allocation_status = self.derive_allocation_status(allocated, unallocated)

        if self.allocation_status == self.ALLOCATION_FULL:
            self.status = self.STATUS_COMPLETED
        elif self.allocation_status == self.ALLOCATION_PARTIAL:
            self.status = self.STATUS_ALLOCATED

        if commit:
            self.save(
                update_fields=[
                    "allocated_amount",
                    "unallocated_amount",
                    "allocation_status",
                    "status",
                    "updated_at",
                ]
            )

        return self.allocation_status

    # ---------------- validation ----------------

    def clean(self):
        if self.total_amount is not None and self.total_amount <= Decimal("0.00"):
            raise ValidationError({"total_amount": "total_amount must be > 0"})

        if self.payment_method not in dict(self.METHODS):
            raise ValidationError({"payment_method": "Invalid payment_method"})

        if self.is_reconciled and not self.reconciled_date:
            raise ValidationError(
                {"reconciled_date": "reconciled_date is required when reconciled"}
            )

    def save(self, *args, **kwargs):
        if self._state.adding:
            if not self.payment_number:
                prefix = f"PAY-{self.payment_date:%Y%m%d}"
                self.payment_number = generate_document_number(
                    CustomerPaymentReceive, "payment_number", prefix
                )
            self.unallocated_amount = money(self.total_amount) - money(self.allocated_amount)

        self.reference_number = (self.reference_number or "").strip()
        self.payment_reference = (self.payment_reference or "").strip()

        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.payment_number} | {self.total_amount}"
