# ledger/models.py

"""
ABSTRACT LEDGER MODELS

Shared by AR (sales / customer receipts) and AP (purchase orders / supplier
payments). Nothing here owns a table.

- SoftDeleteModel: rows leave the active set via `deleted_at`, never DELETE.
- LedgerEntity: anything with an outstanding balance owed
  (Sale, PurchaseOrder). paid_amount / outstanding_amount / payment_status
  are a CACHE of the applied allocations, rebuilt by refresh_payment_status().
- PaymentAllocationBase: the slice of a payment assigned to one ledger entity.
  Field-level transitions only; cascades live in the services.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from ledger import lifecycle
from ledger.money import ZERO, money, sum_money

User = settings.AUTH_USER_MODEL


def generate_document_number(model, field: str, prefix: str, width: int = 4) -> str:
    """
    <PREFIX>-<NNNN>, sequence restarts per prefix (prefix usually carries the date).
    """
    manager = getattr(model, "all_objects", model._default_manager)
    count = manager.filter(**{f"{field}__startswith": f"{prefix}-"}).count()
    return f"{prefix}-{str(count + 1).zfill(width)}"


# ============================================================
# SOFT DELETE
# ============================================================


class SoftDeleteQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)

    def deleted(self):
        return self.filter(deleted_at__isnull=False)


class SoftDeleteManager(models.Manager.from_queryset(SoftDeleteQuerySet)):
    """
    Default manager: hides soft-deleted rows (also for reverse relations).
    """

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)


class SoftDeleteModel(models.Model):
    """
    Concrete subclasses declare `objects = SoftDeleteManager()` (or a
    from_queryset variant) FIRST and `all_objects = models.Manager()` second.
    """

    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        abstract = True

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self, *, now=None):
        self.deleted_at = now or timezone.now()
        self.save(update_fields=["deleted_at"])


# ============================================================
# LEDGER ENTITY
# ============================================================


class LedgerEntity(models.Model):
    PAYMENT_UNPAID = "unpaid"
    PAYMENT_PARTIAL = "partial"
    PAYMENT_PAID = "paid"
    PAYMENT_OVERPAID = "overpaid"

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_UNPAID, "Unpaid"),
        (PAYMENT_PARTIAL, "Partial"),
        (PAYMENT_PAID, "Paid"),
        (PAYMENT_OVERPAID, "Overpaid"),
    ]

    OPEN_PAYMENT_STATUSES = (PAYMENT_UNPAID, PAYMENT_PARTIAL)

    total_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    paid_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    # total - paid; negative on overpayment
    outstanding_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    payment_status = models.CharField(
        max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_UNPAID
    )

    due_date = models.DateField(null=True, blank=True)
    last_payment_date = models.DateField(null=True, blank=True)
    last_payment_amount = models.DecimalField(
        max_digits=15, decimal_places=2, null=True, blank=True
    )

    class Meta:
        abstract = True

    _PAYMENT_FIELDS = (
        "paid_amount",
        "outstanding_amount",
        "payment_status",
        "last_payment_date",
        "last_payment_amount",
    )

    # ---------------- hooks ----------------

    def applied_allocations(self):
        """Queryset of applied, non-deleted allocations against this entity."""
        raise NotImplementedError

    # ---------------- derivations ----------------

    def applied_allocation_total(self) -> Decimal:
        return sum_money(self.applied_allocations(), "allocated_amount")

    def derive_payment_status(self, paid: Decimal, *, today=None) -> str:
        total = money(self.total_amount)
        paid = money(paid)

        if paid <= ZERO and total > ZERO:
            return self.PAYMENT_UNPAID
        if paid < total:
            return self.PAYMENT_PARTIAL
        if paid == total:
            return self.PAYMENT_PAID
        return self.PAYMENT_OVERPAID

    def is_past_due(self, today) -> bool:
        return bool(self.due_date and today and self.due_date < today)

    def refresh_payment_status(self, *, now=None, commit: bool = True) -> str:
        """
        Full re-derivation from applied allocations (never incremental).
        Safe to call any number of times.
        """
        now = now or timezone.now()
        today = timezone.localdate(now)

        paid = self.applied_allocation_total()
        self.paid_amount = paid
        self.outstanding_amount = money(self.total_amount) - paid
        self.payment_status = self.derive_payment_status(paid, today=today)

        last = self.applied_allocations().order_by("-applied_at").first()
        if last is not None and last.applied_at is not None:
            self.last_payment_date = timezone.localdate(last.applied_at)
            self.last_payment_amount = money(last.allocated_amount)
        else:
            self.last_payment_date = None
            self.last_payment_amount = None

        if commit:
            self.save(update_fields=list(self._PAYMENT_FIELDS))

        return self.payment_status

    def get_days_overdue(self, today) -> int:
        """
        Open entity: days past due as of `today`.
        Settled entity: how late the last payment landed.
        """
        if not self.due_date:
            return 0

        if self.payment_status in (self.PAYMENT_PAID, self.PAYMENT_OVERPAID):
            if not self.last_payment_date:
                return 0
            return max(0, (self.last_payment_date - self.due_date).days)

        return max(0, (today - self.due_date).days)


# ============================================================
# PAYMENT ALLOCATION
# ============================================================


class PaymentAllocationBase(SoftDeleteModel):
    STATUS_PENDING = lifecycle.STATUS_PENDING
    STATUS_APPLIED = lifecycle.STATUS_APPLIED
    STATUS_REVERSED = lifecycle.STATUS_REVERSED
    STATUS_CANCELLED = lifecycle.STATUS_CANCELLED

    STATUS_CHOICES = lifecycle.STATUS_CHOICES

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    allocated_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING
    )

    applied_at = models.DateTimeField(null=True, blank=True)
    reversed_at = models.DateTimeField(null=True, blank=True)
    reversal_reason = models.TextField(blank=True, default="")

    approved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    @property
    def is_pending(self) -> bool:
        return self.status == self.STATUS_PENDING

    @property
    def is_applied(self) -> bool:
        return self.status == self.STATUS_APPLIED

    @property
    def is_reversed(self) -> bool:
        return self.status == self.STATUS_REVERSED

    @property
    def is_terminal(self) -> bool:
        return self.status in lifecycle.TERMINAL_STATES

    @property
    def can_reverse(self) -> bool:
        return self.status == self.STATUS_APPLIED

    # Field-level transitions. Callers validate with ledger.lifecycle first.

    def mark_applied(self, *, approved_by=None, now=None):
        now = now or timezone.now()
        self.status = self.STATUS_APPLIED
        self.applied_at = now
        fields = ["status", "applied_at", "updated_at"]
        if approved_by is not None:
            self.approved_by = approved_by
            self.approved_at = now
            fields += ["approved_by", "approved_at"]
        self.save(update_fields=fields)

    def mark_reversed(self, *, reason: str = "", now=None):
        self.status = self.STATUS_REVERSED
        self.reversed_at = now or timezone.now()
        self.reversal_reason = (reason or "").strip()
        self.save(update_fields=["status", "reversed_at", "reversal_reason", "updated_at"])

    def mark_cancelled(self, *, reason: str = ""):
        self.status = self.STATUS_CANCELLED
        self.reversal_reason = (reason or "").strip()
        self.save(update_fields=["status", "reversal_reason", "updated_at"])
