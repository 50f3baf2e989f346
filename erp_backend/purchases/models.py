# purchases/models.py

import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from ledger.models import (
    LedgerEntity,
    PaymentAllocationBase,
    SoftDeleteManager,
    SoftDeleteModel,
    SoftDeleteQuerySet,
    generate_document_number,
)
from ledger.money import ZERO, money, percent, sum_money

User = settings.AUTH_USER_MODEL


# ======================================================
# SUPPLIER
# ======================================================


class Supplier(models.Model):
    """
    Supplier master.

    Every supplier owns exactly one SupplierBalance row
    (created by purchases.services.balance_service.create_supplier).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=50, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    address = models.TextField(blank=True, default="")

    payment_terms_days = models.PositiveIntegerField(default=30)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["name"], name="supplier_name_idx"),
            models.Index(fields=["is_active"], name="supplier_active_idx"),
        ]

    def clean(self):
        if not (self.code or "").strip():
            raise ValidationError({"code": "code is required"})
        if not (self.name or "").strip():
            raise ValidationError({"name": "name is required"})

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        self.name = (self.name or "").strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return self.name


# ======================================================
# PURCHASE ORDER (AP LEDGER ENTITY)
# ======================================================


class PurchaseOrderQuerySet(models.QuerySet):
    def for_supplier(self, supplier):
        return self.filter(supplier=supplier)

    def payable(self):
        return self.filter(status__in=PurchaseOrder.PAYABLE_STATUSES)

    def outstanding(self):
        return self.payable().filter(
            payment_status__in=PurchaseOrder.OPEN_PAYMENT_STATUSES,
            outstanding_amount__gt=ZERO,
        )

    def past_due(self, today):
        return self.outstanding().filter(due_date__lt=today)

    def oldest_debt_first(self):
        return self.order_by(
            models.F("due_date").asc(nulls_last=True),
            "order_date",
            "created_at",
        )

    def search(self, term: str):
        term = (term or "").strip()
        if not term:
            return self
        return self.filter(Q(po_number__icontains=term) | Q(supplier__name__icontains=term))


class PurchaseOrder(LedgerEntity):
    """
    Supplier order. The AP ledger entity.

    GUARANTEES:
    - paid_amount / outstanding_amount / payment_status are derived from
      applied PurchasePaymentAllocations (refresh_payment_status)
    - Only approved / received orders count towards the supplier balance
    """

    STATUS_DRAFT = "draft"
    STATUS_APPROVED = "approved"
    STATUS_RECEIVED = "received"
    STATUS_CANCELLED = "cancelled"

    STATUSES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_RECEIVED, "Received"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    PAYABLE_STATUSES = (STATUS_APPROVED, STATUS_RECEIVED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    po_number = models.CharField(max_length=32, unique=True, blank=True)

    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.PROTECT,
        related_name="purchase_orders",
    )

    status = models.CharField(max_length=20, choices=STATUSES, default=STATUS_APPROVED)

    order_date = models.DateField(default=timezone.localdate)
    expected_delivery_date = models.DateField(null=True, blank=True)
    payment_terms_days = models.PositiveIntegerField(null=True, blank=True)

    subtotal_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    tax_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchase_orders_created",
    )
    approved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchase_orders_approved",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PurchaseOrderQuerySet.as_manager()

    class Meta:
        ordering = ["-order_date", "-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=Decimal("0.00")),
                name="purchase_order_total_nonnegative",
            ),
        ]
        indexes = [
            models.Index(fields=["supplier", "payment_status"], name="po_supplier_payment_idx"),
            models.Index(fields=["status", "due_date"], name="po_status_due_idx"),
        ]

    def applied_allocations(self):
        return self.payment_allocations.filter(status="applied")

    @property
    def is_payable(self) -> bool:
        return self.status in self.PAYABLE_STATUSES

    def clean(self):
        if self.total_amount is not None and self.total_amount < Decimal("0.00"):
            raise ValidationError({"total_amount": "total_amount cannot be negative"})

    def save(self, *args, **kwargs):
        if self._state.adding:
            if not self.po_number:
                prefix = f"PO-{self.order_date:%Y%m%d}"
                self.po_number = generate_document_number(
                    PurchaseOrder, "po_number", prefix, width=3
                )
            if self.payment_terms_days is None:
                self.payment_terms_days = self.supplier.payment_terms_days
            if self.due_date is None:
                self.due_date = self.order_date + timedelta(days=self.payment_terms_days)
            self.outstanding_amount = money(self.total_amount) - money(self.paid_amount)

        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.po_number} ({self.supplier.name})"


# ======================================================
# PURCHASE PAYMENT
# ======================================================


class PurchasePaymentQuerySet(SoftDeleteQuerySet):
    def pending(self):
        return self.filter(status=PurchasePayment.STATUS_PENDING)

    def completed(self):
        return self.filter(status=PurchasePayment.STATUS_COMPLETED)

    def advances(self):
        return self.filter(payment_type=PurchasePayment.TYPE_ADVANCE)

    def for_supplier(self, supplier):
        return self.filter(supplier=supplier)

    def between(self, start, end):
        return self.filter(payment_date__range=(start, end))

    def search(self, term: str):
        term = (term or "").strip()
        if not term:
            return self
        return self.filter(
            Q(payment_number__icontains=term)
            | Q(reference_number__icontains=term)
            | Q(supplier__name__icontains=term)
        )


class PurchasePaymentManager(SoftDeleteManager.from_queryset(PurchasePaymentQuerySet)):
    pass


class PurchasePayment(SoftDeleteModel):
    """
    Money paid to a supplier (Accounts Payable).

    Design:
    - Optional link to one purchase order; the money is tied to orders via
      PurchasePaymentAllocation rows
    - payment_type is re-derived from applied allocations
      (refresh_payment_type), never set by hand
    """

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"
    STATUS_FAILED = "failed"

    STATUSES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_FAILED, "Failed"),
    ]

    ALLOCATABLE_STATUSES = (STATUS_PENDING, STATUS_COMPLETED)

    TYPE_ADVANCE = "advance"
    TYPE_PARTIAL = "partial"
    TYPE_FULL = "full"
    TYPE_OVERPAYMENT = "overpayment"

    TYPES = [
        (TYPE_ADVANCE, "Advance"),
        (TYPE_PARTIAL, "Partial"),
        (TYPE_FULL, "Full"),
        (TYPE_OVERPAYMENT, "Overpayment"),
    ]

    METHOD_CASH = "cash"
    METHOD_BANK = "bank"
    METHOD_CHEQUE = "cheque"

    METHODS = [
        (METHOD_CASH, "Cash"),
        (METHOD_BANK, "Bank"),
        (METHOD_CHEQUE, "Cheque"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    payment_number = models.CharField(max_length=32, unique=True, blank=True)

    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    purchase_order = models.ForeignKey(
        PurchaseOrder,
        on_delete=models.PROTECT,
        related_name="direct_payments",
        null=True,
        blank=True,
        help_text="Optional: payment for a specific order",
    )

    payment_date = models.DateField(default=timezone.localdate)
    amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    payment_method = models.CharField(
        max_length=20, choices=METHODS, default=METHOD_CASH
    )
    reference_number = models.CharField(max_length=64, blank=True, default="")

    status = models.CharField(max_length=20, choices=STATUSES, default=STATUS_PENDING)
    payment_type = models.CharField(max_length=20, choices=TYPES, default=TYPE_ADVANCE)

    notes = models.TextField(blank=True, default="")

    processed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchase_payments_processed",
    )
    approved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchase_payments_approved",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PurchasePaymentManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-payment_date", "-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=Decimal("0.00")),
                name="purchase_payment_amount_gt_zero",
            ),
        ]
        indexes = [
            models.Index(fields=["supplier", "payment_date"], name="pp_supplier_date_idx"),
            models.Index(fields=["status", "payment_type"], name="pp_status_type_idx"),
        ]
        permissions = [
            ("process_payments", "Can record supplier payments"),
            ("approve_payments", "Can approve supplier payments"),
            ("allocate_supplier_payments", "Can allocate supplier payments to orders"),
        ]

    # ---------------- accessors ----------------

    @property
    def is_approved(self) -> bool:
        return self.approved_by_id is not None and self.approved_at is not None

    @property
    def can_be_edited(self) -> bool:
        return self.status == self.STATUS_PENDING

    @property
    def can_be_cancelled(self) -> bool:
        return self.status == self.STATUS_PENDING

    @property
    def can_be_approved(self) -> bool:
        return self.status == self.STATUS_PENDING and not self.is_approved

    # ---------------- allocation split ----------------

    def applied_allocations(self):
        return self.allocations.filter(status="applied")

    @property
    def allocated_amount(self) -> Decimal:
        return sum_money(self.applied_allocations(), "allocated_amount")

    @property
    def unallocated_amount(self) -> Decimal:
        return money(self.amount) - self.allocated_amount

    def derive_payment_type(self, allocated: Decimal, *, all_settled: bool) -> str:
        """
        RULES:
        - nothing allocated                       -> advance
        - allocated < amount                      -> overpayment
        - allocated == amount, orders settled     -> full
        - allocated == amount, order still owing  -> partial
        """
        allocated = money(allocated)
        if allocated == ZERO:
            return self.TYPE_ADVANCE
        if allocated < money(self.amount):
            return self.TYPE_OVERPAYMENT
        if all_settled:
            return self.TYPE_FULL
        return self.TYPE_PARTIAL

    def refresh_payment_type(self, *, commit: bool = True) -> str:
        applied = self.applied_allocations().select_related("purchase_order")
        allocated = sum_money(applied, "allocated_amount")
        all_settled = all(
            a.purchase_order.payment_status
            in (PurchaseOrder.PAYMENT_PAID, PurchaseOrder.PAYMENT_OVERPAID)
            for a in applied
        )

        self.payment_type = self.derive_payment_type(allocated, all_settled=all_settled)
        if commit:
            self.save(update_fields=["payment_type", "updated_at"])
        return self.payment_type

    # ---------------- validation ----------------

    def clean(self):
        if self.payment_method not in dict(self.METHODS):
            raise ValidationError({"payment_method": "Invalid payment_method"})

        if self.amount is not None and self.amount <= Decimal("0.00"):
            raise ValidationError({"amount": "amount must be > 0"})

        if (
            self.purchase_order_id
            and self.supplier_id
            and self.purchase_order.supplier_id != self.supplier_id
        ):
            raise ValidationError(
                {"purchase_order": "purchase_order belongs to another supplier"}
            )

    def save(self, *args, **kwargs):
        if self._state.adding and not self.payment_number:
            prefix = f"PP-{self.payment_date:%Y%m%d}"
            self.payment_number = generate_document_number(
                PurchasePayment, "payment_number", prefix
            )

        self.reference_number = (self.reference_number or "").strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.payment_number} | {self.supplier.name} - {self.amount}"


# ======================================================
# PURCHASE PAYMENT ALLOCATION
# ======================================================


class PurchaseAllocationQuerySet(SoftDeleteQuerySet):
    def applied(self):
        return self.filter(status=PaymentAllocationBase.STATUS_APPLIED)

    def active(self):
        return self.filter(
            status__in=[PaymentAllocationBase.STATUS_PENDING, PaymentAllocationBase.STATUS_APPLIED]
        )

    def for_payment(self, payment):
        return self.filter(purchase_payment=payment)

    def for_order(self, order):
        return self.filter(purchase_order=order)


class PurchaseAllocationManager(SoftDeleteManager.from_queryset(PurchaseAllocationQuerySet)):
    pass


class PurchasePaymentAllocation(PaymentAllocationBase):
    """
    Slice of a supplier payment assigned to one purchase order.
    Status changes go through purchases.services.payment_service.
    """

    purchase_payment = models.ForeignKey(
        PurchasePayment,
        on_delete=models.PROTECT,
        related_name="allocations",
    )
    purchase_order = models.ForeignKey(
        PurchaseOrder,
        on_delete=models.PROTECT,
        related_name="payment_allocations",
    )

    objects = PurchaseAllocationManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(allocated_amount__gt=Decimal("0.00")),
                name="purchase_allocation_amount_gt_zero",
            ),
        ]
        indexes = [
            models.Index(fields=["purchase_payment", "status"], name="pp_alloc_payment_idx"),
            models.Index(fields=["purchase_order", "status"], name="pp_alloc_order_idx"),
        ]

    @property
    def percentage_of_payment(self) -> Decimal:
        return percent(self.allocated_amount, self.purchase_payment.amount)

    @property
    def percentage_of_order(self) -> Decimal:
        return percent(self.allocated_amount, self.purchase_order.total_amount)

    def clean(self):
        if self.allocated_amount is not None and self.allocated_amount <= Decimal("0.00"):
            raise ValidationError({"allocated_amount": "allocated_amount must be > 0"})

    def save(self, *args, **kwargs):
        self.notes = (self.notes or "").strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.allocated_amount} -> {self.purchase_order_id} ({self.status})"


# ======================================================
# SUPPLIER BALANCE (AP AGGREGATOR)
# ======================================================


class SupplierBalanceQuerySet(models.QuerySet):
    def overdue(self):
        return self.filter(payment_status=SupplierBalance.STATUS_OVERDUE)

    def blocked(self):
        return self.filter(payment_status=SupplierBalance.STATUS_BLOCKED)

    def with_outstanding(self):
        return self.filter(total_outstanding__gt=ZERO)

    def with_advance_balance(self):
        return self.filter(advance_balance__gt=ZERO)


class SupplierBalance(models.Model):
    """
    Per-supplier AP roll-up.

    GUARANTEES:
    - One row per supplier
    - Everything except credit_limit is a CACHE rebuilt by
      purchases.services.balance_service.refresh_supplier_balance()
    - credit_limit == 0 means no limit
    """

    STATUS_CURRENT = "current"
    STATUS_OVERDUE = "overdue"
    STATUS_BLOCKED = "blocked"

    STATUSES = [
        (STATUS_CURRENT, "Current"),
        (STATUS_OVERDUE, "Overdue"),
        (STATUS_BLOCKED, "Blocked"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    supplier = models.OneToOneField(
        Supplier,
        on_delete=models.CASCADE,
        related_name="balance",
    )

    total_outstanding = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    total_paid = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    advance_balance = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    credit_limit = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    last_payment_date = models.DateField(null=True, blank=True)

    payment_status = models.CharField(
        max_length=20, choices=STATUSES, default=STATUS_CURRENT
    )

    updated_at = models.DateTimeField(auto_now=True)

    objects = SupplierBalanceQuerySet.as_manager()

    class Meta:
        ordering = ["supplier__name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(credit_limit__gte=Decimal("0.00")),
                name="supplier_credit_limit_nonnegative",
            ),
        ]
        indexes = [
            models.Index(fields=["payment_status"], name="supplier_balance_status_idx"),
        ]
        permissions = [
            ("view_supplier_balances", "Can view supplier balances"),
            ("manage_supplier_credit", "Can change supplier credit limits"),
        ]

    @property
    def available_credit(self) -> Decimal:
        return max(ZERO, money(self.credit_limit) - money(self.total_outstanding))

    @property
    def credit_utilization_percentage(self) -> Decimal:
        return percent(self.total_outstanding, self.credit_limit)

    @property
    def is_over_limit(self) -> bool:
        return money(self.credit_limit) > ZERO and money(self.total_outstanding) > money(
            self.credit_limit
        )

    def days_without_payment(self, today):
        if self.last_payment_date is None:
            return None
        return (today - self.last_payment_date).days

    def clean(self):
        if self.credit_limit is not None and self.credit_limit < Decimal("0.00"):
            raise ValidationError({"credit_limit": "credit_limit cannot be negative"})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.supplier} | outstanding {self.total_outstanding} ({self.payment_status})"
