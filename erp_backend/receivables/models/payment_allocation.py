# receivables/models/payment_allocation.py

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from ledger.models import PaymentAllocationBase, SoftDeleteManager, SoftDeleteQuerySet

User = settings.AUTH_USER_MODEL


class AllocationQuerySet(SoftDeleteQuerySet):
    def applied(self):
        return self.filter(status=PaymentAllocationBase.STATUS_APPLIED)

    def pending(self):
        return self.filter(status=PaymentAllocationBase.STATUS_PENDING)

    def reversed(self):
        return self.filter(status=PaymentAllocationBase.STATUS_REVERSED)

    def cancelled(self):
        return self.filter(status=PaymentAllocationBase.STATUS_CANCELLED)

    def for_customer(self, customer):
        return self.filter(customer=customer)

    def for_sale(self, sale):
        return self.filter(sale=sale)

    def for_payment(self, payment_receive):
        return self.filter(payment_receive=payment_receive)

    def automatic(self):
        return self.filter(allocation_type=CustomerPaymentAllocation.TYPE_AUTOMATIC)

    def manual(self):
        return self.filter(allocation_type=CustomerPaymentAllocation.TYPE_MANUAL)

    def between(self, start, end):
        return self.filter(allocation_date__range=(start, end))


class AllocationManager(SoftDeleteManager.from_queryset(AllocationQuerySet)):
    pass


class CustomerPaymentAllocation(PaymentAllocationBase):
    """
    Slice of a customer receipt assigned to one sale.

    Status changes go through receivables.services.allocation_service so the
    receipt split, the sale's payment status and the customer's credit
    aggregate are recomputed together.
    """

    TYPE_AUTOMATIC = "automatic"
    TYPE_MANUAL = "manual"

    TYPE_CHOICES = [
        (TYPE_AUTOMATIC, "Automatic"),
        (TYPE_MANUAL, "Manual"),
    ]

    payment_receive = models.ForeignKey(
        "receivables.CustomerPaymentReceive",
        on_delete=models.PROTECT,
        related_name="allocations",
    )
    sale = models.ForeignKey(
        "sales.Sale",
        on_delete=models.PROTECT,
        related_name="receivable_allocations",
    )
    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="payment_allocations",
    )

    allocation_date = models.DateField(default=timezone.localdate)
    allocation_type = models.CharField(
        max_length=20, choices=TYPE_CHOICES, default=TYPE_MANUAL
    )

    allocated_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="customer_allocations_made",
    )

    objects = AllocationManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["allocation_date", "created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(allocated_amount__gt=Decimal("0.00")),
                name="customer_allocation_amount_gt_zero",
            ),
        ]
        indexes = [
            models.Index(fields=["payment_receive", "status"], name="cust_alloc_receive_idx"),
            models.Index(fields=["sale", "status"], name="cust_alloc_sale_idx"),
            models.Index(fields=["customer", "allocation_date"], name="cust_alloc_customer_idx"),
        ]

    def days_old(self, today) -> int:
        return max(0, (today - self.allocation_date).days)

    def clean(self):
        if self.allocated_amount is not None and self.allocated_amount <= Decimal("0.00"):
            raise ValidationError({"allocated_amount": "allocated_amount must be > 0"})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.allocated_amount} -> {self.sale_id} ({self.status})"
