# receivables/models/aging_snapshot.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from ledger.money import ZERO, money, percent
from receivables.exceptions import SnapshotImmutableError

User = settings.AUTH_USER_MODEL


BUCKET_FIELDS = (
    "current_amount",
    "days_31_60",
    "days_61_90",
    "days_91_120",
    "days_over_120",
)


class AgingSnapshotQuerySet(models.QuerySet):
    def for_customer(self, customer):
        return self.filter(customer=customer)

    def by_type(self, snapshot_type: str):
        return self.filter(snapshot_type=snapshot_type)

    def by_risk_level(self, risk_level: str):
        return self.filter(risk_level=risk_level)

    def by_collection_status(self, status: str):
        return self.filter(collection_status=status)

    def overdue(self):
        return self.filter(overdue_amount__gt=ZERO)

    def high_risk(self):
        return self.filter(
            risk_level__in=[CustomerAgingSnapshot.RISK_HIGH, CustomerAgingSnapshot.RISK_CRITICAL]
        )

    def between(self, start, end):
        return self.filter(snapshot_date__range=(start, end))

    def latest_first(self):
        return self.order_by("-snapshot_date", "-generated_at")


class CustomerAgingSnapshot(models.Model):
    """
    Point-in-time classification of a customer's outstanding sales.

    GUARANTEES:
    - Immutable: rows are only ever created (saving an existing row raises)
    - current_amount + days_31_60 + days_61_90 + days_91_120 + days_over_120
      == total_outstanding
    """

    TYPE_DAILY = "daily"
    TYPE_WEEKLY = "weekly"
    TYPE_MONTHLY = "monthly"
    TYPE_QUARTERLY = "quarterly"
    TYPE_MANUAL = "manual"

    TYPE_CHOICES = [
        (TYPE_DAILY, "Daily"),
        (TYPE_WEEKLY, "Weekly"),
        (TYPE_MONTHLY, "Monthly"),
        (TYPE_QUARTERLY, "Quarterly"),
        (TYPE_MANUAL, "Manual"),
    ]

    RISK_LOW = "low"
    RISK_MEDIUM = "medium"
    RISK_HIGH = "high"
    RISK_CRITICAL = "critical"

    RISK_CHOICES = [
        (RISK_LOW, "Low"),
        (RISK_MEDIUM, "Medium"),
        (RISK_HIGH, "High"),
        (RISK_CRITICAL, "Critical"),
    ]

    # one-level escalation
    RISK_ESCALATION = {
        RISK_LOW: RISK_MEDIUM,
        RISK_MEDIUM: RISK_HIGH,
        RISK_HIGH: RISK_CRITICAL,
    }

    COLLECTION_CURRENT = "current"
    COLLECTION_FOLLOW_UP = "follow_up"
    COLLECTION_COLLECTION = "collection"
    COLLECTION_LEGAL = "legal"
    COLLECTION_WRITE_OFF = "write_off"

    COLLECTION_CHOICES = [
        (COLLECTION_CURRENT, "Current"),
        (COLLECTION_FOLLOW_UP, "Follow up"),
        (COLLECTION_COLLECTION, "Collection"),
        (COLLECTION_LEGAL, "Legal"),
        (COLLECTION_WRITE_OFF, "Write off"),
    ]

    BUCKET_LABELS = {
        "current": "0-30 days",
        "days_31_60": "31-60 days",
        "days_61_90": "61-90 days",
        "days_91_120": "91-120 days",
        "over_120": "Over 120 days",
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.CASCADE,
        related_name="aging_snapshots",
    )
    snapshot_date = models.DateField()
    snapshot_type = models.CharField(
        max_length=20, choices=TYPE_CHOICES, default=TYPE_DAILY
    )

    current_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    days_31_60 = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    days_61_90 = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    days_91_120 = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    days_over_120 = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    total_outstanding = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    overdue_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    overdue_invoices_count = models.PositiveIntegerField(default=0)
    total_invoices_count = models.PositiveIntegerField(default=0)
    days_oldest_invoice = models.PositiveIntegerField(default=0)

    # credit snapshot
    credit_limit = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    available_credit = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    credit_utilization_percentage = models.DecimalField(
        max_digits=7, decimal_places=2, default=Decimal("0.00")
    )

    # payment behaviour
    average_days_to_pay = models.DecimalField(
        max_digits=7, decimal_places=2, default=Decimal("0.00")
    )
    payment_terms_days = models.PositiveIntegerField(default=30)
    payment_reliability_score = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("100.00")
    )
    late_payments_count = models.PositiveIntegerField(default=0)

    risk_level = models.CharField(max_length=10, choices=RISK_CHOICES, default=RISK_LOW)
    collection_status = models.CharField(
        max_length=20, choices=COLLECTION_CHOICES, default=COLLECTION_CURRENT
    )
    risk_notes = models.TextField(blank=True, default="")

    generated_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="aging_snapshots_generated",
    )
    generated_at = models.DateTimeField()

    calculation_metadata = models.JSONField(default=dict, blank=True)

    objects = AgingSnapshotQuerySet.as_manager()

    class Meta:
        ordering = ["-snapshot_date", "-generated_at"]
        indexes = [
            models.Index(
                fields=["customer", "snapshot_type", "snapshot_date"],
                name="aging_customer_type_date_idx",
            ),
            models.Index(fields=["risk_level"], name="aging_risk_idx"),
        ]
        permissions = [
            ("view_ar_aging", "Can view accounts receivable aging"),
            ("generate_ar_aging", "Can generate aging snapshots"),
        ]

    # ---------------- derived views ----------------

    @property
    def bucket_total(self) -> Decimal:
        return sum((money(getattr(self, f)) for f in BUCKET_FIELDS), ZERO)

    @property
    def overdue_percentage(self) -> Decimal:
        return percent(self.overdue_amount, self.total_outstanding)

    @property
    def aging_distribution(self) -> dict:
        return {
            ("current" if f == "current_amount" else f): percent(
                getattr(self, f), self.total_outstanding
            )
            for f in BUCKET_FIELDS
        }

    @property
    def worst_aging_bucket(self) -> str:
        if money(self.days_over_120) > ZERO:
            return "over_120"
        if money(self.days_91_120) > ZERO:
            return "days_91_120"
        if money(self.days_61_90) > ZERO:
            return "days_61_90"
        if money(self.days_31_60) > ZERO:
            return "days_31_60"
        return "current"

    @property
    def worst_aging_bucket_display(self) -> str:
        return self.BUCKET_LABELS[self.worst_aging_bucket]

    def compare_with(self, previous: "CustomerAgingSnapshot") -> dict:
        return {
            "total_outstanding_change": money(self.total_outstanding)
            - money(previous.total_outstanding),
            "overdue_amount_change": money(self.overdue_amount)
            - money(previous.overdue_amount),
            "credit_utilization_change": money(self.credit_utilization_percentage)
            - money(previous.credit_utilization_percentage),
            "payment_reliability_change": money(self.payment_reliability_score)
            - money(previous.payment_reliability_score),
            "risk_level_changed": self.risk_level != previous.risk_level,
            "collection_status_changed": self.collection_status
            != previous.collection_status,
        }

    # ---------------- immutability ----------------

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise SnapshotImmutableError("Aging snapshots are immutable once created.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.customer} | {self.snapshot_type} {self.snapshot_date}"
