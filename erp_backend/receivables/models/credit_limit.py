# receivables/models/credit_limit.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q

from ledger.money import ZERO, money, percent
from receivables.conf import receivables_setting

User = settings.AUTH_USER_MODEL


class CreditLimitQuerySet(models.QuerySet):
    def good_credit(self):
        return self.filter(credit_status=CustomerCreditLimit.STATUS_GOOD)

    def warning_credit(self):
        return self.filter(credit_status=CustomerCreditLimit.STATUS_WARNING)

    def blocked_credit(self):
        return self.filter(credit_status__in=CustomerCreditLimit.BLOCKING_STATUSES)

    def over_limit(self):
        return self.filter(current_balance__gt=F("credit_limit"))

    def overdue(self):
        return self.filter(overdue_amount__gt=ZERO)

    def review_due(self, today):
        return self.filter(next_review_date__lte=today)

    def high_risk(self):
        return self.filter(Q(credit_score__lt=60) | Q(payment_reliability_score__lt=70))


class CustomerCreditLimit(models.Model):
    """
    Per-customer credit roll-up (AR balance aggregator).

    GUARANTEES:
    - One row per customer
    - current_balance / overdue_amount / total_paid / available_credit /
      days_past_due / credit_status are a CACHE, rebuilt by
      receivables.services.credit_service.refresh_credit_limit()
    """

    STATUS_GOOD = "good"
    STATUS_WARNING = "warning"
    STATUS_BLOCKED = "blocked"
    STATUS_SUSPENDED = "suspended"
    STATUS_DEFAULTED = "defaulted"

    STATUS_CHOICES = [
        (STATUS_GOOD, "Good"),
        (STATUS_WARNING, "Warning"),
        (STATUS_BLOCKED, "Blocked"),
        (STATUS_SUSPENDED, "Suspended"),
        (STATUS_DEFAULTED, "Defaulted"),
    ]

    BLOCKING_STATUSES = (STATUS_BLOCKED, STATUS_SUSPENDED, STATUS_DEFAULTED)

    TERMS_CASH = "cash"
    TERMS_NET_15 = "net_15"
    TERMS_NET_30 = "net_30"
    TERMS_NET_60 = "net_60"
    TERMS_NET_90 = "net_90"
    TERMS_CUSTOM = "custom"

    TERMS_CHOICES = [
        (TERMS_CASH, "Cash Only"),
        (TERMS_NET_15, "Net 15 Days"),
        (TERMS_NET_30, "Net 30 Days"),
        (TERMS_NET_60, "Net 60 Days"),
        (TERMS_NET_90, "Net 90 Days"),
        (TERMS_CUSTOM, "Custom"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.OneToOneField(
        "customers.Customer",
        on_delete=models.CASCADE,
        related_name="credit_account",
    )

    credit_limit = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    current_balance = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    available_credit = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    overdue_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )
    total_paid = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    payment_terms_days = models.PositiveIntegerField(default=30)
    payment_terms_type = models.CharField(
        max_length=10, choices=TERMS_CHOICES, default=TERMS_NET_30
    )
    early_payment_discount_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("0.00")
    )
    early_payment_discount_days = models.PositiveIntegerField(default=0)

    credit_status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_GOOD
    )
    # manual block; recomputes keep credit_status=blocked while set
    credit_hold = models.BooleanField(default=False)
    credit_score = models.PositiveSmallIntegerField(default=100)
    payment_reliability_score = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("100.00")
    )

    days_past_due = models.PositiveIntegerField(default=0)
    payment_delay_count = models.PositiveIntegerField(default=0)
    late_payment_count = models.PositiveIntegerField(default=0)

    last_review_date = models.DateField(null=True, blank=True)
    next_review_date = models.DateField(null=True, blank=True)

    approved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="credit_limits_approved",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="credit_limits_reviewed",
    )
    last_reviewed_at = models.DateTimeField(null=True, blank=True)

    requires_approval = models.BooleanField(default=False)
    auto_approval_limit = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0.00")
    )

    credit_notes = models.TextField(blank=True, default="")
    risk_assessment = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CreditLimitQuerySet.as_manager()

    class Meta:
        ordering = ["customer__name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(credit_limit__gte=Decimal("0.00")),
                name="credit_limit_nonnegative",
            ),
        ]
        indexes = [
            models.Index(fields=["credit_status"], name="credit_status_idx"),
            models.Index(fields=["next_review_date"], name="credit_review_idx"),
        ]
        permissions = [
            ("manage_credit_limits", "Can change customer credit limits"),
            ("review_credit", "Can conduct customer credit reviews"),
        ]

    # ---------------- accessors ----------------

    @property
    def credit_utilization_percentage(self) -> Decimal:
        return percent(self.current_balance, self.credit_limit)

    @property
    def is_over_limit(self) -> bool:
        return money(self.current_balance) > money(self.credit_limit)

    @property
    def is_near_limit(self) -> bool:
        threshold = Decimal(str(receivables_setting("NEAR_LIMIT_PERCENT")))
        return self.credit_utilization_percentage >= threshold

    @property
    def is_overdue(self) -> bool:
        return money(self.overdue_amount) > ZERO

    @property
    def is_credit_blocked(self) -> bool:
        return self.credit_status in self.BLOCKING_STATUSES

    @property
    def can_extend_credit(self) -> bool:
        return (
            self.credit_status == self.STATUS_GOOD
            and not self.is_over_limit
            and self.days_past_due <= 30
        )

    @property
    def payment_terms_display(self) -> str:
        if self.payment_terms_type == self.TERMS_CUSTOM:
            return f"Net {self.payment_terms_days} Days"
        return dict(self.TERMS_CHOICES).get(self.payment_terms_type, "Net 30 Days")

    def derive_credit_status(self) -> str:
        """
        Priority cascade, first match wins:
        over limit -> blocked, >90d -> defaulted, >60d -> suspended,
        >30d or near limit -> warning, else good.
        """
        if self.is_over_limit:
            return self.STATUS_BLOCKED
        if self.days_past_due > 90:
            return self.STATUS_DEFAULTED
        if self.days_past_due > 60:
            return self.STATUS_SUSPENDED
        if self.days_past_due > 30 or self.is_near_limit:
            return self.STATUS_WARNING
        return self.STATUS_GOOD

    # ---------------- validation ----------------

    def clean(self):
        if self.credit_limit is not None and self.credit_limit < Decimal("0.00"):
            raise ValidationError({"credit_limit": "credit_limit cannot be negative"})

        if self.credit_score is not None and self.credit_score > 100:
            raise ValidationError({"credit_score": "credit_score must be 0-100"})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.customer} | limit {self.credit_limit} ({self.credit_status})"
