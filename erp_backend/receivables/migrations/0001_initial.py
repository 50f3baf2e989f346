# receivables/migrations/0001_initial.py

import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def money_field(**kwargs):
    return models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15, **kwargs)


def user_fk(related_name):
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.SET_NULL,
        related_name=related_name,
        to=settings.AUTH_USER_MODEL,
    )


def uuid_pk():
    return models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("customers", "0001_initial"),
        ("sales", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # ------------------------------------------------------
        # CustomerPaymentReceive
        # ------------------------------------------------------
        migrations.CreateModel(
            name="CustomerPaymentReceive",
            fields=[
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("id", uuid_pk()),
                ("payment_number", models.CharField(blank=True, max_length=32, unique=True)),
                ("reference_number", models.CharField(blank=True, default="", max_length=64)),
                ("payment_date", models.DateField(default=django.utils.timezone.localdate)),
                ("total_amount", money_field()),
                ("allocated_amount", money_field()),
                ("unallocated_amount", money_field()),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("cash", "Cash"),
                            ("bank", "Bank transfer"),
                            ("card", "Card"),
                            ("cheque", "Cheque"),
                            ("mobile", "Mobile money"),
                        ],
                        default="cash",
                        max_length=20,
                    ),
                ),
                ("payment_reference", models.CharField(blank=True, default="", max_length=128)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("verified", "Verified"),
                            ("allocated", "Allocated"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "allocation_status",
                    models.CharField(
                        choices=[
                            ("unallocated", "Unallocated"),
                            ("partially_allocated", "Partially allocated"),
                            ("fully_allocated", "Fully allocated"),
                        ],
                        default="unallocated",
                        max_length=24,
                    ),
                ),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("internal_notes", models.TextField(blank=True, default="")),
                ("is_reconciled", models.BooleanField(default=False)),
                ("reconciled_date", models.DateField(blank=True, null=True)),
                ("bank_statement_reference", models.CharField(blank=True, default="", max_length=128)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_receives",
                        to="customers.customer",
                    ),
                ),
                ("received_by", user_fk("payment_receives_received")),
                ("verified_by", user_fk("payment_receives_verified")),
                ("approved_by", user_fk("payment_receives_approved")),
            ],
            options={
                "ordering": ["-payment_date", "-created_at"],
                "permissions": [
                    ("process_ar_payments", "Can record customer payments"),
                    ("verify_ar_payments", "Can verify customer payments"),
                    ("approve_ar_payments", "Can approve customer payments"),
                    ("allocate_payments", "Can allocate customer payments to sales"),
                    ("reverse_payment_allocations", "Can reverse payment allocations"),
                    ("reconcile_ar_payments", "Can reconcile customer payments"),
                ],
                "indexes": [
                    models.Index(fields=["customer", "payment_date"], name="receive_customer_date_idx"),
                    models.Index(fields=["status", "allocation_status"], name="receive_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total_amount__gt=Decimal("0.00")),
                        name="payment_receive_total_gt_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(allocated_amount__gte=Decimal("0.00")),
                        name="payment_receive_allocated_nonnegative",
                    ),
                ],
            },
        ),
        # ------------------------------------------------------
        # CustomerPaymentAllocation
        # ------------------------------------------------------
        migrations.CreateModel(
            name="CustomerPaymentAllocation",
            fields=[
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("id", uuid_pk()),
                ("allocated_amount", money_field()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("applied", "Applied"),
                            ("reversed", "Reversed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("applied_at", models.DateTimeField(blank=True, null=True)),
                ("reversed_at", models.DateTimeField(blank=True, null=True)),
                ("reversal_reason", models.TextField(blank=True, default="")),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("allocation_date", models.DateField(default=django.utils.timezone.localdate)),
                (
                    "allocation_type",
                    models.CharField(
                        choices=[("automatic", "Automatic"), ("manual", "Manual")],
                        default="manual",
                        max_length=20,
                    ),
                ),
                ("approved_by", user_fk("+")),
                ("allocated_by", user_fk("customer_allocations_made")),
                (
                    "payment_receive",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="allocations",
                        to="receivables.customerpaymentreceive",
                    ),
                ),
                (
                    "sale",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="receivable_allocations",
                        to="sales.sale",
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_allocations",
                        to="customers.customer",
                    ),
                ),
            ],
            options={
                "ordering": ["allocation_date", "created_at"],
                "indexes": [
                    models.Index(fields=["payment_receive", "status"], name="cust_alloc_receive_idx"),
                    models.Index(fields=["sale", "status"], name="cust_alloc_sale_idx"),
                    models.Index(fields=["customer", "allocation_date"], name="cust_alloc_customer_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(allocated_amount__gt=Decimal("0.00")),
                        name="customer_allocation_amount_gt_zero",
                    ),
                ],
            },
        ),
        # ------------------------------------------------------
        # CustomerCreditLimit
        # ------------------------------------------------------
        migrations.CreateModel(
            name="CustomerCreditLimit",
            fields=[
                ("id", uuid_pk()),
                ("credit_limit", money_field()),
                ("current_balance", money_field()),
                ("available_credit", money_field()),
                ("overdue_amount", money_field()),
                ("total_paid", money_field()),
                ("payment_terms_days", models.PositiveIntegerField(default=30)),
                (
                    "payment_terms_type",
                    models.CharField(
                        choices=[
                            ("cash", "Cash Only"),
                            ("net_15", "Net 15 Days"),
                            ("net_30", "Net 30 Days"),
                            ("net_60", "Net 60 Days"),
                            ("net_90", "Net 90 Days"),
                            ("custom", "Custom"),
                        ],
                        default="net_30",
                        max_length=10,
                    ),
                ),
                (
                    "early_payment_discount_percentage",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5),
                ),
                ("early_payment_discount_days", models.PositiveIntegerField(default=0)),
                (
                    "credit_status",
                    models.CharField(
                        choices=[
                            ("good", "Good"),
                            ("warning", "Warning"),
                            ("blocked", "Blocked"),
                            ("suspended", "Suspended"),
                            ("defaulted", "Defaulted"),
                        ],
                        default="good",
                        max_length=20,
                    ),
                ),
                ("credit_hold", models.BooleanField(default=False)),
                ("credit_score", models.PositiveSmallIntegerField(default=100)),
                (
                    "payment_reliability_score",
                    models.DecimalField(decimal_places=2, default=Decimal("100.00"), max_digits=5),
                ),
                ("days_past_due", models.PositiveIntegerField(default=0)),
                ("payment_delay_count", models.PositiveIntegerField(default=0)),
                ("late_payment_count", models.PositiveIntegerField(default=0)),
                ("last_review_date", models.DateField(blank=True, null=True)),
                ("next_review_date", models.DateField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("last_reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("requires_approval", models.BooleanField(default=False)),
                ("auto_approval_limit", money_field()),
                ("credit_notes", models.TextField(blank=True, default="")),
                ("risk_assessment", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="credit_account",
                        to="customers.customer",
                    ),
                ),
                ("approved_by", user_fk("credit_limits_approved")),
                ("reviewed_by", user_fk("credit_limits_reviewed")),
            ],
            options={
                "ordering": ["customer__name"],
                "permissions": [
                    ("manage_credit_limits", "Can change customer credit limits"),
                    ("review_credit", "Can conduct customer credit reviews"),
                ],
                "indexes": [
                    models.Index(fields=["credit_status"], name="credit_status_idx"),
                    models.Index(fields=["next_review_date"], name="credit_review_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(credit_limit__gte=Decimal("0.00")),
                        name="credit_limit_nonnegative",
                    ),
                ],
            },
        ),
        # ------------------------------------------------------
        # CustomerAgingSnapshot
        # ------------------------------------------------------
        migrations.CreateModel(
            name="CustomerAgingSnapshot",
            fields=[
                ("id", uuid_pk()),
                ("snapshot_date", models.DateField()),
                (
                    "snapshot_type",
                    models.CharField(
                        choices=[
                            ("daily", "Daily"),
                            ("weekly", "Weekly"),
                            ("monthly", "Monthly"),
                            ("quarterly", "Quarterly"),
                            ("manual", "Manual"),
                        ],
                        default="daily",
                        max_length=20,
                    ),
                ),
                ("current_amount", money_field()),
                ("days_31_60", money_field()),
                ("days_61_90", money_field()),
                ("days_91_120", money_field()),
                ("days_over_120", money_field()),
                ("total_outstanding", money_field()),
                ("overdue_amount", money_field()),
                ("overdue_invoices_count", models.PositiveIntegerField(default=0)),
                ("total_invoices_count", models.PositiveIntegerField(default=0)),
                ("days_oldest_invoice", models.PositiveIntegerField(default=0)),
                ("credit_limit", money_field()),
                ("available_credit", money_field()),
                (
                    "credit_utilization_percentage",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=7),
                ),
                (
                    "average_days_to_pay",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=7),
                ),
                ("payment_terms_days", models.PositiveIntegerField(default=30)),
                (
                    "payment_reliability_score",
                    models.DecimalField(decimal_places=2, default=Decimal("100.00"), max_digits=5),
                ),
                ("late_payments_count", models.PositiveIntegerField(default=0)),
                (
                    "risk_level",
                    models.CharField(
                        choices=[
                            ("low", "Low"),
                            ("medium", "Medium"),
                            ("high", "High"),
                            ("critical", "Critical"),
                        ],
                        default="low",
                        max_length=10,
                    ),
                ),
                (
                    "collection_status",
                    models.CharField(
                        choices=[
                            ("current", "Current"),
                            ("follow_up", "Follow up"),
                            ("collection", "Collection"),
                            ("legal", "Legal"),
                            ("write_off", "Write off"),
                        ],
                        default="current",
                        max_length=20,
                    ),
                ),
                ("risk_notes", models.TextField(blank=True, default="")),
                ("generated_at", models.DateTimeField()),
                ("calculation_metadata", models.JSONField(blank=True, default=dict)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="aging_snapshots",
                        to="customers.customer",
                    ),
                ),
                ("generated_by", user_fk("aging_snapshots_generated")),
            ],
            options={
                "ordering": ["-snapshot_date", "-generated_at"],
                "permissions": [
                    ("view_ar_aging", "Can view accounts receivable aging"),
                    ("generate_ar_aging", "Can generate aging snapshots"),
                ],
                "indexes": [
                    models.Index(
                        fields=["customer", "snapshot_type", "snapshot_date"],
                        name="aging_customer_type_date_idx",
                    ),
                    models.Index(fields=["risk_level"], name="aging_risk_idx"),
                ],
            },
        ),
        # ------------------------------------------------------
        # CustomerPaymentSchedule
        # ------------------------------------------------------
        migrations.CreateModel(
            name="CustomerPaymentSchedule",
            fields=[
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("id", uuid_pk()),
                ("schedule_number", models.CharField(blank=True, max_length=40, unique=True)),
                ("schedule_name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                ("total_amount", money_field()),
                ("paid_amount", money_field()),
                ("remaining_amount", money_field()),
                ("installment_amount", money_field()),
                (
                    "frequency",
                    models.CharField(
                        choices=[
                            ("weekly", "Weekly"),
                            ("bi_weekly", "Bi-weekly"),
                            ("monthly", "Monthly"),
                            ("quarterly", "Quarterly"),
                            ("custom", "Custom"),
                        ],
                        default="monthly",
                        max_length=20,
                    ),
                ),
                ("frequency_days", models.PositiveIntegerField(blank=True, null=True)),
                ("total_installments", models.PositiveIntegerField(default=1)),
                ("completed_installments", models.PositiveIntegerField(default=0)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(blank=True, null=True)),
                ("next_payment_date", models.DateField(blank=True, null=True)),
                ("last_payment_date", models.DateField(blank=True, null=True)),
                ("last_payment_reference", models.CharField(blank=True, default="", max_length=128)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("completed", "Completed"),
                            ("suspended", "Suspended"),
                            ("cancelled", "Cancelled"),
                            ("defaulted", "Defaulted"),
                        ],
                        default="active",
                        max_length=20,
                    ),
                ),
                ("auto_generate_reminders", models.BooleanField(default=True)),
                ("reminder_days_before", models.PositiveIntegerField(default=3)),
                (
                    "late_fee_percentage",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5),
                ),
                ("late_fee_amount", money_field()),
                ("grace_period_days", models.PositiveIntegerField(default=0)),
                ("total_late_fees", money_field()),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("terms_and_conditions", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_schedules",
                        to="customers.customer",
                    ),
                ),
                (
                    "sale",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_schedules",
                        to="sales.sale",
                    ),
                ),
                ("created_by", user_fk("payment_schedules_created")),
                ("approved_by", user_fk("payment_schedules_approved")),
            ],
            options={
                "ordering": ["next_payment_date", "created_at"],
                "permissions": [
                    ("manage_payment_schedules", "Can manage customer payment schedules"),
                ],
                "indexes": [
                    models.Index(fields=["status", "next_payment_date"], name="schedule_due_idx"),
                    models.Index(fields=["customer", "status"], name="schedule_customer_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total_amount__gt=Decimal("0.00")),
                        name="schedule_total_gt_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(total_installments__gt=0),
                        name="schedule_installments_gt_zero",
                    ),
                ],
            },
        ),
    ]
