# purchases/migrations/0001_initial.py

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


ALLOCATION_STATUSES = [
    ("pending", "Pending"),
    ("applied", "Applied"),
    ("reversed", "Reversed"),
    ("cancelled", "Cancelled"),
]

PAYMENT_STATUSES = [
    ("unpaid", "Unpaid"),
    ("partial", "Partial"),
    ("paid", "Paid"),
    ("overpaid", "Overpaid"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # ------------------------------------------------------
        # Supplier
        # ------------------------------------------------------
        migrations.CreateModel(
            name="Supplier",
            fields=[
                ("id", uuid_pk()),
                ("code", models.CharField(max_length=32, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("phone", models.CharField(blank=True, default="", max_length=50)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("address", models.TextField(blank=True, default="")),
                ("payment_terms_days", models.PositiveIntegerField(default=30)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["name"], name="supplier_name_idx"),
                    models.Index(fields=["is_active"], name="supplier_active_idx"),
                ],
            },
        ),
        # ------------------------------------------------------
        # PurchaseOrder
        # ------------------------------------------------------
        migrations.CreateModel(
            name="PurchaseOrder",
            fields=[
                ("total_amount", money_field()),
                ("paid_amount", money_field()),
                ("outstanding_amount", money_field()),
                (
                    "payment_status",
                    models.CharField(choices=PAYMENT_STATUSES, default="unpaid", max_length=20),
                ),
                ("due_date", models.DateField(blank=True, null=True)),
                ("last_payment_date", models.DateField(blank=True, null=True)),
                (
                    "last_payment_amount",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True),
                ),
                ("id", uuid_pk()),
                ("po_number", models.CharField(blank=True, max_length=32, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("approved", "Approved"),
                            ("received", "Received"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="approved",
                        max_length=20,
                    ),
                ),
                ("order_date", models.DateField(default=django.utils.timezone.localdate)),
                ("expected_delivery_date", models.DateField(blank=True, null=True)),
                ("payment_terms_days", models.PositiveIntegerField(blank=True, null=True)),
                ("subtotal_amount", money_field()),
                ("tax_amount", money_field()),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "supplier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchase_orders",
                        to="purchases.supplier",
                    ),
                ),
                ("created_by", user_fk("purchase_orders_created")),
                ("approved_by", user_fk("purchase_orders_approved")),
            ],
            options={
                "ordering": ["-order_date", "-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total_amount__gte=Decimal("0.00")),
                        name="purchase_order_total_nonnegative",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["supplier", "payment_status"], name="po_supplier_payment_idx"),
                    models.Index(fields=["status", "due_date"], name="po_status_due_idx"),
                ],
            },
        ),
        # ------------------------------------------------------
        # PurchasePayment
        # ------------------------------------------------------
        migrations.CreateModel(
            name="PurchasePayment",
            fields=[
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("id", uuid_pk()),
                ("payment_number", models.CharField(blank=True, max_length=32, unique=True)),
                ("payment_date", models.DateField(default=django.utils.timezone.localdate)),
                ("amount", money_field()),
                (
                    "payment_method",
                    models.CharField(
                        choices=[("cash", "Cash"), ("bank", "Bank"), ("cheque", "Cheque")],
                        default="cash",
                        max_length=20,
                    ),
                ),
                ("reference_number", models.CharField(blank=True, default="", max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "payment_type",
                    models.CharField(
                        choices=[
                            ("advance", "Advance"),
                            ("partial", "Partial"),
                            ("full", "Full"),
                            ("overpayment", "Overpayment"),
                        ],
                        default="advance",
                        max_length=20,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "supplier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="purchases.supplier",
                    ),
                ),
                (
                    "purchase_order",
                    models.ForeignKey(
                        blank=True,
                        help_text="Optional: payment for a specific order",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="direct_payments",
                        to="purchases.purchaseorder",
                    ),
                ),
                ("processed_by", user_fk("purchase_payments_processed")),
                ("approved_by", user_fk("purchase_payments_approved")),
            ],
            options={
                "ordering": ["-payment_date", "-created_at"],
                "permissions": [
                    ("process_payments", "Can record supplier payments"),
                    ("approve_payments", "Can approve supplier payments"),
                    ("allocate_supplier_payments", "Can allocate supplier payments to orders"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=Decimal("0.00")),
                        name="purchase_payment_amount_gt_zero",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["supplier", "payment_date"], name="pp_supplier_date_idx"),
                    models.Index(fields=["status", "payment_type"], name="pp_status_type_idx"),
                ],
            },
        ),
        # ------------------------------------------------------
        # PurchasePaymentAllocation
        # ------------------------------------------------------
        migrations.CreateModel(
            name="PurchasePaymentAllocation",
            fields=[
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("id", uuid_pk()),
                ("allocated_amount", money_field()),
                (
                    "status",
                    models.CharField(choices=ALLOCATION_STATUSES, default="pending", max_length=20),
                ),
                ("applied_at", models.DateTimeField(blank=True, null=True)),
                ("reversed_at", models.DateTimeField(blank=True, null=True)),
                ("reversal_reason", models.TextField(blank=True, default="")),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("approved_by", user_fk("+")),
                (
                    "purchase_payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="allocations",
                        to="purchases.purchasepayment",
                    ),
                ),
                (
                    "purchase_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_allocations",
                        to="purchases.purchaseorder",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(allocated_amount__gt=Decimal("0.00")),
                        name="purchase_allocation_amount_gt_zero",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["purchase_payment", "status"], name="pp_alloc_payment_idx"),
                    models.Index(fields=["purchase_order", "status"], name="pp_alloc_order_idx"),
                ],
            },
        ),
        # ------------------------------------------------------
        # SupplierBalance
        # ------------------------------------------------------
        migrations.CreateModel(
            name="SupplierBalance",
            fields=[
                ("id", uuid_pk()),
                ("total_outstanding", money_field()),
                ("total_paid", money_field()),
                ("advance_balance", money_field()),
                ("credit_limit", money_field()),
                ("last_payment_date", models.DateField(blank=True, null=True)),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("current", "Current"),
                            ("overdue", "Overdue"),
                            ("blocked", "Blocked"),
                        ],
                        default="current",
                        max_length=20,
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "supplier",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="balance",
                        to="purchases.supplier",
                    ),
                ),
            ],
            options={
                "ordering": ["supplier__name"],
                "permissions": [
                    ("view_supplier_balances", "Can view supplier balances"),
                    ("manage_supplier_credit", "Can change supplier credit limits"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(credit_limit__gte=Decimal("0.00")),
                        name="supplier_credit_limit_nonnegative",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["payment_status"], name="supplier_balance_status_idx"),
                ],
            },
        ),
    ]
