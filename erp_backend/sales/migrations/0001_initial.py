# sales/migrations/0001_initial.py

import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("customers", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Sale",
            fields=[
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("outstanding_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("due_date", models.DateField(blank=True, null=True)),
                ("last_payment_date", models.DateField(blank=True, null=True)),
                ("last_payment_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "invoice_no",
                    models.CharField(
                        blank=True,
                        help_text="System-generated invoice / receipt number",
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("subtotal_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=15)),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("unpaid", "Unpaid"),
                            ("partial", "Partial"),
                            ("paid", "Paid"),
                            ("overpaid", "Overpaid"),
                            ("overdue", "Overdue"),
                        ],
                        default="unpaid",
                        max_length=20,
                    ),
                ),
                ("sale_date", models.DateField(default=django.utils.timezone.localdate)),
                ("payment_terms_days", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("completed", "Completed"),
                            ("refunded", "Refunded"),
                        ],
                        default="completed",
                        max_length=32,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Empty for walk-in cash sales",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to="customers.customer",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        help_text="Cashier / staff who processed the sale",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="sales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["created_at"], name="sale_created_idx"),
                    models.Index(fields=["status"], name="sale_status_idx"),
                    models.Index(fields=["payment_status", "due_date"], name="sale_payment_due_idx"),
                    models.Index(fields=["customer", "payment_status"], name="sale_customer_payment_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total_amount__gte=Decimal("0.00")),
                        name="sale_total_nonnegative",
                    ),
                ],
            },
        ),
    ]
