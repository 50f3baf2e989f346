# sales/admin.py

from django.contrib import admin

from sales.models.sale import Sale


# ======================================================
# SALE ADMIN
# ======================================================


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = (
        "invoice_no",
        "customer",
        "status",
        "total_amount",
        "paid_amount",
        "outstanding_amount",
        "payment_status",
        "due_date",
    )
    readonly_fields = (
        "invoice_no",
        "paid_amount",
        "outstanding_amount",
        "payment_status",
        "last_payment_date",
        "last_payment_amount",
        "created_at",
        "completed_at",
    )
    search_fields = ("invoice_no", "customer__name", "customer__code")
    list_filter = ("status", "payment_status", "sale_date")
