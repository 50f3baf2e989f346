# purchases/admin.py

from django.contrib import admin

from purchases.models import (
    PurchaseOrder,
    PurchasePayment,
    PurchasePaymentAllocation,
    Supplier,
    SupplierBalance,
)


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "phone", "payment_terms_days", "is_active")
    search_fields = ("code", "name", "email", "phone")
    list_filter = ("is_active",)


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = (
        "po_number",
        "supplier",
        "order_date",
        "due_date",
        "status",
        "total_amount",
        "outstanding_amount",
        "payment_status",
    )
    # derived from allocations
    readonly_fields = (
        "po_number",
        "paid_amount",
        "outstanding_amount",
        "payment_status",
        "last_payment_date",
        "last_payment_amount",
        "created_at",
        "updated_at",
    )
    search_fields = ("po_number", "supplier__name")
    list_filter = ("status", "payment_status")


class PurchasePaymentAllocationInline(admin.TabularInline):
    model = PurchasePaymentAllocation
    fk_name = "purchase_payment"
    extra = 0
    can_delete = False
    fields = ("purchase_order", "allocated_amount", "status", "applied_at", "reversed_at")
    readonly_fields = fields


@admin.register(PurchasePayment)
class PurchasePaymentAdmin(admin.ModelAdmin):
    list_display = (
        "payment_number",
        "supplier",
        "payment_date",
        "amount",
        "payment_method",
        "status",
        "payment_type",
    )
    readonly_fields = (
        "payment_number",
        "payment_type",
        "approved_by",
        "approved_at",
        "completed_at",
        "deleted_at",
        "created_at",
        "updated_at",
    )
    search_fields = ("payment_number", "reference_number", "supplier__name")
    list_filter = ("status", "payment_type", "payment_method")
    inlines = [PurchasePaymentAllocationInline]

    def get_queryset(self, request):
        return PurchasePayment.all_objects.select_related("supplier")


@admin.register(SupplierBalance)
class SupplierBalanceAdmin(admin.ModelAdmin):
    list_display = (
        "supplier",
        "total_outstanding",
        "total_paid",
        "advance_balance",
        "credit_limit",
        "payment_status",
        "last_payment_date",
    )
    # only credit_limit is editable, the rest is recomputed
    readonly_fields = (
        "supplier",
        "total_outstanding",
        "total_paid",
        "advance_balance",
        "last_payment_date",
        "payment_status",
        "updated_at",
    )
    list_filter = ("payment_status",)
    search_fields = ("supplier__name", "supplier__code")

    def has_add_permission(self, request):
        return False
