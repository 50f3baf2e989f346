# receivables/admin.py

from django.contrib import admin

from receivables.models import (
    CustomerAgingSnapshot,
    CustomerCreditLimit,
    CustomerPaymentAllocation,
    CustomerPaymentReceive,
    CustomerPaymentSchedule,
)


# ======================================================
# PAYMENT RECEIPTS
# ======================================================


class CustomerPaymentAllocationInline(admin.TabularInline):
    model = CustomerPaymentAllocation
    fk_name = "payment_receive"
    extra = 0
    can_delete = False
    fields = ("sale", "allocated_amount", "status", "allocation_type", "applied_at", "reversed_at")
    readonly_fields = fields


@admin.register(CustomerPaymentReceive)
class CustomerPaymentReceiveAdmin(admin.ModelAdmin):
    list_display = (
        "payment_number",
        "customer",
        "payment_date",
        "total_amount",
        "allocated_amount",
        "unallocated_amount",
        "status",
        "allocation_status",
        "is_reconciled",
    )
    # split is owned by allocation_service
    readonly_fields = (
        "payment_number",
        "allocated_amount",
        "unallocated_amount",
        "allocation_status",
        "verified_by",
        "verified_at",
        "approved_by",
        "approved_at",
        "deleted_at",
        "created_at",
        "updated_at",
    )
    search_fields = ("payment_number", "reference_number", "payment_reference", "customer__name")
    list_filter = ("status", "allocation_status", "payment_method", "is_reconciled")
    inlines = [CustomerPaymentAllocationInline]

    def get_queryset(self, request):
        return CustomerPaymentReceive.all_objects.select_related("customer")


@admin.register(CustomerPaymentAllocation)
class CustomerPaymentAllocationAdmin(admin.ModelAdmin):
    list_display = (
        "payment_receive",
        "sale",
        "customer",
        "allocated_amount",
        "status",
        "allocation_type",
        "allocation_date",
    )
    readonly_fields = (
        "payment_receive",
        "sale",
        "customer",
        "allocated_amount",
        "status",
        "applied_at",
        "reversed_at",
        "reversal_reason",
        "approved_by",
        "approved_at",
        "deleted_at",
        "created_at",
    )
    list_filter = ("status", "allocation_type")
    search_fields = ("payment_receive__payment_number", "sale__invoice_no", "customer__name")

    def has_add_permission(self, request):
        return False


# ======================================================
# CREDIT
# ======================================================


@admin.register(CustomerCreditLimit)
class CustomerCreditLimitAdmin(admin.ModelAdmin):
    list_display = (
        "customer",
        "credit_limit",
        "current_balance",
        "available_credit",
        "overdue_amount",
        "credit_status",
        "credit_hold",
        "next_review_date",
    )
    readonly_fields = (
        "current_balance",
        "available_credit",
        "overdue_amount",
        "total_paid",
        "days_past_due",
        "credit_status",
        "credit_score",
        "payment_reliability_score",
        "created_at",
        "updated_at",
    )
    list_filter = ("credit_status", "credit_hold", "payment_terms_type")
    search_fields = ("customer__name", "customer__code")


# ======================================================
# AGING
# ======================================================


@admin.register(CustomerAgingSnapshot)
class CustomerAgingSnapshotAdmin(admin.ModelAdmin):
    list_display = (
        "customer",
        "snapshot_date",
        "snapshot_type",
        "total_outstanding",
        "overdue_amount",
        "risk_level",
        "collection_status",
    )
    list_filter = ("snapshot_type", "risk_level", "collection_status")
    search_fields = ("customer__name",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


# ======================================================
# SCHEDULES
# ======================================================


@admin.register(CustomerPaymentSchedule)
class CustomerPaymentScheduleAdmin(admin.ModelAdmin):
    list_display = (
        "schedule_number",
        "schedule_name",
        "customer",
        "total_amount",
        "paid_amount",
        "completed_installments",
        "total_installments",
        "next_payment_date",
        "status",
    )
    readonly_fields = (
        "schedule_number",
        "paid_amount",
        "remaining_amount",
        "completed_installments",
        "last_payment_date",
        "total_late_fees",
        "created_at",
        "updated_at",
    )
    list_filter = ("status", "frequency")
    search_fields = ("schedule_number", "schedule_name", "customer__name")
