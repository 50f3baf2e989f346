# receivables/api/serializers.py

from decimal import Decimal

from rest_framework import serializers

from receivables.models import (
    CustomerAgingSnapshot,
    CustomerCreditLimit,
    CustomerPaymentAllocation,
    CustomerPaymentReceive,
    CustomerPaymentSchedule,
)


class CustomerPaymentAllocationSerializer(serializers.ModelSerializer):
    """
    Allocation legs (read-only).
    """

    invoice_no = serializers.CharField(source="sale.invoice_no", read_only=True)

    class Meta:
        model = CustomerPaymentAllocation
        fields = [
            "id",
            "payment_receive",
            "sale",
            "invoice_no",
            "customer",
            "allocated_amount",
            "allocation_type",
            "allocation_date",
            "status",
            "applied_at",
            "reversed_at",
            "reversal_reason",
            "allocated_by",
            "approved_by",
            "approved_at",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class CustomerPaymentReceiveSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source="customer.name", read_only=True)
    allocations = CustomerPaymentAllocationSerializer(many=True, read_only=True)
    can_allocate = serializers.BooleanField(read_only=True)

    class Meta:
        model = CustomerPaymentReceive
        fields = [
            "id",
            "payment_number",
            "reference_number",
            "customer",
            "customer_name",
            "payment_date",
            "total_amount",
            "allocated_amount",
            "unallocated_amount",
            "payment_method",
            "payment_reference",
            "status",
            "allocation_status",
            "can_allocate",
            "received_by",
            "verified_by",
            "verified_at",
            "approved_by",
            "approved_at",
            "is_reconciled",
            "reconciled_date",
            "bank_statement_reference",
            "notes",
            "allocations",
            "created_at",
        ]
        read_only_fields = fields


class CustomerPaymentReceiveCreateSerializer(serializers.Serializer):
    customer_id = serializers.UUIDField()
    total_amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0.01"))
    payment_method = serializers.ChoiceField(choices=CustomerPaymentReceive.METHODS)
    payment_date = serializers.DateField(required=False)
    reference_number = serializers.CharField(required=False, allow_blank=True)
    payment_reference = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class AllocateToSaleSerializer(serializers.Serializer):
    sale_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0.01"))
    notes = serializers.CharField(required=False, allow_blank=True)


class CustomerCreditLimitSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source="customer.name", read_only=True)
    credit_utilization_percentage = serializers.DecimalField(
        max_digits=7, decimal_places=2, read_only=True
    )
    payment_terms_display = serializers.CharField(read_only=True)

    class Meta:
        model = CustomerCreditLimit
        fields = [
            "id",
            "customer",
            "customer_name",
            "credit_limit",
            "current_balance",
            "available_credit",
            "overdue_amount",
            "total_paid",
            "credit_utilization_percentage",
            "days_past_due",
            "credit_status",
            "credit_hold",
            "credit_score",
            "payment_reliability_score",
            "payment_terms_days",
            "payment_terms_type",
            "payment_terms_display",
            "last_review_date",
            "next_review_date",
        ]
        read_only_fields = fields


class CustomerAgingSnapshotSerializer(serializers.ModelSerializer):
    overdue_percentage = serializers.DecimalField(max_digits=7, decimal_places=2, read_only=True)
    worst_aging_bucket = serializers.CharField(read_only=True)

    class Meta:
        model = CustomerAgingSnapshot
        fields = [
            "id",
            "customer",
            "snapshot_date",
            "snapshot_type",
            "current_amount",
            "days_31_60",
            "days_61_90",
            "days_91_120",
            "days_over_120",
            "total_outstanding",
            "overdue_amount",
            "overdue_percentage",
            "overdue_invoices_count",
            "total_invoices_count",
            "days_oldest_invoice",
            "worst_aging_bucket",
            "credit_limit",
            "available_credit",
            "credit_utilization_percentage",
            "average_days_to_pay",
            "payment_reliability_score",
            "late_payments_count",
            "risk_level",
            "collection_status",
            "generated_by",
            "generated_at",
        ]
        read_only_fields = fields


class CustomerPaymentScheduleSerializer(serializers.ModelSerializer):
    progress_percentage = serializers.DecimalField(max_digits=7, decimal_places=2, read_only=True)
    remaining_installments = serializers.IntegerField(read_only=True)
    estimated_completion_date = serializers.DateField(read_only=True)

    class Meta:
        model = CustomerPaymentSchedule
        fields = [
            "id",
            "schedule_number",
            "schedule_name",
            "customer",
            "sale",
            "total_amount",
            "paid_amount",
            "remaining_amount",
            "installment_amount",
            "frequency",
            "frequency_days",
            "total_installments",
            "completed_installments",
            "remaining_installments",
            "progress_percentage",
            "start_date",
            "end_date",
            "next_payment_date",
            "last_payment_date",
            "estimated_completion_date",
            "status",
            "total_late_fees",
            "grace_period_days",
        ]
        read_only_fields = fields
