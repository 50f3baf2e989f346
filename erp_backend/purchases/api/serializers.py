# purchases/api/serializers.py

from decimal import Decimal

from rest_framework import serializers

from purchases.models import (
    PurchaseOrder,
    PurchasePayment,
    PurchasePaymentAllocation,
    Supplier,
    SupplierBalance,
)


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = "__all__"
        read_only_fields = ("id", "created_at")


class SupplierBalanceSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    available_credit = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    credit_utilization_percentage = serializers.DecimalField(
        max_digits=7, decimal_places=2, read_only=True
    )

    class Meta:
        model = SupplierBalance
        fields = [
            "id",
            "supplier",
            "supplier_name",
            "total_outstanding",
            "total_paid",
            "advance_balance",
            "credit_limit",
            "available_credit",
            "credit_utilization_percentage",
            "last_payment_date",
            "payment_status",
            "updated_at",
        ]
        read_only_fields = fields


class PurchaseOrderSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = [
            "id",
            "po_number",
            "supplier",
            "supplier_name",
            "status",
            "order_date",
            "due_date",
            "total_amount",
            "paid_amount",
            "outstanding_amount",
            "payment_status",
            "last_payment_date",
        ]
        read_only_fields = fields


class PurchasePaymentAllocationSerializer(serializers.ModelSerializer):
    po_number = serializers.CharField(source="purchase_order.po_number", read_only=True)

    class Meta:
        model = PurchasePaymentAllocation
        fields = [
            "id",
            "purchase_payment",
            "purchase_order",
            "po_number",
            "allocated_amount",
            "status",
            "applied_at",
            "reversed_at",
            "reversal_reason",
            "notes",
        ]
        read_only_fields = fields


class PurchasePaymentSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    allocations = PurchasePaymentAllocationSerializer(many=True, read_only=True)
    is_approved = serializers.BooleanField(read_only=True)

    class Meta:
        model = PurchasePayment
        fields = [
            "id",
            "payment_number",
            "supplier",
            "supplier_name",
            "purchase_order",
            "payment_date",
            "amount",
            "payment_method",
            "reference_number",
            "status",
            "payment_type",
            "is_approved",
            "processed_by",
            "approved_by",
            "approved_at",
            "completed_at",
            "notes",
            "allocations",
        ]
        read_only_fields = fields


class PurchasePaymentCreateSerializer(serializers.Serializer):
    supplier_id = serializers.UUIDField()
    purchase_order_id = serializers.UUIDField(required=False, allow_null=True)

    payment_date = serializers.DateField(required=False)
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0.01"))

    payment_method = serializers.ChoiceField(choices=PurchasePayment.METHODS)
    reference_number = serializers.CharField(required=False, allow_blank=True)

    notes = serializers.CharField(required=False, allow_blank=True)


class AllocationLineSerializer(serializers.Serializer):
    purchase_order_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0.01"))
    notes = serializers.CharField(required=False, allow_blank=True)


class AllocateToOrdersSerializer(serializers.Serializer):
    allocations = AllocationLineSerializer(many=True)

    def validate_allocations(self, value):
        if not value:
            raise serializers.ValidationError("At least one allocation is required")
        return value
