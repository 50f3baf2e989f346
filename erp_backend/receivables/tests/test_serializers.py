# receivables/tests/test_serializers.py

from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from receivables.api.serializers import (
    AllocateToSaleSerializer,
    CustomerAgingSnapshotSerializer,
    CustomerCreditLimitSerializer,
    CustomerPaymentReceiveCreateSerializer,
    CustomerPaymentReceiveSerializer,
)
from receivables.models import CustomerCreditLimit
from receivables.services import aging_service
from receivables.services.allocation_service import allocate_to_sale
from receivables.tests.helpers import make_customer, make_sale, make_verified_receipt


class ReceivablesSerializerTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.customer = make_customer("ACME", credit_limit="1000.00", now=self.now)

    def test_receipt_with_allocations(self):
        sale = make_sale(self.customer, "300.00", today=self.today)
        receipt = make_verified_receipt(self.customer, "500.00", now=self.now)
        allocate_to_sale(receipt, sale, "300.00", now=self.now)
        receipt.refresh_from_db()

        data = CustomerPaymentReceiveSerializer(receipt).data

        self.assertEqual(data["customer_name"], self.customer.name)
        self.assertEqual(data["unallocated_amount"], "200.00")
        self.assertEqual(data["allocation_status"], "partially_allocated")
        self.assertTrue(data["can_allocate"])
        self.assertEqual(len(data["allocations"]), 1)
        self.assertEqual(data["allocations"][0]["invoice_no"], sale.invoice_no)

    def test_create_payloads(self):
        ok = CustomerPaymentReceiveCreateSerializer(
            data={"customer_id": str(self.customer.id), "total_amount": "50.00", "payment_method": "mobile"}
        )
        self.assertTrue(ok.is_valid(), ok.errors)

        bad = AllocateToSaleSerializer(data={"sale_id": "not-a-uuid", "amount": "-1"})
        self.assertFalse(bad.is_valid())
        self.assertEqual(set(bad.errors), {"sale_id", "amount"})

    def test_credit_and_aging_output(self):
        make_sale(self.customer, "400.00", today=self.today, days_ago=75)
        account = CustomerCreditLimit.objects.get(customer=self.customer)

        credit = CustomerCreditLimitSerializer(account).data
        self.assertEqual(credit["payment_terms_display"], "Net 30 Days")

        snapshot = aging_service.generate_for_customer(self.customer, now=self.now)
        aging = CustomerAgingSnapshotSerializer(snapshot).data
        self.assertEqual(Decimal(aging["days_31_60"]), Decimal("400.00"))
        self.assertEqual(aging["worst_aging_bucket"], "days_31_60")
