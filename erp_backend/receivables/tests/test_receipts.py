# receivables/tests/test_receipts.py

from __future__ import annotations

from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from ledger.results import AllocationError
from receivables.exceptions import ReceivablesError
from receivables.models import CustomerPaymentAllocation, CustomerPaymentReceive
from receivables.services import receipt_service
from receivables.services.allocation_service import (
    allocate_to_sale,
    apply_allocation,
    create_allocation,
)
from receivables.tests.helpers import make_customer, make_sale, make_user, make_verified_receipt


class PaymentReceiveWorkflowTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.user = make_user()
        self.customer = make_customer("ACME", now=self.now)

    def test_create_numbers_and_splits(self):
        receipt = receipt_service.create_payment_receive(
            customer=self.customer,
            total_amount=Decimal("250.00"),
            payment_method="BANK ",
            reference_number=" DEP-77 ",
            user=self.user,
            now=self.now,
        )

        self.assertTrue(receipt.payment_number.startswith(f"PAY-{self.today:%Y%m%d}-"))
        self.assertTrue(receipt.payment_number.endswith("-0001"))
        self.assertEqual(receipt.payment_method, CustomerPaymentReceive.METHOD_BANK)
        self.assertEqual(receipt.reference_number, "DEP-77")
        self.assertEqual(receipt.status, CustomerPaymentReceive.STATUS_PENDING)
        self.assertEqual(receipt.unallocated_amount, Decimal("250.00"))
        self.assertEqual(receipt.allocation_status, CustomerPaymentReceive.ALLOCATION_NONE)
        self.assertEqual(receipt.received_by, self.user)

    def test_create_rejects_non_positive_amount(self):
        with self.assertRaises(ReceivablesError):
            receipt_service.create_payment_receive(
                customer=self.customer, total_amount=Decimal("0.00"), now=self.now
            )

    def test_create_rejects_inactive_customer(self):
        self.customer.is_active = False
        self.customer.save()

        with self.assertRaises(ReceivablesError):
            receipt_service.create_payment_receive(
                customer=self.customer, total_amount=Decimal("10.00"), now=self.now
            )

    def test_verify_only_once(self):
        receipt = receipt_service.create_payment_receive(
            customer=self.customer, total_amount=Decimal("10.00"), now=self.now
        )

        first = receipt_service.verify_receipt(receipt, user=self.user, now=self.now)
        second = receipt_service.verify_receipt(receipt, user=self.user, now=self.now)

        self.assertTrue(first)
        self.assertTrue(first.value.is_verified)
        self.assertEqual(first.value.verified_by, self.user)
        self.assertEqual(second.error, AllocationError.WRONG_STATE)

    def test_approve_requires_verification(self):
        receipt = receipt_service.create_payment_receive(
            customer=self.customer, total_amount=Decimal("10.00"), now=self.now
        )
        self.assertEqual(
            receipt_service.approve_receipt(receipt, user=self.user, now=self.now).error,
            AllocationError.WRONG_STATE,
        )

        receipt_service.verify_receipt(receipt, user=self.user, now=self.now)
        approved = receipt_service.approve_receipt(receipt, user=self.user, now=self.now)
        self.assertTrue(approved)
        self.assertTrue(approved.value.is_approved)

    def test_cancel_blocked_by_applied_allocations(self):
        receipt = make_verified_receipt(self.customer, "100.00", now=self.now)
        sale = make_sale(self.customer, "50.00", today=self.today)
        allocate_to_sale(receipt, sale, "20.00", now=self.now)

        result = receipt_service.cancel_receipt(receipt, reason="duplicate", now=self.now)

        self.assertEqual(result.error, AllocationError.WRONG_STATE)

    def test_cancel_verified_receipt(self):
        receipt = make_verified_receipt(self.customer, "100.00", now=self.now)

        result = receipt_service.cancel_receipt(receipt, reason="bounced", user=self.user, now=self.now)

        self.assertTrue(result)
        self.assertEqual(result.value.status, CustomerPaymentReceive.STATUS_CANCELLED)
        self.assertEqual(result.value.internal_notes, "bounced")
        self.assertFalse(result.value.can_allocate)

    def test_cancel_takes_pending_allocations_with_it(self):
        sale = make_sale(self.customer, "100.00", today=self.today)
        receipt = receipt_service.create_payment_receive(
            customer=self.customer, total_amount="100.00", now=self.now
        )
        allocation = create_allocation(receipt, sale, "100.00", now=self.now).value

        self.assertTrue(receipt_service.cancel_receipt(receipt, reason="duplicate", now=self.now))

        allocation.refresh_from_db()
        self.assertEqual(allocation.status, CustomerPaymentAllocation.STATUS_CANCELLED)

        result = apply_allocation(allocation, now=self.now)

        self.assertEqual(result.error, AllocationError.ALREADY_TERMINAL)
        receipt.refresh_from_db()
        sale.refresh_from_db()
        self.assertEqual(receipt.status, CustomerPaymentReceive.STATUS_CANCELLED)
        self.assertEqual(receipt.allocated_amount, Decimal("0.00"))
        self.assertEqual(sale.paid_amount, Decimal("0.00"))

    def test_reconcile(self):
        receipt = make_verified_receipt(self.customer, "100.00", now=self.now)

        result = receipt_service.reconcile_receipt(receipt, bank_reference="STMT-9", now=self.now)

        self.assertTrue(result)
        self.assertEqual(result.value.reconciled_date, self.today)
        self.assertTrue(CustomerPaymentReceive.objects.reconciled().filter(pk=receipt.pk).exists())

        again = receipt_service.reconcile_receipt(receipt, bank_reference="STMT-9", now=self.now)
        self.assertEqual(again.error, AllocationError.WRONG_STATE)

    def test_soft_delete_hides_receipt(self):
        receipt = make_verified_receipt(self.customer, "100.00", now=self.now)

        receipt.soft_delete(now=self.now)

        self.assertFalse(CustomerPaymentReceive.objects.filter(pk=receipt.pk).exists())
        self.assertTrue(CustomerPaymentReceive.all_objects.filter(pk=receipt.pk).exists())

    def test_search(self):
        receipt = receipt_service.create_payment_receive(
            customer=self.customer,
            total_amount=Decimal("10.00"),
            payment_reference="MPESA-XYZ",
            now=self.now,
        )

        self.assertEqual(list(CustomerPaymentReceive.objects.search("mpesa")), [receipt])
        self.assertEqual(list(CustomerPaymentReceive.objects.search("acme")), [receipt])
