# purchases/tests/test_payments.py

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from ledger.results import AllocationError
from purchases.exceptions import SupplierPaymentError
from purchases.models import (
    PurchaseOrder,
    PurchasePayment,
    PurchasePaymentAllocation,
    SupplierBalance,
)
from purchases.services import payment_service
from purchases.tests.helpers import make_order, make_payment, make_supplier

User = get_user_model()


class PurchaseOrderTests(TestCase):
    def setUp(self):
        self.today = timezone.localdate()
        self.supplier = make_supplier("MEDS", terms=45)

    def test_number_and_due_date(self):
        order = make_order(self.supplier, "1000.00", today=self.today)

        self.assertEqual(order.po_number, f"PO-{self.today:%Y%m%d}-001")
        self.assertEqual(order.due_date, self.today + timedelta(days=45))
        self.assertEqual(order.outstanding_amount, Decimal("1000.00"))
        self.assertEqual(order.payment_status, PurchaseOrder.PAYMENT_UNPAID)

        second = make_order(self.supplier, "5.00", today=self.today)
        self.assertEqual(second.po_number, f"PO-{self.today:%Y%m%d}-002")

    def test_outstanding_queryset_ignores_draft_and_cancelled(self):
        open_order = make_order(self.supplier, "10.00", today=self.today)
        make_order(self.supplier, "10.00", today=self.today, status=PurchaseOrder.STATUS_DRAFT)
        make_order(self.supplier, "10.00", today=self.today, status=PurchaseOrder.STATUS_CANCELLED)

        self.assertEqual(list(PurchaseOrder.objects.outstanding()), [open_order])


class PurchasePaymentLifecycleTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.user = User.objects.create_user(username="ap-clerk", password="pass1234")
        self.supplier = make_supplier("MEDS")

    def test_create_payment(self):
        payment = make_payment(self.supplier, "250.00", user=self.user, now=self.now)

        self.assertEqual(payment.payment_number, f"PP-{self.today:%Y%m%d}-0001")
        self.assertEqual(payment.status, PurchasePayment.STATUS_PENDING)
        self.assertEqual(payment.payment_type, PurchasePayment.TYPE_ADVANCE)
        self.assertEqual(payment.processed_by, self.user)
        self.assertEqual(payment.unallocated_amount, Decimal("250.00"))

    def test_create_rejects_bad_input(self):
        with self.assertRaises(SupplierPaymentError):
            payment_service.create_purchase_payment(supplier_id=self.supplier.id, amount="0")

        with self.assertRaises(SupplierPaymentError):
            payment_service.create_purchase_payment(
                supplier_id=self.supplier.id, amount="10.00", payment_method="bitcoin"
            )

        other = make_supplier("OTHER")
        foreign = make_order(other, "10.00", today=self.today)
        with self.assertRaises(SupplierPaymentError):
            payment_service.create_purchase_payment(
                supplier_id=self.supplier.id, amount="10.00", purchase_order_id=foreign.id
            )

        self.supplier.is_active = False
        self.supplier.save()
        with self.assertRaises(SupplierPaymentError):
            payment_service.create_purchase_payment(supplier_id=self.supplier.id, amount="10.00")

        self.assertFalse(PurchasePayment.objects.exists())

    def test_approve_only_once(self):
        payment = make_payment(self.supplier, "100.00", now=self.now)

        self.assertTrue(payment_service.approve_payment(payment, user=self.user, now=self.now))
        payment.refresh_from_db()
        self.assertTrue(payment.is_approved)

        again = payment_service.approve_payment(payment, user=self.user, now=self.now)
        self.assertEqual(again.error, AllocationError.WRONG_STATE)

    def test_complete_only_from_pending(self):
        payment = make_payment(self.supplier, "100.00", now=self.now)

        done = payment_service.complete_payment(payment, now=self.now)
        self.assertTrue(done)
        self.assertEqual(done.value.status, PurchasePayment.STATUS_COMPLETED)
        self.assertEqual(done.value.completed_at, self.now)

        self.assertEqual(
            payment_service.complete_payment(payment, now=self.now).error,
            AllocationError.WRONG_STATE,
        )
        self.assertEqual(
            payment_service.cancel_payment(payment, now=self.now).error,
            AllocationError.WRONG_STATE,
        )

    def test_cancel_releases_allocations(self):
        order = make_order(self.supplier, "300.00", today=self.today)
        payment = make_payment(self.supplier, "300.00", now=self.now)
        payment_service.allocate_to_orders(payment, [(order, "300.00")], now=self.now)

        order.refresh_from_db()
        self.assertEqual(order.payment_status, PurchaseOrder.PAYMENT_PAID)

        result = payment_service.cancel_payment(payment, reason="Duplicate", now=self.now)

        self.assertTrue(result)
        payment.refresh_from_db()
        order.refresh_from_db()
        self.assertEqual(payment.status, PurchasePayment.STATUS_CANCELLED)
        self.assertEqual(payment.payment_type, PurchasePayment.TYPE_ADVANCE)
        self.assertIn("Duplicate", payment.notes)
        self.assertEqual(order.payment_status, PurchaseOrder.PAYMENT_UNPAID)
        self.assertEqual(order.outstanding_amount, Decimal("300.00"))
        self.assertFalse(PurchasePaymentAllocation.objects.active().exists())

    def test_fail_payment(self):
        payment = make_payment(self.supplier, "100.00", now=self.now)

        self.assertTrue(payment_service.fail_payment(payment, reason="Cheque bounced", now=self.now))
        payment.refresh_from_db()
        self.assertEqual(payment.status, PurchasePayment.STATUS_FAILED)

        blocked = payment_service.allocate_to_orders(
            payment, [(make_order(self.supplier, "10.00", today=self.today), "10.00")], now=self.now
        )
        self.assertEqual(blocked.error, AllocationError.WRONG_STATE)


class AllocateToOrdersTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.supplier = make_supplier("MEDS")
        self.first = make_order(self.supplier, "600.00", today=self.today, days_ago=10)
        self.second = make_order(self.supplier, "400.00", today=self.today)

    def _reload(self, *objs):
        for obj in objs:
            obj.refresh_from_db()

    def test_full_payment_settles_both_orders(self):
        payment = make_payment(self.supplier, "1000.00", now=self.now)

        result = payment_service.allocate_to_orders(
            payment,
            [(self.first, "600.00"), {"purchase_order_id": self.second.id, "amount": "400.00"}],
            now=self.now,
        )

        self.assertTrue(result)
        self.assertEqual(len(result.value), 2)
        self._reload(payment, self.first, self.second)
        self.assertEqual(payment.payment_type, PurchasePayment.TYPE_FULL)
        self.assertEqual(payment.unallocated_amount, Decimal("0.00"))
        self.assertEqual(self.first.payment_status, PurchaseOrder.PAYMENT_PAID)
        self.assertEqual(self.second.outstanding_amount, Decimal("0.00"))

    def test_partial_payment(self):
        payment = make_payment(self.supplier, "250.00", now=self.now)

        payment_service.allocate_to_orders(payment, [(self.first, "250.00")], now=self.now)

        self._reload(payment, self.first)
        self.assertEqual(payment.payment_type, PurchasePayment.TYPE_PARTIAL)
        self.assertEqual(self.first.payment_status, PurchaseOrder.PAYMENT_PARTIAL)
        self.assertEqual(self.first.outstanding_amount, Decimal("350.00"))

    def test_unallocated_remainder_is_overpayment(self):
        payment = make_payment(self.supplier, "700.00", now=self.now)

        payment_service.allocate_to_orders(payment, [(self.first, "600.00")], now=self.now)

        self._reload(payment)
        self.assertEqual(payment.payment_type, PurchasePayment.TYPE_OVERPAYMENT)
        self.assertEqual(payment.unallocated_amount, Decimal("100.00"))

    def test_reallocation_replaces_previous_rows(self):
        payment = make_payment(self.supplier, "400.00", now=self.now)
        payment_service.allocate_to_orders(payment, [(self.first, "400.00")], now=self.now)

        result = payment_service.allocate_to_orders(payment, [(self.second, "400.00")], now=self.now)

        self.assertTrue(result)
        self._reload(self.first, self.second)
        self.assertEqual(self.first.payment_status, PurchaseOrder.PAYMENT_UNPAID)
        self.assertEqual(self.second.payment_status, PurchaseOrder.PAYMENT_PAID)
        statuses = sorted(payment.allocations.values_list("status", flat=True))
        self.assertEqual(statuses, ["applied", "cancelled"])

    def test_rejections_write_nothing(self):
        payment = make_payment(self.supplier, "500.00", now=self.now)
        other_order = make_order(make_supplier("OTHER"), "50.00", today=self.today)
        draft = make_order(self.supplier, "50.00", today=self.today, status=PurchaseOrder.STATUS_DRAFT)

        cases = [
            ([(self.first, "0")], AllocationError.INVALID_AMOUNT),
            ([(self.first, "300.00"), (self.second, "300.00")], AllocationError.INSUFFICIENT_UNALLOCATED),
            ([(other_order, "50.00")], AllocationError.CUSTOMER_MISMATCH),
            ([(draft, "50.00")], AllocationError.WRONG_STATE),
        ]
        for lines, error in cases:
            with self.subTest(error=error):
                result = payment_service.allocate_to_orders(payment, lines, now=self.now)
                self.assertFalse(result)
                self.assertEqual(result.error, error)

        self.assertFalse(PurchasePaymentAllocation.objects.exists())
        self._reload(self.first)
        self.assertEqual(self.first.paid_amount, Decimal("0.00"))

    def test_order_total_cannot_be_exceeded_across_payments(self):
        earlier = make_payment(self.supplier, "500.00", now=self.now)
        payment_service.allocate_to_orders(earlier, [(self.second, "300.00")], now=self.now)

        later = make_payment(self.supplier, "500.00", now=self.now)
        result = payment_service.allocate_to_orders(later, [(self.second, "200.00")], now=self.now)

        self.assertEqual(result.error, AllocationError.EXCEEDS_LEDGER_TOTAL)
        self.assertTrue(payment_service.allocate_to_orders(later, [(self.second, "100.00")], now=self.now))


class AllocationLifecycleTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.user = User.objects.create_user(username="ap-approver", password="pass1234")
        self.supplier = make_supplier("MEDS")
        self.order = make_order(self.supplier, "500.00", today=self.today)
        self.payment = make_payment(self.supplier, "500.00", completed=True, now=self.now)

    def test_pending_then_apply_then_reverse(self):
        created = payment_service.create_allocation(self.payment, self.order, "200.00", now=self.now)
        self.assertTrue(created)
        allocation = created.value
        self.assertTrue(allocation.is_pending)

        self.order.refresh_from_db()
        self.assertEqual(self.order.paid_amount, Decimal("0.00"))

        self.assertTrue(payment_service.apply_allocation(allocation, approved_by=self.user, now=self.now))
        self.order.refresh_from_db()
        self.assertEqual(self.order.paid_amount, Decimal("200.00"))
        balance = SupplierBalance.objects.get(supplier=self.supplier)
        self.assertEqual(balance.total_outstanding, Decimal("300.00"))

        reversed_ = payment_service.reverse_allocation(allocation, reason="Wrong order", now=self.now)
        self.assertTrue(reversed_)
        self.order.refresh_from_db()
        self.assertEqual(self.order.paid_amount, Decimal("0.00"))
        self.assertEqual(self.order.payment_status, PurchaseOrder.PAYMENT_UNPAID)

        again = payment_service.reverse_allocation(allocation, now=self.now)
        self.assertEqual(again.error, AllocationError.ALREADY_TERMINAL)

    def test_apply_rechecks_capacity(self):
        first = payment_service.create_allocation(self.payment, self.order, "400.00", now=self.now).value
        second = payment_service.create_allocation(self.payment, self.order, "400.00", now=self.now).value

        self.assertTrue(payment_service.apply_allocation(first, now=self.now))
        refused = payment_service.apply_allocation(second, now=self.now)

        self.assertEqual(refused.error, AllocationError.INSUFFICIENT_UNALLOCATED)
        second.refresh_from_db()
        self.assertTrue(second.is_pending)

    def test_draft_order_cannot_take_a_pending_allocation(self):
        draft = make_order(self.supplier, "300.00", today=self.today, status=PurchaseOrder.STATUS_DRAFT)

        result = payment_service.create_allocation(self.payment, draft, "100.00", now=self.now)

        self.assertEqual(result.error, AllocationError.WRONG_STATE)
        self.assertFalse(PurchasePaymentAllocation.objects.filter(purchase_order=draft).exists())

    def test_apply_refuses_order_cancelled_after_allocation(self):
        allocation = payment_service.create_allocation(self.payment, self.order, "200.00", now=self.now).value
        PurchaseOrder.objects.filter(pk=self.order.pk).update(status=PurchaseOrder.STATUS_CANCELLED)

        result = payment_service.apply_allocation(allocation, now=self.now)

        self.assertEqual(result.error, AllocationError.WRONG_STATE)
        allocation.refresh_from_db()
        self.assertTrue(allocation.is_pending)
        self.order.refresh_from_db()
        self.assertEqual(self.order.paid_amount, Decimal("0.00"))

    def test_cancel_and_delete(self):
        allocation = payment_service.create_allocation(self.payment, self.order, "100.00", now=self.now).value
        payment_service.apply_allocation(allocation, now=self.now)

        self.assertTrue(payment_service.cancel_allocation(allocation, reason="Supplier credit", now=self.now))
        self.order.refresh_from_db()
        self.assertEqual(self.order.paid_amount, Decimal("0.00"))

        other = payment_service.create_allocation(self.payment, self.order, "100.00", now=self.now).value
        payment_service.apply_allocation(other, now=self.now)
        self.assertTrue(payment_service.delete_allocation(other, now=self.now))

        self.order.refresh_from_db()
        self.assertEqual(self.order.paid_amount, Decimal("0.00"))
        self.assertFalse(PurchasePaymentAllocation.objects.filter(pk=other.pk).exists())
        self.assertTrue(PurchasePaymentAllocation.all_objects.filter(pk=other.pk).exists())
        self.assertEqual(
            payment_service.delete_allocation(other, now=self.now).error,
            AllocationError.ALREADY_TERMINAL,
        )

    def test_percentages(self):
        allocation = payment_service.create_allocation(self.payment, self.order, "125.00", now=self.now).value

        self.assertEqual(allocation.percentage_of_payment, Decimal("25.00"))
        self.assertEqual(allocation.percentage_of_order, Decimal("25.00"))
