# receivables/tests/test_schedules.py

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from ledger.results import AllocationError
from receivables.exceptions import ScheduleError
from receivables.models import CustomerPaymentSchedule
from receivables.services import schedule_service
from receivables.tests.helpers import make_customer, make_sale, make_user


class PaymentScheduleTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.user = make_user()
        self.customer = make_customer("ACME", now=self.now)

    def _schedule(self, **overrides):
        params = {
            "customer": self.customer,
            "schedule_name": "Equipment plan",
            "total_amount": Decimal("1200000.00"),
            "total_installments": 12,
            "start_date": self.today,
            "user": self.user,
            "now": self.now,
        }
        params.update(overrides)
        return schedule_service.create_schedule(**params)

    # ---------------- create ----------------

    def test_create_defaults(self):
        schedule = self._schedule()

        self.assertTrue(schedule.schedule_number.startswith(f"SCH-{self.today:%Y%m%d}-"))
        self.assertEqual(schedule.installment_amount, Decimal("100000.00"))
        self.assertEqual(schedule.remaining_amount, Decimal("1200000.00"))
        self.assertEqual(schedule.next_payment_date, self.today)
        self.assertEqual(schedule.end_date, self.today + timedelta(days=30 * 11))
        self.assertEqual(schedule.status, CustomerPaymentSchedule.STATUS_ACTIVE)
        self.assertEqual(schedule.created_by, self.user)

    def test_schedule_numbers_are_sequential(self):
        first = self._schedule()
        second = self._schedule(schedule_name="Second plan")

        self.assertTrue(first.schedule_number.endswith("-001"))
        self.assertTrue(second.schedule_number.endswith("-002"))

    def test_create_rejects_bad_input(self):
        with self.assertRaises(ScheduleError):
            self._schedule(total_amount=Decimal("0"))
        with self.assertRaises(ScheduleError):
            self._schedule(total_installments=0)

        other = make_customer("OTHER", now=self.now)
        foreign_sale = make_sale(other, "100.00", today=self.today)
        with self.assertRaises(ScheduleError):
            self._schedule(sale=foreign_sale)

    def test_custom_frequency(self):
        schedule = self._schedule(frequency=CustomerPaymentSchedule.FREQ_CUSTOM, frequency_days=10)

        self.assertEqual(schedule.frequency_in_days, 10)
        self.assertEqual(schedule.end_date, self.today + timedelta(days=110))

    # ---------------- advance ----------------

    def test_twelve_payments_complete_the_schedule(self):
        schedule = self._schedule()

        for _ in range(12):
            result = schedule_service.process_payment(schedule, Decimal("100000.00"), now=self.now)
            self.assertTrue(result)

        schedule.refresh_from_db()
        self.assertEqual(schedule.status, CustomerPaymentSchedule.STATUS_COMPLETED)
        self.assertEqual(schedule.remaining_amount, Decimal("0.00"))
        self.assertEqual(schedule.paid_amount, Decimal("1200000.00"))
        self.assertEqual(schedule.completed_installments, 12)
        self.assertIsNone(schedule.next_payment_date)
        self.assertEqual(schedule.progress_percentage, Decimal("100.00"))

        extra = schedule_service.process_payment(schedule, Decimal("1.00"), now=self.now)
        self.assertEqual(extra.error, AllocationError.WRONG_STATE)

    def test_each_payment_moves_next_date_by_frequency(self):
        schedule = self._schedule(frequency=CustomerPaymentSchedule.FREQ_WEEKLY)

        schedule_service.process_payment(schedule, Decimal("100000.00"), reference="TRX-1", now=self.now)

        schedule.refresh_from_db()
        self.assertEqual(schedule.next_payment_date, self.today + timedelta(days=7))
        self.assertEqual(schedule.last_payment_date, self.today)
        self.assertEqual(schedule.last_payment_reference, "TRX-1")
        self.assertEqual(schedule.remaining_installments, 11)

    def test_late_fee_is_tracked_separately(self):
        schedule = self._schedule(
            start_date=self.today - timedelta(days=10),
            late_fee_percentage=Decimal("5.00"),
        )
        self.assertTrue(schedule.is_overdue(self.today))
        self.assertEqual(schedule.days_overdue(self.today), 10)

        schedule_service.process_payment(schedule, Decimal("100000.00"), now=self.now)

        schedule.refresh_from_db()
        self.assertEqual(schedule.total_late_fees, Decimal("5000.00"))
        self.assertEqual(schedule.paid_amount, Decimal("100000.00"))
        self.assertEqual(schedule.remaining_amount, Decimal("1100000.00"))

    def test_flat_late_fee(self):
        schedule = self._schedule(
            start_date=self.today - timedelta(days=3),
            late_fee_amount=Decimal("250.00"),
        )

        schedule_service.process_payment(schedule, Decimal("100000.00"), now=self.now)

        schedule.refresh_from_db()
        self.assertEqual(schedule.total_late_fees, Decimal("250.00"))

    def test_no_late_fee_inside_grace_period(self):
        schedule = self._schedule(
            start_date=self.today - timedelta(days=10),
            late_fee_percentage=Decimal("5.00"),
            grace_period_days=15,
        )
        self.assertTrue(schedule.is_in_grace_period(self.today))

        schedule_service.process_payment(schedule, Decimal("100000.00"), now=self.now)

        schedule.refresh_from_db()
        self.assertEqual(schedule.total_late_fees, Decimal("0.00"))

    def test_non_positive_payment_is_rejected(self):
        schedule = self._schedule()

        result = schedule_service.process_payment(schedule, Decimal("0"), now=self.now)

        self.assertEqual(result.error, AllocationError.INVALID_AMOUNT)
        schedule.refresh_from_db()
        self.assertEqual(schedule.completed_installments, 0)

    # ---------------- status ----------------

    def test_suspend_and_resume(self):
        schedule = self._schedule()

        self.assertTrue(schedule_service.suspend(schedule, reason="Customer dispute"))
        blocked = schedule_service.process_payment(schedule, Decimal("100000.00"), now=self.now)
        self.assertEqual(blocked.error, AllocationError.WRONG_STATE)

        self.assertTrue(schedule_service.resume(schedule))
        self.assertTrue(schedule_service.process_payment(schedule, Decimal("100000.00"), now=self.now))

    def test_resume_requires_suspended(self):
        schedule = self._schedule()
        self.assertEqual(schedule_service.resume(schedule).error, AllocationError.WRONG_STATE)

    def test_cancel_and_default(self):
        schedule = self._schedule()
        self.assertTrue(schedule_service.mark_defaulted(schedule, reason="No payments"))
        schedule.refresh_from_db()
        self.assertTrue(schedule.is_defaulted)

        self.assertTrue(schedule_service.cancel(schedule, reason="Written off"))
        self.assertEqual(
            schedule_service.cancel(schedule).error, AllocationError.WRONG_STATE
        )

    def test_modify_only_whitelisted_fields(self):
        schedule = self._schedule()

        result = schedule_service.modify_schedule(
            schedule,
            {"installment_amount": Decimal("50000.00"), "status": "completed"},
            approved_by=self.user,
            now=self.now,
        )

        self.assertTrue(result)
        schedule.refresh_from_db()
        self.assertEqual(schedule.installment_amount, Decimal("50000.00"))
        self.assertEqual(schedule.status, CustomerPaymentSchedule.STATUS_ACTIVE)
        self.assertEqual(schedule.approved_by, self.user)

        nothing = schedule_service.modify_schedule(schedule, {"status": "completed"}, now=self.now)
        self.assertEqual(nothing.error, AllocationError.WRONG_STATE)

    # ---------------- reminders ----------------

    def test_reminder_inside_window(self):
        schedule = self._schedule(start_date=self.today + timedelta(days=2))

        reminder = schedule_service.generate_reminder(schedule, now=self.now)

        self.assertIsNotNone(reminder)
        self.assertEqual(reminder["amount"], Decimal("100000.00"))
        self.assertEqual(reminder["due_date"], self.today + timedelta(days=2))
        self.assertIn("Equipment plan", reminder["message"])

    def test_no_reminder_outside_window(self):
        schedule = self._schedule(start_date=self.today + timedelta(days=10))
        self.assertIsNone(schedule_service.generate_reminder(schedule, now=self.now))

    def test_overdue_queryset(self):
        late = self._schedule(start_date=self.today - timedelta(days=1))
        self._schedule(schedule_name="On time")

        self.assertEqual(list(CustomerPaymentSchedule.objects.overdue(self.today)), [late])
