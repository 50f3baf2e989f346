# receivables/tests/test_credit.py

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from receivables.models import CustomerCreditLimit
from receivables.services import credit_service
from receivables.services.allocation_service import allocate_to_sale
from receivables.tests.helpers import make_customer, make_sale, make_user, make_verified_receipt


class CreditStatusCascadeTests(TestCase):
    """
    over limit -> blocked, >90d -> defaulted, >60d -> suspended,
    >30d or near limit -> warning, else good
    """

    def _account(self, *, limit="1000.00", balance="0.00", days=0):
        return CustomerCreditLimit(
            credit_limit=Decimal(limit),
            current_balance=Decimal(balance),
            days_past_due=days,
        )

    def test_over_limit_wins_over_everything(self):
        account = self._account(balance="1500.00", days=120)
        self.assertEqual(account.derive_credit_status(), CustomerCreditLimit.STATUS_BLOCKED)

    def test_days_past_due_thresholds(self):
        self.assertEqual(self._account(days=91).derive_credit_status(), "defaulted")
        self.assertEqual(self._account(days=90).derive_credit_status(), "suspended")
        self.assertEqual(self._account(days=61).derive_credit_status(), "suspended")
        self.assertEqual(self._account(days=60).derive_credit_status(), "warning")
        self.assertEqual(self._account(days=31).derive_credit_status(), "warning")
        self.assertEqual(self._account(days=30).derive_credit_status(), "good")

    def test_near_limit_is_warning(self):
        self.assertEqual(self._account(balance="800.00").derive_credit_status(), "warning")
        self.assertEqual(self._account(balance="790.00").derive_credit_status(), "good")

    @override_settings(RECEIVABLES={"NEAR_LIMIT_PERCENT": Decimal("50")})
    def test_near_limit_threshold_is_configurable(self):
        self.assertEqual(self._account(balance="500.00").derive_credit_status(), "warning")

    def test_utilization_with_zero_limit(self):
        account = self._account(limit="0.00", balance="0.00")
        self.assertEqual(account.credit_utilization_percentage, Decimal("0.00"))
        self.assertFalse(account.is_over_limit)

    def test_payment_terms_display(self):
        account = self._account()
        account.payment_terms_type = CustomerCreditLimit.TERMS_CUSTOM
        account.payment_terms_days = 45
        self.assertEqual(account.payment_terms_display, "Net 45 Days")


class CreditAggregateTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.user = make_user()
        self.customer = make_customer("ACME", credit_limit="100000.00", now=self.now)
        self.account = CustomerCreditLimit.objects.get(customer=self.customer)

    def test_account_opened_with_review_date(self):
        self.assertEqual(self.account.credit_limit, Decimal("100000.00"))
        self.assertEqual(self.account.next_review_date, self.today + timedelta(days=90))
        self.assertEqual(self.account.credit_status, CustomerCreditLimit.STATUS_GOOD)

    def test_open_credit_account_is_idempotent(self):
        again = credit_service.open_credit_account(self.customer, credit_limit="5.00", now=self.now)

        self.assertEqual(again.pk, self.account.pk)
        self.assertEqual(CustomerCreditLimit.objects.filter(customer=self.customer).count(), 1)

    def test_balance_and_overdue_are_recomputed(self):
        make_sale(self.customer, "30000.00", today=self.today, days_ago=45)
        make_sale(self.customer, "10000.00", today=self.today, days_ago=5)

        account = credit_service.refresh_customer_balance(self.customer, now=self.now)

        self.assertEqual(account.current_balance, Decimal("40000.00"))
        self.assertEqual(account.overdue_amount, Decimal("30000.00"))
        self.assertEqual(account.days_past_due, 15)
        self.assertEqual(account.available_credit, Decimal("60000.00"))
        self.assertEqual(account.credit_status, CustomerCreditLimit.STATUS_GOOD)

    def test_refresh_is_idempotent(self):
        make_sale(self.customer, "95000.00", today=self.today, days_ago=100)

        first = credit_service.refresh_customer_balance(self.customer, now=self.now)
        snapshot = (
            first.current_balance,
            first.overdue_amount,
            first.available_credit,
            first.days_past_due,
            first.credit_status,
        )
        second = credit_service.refresh_customer_balance(self.customer, now=self.now)

        self.assertEqual(
            (
                second.current_balance,
                second.overdue_amount,
                second.available_credit,
                second.days_past_due,
                second.credit_status,
            ),
            snapshot,
        )
        self.assertEqual(second.credit_status, CustomerCreditLimit.STATUS_SUSPENDED)

    def test_over_limit_blocks(self):
        make_sale(self.customer, "120000.00", today=self.today)

        account = credit_service.refresh_customer_balance(self.customer, now=self.now)

        self.assertEqual(account.credit_status, CustomerCreditLimit.STATUS_BLOCKED)
        self.assertEqual(account.available_credit, Decimal("0.00"))

    def test_only_counted_receipts_contribute_to_total_paid(self):
        from receivables.services.receipt_service import create_payment_receive

        create_payment_receive(customer=self.customer, total_amount="700.00", now=self.now)
        make_verified_receipt(self.customer, "300.00", now=self.now)

        account = credit_service.refresh_customer_balance(self.customer, now=self.now)
        self.assertEqual(account.total_paid, Decimal("300.00"))

    def test_manual_block_survives_recompute(self):
        credit_service.block_credit(self.account, reason="Disputed invoices", user=self.user)

        account = credit_service.refresh_customer_balance(self.customer, now=self.now)
        self.assertEqual(account.credit_status, CustomerCreditLimit.STATUS_BLOCKED)
        self.assertTrue(account.is_credit_blocked)

        account = credit_service.unblock_credit(account, approved_by=self.user, now=self.now)
        self.assertEqual(account.credit_status, CustomerCreditLimit.STATUS_GOOD)

    def test_can_make_credit_sale(self):
        make_sale(self.customer, "30000.00", today=self.today)

        refused = credit_service.can_make_credit_sale(self.customer, "80000.00", now=self.now)
        self.assertFalse(refused["can_proceed"])
        self.assertEqual(refused["reason"], "Sale amount exceeds available credit limit")

        allowed = credit_service.can_make_credit_sale(self.customer, "50000.00", now=self.now)
        self.assertTrue(allowed["can_proceed"])
        self.assertTrue(allowed["requires_approval"])

    def test_can_approve_credit(self):
        self.account.current_balance = Decimal("90000.00")
        self.assertTrue(credit_service.can_approve_credit(self.account, "10000.00"))
        self.assertFalse(credit_service.can_approve_credit(self.account, "10000.01"))

    def test_limit_changes(self):
        self.assertFalse(
            credit_service.increase_credit_limit(self.account, "50000.00", now=self.now)
        )
        self.assertTrue(
            credit_service.increase_credit_limit(
                self.account, "150000.00", approved_by=self.user, reason="Good history", now=self.now
            )
        )
        self.account.refresh_from_db()
        self.assertEqual(self.account.credit_limit, Decimal("150000.00"))
        self.assertEqual(self.account.approved_by, self.user)

        self.assertFalse(
            credit_service.decrease_credit_limit(self.account, "200000.00", now=self.now)
        )
        self.assertTrue(
            credit_service.decrease_credit_limit(self.account, "20000.00", now=self.now)
        )
        self.account.refresh_from_db()
        self.assertEqual(self.account.available_credit, Decimal("20000.00"))

    def test_reliability_and_score(self):
        late = make_sale(self.customer, "100.00", today=self.today, days_ago=60)
        make_sale(self.customer, "100.00", today=self.today, days_ago=5)
        receipt = make_verified_receipt(self.customer, "100.00", now=self.now)
        allocate_to_sale(receipt, late, "100.00", now=self.now)

        score = credit_service.update_payment_reliability_score(self.account, now=self.now)

        # one late settlement, one open sale not yet due
        self.assertEqual(score, Decimal("0.00"))
        self.assertEqual(self.account.late_payment_count, 1)
        self.assertEqual(self.account.payment_delay_count, 0)

        self.assertEqual(credit_service.update_credit_score(self.account), 98)

    def test_conduct_review_moves_next_review(self):
        later = self.now + timedelta(days=10)

        account = credit_service.conduct_review(
            self.account, reviewed_by=self.user, notes="Annual review", now=later
        )

        self.assertEqual(account.last_review_date, timezone.localdate(later))
        self.assertEqual(account.next_review_date, timezone.localdate(later) + timedelta(days=90))
        self.assertEqual(account.risk_assessment, "Annual review")

    def test_customers_requiring_review(self):
        due = self.now + timedelta(days=91)

        self.assertIn(self.account, list(credit_service.customers_requiring_review(now=due)))
        self.assertNotIn(self.account, list(credit_service.customers_requiring_review(now=self.now)))

    def test_credit_summary(self):
        summary = credit_service.get_credit_summary(self.customer, now=self.now)

        self.assertEqual(summary["credit_limit"], Decimal("100000.00"))
        self.assertEqual(summary["payment_terms"]["display"], "Net 30 Days")
