# receivables/tests/test_aging.py

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from receivables.exceptions import SnapshotImmutableError
from receivables.models import CustomerAgingSnapshot
from receivables.services import aging_service
from receivables.services.allocation_service import allocate_to_sale
from receivables.tests.helpers import make_customer, make_sale, make_user, make_verified_receipt


class BucketBoundaryTests(SimpleTestCase):
    def test_bucket_edges(self):
        cases = {
            0: "current_amount",
            30: "current_amount",
            31: "days_31_60",
            60: "days_31_60",
            61: "days_61_90",
            90: "days_61_90",
            91: "days_91_120",
            120: "days_91_120",
            121: "days_over_120",
        }
        for days, bucket in cases.items():
            with self.subTest(days=days):
                self.assertEqual(aging_service.bucket_for_days(days), bucket)

    def test_period_windows(self):
        wednesday = date(2026, 10, 21)

        self.assertEqual(
            aging_service.period_window("weekly", wednesday),
            (date(2026, 10, 19), date(2026, 10, 25)),
        )
        self.assertEqual(
            aging_service.period_window("monthly", wednesday),
            (date(2026, 10, 1), date(2026, 10, 31)),
        )
        self.assertEqual(
            aging_service.period_window("quarterly", wednesday),
            (date(2026, 10, 1), date(2026, 12, 31)),
        )
        self.assertEqual(aging_service.period_window("daily", wednesday), (wednesday, wednesday))

    def test_risk_cascade(self):
        base = {
            "days_61_90": Decimal("0"),
            "days_91_120": Decimal("0"),
            "days_over_120": Decimal("0"),
            "overdue_amount": Decimal("0"),
            "payment_reliability_score": Decimal("100"),
            "credit_utilization_percentage": Decimal("10"),
        }

        self.assertEqual(aging_service.assess_risk(**base), ("low", "current"))
        self.assertEqual(
            aging_service.assess_risk(**{**base, "days_over_120": Decimal("1")}),
            ("critical", "legal"),
        )
        self.assertEqual(
            aging_service.assess_risk(**{**base, "payment_reliability_score": Decimal("65")}),
            ("high", "collection"),
        )
        self.assertEqual(
            aging_service.assess_risk(**{**base, "days_61_90": Decimal("5")}),
            ("medium", "follow_up"),
        )
        # high utilization bumps risk one level, collection stays
        self.assertEqual(
            aging_service.assess_risk(**{**base, "credit_utilization_percentage": Decimal("95")}),
            ("medium", "current"),
        )
        self.assertEqual(
            aging_service.assess_risk(
                **{**base, "days_over_120": Decimal("1"), "credit_utilization_percentage": Decimal("95")}
            ),
            ("critical", "legal"),
        )


class AgingSnapshotTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.today = timezone.localdate(self.now)
        self.user = make_user()
        self.customer = make_customer("ACME", now=self.now)

    def test_single_invoice_45_days_overdue(self):
        # due 45 days ago on net 30
        make_sale(self.customer, "200000.00", today=self.today, days_ago=75)

        snapshot = aging_service.generate_for_customer(
            self.customer, generated_by=self.user, now=self.now
        )

        self.assertEqual(snapshot.days_31_60, Decimal("200000.00"))
        self.assertEqual(snapshot.current_amount, Decimal("0.00"))
        self.assertEqual(snapshot.days_61_90, Decimal("0.00"))
        self.assertEqual(snapshot.days_91_120, Decimal("0.00"))
        self.assertEqual(snapshot.days_over_120, Decimal("0.00"))
        self.assertEqual(snapshot.total_outstanding, Decimal("200000.00"))
        self.assertEqual(snapshot.overdue_invoices_count, 1)
        self.assertEqual(snapshot.total_invoices_count, 1)
        self.assertEqual(snapshot.days_oldest_invoice, 45)
        self.assertEqual(snapshot.risk_level, CustomerAgingSnapshot.RISK_MEDIUM)
        self.assertEqual(snapshot.collection_status, CustomerAgingSnapshot.COLLECTION_FOLLOW_UP)
        self.assertEqual(snapshot.worst_aging_bucket, "days_31_60")
        self.assertEqual(snapshot.generated_by, self.user)
        self.assertEqual(snapshot.snapshot_type, CustomerAgingSnapshot.TYPE_DAILY)

    def test_buckets_sum_to_total(self):
        make_sale(self.customer, "100.00", today=self.today, days_ago=10)
        make_sale(self.customer, "200.00", today=self.today, days_ago=100)
        make_sale(self.customer, "300.00", today=self.today, days_ago=140)
        make_sale(self.customer, "400.00", today=self.today, days_ago=200)

        snapshot = aging_service.generate_for_customer(self.customer, now=self.now)

        self.assertEqual(snapshot.bucket_total, snapshot.total_outstanding)
        self.assertEqual(snapshot.total_outstanding, Decimal("1000.00"))
        self.assertEqual(snapshot.current_amount, Decimal("100.00"))
        self.assertEqual(snapshot.days_61_90, Decimal("200.00"))
        self.assertEqual(snapshot.days_over_120, Decimal("400.00"))
        self.assertEqual(snapshot.days_91_120, Decimal("300.00"))
        self.assertEqual(snapshot.overdue_invoices_count, 3)
        self.assertEqual(snapshot.risk_level, CustomerAgingSnapshot.RISK_CRITICAL)
        self.assertEqual(len(snapshot.calculation_metadata["invoices"]), 4)

    def test_near_limit_customer_is_escalated(self):
        tight = make_customer("TIGHT", credit_limit="100000.00", now=self.now)
        make_sale(tight, "95000.00", today=self.today)

        snapshot = aging_service.generate_for_customer(tight, now=self.now)

        self.assertEqual(snapshot.credit_utilization_percentage, Decimal("95.00"))
        self.assertEqual(snapshot.risk_level, CustomerAgingSnapshot.RISK_MEDIUM)
        self.assertEqual(snapshot.collection_status, CustomerAgingSnapshot.COLLECTION_CURRENT)

    def test_payment_behaviour_defaults_without_settled_sales(self):
        make_sale(self.customer, "10.00", today=self.today)

        behaviour = aging_service.calculate_payment_behavior(self.customer, today=self.today)

        self.assertEqual(behaviour["payment_reliability_score"], Decimal("100.00"))
        self.assertEqual(behaviour["late_payments_count"], 0)
        self.assertEqual(behaviour["payment_terms_days"], 30)

    def test_payment_behaviour_counts_late_settlements(self):
        late = make_sale(self.customer, "50.00", today=self.today, days_ago=40)
        on_time = make_sale(self.customer, "50.00", today=self.today, days_ago=5)
        receipt = make_verified_receipt(self.customer, "100.00", now=self.now)
        allocate_to_sale(receipt, late, "50.00", now=self.now)
        allocate_to_sale(receipt, on_time, "50.00", now=self.now)

        behaviour = aging_service.calculate_payment_behavior(self.customer, today=self.today)

        self.assertEqual(behaviour["late_payments_count"], 1)
        self.assertEqual(behaviour["payment_reliability_score"], Decimal("50.00"))
        self.assertEqual(behaviour["average_days_to_pay"], Decimal("22.50"))

    def test_snapshot_is_immutable(self):
        make_sale(self.customer, "10.00", today=self.today)
        snapshot = aging_service.generate_for_customer(self.customer, now=self.now)

        snapshot.risk_notes = "edited"
        with self.assertRaises(SnapshotImmutableError):
            snapshot.save()

    def test_generate_snapshots_skips_existing_period(self):
        make_sale(self.customer, "10.00", today=self.today)
        make_customer("IDLE", now=self.now)

        self.assertEqual(aging_service.generate_snapshots("daily", now=self.now), 1)
        self.assertEqual(aging_service.generate_snapshots("daily", now=self.now), 0)
        self.assertEqual(aging_service.generate_snapshots("monthly", now=self.now), 1)
        self.assertEqual(CustomerAgingSnapshot.objects.count(), 2)

    def test_generate_snapshots_logs_batch_count(self):
        make_sale(self.customer, "10.00", today=self.today)

        with self.assertLogs("receivables", level="INFO") as logs:
            created = aging_service.generate_snapshots("weekly", now=self.now)

        self.assertEqual(created, 1)
        batch = [r for r in logs.records if r.getMessage() == "Aging snapshots generated"]
        self.assertEqual(len(batch), 1)
        self.assertEqual(batch[0].snapshots_created, 1)
        self.assertEqual(batch[0].snapshot_type, "weekly")

    def test_compare_with_previous(self):
        sale = make_sale(self.customer, "1000.00", today=self.today, days_ago=45)
        before = aging_service.generate_for_customer(self.customer, now=self.now)

        receipt = make_verified_receipt(self.customer, "400.00", now=self.now)
        allocate_to_sale(receipt, sale, "400.00", now=self.now)
        after = aging_service.generate_for_customer(self.customer, now=self.now)

        change = after.compare_with(before)
        self.assertEqual(change["total_outstanding_change"], Decimal("-400.00"))
        self.assertFalse(change["risk_level_changed"])

    def test_live_aging_and_summary(self):
        other = make_customer("OTHER", now=self.now)
        make_sale(self.customer, "300.00", today=self.today, days_ago=75)
        make_sale(other, "100.00", today=self.today)

        live = aging_service.get_customer_aging(self.customer, now=self.now)
        self.assertEqual(live["overdue_percentage"], Decimal("100.00"))
        self.assertFalse(CustomerAgingSnapshot.objects.exists())

        summary = aging_service.get_aging_summary(now=self.now)
        self.assertEqual(summary["total_outstanding"], Decimal("400.00"))
        self.assertEqual(summary["overdue_amount"], Decimal("300.00"))
        self.assertEqual(summary["overdue_percentage"], Decimal("75.00"))
        self.assertEqual(summary["customer_count"], 2)

    def test_overdue_customers(self):
        make_sale(self.customer, "300.00", today=self.today, days_ago=45)
        make_sale(make_customer("CURRENT", now=self.now), "100.00", today=self.today)

        rows = aging_service.get_overdue_customers(now=self.now)

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["customer"], self.customer)
        self.assertEqual(rows[0]["max_days_overdue"], 15)
        self.assertEqual(rows[0]["risk_level"], CustomerAgingSnapshot.RISK_LOW)
        self.assertEqual(rows[0]["total_overdue_amount"], Decimal("300.00"))
