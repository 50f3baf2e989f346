# receivables/management/commands/generate_aging_snapshots.py

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from customers.models import Customer
from receivables.models import CustomerAgingSnapshot
from receivables.services.aging_service import generate_for_customer, generate_snapshots

SCHEDULED_TYPES = (
    CustomerAgingSnapshot.TYPE_DAILY,
    CustomerAgingSnapshot.TYPE_WEEKLY,
    CustomerAgingSnapshot.TYPE_MONTHLY,
    CustomerAgingSnapshot.TYPE_QUARTERLY,
)


class Command(BaseCommand):
    help = "Generate AR aging snapshots for every customer with open sales."

    def add_arguments(self, parser):
        parser.add_argument(
            "--type",
            dest="snapshot_type",
            default=CustomerAgingSnapshot.TYPE_DAILY,
            choices=SCHEDULED_TYPES,
            help="Snapshot period. Customers that already have one for the period are skipped.",
        )
        parser.add_argument(
            "--customer",
            dest="customer_code",
            default=None,
            help="Only this customer code (always creates a manual snapshot).",
        )

    def handle(self, *args, **opts):
        code = opts.get("customer_code")

        if code:
            customer = Customer.objects.filter(code=code).first()
            if customer is None:
                raise CommandError(f"Unknown customer code: {code}")

            snapshot = generate_for_customer(customer, CustomerAgingSnapshot.TYPE_MANUAL)
            self.stdout.write(
                self.style.SUCCESS(
                    f"Snapshot for {customer.code}: outstanding {snapshot.total_outstanding} "
                    f"({snapshot.risk_level})"
                )
            )
            return

        snapshot_type = opts["snapshot_type"]
        created = generate_snapshots(snapshot_type)
        self.stdout.write(self.style.SUCCESS(f"Created {created} {snapshot_type} aging snapshot(s)."))
