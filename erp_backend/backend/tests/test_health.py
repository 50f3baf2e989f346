# backend/tests/test_health.py

from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from rest_framework.test import APIClient

from receivables.models import CustomerPaymentAllocation


class HealthCheckTests(TestCase):
    def test_health_reports_db_and_ledgers(self):
        response = APIClient().get("/api/health/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "status": "ok",
                "db": "ok",
                "ledgers": {"receivables": "ok", "payables": "ok"},
            },
        )

    def test_unqueryable_ledger_degrades(self):
        with mock.patch.object(
            CustomerPaymentAllocation.all_objects,
            "exists",
            side_effect=DatabaseError("no such table"),
        ):
            response = APIClient().get("/api/health/")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["ledgers"]["receivables"], "unavailable")
        self.assertEqual(response.json()["ledgers"]["payables"], "ok")
