# backend/urls.py
"""
PROJECT URLS

AR/AP services run in-process. Over HTTP this project only exposes the
Django admin and a readiness probe.

- /api/health/ (AllowAny): database reachable and both allocation
  ledgers queryable (migrations applied).
- Admin path comes from ADMIN_PATH.
"""

from __future__ import annotations

from django.conf import settings
from django.contrib import admin
from django.db import DatabaseError, connections
from django.urls import include, path
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from purchases.models import PurchasePaymentAllocation
from receivables.models import CustomerPaymentAllocation

LEDGER_PROBES = {
    "receivables": CustomerPaymentAllocation,
    "payables": PurchasePaymentAllocation,
}


def _probe_ledgers() -> dict:
    ledgers = {}
    for name, model in LEDGER_PROBES.items():
        try:
            model.all_objects.exists()
            ledgers[name] = "ok"
        except DatabaseError:
            ledgers[name] = "unavailable"
    return ledgers


# ======================================================
# HEALTH
# ======================================================


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1;")
            cursor.fetchone()
    except DatabaseError as e:
        return Response(
            {"status": "degraded", "db": "down", "error": str(e)}, status=503
        )

    ledgers = _probe_ledgers()
    ready = all(state == "ok" for state in ledgers.values())
    return Response(
        {"status": "ok" if ready else "degraded", "db": "ok", "ledgers": ledgers},
        status=200 if ready else 503,
    )


# ======================================================
# ROUTES
# ======================================================

ADMIN_PATH = getattr(settings, "ADMIN_PATH", "admin/")
if not ADMIN_PATH.endswith("/"):
    ADMIN_PATH = f"{ADMIN_PATH}/"

api_urlpatterns = [
    path("health/", health_check, name="health-check"),
]

urlpatterns = [
    path(ADMIN_PATH, admin.site.urls),
    path("api/", include(api_urlpatterns)),
]
