# receivables/conf.py

"""
Receivables tunables, read from settings.RECEIVABLES at call time so
override_settings works in tests.
"""

from decimal import Decimal

from django.conf import settings

DEFAULTS = {
    "DEFAULT_PAYMENT_TERMS_DAYS": 30,
    "DEFAULT_CREDIT_LIMIT": Decimal("0.00"),
    "CREDIT_REVIEW_INTERVAL_DAYS": 90,
    "NEAR_LIMIT_PERCENT": Decimal("80"),
    "HIGH_UTILIZATION_PERCENT": Decimal("90"),
}


def receivables_setting(name: str):
    if name not in DEFAULTS:
        raise KeyError(f"Unknown receivables setting: {name}")
    configured = getattr(settings, "RECEIVABLES", None) or {}
    return configured.get(name, DEFAULTS[name])
