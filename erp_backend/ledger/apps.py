# ledger/apps.py

"""
LEDGER APP CONFIG

Shared building blocks for AR and AP:
- money helpers (fixed-point, 2dp)
- typed allocation results
- allocation lifecycle rules
- abstract ledger / allocation / soft-delete models
"""

from django.apps import AppConfig


class LedgerConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "ledger"
    verbose_name = "Ledger Core"
