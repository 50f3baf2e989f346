# receivables/models/__init__.py

"""
RECEIVABLES MODELS PACKAGE EXPORTS
"""

from .aging_snapshot import CustomerAgingSnapshot
from .credit_limit import CustomerCreditLimit
from .payment_allocation import CustomerPaymentAllocation
from .payment_receive import CustomerPaymentReceive
from .payment_schedule import CustomerPaymentSchedule

__all__ = [
    "CustomerAgingSnapshot",
    "CustomerCreditLimit",
    "CustomerPaymentAllocation",
    "CustomerPaymentReceive",
    "CustomerPaymentSchedule",
]
