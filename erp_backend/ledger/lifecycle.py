# ledger/lifecycle.py

"""
ALLOCATION LIFECYCLE DOMAIN RULES

The ONLY allowed transitions for payment allocations (AR and AP):

    pending -> applied -> reversed
    pending -> cancelled
    applied -> cancelled

reversed and cancelled are terminal.

DESIGN PRINCIPLES:
- No database writes
- No side effects
- Single source of truth
"""

from ledger.results import AllocationError

STATUS_PENDING = "pending"
STATUS_APPLIED = "applied"
STATUS_REVERSED = "reversed"
STATUS_CANCELLED = "cancelled"

STATUS_CHOICES = [
    (STATUS_PENDING, "Pending"),
    (STATUS_APPLIED, "Applied"),
    (STATUS_REVERSED, "Reversed"),
    (STATUS_CANCELLED, "Cancelled"),
]

TERMINAL_STATES = {
    STATUS_REVERSED,
    STATUS_CANCELLED,
}

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_APPLIED, STATUS_CANCELLED},
    STATUS_APPLIED: {STATUS_REVERSED, STATUS_CANCELLED},
}


def can_transition(*, from_status: str, to_status: str) -> bool:
    if from_status in TERMINAL_STATES:
        return False

    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def transition_error(*, from_status: str, to_status: str):
    """
    Why a transition is refused, or None when it is allowed.
    """
    if from_status in TERMINAL_STATES:
        return AllocationError.ALREADY_TERMINAL
    if not can_transition(from_status=from_status, to_status=to_status):
        return AllocationError.WRONG_STATE
    return None
