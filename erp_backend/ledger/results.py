# ledger/results.py

"""
TYPED ALLOCATION RESULTS

Expected rule violations (wrong state, not enough money left, ...) are NOT
exceptions. Every allocation-side operation returns an AllocationResult:

- truthy on success, falsy on failure (callers may keep doing `if not result`)
- `value` carries the created/updated row (or list of rows); None on failure
- `error` names the rule that was violated

Genuine faults (database down, integrity errors) still raise.

The same type is the outcome of every ledger-side workflow, not just
allocations: receipt status changes and installment schedules return it
too, using only WRONG_STATE and INVALID_AMOUNT.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class AllocationError(str, Enum):
    WRONG_STATE = "wrong_state"
    ALREADY_TERMINAL = "already_terminal"
    INSUFFICIENT_UNALLOCATED = "insufficient_unallocated"
    EXCEEDS_LEDGER_TOTAL = "exceeds_ledger_total"
    CUSTOMER_MISMATCH = "customer_mismatch"
    INVALID_AMOUNT = "invalid_amount"
    NOT_OWNED = "not_owned"


@dataclass(frozen=True)
class AllocationResult:
    value: Any = None
    error: Optional[AllocationError] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value=None) -> "AllocationResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AllocationError, detail: str = "") -> "AllocationResult":
        return cls(error=error, detail=detail)
