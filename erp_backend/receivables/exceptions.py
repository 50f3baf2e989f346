# receivables/exceptions.py


class ReceivablesError(ValueError):
    """Base error for receivables services."""


class SnapshotImmutableError(ReceivablesError):
    pass


class ScheduleError(ReceivablesError):
    pass
