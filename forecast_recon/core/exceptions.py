# forecast_recon/core/exceptions.py

"""Exceptions raised by the reconciliation core."""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class ValidationError(ReconciliationError):
    """Invalid request input. Raised before anything is read or written."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ConflictError(ReconciliationError):
    """Stored version moved past the one the caller read. Reload and resubmit."""

    retryable = True

    def __init__(self, message: str, entity_id: str | None = None):
        super().__init__(message)
        self.entity_id = entity_id


class PersistenceError(ReconciliationError):
    """The batch commit failed. Nothing from the batch was written."""

    pass


class RunTimeoutError(PersistenceError):
    """The run exceeded its time budget before commit."""

    pass


class NotFoundError(ReconciliationError):
    """Requested record does not exist."""

    pass
