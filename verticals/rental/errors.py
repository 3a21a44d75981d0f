"""
Exceptions for the rental lifecycle engine.

Validation problems are never raised; they travel as findings. Exceptions
are reserved for three cases: a missing transaction, a race lost inside
a commit, and infrastructure failures the caller may retry.
"""


class RentalEngineError(Exception):
    """Base exception for all rental engine errors."""

    retryable = False


class TransactionNotFoundError(RentalEngineError):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class ConflictError(RentalEngineError):
    """A guarded write found the row changed since validation.

    Raised inside a commit so the whole unit of work rolls back.
    """

    def __init__(self, code: str, message: str, item_id: str | None = None):
        self.code = code
        self.item_id = item_id
        super().__init__(message)


class StoreUnavailableError(RentalEngineError):
    """The backing store could not complete the operation."""

    retryable = True

    def __init__(self, message: str, original_error: Exception | None = None):
        self.original_error = original_error
        if original_error:
            message = f"{message} (Original error: {original_error})"
        super().__init__(message)


class StoreTimeoutError(StoreUnavailableError):
    """The atomic commit exceeded its time budget and was aborted."""

    def __init__(self, transaction_id: str, timeout_seconds: float):
        self.transaction_id = transaction_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Commit for transaction {transaction_id} exceeded {timeout_seconds:g}s and was rolled back"
        )
