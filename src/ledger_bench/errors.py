"""Error taxonomy for ledger transfers."""

import enum
from typing import Optional

import ydb


class ErrorKind(enum.Enum):
    OK = "ok"
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    PERMANENT = "permanent"


# Statuses the server uses to ask the client to rerun the whole transaction.
# Undetermined is deliberately absent: the commit may already be applied.
CONFLICT_ERRORS = (
    ydb.issues.Aborted,
    ydb.issues.BadSession,
    ydb.issues.SessionBusy,
    ydb.issues.SessionExpired,
)

# Statuses that signal temporary unavailability and call for a slower backoff
OVERLOAD_ERRORS = (
    ydb.issues.Overloaded,
    ydb.issues.Unavailable,
    ydb.issues.SessionPoolEmpty,
)


class TransferError(Exception):
    """Base class for errors raised by the transfer engine itself."""


class TransferTimeout(TransferError):
    """The transfer did not commit before its deadline."""

    def __init__(self, timeout: float, cause: Optional[BaseException] = None):
        self.timeout = timeout
        self.cause = cause
        message = f"transfer did not commit within {timeout:.3f}s"
        if cause is not None:
            message = f"{message} (last error: {cause})"
        super().__init__(message)


def is_transient(error: BaseException) -> bool:
    """Return True if the transaction body may be rerun after ``error``."""
    return isinstance(error, CONFLICT_ERRORS + OVERLOAD_ERRORS)


def is_overload(error: BaseException) -> bool:
    return isinstance(error, OVERLOAD_ERRORS)


def classify(error: Optional[BaseException]) -> ErrorKind:
    """
    Map an exception (or its absence) to an ErrorKind.

    Args:
        error: Exception raised by a transfer, or None on success

    Returns:
        ErrorKind of the outcome
    """
    if error is None:
        return ErrorKind.OK
    if isinstance(error, TransferTimeout):
        return ErrorKind.TIMEOUT
    if is_transient(error):
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT
