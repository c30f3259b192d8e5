"""
Ledger Error Taxonomy

Every failure the core reports to callers carries an explicit ErrorKind.
The HTTP layer maps kinds to status codes; it never inspects message text.
"""

from enum import Enum


class ErrorKind(Enum):
    """Kinds of failure visible to callers of the ledger core"""
    NOT_FOUND = "not_found"                # Referenced customer/account does not exist
    INVALID_ARGUMENT = "invalid_argument"  # Malformed input or business rule violation
    UNAVAILABLE = "unavailable"            # Transient store conflict, safe to retry


class LedgerError(Exception):
    """Base class for all ledger failures"""

    kind: ErrorKind = ErrorKind.INVALID_ARGUMENT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class NotFoundError(LedgerError):
    """Raised when a referenced customer or account does not exist"""
    kind = ErrorKind.NOT_FOUND


class InvalidArgumentError(LedgerError):
    """Raised for non-positive amounts, self-transfers and similar input errors"""
    kind = ErrorKind.INVALID_ARGUMENT


class InsufficientFundsError(InvalidArgumentError):
    """Raised when the source balance cannot cover a transfer"""


class UnavailableError(LedgerError):
    """Raised when store conflicts persist after the bounded number of retries"""
    kind = ErrorKind.UNAVAILABLE


class StoreConflict(Exception):
    """
    A concurrent writer prevented the current unit of work from completing.

    Raised by storage backends only. The transfer engine retries on it and
    never lets it reach callers.
    """
