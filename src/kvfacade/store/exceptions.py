"""Store facade error taxonomy.

Every failure surfaced by the facade is one of these classes. Raw
``redis.exceptions`` errors are chained as ``__cause__`` and never raised
directly. ``retryable`` tells callers whether trying again may help.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for all facade errors."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        key: str | None = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.key = key


class StoreConnectionError(StoreError):
    """Raised when the store is unreachable while the facade is constructed."""


class StoreUnavailableError(StoreError):
    """Raised on a transient failure during an operation."""

    retryable = True


class NotFoundError(StoreError):
    """Raised when the queried key, field or member does not exist."""


class EmptyCollectionError(StoreError):
    """Raised when an operation needs a non-empty list or set."""


class TypeMismatchError(StoreError):
    """Raised when a key holds another data model or a value is not numeric."""


class InvalidArgumentError(StoreError):
    """Raised when a caller-supplied precondition is violated."""


class OperationCancelledError(StoreError):
    """Raised when the caller's deadline fires mid-operation."""


class FacadeClosedError(StoreError):
    """Raised when the facade is used after close()."""
