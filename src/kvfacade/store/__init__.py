"""Redis store facade.

Public surface:
- StoreFacade: typed operations over strings, lists, sets, sorted sets, hashes
- deadline: caller-side bound for operations started inside a block
- the error taxonomy (all subclasses of StoreError)
"""

from .connection import ConnectionManager
from .exceptions import (
    EmptyCollectionError,
    FacadeClosedError,
    InvalidArgumentError,
    NotFoundError,
    OperationCancelledError,
    StoreConnectionError,
    StoreError,
    StoreUnavailableError,
    TypeMismatchError,
)
from .facade import StoreFacade, deadline

__all__ = [
    "StoreFacade",
    "ConnectionManager",
    "deadline",
    # Errors
    "StoreError",
    "StoreConnectionError",
    "StoreUnavailableError",
    "NotFoundError",
    "EmptyCollectionError",
    "TypeMismatchError",
    "InvalidArgumentError",
    "OperationCancelledError",
    "FacadeClosedError",
]
