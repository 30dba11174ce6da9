"""
Storage Services Package

Provides the key-value backend interface, local implementations of it,
and the ledger entity store built on top.
"""

from kazi_ledger.services.storage.interface import (
    InvariantViolation,
    KeyValueBackend,
    NotFoundError,
    StorageError,
    StorageKeys,
    ValidationError,
)
from kazi_ledger.services.storage.backends import (
    InMemoryBackend,
    JsonFileBackend,
)
from kazi_ledger.services.storage.ledger_store import (
    DEFAULT_ACCOUNT_ID,
    LedgerStore,
)

__all__ = [
    # Interfaces
    "KeyValueBackend",
    "StorageKeys",
    # Exceptions
    "InvariantViolation",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Implementations
    "DEFAULT_ACCOUNT_ID",
    "InMemoryBackend",
    "JsonFileBackend",
    "LedgerStore",
]
