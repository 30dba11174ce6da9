"""Services package."""

from kazi_ledger.services.remote import (
    AuthProviderInterface,
    AuthSession,
    ExternalServiceError,
    GoogleSheetsClient,
    GoogleSheetsMirror,
    LedgerMirrorInterface,
    SupabaseAuthClient,
)
from kazi_ledger.services.storage import (
    InMemoryBackend,
    InvariantViolation,
    JsonFileBackend,
    KeyValueBackend,
    LedgerStore,
    NotFoundError,
    StorageError,
    StorageKeys,
    ValidationError,
)

__all__ = [
    # Remote services
    "AuthProviderInterface",
    "AuthSession",
    "ExternalServiceError",
    "GoogleSheetsClient",
    "GoogleSheetsMirror",
    "LedgerMirrorInterface",
    "SupabaseAuthClient",
    # Storage services
    "InMemoryBackend",
    "InvariantViolation",
    "JsonFileBackend",
    "KeyValueBackend",
    "LedgerStore",
    "NotFoundError",
    "StorageError",
    "StorageKeys",
    "ValidationError",
]
