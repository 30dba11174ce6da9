"""
Remote Services Package

Auth session provider and optional ledger mirror. Both are best-effort
collaborators of the local store.
"""

from kazi_ledger.services.remote.interface import (
    AuthEvent,
    AuthProviderInterface,
    AuthSession,
    AuthUser,
    ExternalServiceError,
    LedgerMirrorInterface,
)
from kazi_ledger.services.remote.supabase_auth import SupabaseAuthClient
from kazi_ledger.services.remote.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsMirror,
)

__all__ = [
    # Interfaces
    "AuthEvent",
    "AuthProviderInterface",
    "AuthSession",
    "AuthUser",
    "LedgerMirrorInterface",
    # Exceptions
    "ExternalServiceError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsMirror",
    "SupabaseAuthClient",
]
