"""
Data Models Package

This package contains all Pydantic models used in Kazi Ledger.
All data flowing through the system must conform to these schemas.
"""

from kazi_ledger.models.ledger import (
    BusinessAccount,
    HistoryView,
    LedgerStats,
    Profile,
    Timeframe,
    Transaction,
    TransactionDraft,
    TransactionType,
    utc_now,
)
from kazi_ledger.models.capture import (
    ActionResult,
    AIResult,
    CaptureOutcome,
    CaptureStatus,
    Confirmation,
    ContextToken,
    Intent,
)

__all__ = [
    # Ledger models
    "BusinessAccount",
    "HistoryView",
    "LedgerStats",
    "Profile",
    "Timeframe",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "utc_now",
    # Capture models
    "ActionResult",
    "AIResult",
    "CaptureOutcome",
    "CaptureStatus",
    "Confirmation",
    "ContextToken",
    "Intent",
]
