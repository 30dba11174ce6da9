"""
Core Ledger Models for Kazi Ledger

These models define the strict schemas for everything the store persists.
They are designed to:
1. Enforce type safety at runtime
2. Round-trip cleanly through JSON storage
3. Keep persisted transactions immutable

DESIGN DECISION: Amounts are plain non-negative floats in the ledger's
own currency. There is no conversion between currencies and no rounding;
each ledger only ever sums its own numbers.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utc_now() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Kinds of money movement a ledger records.

    DEBT is money lent out (or owed to the business); DEBT_PAYMENT is
    money coming back against it.
    """
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    DEBT = "DEBT"
    DEBT_PAYMENT = "DEBT_PAYMENT"


class Timeframe(str, Enum):
    """Windows used to bucket transactions for the dashboard."""
    TODAY = "today"
    WEEKLY = "weekly"    # rolling 7 x 24h, not a calendar week
    MONTHLY = "monthly"  # calendar month


class HistoryView(str, Enum):
    """Which slice of history the caller is looking at."""
    DASHBOARD = "dashboard"
    DEBTS = "debts"


# =============================================================================
# ACCOUNTS AND PROFILE
# =============================================================================

class BusinessAccount(BaseModel):
    """
    One business ledger.

    Every transaction belongs to exactly one account and accounts
    never see each other's history.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Unique account ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        description="Business name shown to the user"
    )
    currency: str = Field(
        ...,
        min_length=1,
        description="ISO-like currency code, e.g. UGX"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the account was created"
    )

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


class Profile(BaseModel):
    """
    Per-user singleton that remembers the selected ledger.

    active_account_id must always point at a live account; the
    orchestrator repoints it before a deletion is persisted.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = "1"
    business_name: str
    currency: str
    active_account_id: Optional[str] = None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionDraft(BaseModel):
    """
    A parsed, UNCONFIRMED transaction proposal.

    CRITICAL: Drafts are never persisted as-is. The date is stamped
    only when the user confirms.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    amount: float = Field(
        ...,
        ge=0,
        description="Amount in the ledger's currency"
    )
    category: str = ""
    counterparty: str = ""
    description: str = ""
    date: Optional[datetime] = Field(
        default=None,
        description="Set on confirmation"
    )


class Transaction(BaseModel):
    """
    A confirmed, persisted ledger entry.

    Immutable once created; only removed by clearing or deleting
    the whole account.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    account_id: str
    user_id: str
    type: TransactionType
    amount: float = Field(..., ge=0)
    category: str = ""
    counterparty: str = ""
    description: str = ""
    date: datetime

    @property
    def is_debt_movement(self) -> bool:
        return self.type in (TransactionType.DEBT, TransactionType.DEBT_PAYMENT)


# =============================================================================
# DERIVED FIGURES
# =============================================================================

class LedgerStats(BaseModel):
    """
    Aggregates for one account and timeframe.

    inflow, outflow and profit are period figures; debt is the
    cumulative outstanding balance across all history.
    """

    inflow: float = 0.0
    outflow: float = 0.0
    profit: float = 0.0
    debt: float = 0.0
