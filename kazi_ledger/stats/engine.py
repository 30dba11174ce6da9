"""
Statistics Engine

DESIGN DECISION: Statistics are DERIVED on demand from the transaction
log; nothing is cached or stored. Each ledger sums only its own numbers.

Two different kinds of figure come out of one pass:
- inflow / outflow / profit are PERIOD figures, filtered by timeframe
- debt is a CUMULATIVE balance over all history, never filtered

The asymmetry is intentional: outstanding debt does not reset at midnight.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from kazi_ledger.models.ledger import (
    HistoryView,
    LedgerStats,
    Timeframe,
    Transaction,
    TransactionType,
)
from kazi_ledger.services.storage import LedgerStore


INFLOW_TYPES = frozenset({TransactionType.INCOME, TransactionType.DEBT_PAYMENT})
OUTFLOW_TYPES = frozenset({TransactionType.EXPENSE})

ROLLING_WEEK = timedelta(days=7)


def _local(moment: datetime) -> datetime:
    # Naive datetimes are taken to be local time already
    return moment.astimezone()


def in_timeframe(moment: datetime, timeframe: Timeframe, now: datetime) -> bool:
    """
    Check whether a transaction date falls in a timeframe.

    - today: same local calendar day as now
    - weekly: no more than 7 x 24h before now (rolling window)
    - monthly: same local calendar month and year as now
    """
    moment = _local(moment)
    now = _local(now)

    if timeframe == Timeframe.TODAY:
        return moment.date() == now.date()
    if timeframe == Timeframe.WEEKLY:
        return now - moment <= ROLLING_WEEK
    if timeframe == Timeframe.MONTHLY:
        return (moment.year, moment.month) == (now.year, now.month)
    raise ValueError(f"Unknown timeframe: {timeframe}")


def filter_by_timeframe(
    transactions: Iterable[Transaction],
    timeframe: Timeframe,
    now: Optional[datetime] = None,
) -> list[Transaction]:
    now = now or datetime.now().astimezone()
    return [tx for tx in transactions if in_timeframe(tx.date, timeframe, now)]


def net_debt(transactions: Iterable[Transaction]) -> float:
    """Running total of DEBT minus DEBT_PAYMENT across all given transactions."""
    balance = 0.0
    for tx in transactions:
        if tx.type == TransactionType.DEBT:
            balance += tx.amount
        elif tx.type == TransactionType.DEBT_PAYMENT:
            balance -= tx.amount
    return balance


def summarize(
    transactions: list[Transaction],
    timeframe: Timeframe,
    now: Optional[datetime] = None,
) -> LedgerStats:
    """
    Compute dashboard figures for one account's transactions.

    No rounding is applied; amounts are summed as plain floats.
    """
    period = filter_by_timeframe(transactions, timeframe, now)

    inflow = sum((tx.amount for tx in period if tx.type in INFLOW_TYPES), 0.0)
    outflow = sum((tx.amount for tx in period if tx.type in OUTFLOW_TYPES), 0.0)

    return LedgerStats(
        inflow=inflow,
        outflow=outflow,
        profit=inflow - outflow,
        debt=net_debt(transactions),
    )


class StatisticsEngine:
    """
    Reads an account's log from the store and derives figures from it.

    The engine is read-only; it never writes to the store.
    """

    def __init__(self, store: LedgerStore):
        self._store = store

    def compute_stats(
        self,
        account_id: str,
        timeframe: Timeframe = Timeframe.TODAY,
        now: Optional[datetime] = None,
    ) -> LedgerStats:
        transactions = self._store.list_transactions(account_id)
        return summarize(transactions, Timeframe(timeframe), now)

    def history(
        self,
        account_id: str,
        timeframe: Timeframe = Timeframe.TODAY,
        view: HistoryView = HistoryView.DASHBOARD,
        now: Optional[datetime] = None,
    ) -> list[Transaction]:
        """
        Transactions to list under the dashboard.

        The debts view shows every debt movement regardless of timeframe,
        matching the cumulative debt figure it sits under.
        """
        transactions = self._store.list_transactions(account_id)
        if HistoryView(view) == HistoryView.DEBTS:
            return [tx for tx in transactions if tx.is_debt_movement]
        return filter_by_timeframe(transactions, Timeframe(timeframe), now)
