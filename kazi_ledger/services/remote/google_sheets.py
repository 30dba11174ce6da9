"""
Google Sheets Mirror

DESIGN DECISION: Google Sheets is used as the optional remote copy because:
1. Owners can look at their books directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a small business)
- No transactions (the local store stays the source of truth)
- The mirror is write-only; it is never read back into the ledger
"""

import asyncio
from typing import Callable, Optional, TypeVar

import gspread
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from kazi_ledger.config import GoogleSheetsSettings
from kazi_ledger.models.ledger import BusinessAccount, Transaction
from kazi_ledger.services.remote.interface import (
    ExternalServiceError,
    LedgerMirrorInterface,
)


SERVICE = "google_sheets"

# Column mappings for Accounts sheet
ACCOUNT_COLUMNS = [
    "id",
    "name",
    "currency",
    "created_at",
]

# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "account_id",
    "user_id",
    "type",
    "amount",
    "category",
    "counterparty",
    "description",
    "date",
]

# Index of the account id column in each sheet
_ACCOUNT_ID_COL = 0
_TX_ACCOUNT_ID_COL = 1


T = TypeVar("T")


class GoogleSheetsClient:
    """
    Blocking access to the configured spreadsheet.

    Nothing here retries; a missing credentials file or spreadsheet
    fails on the first call.
    """

    def __init__(self, settings: GoogleSheetsSettings):
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Open the spreadsheet on first use with service account credentials."""
        if self._spreadsheet is None:
            try:
                client = gspread.service_account(filename=self._settings.credentials_path)
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except FileNotFoundError:
                raise ExternalServiceError(
                    SERVICE,
                    f"credentials file not found: {self._settings.credentials_path}",
                )
            except gspread.SpreadsheetNotFound:
                raise ExternalServiceError(
                    SERVICE,
                    f"spreadsheet not found: {self._settings.spreadsheet_id}",
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        """Get or create the Accounts worksheet."""
        return self._get_or_create(
            self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=100
        )

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=5000
        )


def account_to_row(account: BusinessAccount) -> list:
    """Convert a BusinessAccount to a spreadsheet row."""
    return [
        account.id,
        account.name,
        account.currency,
        account.created_at.isoformat(),
    ]


def transaction_to_row(tx: Transaction) -> list:
    """Convert a Transaction to a spreadsheet row."""
    return [
        tx.id,
        tx.account_id,
        tx.user_id,
        tx.type.value,
        tx.amount,
        tx.category,
        tx.counterparty,
        tx.description,
        tx.date.isoformat(),
    ]


def _delete_matching(sheet: gspread.Worksheet, column: int, value: str) -> int:
    all_rows = sheet.get_all_values()
    # Row 1 is the header; sheet rows are 1-based
    matches = [
        idx for idx, row in enumerate(all_rows[1:], start=2)
        if len(row) > column and row[column] == value
    ]
    # Delete bottom-up so earlier indexes stay valid
    for idx in reversed(matches):
        sheet.delete_rows(idx)
    return len(matches)


class GoogleSheetsMirror(LedgerMirrorInterface):
    """
    Google Sheets implementation of the ledger mirror.

    One row per account and one row per transaction. gspread blocks,
    so every sheet operation runs in a worker thread and the event
    loop keeps serving the UI while Sheets is slow.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(gspread.exceptions.APIError),
        reraise=True,
    )
    async def _run(self, operation: Callable[[], T]) -> T:
        # Only API errors (quota, 5xx) are worth another attempt
        return await asyncio.to_thread(operation)

    async def _call(self, action: str, operation: Callable[[], T]) -> T:
        try:
            return await self._run(operation)
        except ExternalServiceError:
            raise
        except Exception as e:
            raise ExternalServiceError(SERVICE, f"failed to {action}: {e}")

    async def mirror_account(self, account: BusinessAccount) -> None:
        row = account_to_row(account)
        await self._call(
            "mirror account",
            lambda: self._client.get_accounts_sheet().append_row(row, value_input_option="RAW"),
        )

    async def mirror_transaction(self, transaction: Transaction) -> None:
        row = transaction_to_row(transaction)
        await self._call(
            "mirror transaction",
            lambda: self._client.get_transactions_sheet().append_row(
                row, value_input_option="RAW"
            ),
        )

    async def purge_transactions(self, account_id: str) -> int:
        return await self._call(
            "purge transactions",
            lambda: _delete_matching(
                self._client.get_transactions_sheet(), _TX_ACCOUNT_ID_COL, account_id
            ),
        )

    async def purge_account(self, account_id: str) -> None:
        await self.purge_transactions(account_id)
        await self._call(
            "purge account",
            lambda: _delete_matching(
                self._client.get_accounts_sheet(), _ACCOUNT_ID_COL, account_id
            ),
        )
