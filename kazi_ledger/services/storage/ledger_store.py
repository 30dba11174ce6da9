"""
Ledger Entity Store

Owns the persistent representation of accounts, transactions and the
profile. Pure CRUD plus filtering - no statistics, no AI.

GUARANTEES:
- The account set is never empty
- Every transaction references an account that existed when it was created
- Deleting an account removes its transactions in the SAME write
- Every mutation is persisted before the method returns

Records are stored whole: each mutation is read-modify-write of the full
collection. Mutations are serialized with a lock so the guarantees above
survive a port to a multi-threaded host.
"""

import threading
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from kazi_ledger.models.ledger import (
    BusinessAccount,
    Profile,
    Transaction,
    TransactionDraft,
    utc_now,
)
from kazi_ledger.observability import get_logger
from kazi_ledger.services.storage.interface import (
    InvariantViolation,
    KeyValueBackend,
    NotFoundError,
    StorageError,
    StorageKeys,
    ValidationError,
)


DEFAULT_ACCOUNT_ID = "default-1"


class LedgerStore:
    """
    Single-writer store for one user's ledgers.

    Instantiate one per backend and pass it to the components that need
    it; there is no process-wide store.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        keys: Optional[StorageKeys] = None,
        default_account_name: str = "My Business",
        default_currency: str = "UGX",
    ):
        self._backend = backend
        self._keys = keys or StorageKeys()
        self._default_account_name = default_account_name
        self._default_currency = default_currency
        self._lock = threading.RLock()
        self._logger = get_logger(__name__)

    # -------------------------------------------------------------------------
    # Serialization helpers
    # -------------------------------------------------------------------------

    def _load_accounts(self) -> list[BusinessAccount]:
        raw = self._backend.read(self._keys.accounts)
        if raw is None:
            return []
        try:
            return [BusinessAccount.model_validate(item) for item in raw]
        except (PydanticValidationError, TypeError) as e:
            raise StorageError(f"Stored accounts are corrupt: {e}")

    def _load_transactions(self) -> list[Transaction]:
        raw = self._backend.read(self._keys.transactions)
        if raw is None:
            return []
        try:
            return [Transaction.model_validate(item) for item in raw]
        except (PydanticValidationError, TypeError) as e:
            raise StorageError(f"Stored transactions are corrupt: {e}")

    @staticmethod
    def _dump(items: list) -> list[dict[str, Any]]:
        return [item.model_dump(mode="json") for item in items]

    def _find_index(self, accounts: list[BusinessAccount], account_id: str) -> int:
        for idx, account in enumerate(accounts):
            if account.id == account_id:
                return idx
        raise NotFoundError(f"Account not found: {account_id}")

    @staticmethod
    def _require(value: Optional[str], field: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValidationError(f"{field} is required")
        return cleaned

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def list_accounts(self) -> list[BusinessAccount]:
        """
        List accounts in creation order.

        On first use (nothing stored yet) a default account is created and
        persisted, so the account set is never observed empty.
        """
        with self._lock:
            accounts = self._load_accounts()
            if accounts:
                return accounts

            default = BusinessAccount(
                id=DEFAULT_ACCOUNT_ID,
                name=self._default_account_name,
                currency=self._default_currency,
            )
            self._backend.write(self._keys.accounts, self._dump([default]))
            self._logger.info("default_account_seeded", account_id=default.id)
            return [default]

    def get_account(self, account_id: str) -> BusinessAccount:
        accounts = self.list_accounts()
        return accounts[self._find_index(accounts, account_id)]

    def create_account(self, name: str, currency: str) -> BusinessAccount:
        """
        Create a new ledger.

        Raises:
            ValidationError: If name or currency is blank
        """
        name = self._require(name, "Business name")
        currency = self._require(currency, "Currency")

        with self._lock:
            accounts = self.list_accounts()
            try:
                account = BusinessAccount(name=name, currency=currency)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid account: {e}")
            accounts.append(account)
            self._backend.write(self._keys.accounts, self._dump(accounts))

        self._logger.info(
            "account_created",
            account_id=account.id,
            currency=account.currency,
        )
        return account

    def update_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> BusinessAccount:
        """
        Rename an account or change its currency.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If a provided field is blank
        """
        changes: dict[str, str] = {}
        if name is not None:
            changes["name"] = self._require(name, "Business name")
        if currency is not None:
            changes["currency"] = self._require(currency, "Currency")

        with self._lock:
            accounts = self.list_accounts()
            idx = self._find_index(accounts, account_id)
            try:
                updated = BusinessAccount.model_validate(
                    {**accounts[idx].model_dump(), **changes}
                )
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid account: {e}")
            accounts[idx] = updated
            self._backend.write(self._keys.accounts, self._dump(accounts))

        self._logger.info(
            "account_updated",
            account_id=account_id,
            fields=sorted(changes),
        )
        return updated

    def delete_account(self, account_id: str) -> BusinessAccount:
        """
        Delete an account and every transaction it owns.

        Accounts, transactions and (when it pointed at the deleted account)
        the stored profile are replaced in one write.

        Returns:
            The first remaining account, which should become active

        Raises:
            InvariantViolation: If this is the only account
            NotFoundError: If the account does not exist
        """
        with self._lock:
            accounts = self.list_accounts()
            if len(accounts) <= 1:
                raise InvariantViolation("Cannot delete the only remaining account")

            idx = self._find_index(accounts, account_id)
            del accounts[idx]
            next_account = accounts[0]

            remaining_txs = [
                tx for tx in self._load_transactions()
                if tx.account_id != account_id
            ]

            records: dict[str, Any] = {
                self._keys.accounts: self._dump(accounts),
                self._keys.transactions: self._dump(remaining_txs),
            }

            stored_profile = self._backend.read(self._keys.profile)
            if stored_profile and stored_profile.get("active_account_id") == account_id:
                records[self._keys.profile] = {
                    **stored_profile,
                    "active_account_id": next_account.id,
                    "business_name": next_account.name,
                    "currency": next_account.currency,
                }

            self._backend.write_many(records)

        self._logger.info(
            "account_deleted",
            account_id=account_id,
            next_account_id=next_account.id,
        )
        return next_account

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def list_transactions(self, account_id: str) -> list[Transaction]:
        """List an account's transactions, newest insertion first."""
        return [
            tx for tx in self._load_transactions()
            if tx.account_id == account_id
        ]

    def clear_transactions(self, account_id: str) -> int:
        """
        Remove every transaction of an account. Idempotent.

        Returns:
            Number of transactions removed
        """
        with self._lock:
            all_txs = self._load_transactions()
            kept = [tx for tx in all_txs if tx.account_id != account_id]
            removed = len(all_txs) - len(kept)
            if removed:
                self._backend.write(self._keys.transactions, self._dump(kept))

        self._logger.info(
            "transactions_cleared",
            account_id=account_id,
            removed=removed,
        )
        return removed

    def create_transaction(
        self,
        draft: TransactionDraft,
        account_id: str,
        user_id: str,
    ) -> Transaction:
        """
        Append a confirmed draft to an account's log.

        The draft's date is used when set, otherwise the current instant.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If the draft does not form a valid transaction
        """
        with self._lock:
            self.get_account(account_id)

            try:
                tx = Transaction(
                    account_id=account_id,
                    user_id=user_id,
                    type=draft.type,
                    amount=draft.amount,
                    category=draft.category,
                    counterparty=draft.counterparty,
                    description=draft.description,
                    date=draft.date or utc_now(),
                )
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid transaction: {e}")

            all_txs = self._load_transactions()
            all_txs.insert(0, tx)
            self._backend.write(self._keys.transactions, self._dump(all_txs))

        self._logger.info(
            "transaction_recorded",
            transaction_id=tx.id,
            account_id=account_id,
            type=tx.type.value,
        )
        return tx

    # -------------------------------------------------------------------------
    # Profile and first-run flag
    # -------------------------------------------------------------------------

    def get_profile(self) -> Profile:
        """Load the profile, deriving a default from the first account."""
        raw = self._backend.read(self._keys.profile)
        if raw is not None:
            try:
                return Profile.model_validate(raw)
            except PydanticValidationError as e:
                raise StorageError(f"Stored profile is corrupt: {e}")

        first = self.list_accounts()[0]
        return Profile(
            business_name=first.name,
            currency=first.currency,
            active_account_id=first.id,
        )

    def update_profile(self, profile: Profile) -> None:
        """Replace the stored profile. No merging at this layer."""
        with self._lock:
            self._backend.write(self._keys.profile, profile.model_dump(mode="json"))

    def has_started(self) -> bool:
        return bool(self._backend.read(self._keys.has_started))

    def mark_started(self) -> None:
        self._backend.write(self._keys.has_started, True)
