"""
Abstract Storage Interface

DESIGN DECISION: The ledger store talks to a tiny key-value interface.
This allows us to:
1. Keep records in a local JSON file for the real app
2. Use in-memory storage for testing
3. Swap in another backend without touching business logic

The interface is intentionally simple - three named records, each a
JSON-serializable value. Multi-record writes go through write_many so a
backend can make them atomic.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional


class KeyValueBackend(ABC):
    """
    Abstract interface for persisting named JSON records.

    Values passed in and returned are plain JSON-compatible data
    (dicts, lists, strings, numbers, booleans, None).
    """

    @abstractmethod
    def read(self, key: str) -> Optional[Any]:
        """
        Read a record.

        Returns:
            The stored value, or None if the key was never written
        """
        pass

    @abstractmethod
    def write(self, key: str, value: Any) -> None:
        """
        Replace a record.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def write_many(self, records: Mapping[str, Any]) -> None:
        """
        Replace several records in one step.

        Readers must observe either all of the new values or none of them.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a record. Missing keys are ignored."""
        pass


@dataclass(frozen=True)
class StorageKeys:
    """
    Namespaced, versioned record keys.

    Bumping the version starts a fresh set of records, which is how
    schema changes are rolled out.
    """

    namespace: str = "kazi"
    version: int = 2

    def _key(self, record: str, version: Optional[int] = None) -> str:
        return f"{self.namespace}:{record}:v{self.version if version is None else version}"

    @property
    def accounts(self) -> str:
        return self._key("accounts")

    @property
    def transactions(self) -> str:
        return self._key("transactions")

    @property
    def profile(self) -> str:
        return self._key("profile")

    @property
    def has_started(self) -> str:
        # The first-run flag has no schema to evolve
        return self._key("has_started", version=1)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ValidationError(StorageError):
    """A required field is blank or a value is out of range."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class InvariantViolation(StorageError):
    """The operation would break a ledger invariant (e.g. zero accounts)."""
    pass
