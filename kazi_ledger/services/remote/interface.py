"""
Remote Collaborator Interfaces

The ledger runs fully offline; the remote side only provides:
1. An auth session that tells us WHO is recording (user_id)
2. An optional mirror that copies local writes somewhere durable

Both are best-effort. Their failures surface as ExternalServiceError and
are recovered by the orchestrator - they never roll back local state.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel

from kazi_ledger.models.ledger import BusinessAccount, Transaction


class ExternalServiceError(Exception):
    """A remote call failed (network, HTTP status, quota, malformed reply)."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None


class AuthSession(BaseModel):
    """Authenticated session as returned by the auth backend."""

    access_token: str
    refresh_token: Optional[str] = None
    user: AuthUser


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


AuthListener = Callable[[AuthEvent, Optional[AuthSession]], None]


class AuthProviderInterface(ABC):
    """Abstract interface for the remote auth backend."""

    @abstractmethod
    async def get_session(self) -> Optional[AuthSession]:
        """
        Get the current session.

        Returns:
            The session if one is active and still valid, None otherwise
        """
        pass

    @abstractmethod
    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """
        Subscribe to sign-in / sign-out events.

        Returns:
            A callable that removes the subscription
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""
        pass


class LedgerMirrorInterface(ABC):
    """
    Abstract interface for mirroring local writes to a remote copy.

    The mirror is write-only from the ledger's point of view; it is
    never read back.
    """

    @abstractmethod
    async def mirror_account(self, account: BusinessAccount) -> None:
        pass

    @abstractmethod
    async def mirror_transaction(self, transaction: Transaction) -> None:
        pass

    @abstractmethod
    async def purge_transactions(self, account_id: str) -> int:
        """Remove mirrored transactions of an account. Returns rows removed."""
        pass

    @abstractmethod
    async def purge_account(self, account_id: str) -> None:
        """Remove a mirrored account and its transactions."""
        pass
