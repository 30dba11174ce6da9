"""
Capture Models for Kazi Ledger

Everything that flows between a capture event (typed text, dictated
speech, receipt photo), the generative model, and the user's decision.

CRITICAL: An AIResult is a SUGGESTION. Nothing here is persisted until
the user explicitly confirms a draft.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from kazi_ledger.models.ledger import BusinessAccount, TransactionDraft


class Intent(str, Enum):
    """What the model thinks the user wanted."""
    RECORD = "RECORD"    # add a transaction
    QUERY = "QUERY"      # ask about history
    UNKNOWN = "UNKNOWN"  # could not tell


class AIResult(BaseModel):
    """
    Structured reply from the generative model.

    Mirrors the JSON schema the model is asked to fill in.
    """

    intent: Intent = Intent.UNKNOWN
    transaction: Optional[TransactionDraft] = None
    query_answer: Optional[str] = None

    @classmethod
    def empty(cls) -> "AIResult":
        return cls()


class Confirmation(str, Enum):
    """
    Explicit answer to a confirm/cancel prompt.

    Replaces blocking dialogs so flows can run headless.
    """
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class ContextToken(BaseModel):
    """
    Identifies the state a request was issued from.

    A response is only applied if the session still carries an
    equal token when it arrives.
    """
    model_config = ConfigDict(frozen=True)

    account_id: str
    user_id: str
    generation: int = Field(ge=0)


class CaptureStatus(str, Enum):
    """How a capture attempt ended."""
    DRAFT = "draft"                # awaiting confirmation
    ANSWER = "answer"              # informational reply to a question
    UNRECOGNIZED = "unrecognized"  # model could not make sense of it
    FAILED = "failed"              # transport, timeout or input problem
    STALE = "stale"                # context changed while waiting
    EMPTY = "empty"                # nothing to send


class CaptureOutcome(BaseModel):
    """Result of one capture, handed back to the UI layer."""

    status: CaptureStatus
    token: ContextToken
    message: str = ""
    draft: Optional[TransactionDraft] = None

    @property
    def is_draft(self) -> bool:
        return self.status == CaptureStatus.DRAFT and self.draft is not None


class ActionResult(BaseModel):
    """
    Result of a guarded account action (delete, clear).

    performed is False when the action was refused or cancelled;
    message is always safe to show to the user.
    """

    performed: bool
    message: str
    account: Optional[BusinessAccount] = None
