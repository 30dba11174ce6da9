"""
Main Orchestrator for Kazi Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Session (active ledger, profile, auth, timeframe)
2. Capture (text or receipt → parse → draft → confirm → save)
3. Insights (dashboard summary → tips)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No transaction persists without explicit confirmation
- No question ever writes to the store
- No response is applied to a context it was not computed for
- Remote failures never roll back local state

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional, Union

from kazi_ledger.agents import FALLBACK_INSIGHTS, InsightsAgent, IntentAgent
from kazi_ledger.config import AppSettings, Settings, get_settings
from kazi_ledger.models import (
    ActionResult,
    AIResult,
    BusinessAccount,
    CaptureOutcome,
    CaptureStatus,
    Confirmation,
    ContextToken,
    HistoryView,
    Intent,
    LedgerStats,
    Profile,
    Timeframe,
    Transaction,
    TransactionDraft,
    utc_now,
)
from kazi_ledger.observability import configure_logging, get_logger
from kazi_ledger.services.remote import (
    AuthEvent,
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
    StorageKeys,
)
from kazi_ledger.stats import StatisticsEngine


# User-facing messages
LAST_ACCOUNT_WARNING = (
    "You must have at least one business ledger. "
    "Create a new one before deleting this one."
)
DEFAULT_QUERY_ANSWER = "I couldn't find an answer for that."
UNRECOGNIZED_TEXT_MESSAGE = "Sorry, I didn't catch that. Try 'Sold item for 5000'"
ASSISTANT_FAILURE_MESSAGE = "Something went wrong with the AI assistant."
UNREADABLE_RECEIPT_MESSAGE = "Couldn't read receipt. Try typing details."
RECEIPT_FAILURE_MESSAGE = "Error analyzing image."
STALE_MESSAGE = "The ledger changed while this was processing. Please try again."


def format_amount(amount: float) -> str:
    """Render an amount without trailing zeros (5000.0 -> 5000)."""
    text = f"{amount:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


class LedgerSession:
    """
    Holds the active ledger and everything derived from it.

    Flow:
    1. start → load auth session, resolve active account from the profile
    2. switch / create / update / delete / clear → store, then profile
    3. every change of account or user bumps the generation, which
       invalidates outstanding context tokens

    Destructive actions take an explicit Confirmation.
    The session NEVER deletes or clears without CONFIRMED.
    """

    def __init__(
        self,
        store: LedgerStore,
        stats_engine: StatisticsEngine,
        app_settings: AppSettings,
        auth: Optional[AuthProviderInterface] = None,
        mirror: Optional[LedgerMirrorInterface] = None,
    ):
        self._store = store
        self._stats = stats_engine
        self._settings = app_settings
        self._auth = auth
        self._mirror = mirror
        self._logger = get_logger(__name__)

        self._accounts: list[BusinessAccount] = []
        self._active: Optional[BusinessAccount] = None
        self._timeframe = Timeframe.TODAY
        self._generation = 0
        self._auth_session: Optional[AuthSession] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> BusinessAccount:
        """
        Load the auth session and the active account.

        An auth failure is logged and the session continues as the
        demo user.
        """
        if self._auth is not None:
            try:
                self._auth_session = await self._auth.get_session()
            except ExternalServiceError as e:
                self._logger.warning("auth_session_unavailable", error=str(e))
                self._auth_session = None
            if self._unsubscribe is None:
                self._unsubscribe = self._auth.on_auth_state_change(self._on_auth_change)

        active = self._resolve_active()
        self._logger.info(
            "session_started",
            account_id=active.id,
            user_id=self.user_id,
            accounts=len(self._accounts),
        )
        return active

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _resolve_active(self) -> BusinessAccount:
        self._accounts = self._store.list_accounts()
        profile = self._store.get_profile()

        active = next(
            (a for a in self._accounts if a.id == profile.active_account_id),
            None,
        )
        if active is None:
            active = self._accounts[0]
            self._persist_profile(active)

        self._active = active
        return active

    def _persist_profile(self, account: BusinessAccount) -> None:
        current = self._store.get_profile()
        self._store.update_profile(
            Profile(
                id=current.id,
                business_name=account.name,
                currency=account.currency,
                active_account_id=account.id,
            )
        )

    def _bump_generation(self, reason: str) -> None:
        self._generation += 1
        self._logger.debug("context_invalidated", reason=reason, generation=self._generation)

    # -------------------------------------------------------------------------
    # State accessors
    # -------------------------------------------------------------------------

    @property
    def active_account(self) -> BusinessAccount:
        if self._active is None:
            return self._resolve_active()
        return self._active

    @property
    def accounts(self) -> list[BusinessAccount]:
        if not self._accounts:
            self._resolve_active()
        return list(self._accounts)

    @property
    def timeframe(self) -> Timeframe:
        return self._timeframe

    @property
    def auth_session(self) -> Optional[AuthSession]:
        return self._auth_session

    @property
    def user_id(self) -> str:
        if self._auth_session is not None and self._auth_session.user.id:
            return self._auth_session.user.id
        return self._settings.demo_user_id

    @property
    def generation(self) -> int:
        return self._generation

    def current_token(self) -> ContextToken:
        return ContextToken(
            account_id=self.active_account.id,
            user_id=self.user_id,
            generation=self._generation,
        )

    def is_current(self, token: ContextToken) -> bool:
        return token == self.current_token()

    def has_started(self) -> bool:
        """Whether the user has dismissed the welcome screen."""
        return self._store.has_started()

    def mark_started(self) -> None:
        self._store.mark_started()
        self._logger.info("onboarding_completed")

    # -------------------------------------------------------------------------
    # Account lifecycle
    # -------------------------------------------------------------------------

    def switch_account(self, account: Union[BusinessAccount, str]) -> BusinessAccount:
        """
        Make an account active and remember it in the profile.

        Raises:
            NotFoundError: If the account does not exist
        """
        account_id = account.id if isinstance(account, BusinessAccount) else account
        target = self._store.get_account(account_id)
        self._accounts = self._store.list_accounts()

        previous = self._active.id if self._active else None
        self._active = target
        self._persist_profile(target)
        if previous != target.id:
            self._bump_generation("account_switched")

        self._logger.info("account_switched", account_id=target.id, previous=previous)
        return target

    async def create_account_and_switch(self, name: str, currency: str) -> BusinessAccount:
        """
        Create a ledger and make it active.

        Raises:
            ValidationError: If name or currency is blank (nothing is created)
        """
        account = self._store.create_account(name, currency)
        self._accounts = self._store.list_accounts()
        self.switch_account(account)

        if self._mirror is not None:
            await self._mirror_call("mirror_account", self._mirror.mirror_account(account))
        return account

    def update_active_account(
        self,
        name: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> BusinessAccount:
        """Rename the active ledger or change its currency."""
        updated = self._store.update_account(self.active_account.id, name=name, currency=currency)
        self._accounts = self._store.list_accounts()
        self._active = updated
        self._persist_profile(updated)
        return updated

    async def delete_active_account(self, confirmation: Confirmation) -> ActionResult:
        """
        Delete the active ledger and all its transactions.

        Refused with LAST_ACCOUNT_WARNING when it is the only ledger,
        before any confirmation is considered.
        """
        active = self.active_account
        self._accounts = self._store.list_accounts()
        if len(self._accounts) <= 1:
            self._logger.info("account_delete_refused", account_id=active.id)
            return ActionResult(performed=False, message=LAST_ACCOUNT_WARNING, account=active)

        if confirmation != Confirmation.CONFIRMED:
            return ActionResult(performed=False, message="Deletion cancelled.", account=active)

        try:
            next_account = self._store.delete_account(active.id)
        except InvariantViolation:
            return ActionResult(performed=False, message=LAST_ACCOUNT_WARNING, account=active)

        self._accounts = self._store.list_accounts()
        self._active = next_account
        self._persist_profile(next_account)
        self._bump_generation("account_deleted")

        if self._mirror is not None:
            await self._mirror_call("purge_account", self._mirror.purge_account(active.id))

        return ActionResult(
            performed=True,
            message=f'Deleted "{active.name}".',
            account=next_account,
        )

    async def clear_active_history(self, confirmation: Confirmation) -> ActionResult:
        """Remove every transaction of the active ledger."""
        active = self.active_account
        if confirmation != Confirmation.CONFIRMED:
            return ActionResult(performed=False, message="History kept.", account=active)

        removed = self._store.clear_transactions(active.id)
        self._bump_generation("history_cleared")

        if self._mirror is not None:
            await self._mirror_call("purge_transactions", self._mirror.purge_transactions(active.id))

        return ActionResult(
            performed=True,
            message=f"Cleared {removed} transactions.",
            account=active,
        )

    async def record_transaction(self, draft: TransactionDraft) -> Transaction:
        """Persist a confirmed draft on the active ledger as the current user."""
        tx = self._store.create_transaction(draft, self.active_account.id, self.user_id)
        if self._mirror is not None:
            await self._mirror_call("mirror_transaction", self._mirror.mirror_transaction(tx))
        return tx

    async def _mirror_call(self, operation: str, call) -> None:
        try:
            await call
        except ExternalServiceError as e:
            self._logger.warning("mirror_failed", operation=operation, error=str(e))

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    def set_timeframe(self, timeframe: Union[Timeframe, str]) -> Timeframe:
        self._timeframe = Timeframe(timeframe)
        return self._timeframe

    def stats(self, now: Optional[datetime] = None) -> LedgerStats:
        return self._stats.compute_stats(self.active_account.id, self._timeframe, now)

    def history(
        self,
        view: HistoryView = HistoryView.DASHBOARD,
        now: Optional[datetime] = None,
    ) -> list[Transaction]:
        return self._stats.history(self.active_account.id, self._timeframe, view, now)

    def has_transactions(self) -> bool:
        return bool(self._store.list_transactions(self.active_account.id))

    def build_context(self, now: Optional[datetime] = None) -> str:
        """
        Summarize the active ledger for the intent parser.

        Contains the account name, currency, timeframe, period figures,
        outstanding debt and a few recent descriptions. Never longer than
        context_max_chars.
        """
        account = self.active_account
        stats = self.stats(now)
        recent = self._store.list_transactions(account.id)[: self._settings.context_recent_count]
        descriptions = ", ".join(
            tx.description or tx.category or tx.type.value for tx in recent
        )

        context = (
            f"Business: {account.name}. Currency: {account.currency}. "
            f"Timeframe: {self._timeframe.value}. "
            f"Stats: Inflow {format_amount(stats.inflow)}, "
            f"Outflow {format_amount(stats.outflow)}. "
            f"Debt: {format_amount(stats.debt)}. "
            f"Recent tx: {descriptions or 'none'}."
        )
        return context[: self._settings.context_max_chars]

    def insights_context(self, now: Optional[datetime] = None) -> str:
        """Summary with a sample of transactions, for the insights agent."""
        account = self.active_account
        stats = self.stats(now)
        sample = self._store.list_transactions(account.id)[: self._settings.insights_sample_size]
        lines = "; ".join(
            f"{tx.type.value} {format_amount(tx.amount)} {tx.description}".strip()
            for tx in sample
        )

        context = (
            f"Dashboard ({account.currency}, {self._timeframe.value}): "
            f"Inflow {format_amount(stats.inflow)}, "
            f"Outflow {format_amount(stats.outflow)}, "
            f"Profit {format_amount(stats.profit)}, "
            f"Debt {format_amount(stats.debt)}. "
            f"Transactions sample: {lines}"
        )
        return context[: self._settings.context_max_chars]

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def _on_auth_change(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        self._auth_session = session if event == AuthEvent.SIGNED_IN else None
        self._bump_generation(f"auth_{event.value.lower()}")
        self._logger.info("auth_changed", event=event.value, user_id=self.user_id)

    async def sign_out(self) -> None:
        if self._auth is not None:
            # The listener updates the session and generation
            await self._auth.sign_out()
        if self._auth_session is not None:
            self._auth_session = None
            self._bump_generation("auth_signed_out")


class CaptureFlow:
    """
    Orchestrates capture from text and receipt photos.

    Flow:
    1. Submit → tag the request with the current context token
    2. Parse → IntentAgent (bounded by a timeout)
    3. Reconcile → DRAFT / ANSWER / UNRECOGNIZED / FAILED / STALE
    4. Resolve → user CONFIRMS or CANCELS a draft
    5. Save → only a confirmed, still-current draft is stamped and stored

    Confirmation (step 4) is MANDATORY.
    The system NEVER auto-saves.
    """

    def __init__(
        self,
        session: LedgerSession,
        intent_agent: IntentAgent,
        app_settings: AppSettings,
        timeout_seconds: float = 20.0,
    ):
        self._session = session
        self._agent = intent_agent
        self._settings = app_settings
        self._timeout = timeout_seconds
        self._logger = get_logger(__name__)

    def _outcome(
        self,
        status: CaptureStatus,
        token: ContextToken,
        message: str = "",
        draft: Optional[TransactionDraft] = None,
    ) -> CaptureOutcome:
        self._logger.info(
            "capture_outcome",
            status=status.value,
            account_id=token.account_id,
            generation=token.generation,
        )
        return CaptureOutcome(status=status, token=token, message=message, draft=draft)

    def _reconcile(
        self,
        result: AIResult,
        token: ContextToken,
        unrecognized_message: str,
    ) -> CaptureOutcome:
        if not self._session.is_current(token):
            self._logger.warning("stale_response_discarded", account_id=token.account_id)
            return self._outcome(CaptureStatus.STALE, token, STALE_MESSAGE)

        if result.intent == Intent.RECORD and result.transaction is not None:
            return self._outcome(CaptureStatus.DRAFT, token, draft=result.transaction)

        if result.intent == Intent.QUERY:
            # Informational only, even if a transaction came along
            return self._outcome(
                CaptureStatus.ANSWER,
                token,
                result.query_answer or DEFAULT_QUERY_ANSWER,
            )

        return self._outcome(CaptureStatus.UNRECOGNIZED, token, unrecognized_message)

    async def submit_text(self, text: str) -> CaptureOutcome:
        """
        Parse a typed or dictated sentence.

        Blank input returns EMPTY without calling the model.
        """
        token = self._session.current_token()
        text = (text or "").strip()
        if not text:
            return self._outcome(CaptureStatus.EMPTY, token)

        context = self._session.build_context()
        try:
            result = await asyncio.wait_for(
                self._agent.parse_text(text, context),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._logger.warning("parse_timeout", source="text", timeout=self._timeout)
            return self._outcome(CaptureStatus.FAILED, token, ASSISTANT_FAILURE_MESSAGE)
        except ExternalServiceError as e:
            self._logger.warning("parse_failed", source="text", error=str(e))
            return self._outcome(CaptureStatus.FAILED, token, ASSISTANT_FAILURE_MESSAGE)

        return self._reconcile(result, token, UNRECOGNIZED_TEXT_MESSAGE)

    async def submit_image(
        self,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
    ) -> CaptureOutcome:
        """
        Parse a receipt photo.

        Unsupported types and oversized images are rejected without
        calling the model.
        """
        token = self._session.current_token()
        if not image_bytes:
            return self._outcome(CaptureStatus.EMPTY, token)

        mime_type = (mime_type or "").lower()
        if mime_type not in self._settings.supported_mime_types_list:
            return self._outcome(
                CaptureStatus.FAILED,
                token,
                f"Unsupported image type: {mime_type or 'unknown'}",
            )
        if len(image_bytes) > self._settings.max_upload_size_bytes:
            return self._outcome(
                CaptureStatus.FAILED,
                token,
                f"Image is larger than {self._settings.max_upload_size_mb} MB",
            )

        try:
            result = await asyncio.wait_for(
                self._agent.parse_image(image_bytes, mime_type),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._logger.warning("parse_timeout", source="image", timeout=self._timeout)
            return self._outcome(CaptureStatus.FAILED, token, RECEIPT_FAILURE_MESSAGE)
        except ExternalServiceError as e:
            self._logger.warning("parse_failed", source="image", error=str(e))
            return self._outcome(CaptureStatus.FAILED, token, RECEIPT_FAILURE_MESSAGE)

        return self._reconcile(result, token, UNREADABLE_RECEIPT_MESSAGE)

    async def resolve(
        self,
        outcome: CaptureOutcome,
        confirmation: Confirmation,
    ) -> Optional[Transaction]:
        """
        Apply the user's decision on a draft.

        Returns:
            The stored transaction, or None when nothing was written
        """
        if not outcome.is_draft:
            return None

        if confirmation != Confirmation.CONFIRMED:
            self._logger.info("draft_discarded", account_id=outcome.token.account_id)
            return None

        if not self._session.is_current(outcome.token):
            self._logger.warning("stale_draft_rejected", account_id=outcome.token.account_id)
            return None

        draft = outcome.draft.model_copy(update={"date": utc_now()})
        return await self._session.record_transaction(draft)


class InsightsFlow:
    """Fetches dashboard tips for the active ledger."""

    def __init__(
        self,
        session: LedgerSession,
        insights_agent: InsightsAgent,
        timeout_seconds: float = 20.0,
    ):
        self._session = session
        self._agent = insights_agent
        self._timeout = timeout_seconds
        self._logger = get_logger(__name__)

    async def refresh(self) -> list[str]:
        """
        Returns:
            [] when the ledger has no transactions or changed while
            waiting, the fallback tips on timeout, otherwise up to
            three tips
        """
        if not self._session.has_transactions():
            return []

        token = self._session.current_token()
        try:
            tips = await asyncio.wait_for(
                self._agent.generate_insights(self._session.insights_context()),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._logger.warning("insights_timeout", timeout=self._timeout)
            return list(FALLBACK_INSIGHTS)

        if not self._session.is_current(token):
            return []
        return tips


def create_backend(settings: Settings) -> KeyValueBackend:
    if settings.storage.backend == "memory":
        return InMemoryBackend()
    return JsonFileBackend(settings.storage.ledger_path)


def create_app_components(
    settings: Optional[Settings] = None,
) -> tuple[LedgerSession, CaptureFlow, InsightsFlow]:
    """
    Factory function to create all application components.

    Args:
        settings: Explicit configuration. Defaults to the environment.

    Returns:
        (session, capture_flow, insights_flow)

    Auth and the Sheets mirror are only wired in when configured; the
    ledger works fully without them.
    """
    settings = settings or get_settings()
    configure_logging(settings.app.debug_mode)
    logger = get_logger(__name__)

    store = LedgerStore(
        create_backend(settings),
        keys=StorageKeys(
            namespace=settings.storage.namespace,
            version=settings.storage.schema_version,
        ),
        default_account_name=settings.app.default_account_name,
        default_currency=settings.app.default_currency,
    )

    auth = SupabaseAuthClient(settings.supabase) if settings.supabase.is_configured else None

    mirror = None
    if settings.google_sheets.is_configured:
        mirror = GoogleSheetsMirror(GoogleSheetsClient(settings.google_sheets))
    else:
        logger.info("mirror_disabled", reason="google sheets not configured")

    session = LedgerSession(
        store,
        StatisticsEngine(store),
        settings.app,
        auth=auth,
        mirror=mirror,
    )

    timeout = settings.gemini.request_timeout_seconds
    capture_flow = CaptureFlow(
        session,
        IntentAgent(settings.gemini),
        settings.app,
        timeout_seconds=timeout,
    )
    insights_flow = InsightsFlow(
        session,
        InsightsAgent(settings.gemini),
        timeout_seconds=timeout,
    )

    logger.info(
        "app_components_created",
        environment=settings.app.app_environment,
        auth_enabled=auth is not None,
        mirror_enabled=mirror is not None,
    )
    return session, capture_flow, insights_flow
