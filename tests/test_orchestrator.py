"""
Integration tests for the orchestrator flows.

Uses in-memory storage plus fake agents, auth and mirror. The fakes
record what they were asked so tests can assert that nothing was
written or sent behind the user's back.
"""

import asyncio
import logging

import pytest

from kazi_ledger.agents import FALLBACK_INSIGHTS
from kazi_ledger.config import (
    AppSettings,
    GoogleSheetsSettings,
    Settings,
    StorageSettings,
    SupabaseSettings,
)
from kazi_ledger.models import (
    AIResult,
    CaptureStatus,
    Confirmation,
    HistoryView,
    Intent,
    Profile,
    Timeframe,
    TransactionDraft,
    TransactionType,
)
from kazi_ledger.orchestrator import (
    ASSISTANT_FAILURE_MESSAGE,
    DEFAULT_QUERY_ANSWER,
    LAST_ACCOUNT_WARNING,
    RECEIPT_FAILURE_MESSAGE,
    UNREADABLE_RECEIPT_MESSAGE,
    UNRECOGNIZED_TEXT_MESSAGE,
    CaptureFlow,
    InsightsFlow,
    LedgerSession,
    create_app_components,
    format_amount,
)
from kazi_ledger.services.remote import (
    AuthEvent,
    AuthProviderInterface,
    AuthSession,
    AuthUser,
    ExternalServiceError,
    LedgerMirrorInterface,
)
from kazi_ledger.services.storage import (
    DEFAULT_ACCOUNT_ID,
    InMemoryBackend,
    LedgerStore,
    ValidationError,
)
from kazi_ledger.stats import StatisticsEngine


# =============================================================================
# FAKES
# =============================================================================

class FakeIntentAgent:
    """Returns a canned AIResult and records every call."""

    def __init__(self, result=None, error=None, delay=0.0, during_call=None):
        self.result = result or AIResult.empty()
        self.error = error
        self.delay = delay
        self.during_call = during_call
        self.calls = []

    async def _respond(self):
        if self.during_call is not None:
            self.during_call()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result

    async def parse_text(self, text, context):
        self.calls.append(("text", text, context))
        return await self._respond()

    async def parse_image(self, image_bytes, mime_type="image/jpeg"):
        self.calls.append(("image", image_bytes, mime_type))
        return await self._respond()


class FakeInsightsAgent:
    def __init__(self, tips=None, during_call=None, delay=0.0):
        self.tips = tips or ["Sales up", "Cut rent", "Chase John"]
        self.during_call = during_call
        self.delay = delay
        self.contexts = []

    async def generate_insights(self, context):
        self.contexts.append(context)
        if self.during_call is not None:
            self.during_call()
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.tips)


class FakeAuth(AuthProviderInterface):
    def __init__(self, session=None):
        self.session = session
        self.listeners = []

    async def get_session(self):
        return self.session

    def on_auth_state_change(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def emit(self, event, session):
        self.session = session
        for listener in list(self.listeners):
            listener(event, session)

    async def sign_out(self):
        self.emit(AuthEvent.SIGNED_OUT, None)


class FakeMirror(LedgerMirrorInterface):
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def _record(self, *call):
        self.calls.append(call)
        if self.fail:
            raise ExternalServiceError("google_sheets", "offline")

    async def mirror_account(self, account):
        await self._record("account", account.id)

    async def mirror_transaction(self, transaction):
        await self._record("transaction", transaction.id)

    async def purge_transactions(self, account_id):
        await self._record("purge_transactions", account_id)
        return 0

    async def purge_account(self, account_id):
        await self._record("purge_account", account_id)


def make_session_for(user_id, email="owner@example.com"):
    return AuthSession(access_token="token", user=AuthUser(id=user_id, email=email))


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def app_settings():
    return AppSettings(demo_user_id="demo-user", context_max_chars=600)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend):
    return LedgerStore(backend)


@pytest.fixture
def mirror():
    return FakeMirror()


@pytest.fixture
def session(store, app_settings, mirror):
    return LedgerSession(store, StatisticsEngine(store), app_settings, mirror=mirror)


def record_result(amount=5000, tx_type="INCOME"):
    return AIResult(
        intent=Intent.RECORD,
        transaction=TransactionDraft(type=tx_type, amount=amount, description="Sold sodas"),
    )


# =============================================================================
# SESSION
# =============================================================================

class TestLedgerSession:
    """Tests for account lifecycle and profile persistence."""

    @pytest.mark.asyncio
    async def test_start_uses_default_account(self, session):
        """Test that a fresh store starts on the seeded account."""
        active = await session.start()
        assert active.id == DEFAULT_ACCOUNT_ID
        assert session.user_id == "demo-user"

    @pytest.mark.asyncio
    async def test_start_repairs_dangling_profile(self, store, session):
        """Test that a profile pointing nowhere is repointed and saved."""
        store.update_profile(
            Profile(business_name="Gone", currency="UGX", active_account_id="deleted")
        )
        active = await session.start()

        assert active.id == DEFAULT_ACCOUNT_ID
        assert store.get_profile().active_account_id == DEFAULT_ACCOUNT_ID

    @pytest.mark.asyncio
    async def test_switch_persists_profile(self, backend, store, session):
        """Test that a fresh profile load returns the switched-to id."""
        await session.start()
        other = store.create_account("Kiosk", "KES")

        session.switch_account(other)

        profile = LedgerStore(backend).get_profile()
        assert profile.active_account_id == other.id
        assert profile.business_name == "Kiosk"
        assert profile.currency == "KES"

    @pytest.mark.asyncio
    async def test_create_and_switch(self, session, mirror):
        """Test that a new account becomes active and is mirrored."""
        await session.start()
        account = await session.create_account_and_switch("Salon", "ugx")

        assert session.active_account.id == account.id
        assert len(session.accounts) == 2
        assert mirror.calls == [("account", account.id)]

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, session):
        """Test that a blank name creates nothing and keeps the active account."""
        await session.start()
        with pytest.raises(ValidationError):
            await session.create_account_and_switch("   ", "UGX")

        assert len(session.accounts) == 1
        assert session.active_account.id == DEFAULT_ACCOUNT_ID

    @pytest.mark.asyncio
    async def test_update_active_account_refreshes_profile(self, store, session):
        """Test that renaming updates the profile."""
        await session.start()
        session.update_active_account(name="Duka Yetu")

        assert session.active_account.name == "Duka Yetu"
        assert store.get_profile().business_name == "Duka Yetu"

    @pytest.mark.asyncio
    async def test_delete_last_account_warns(self, store, session):
        """Test that the only account cannot be deleted, even when confirmed."""
        await session.start()
        result = await session.delete_active_account(Confirmation.CONFIRMED)

        assert result.performed is False
        assert result.message == LAST_ACCOUNT_WARNING
        assert len(store.list_accounts()) == 1

    @pytest.mark.asyncio
    async def test_delete_cancelled(self, store, session):
        """Test that cancelling leaves everything in place."""
        await session.start()
        other = await session.create_account_and_switch("Kiosk", "UGX")

        result = await session.delete_active_account(Confirmation.CANCELLED)

        assert result.performed is False
        assert session.active_account.id == other.id
        assert len(store.list_accounts()) == 2

    @pytest.mark.asyncio
    async def test_delete_confirmed_switches(self, backend, store, session, mirror):
        """Test that deletion switches to the store's next account."""
        await session.start()
        other = await session.create_account_and_switch("Kiosk", "UGX")
        await session.record_transaction(TransactionDraft(type="INCOME", amount=10))
        generation = session.generation

        result = await session.delete_active_account(Confirmation.CONFIRMED)

        assert result.performed is True
        assert result.account.id == DEFAULT_ACCOUNT_ID
        assert session.active_account.id == DEFAULT_ACCOUNT_ID
        assert session.generation > generation
        assert store.list_transactions(other.id) == []
        assert LedgerStore(backend).get_profile().active_account_id == DEFAULT_ACCOUNT_ID
        assert mirror.calls[-1] == ("purge_account", other.id)

    @pytest.mark.asyncio
    async def test_clear_history_requires_confirmation(self, store, session):
        """Test that only CONFIRMED clears the log."""
        await session.start()
        await session.record_transaction(TransactionDraft(type="INCOME", amount=10))

        kept = await session.clear_active_history(Confirmation.CANCELLED)
        assert kept.performed is False
        assert len(store.list_transactions(DEFAULT_ACCOUNT_ID)) == 1

        cleared = await session.clear_active_history(Confirmation.CONFIRMED)
        assert cleared.performed is True
        assert store.list_transactions(DEFAULT_ACCOUNT_ID) == []

    @pytest.mark.asyncio
    async def test_mirror_failure_keeps_local_write(self, store, app_settings):
        """Test that a failing mirror never rolls back the store."""
        session = LedgerSession(
            store, StatisticsEngine(store), app_settings, mirror=FakeMirror(fail=True)
        )
        await session.start()

        tx = await session.record_transaction(TransactionDraft(type="EXPENSE", amount=20))

        assert [t.id for t in store.list_transactions(DEFAULT_ACCOUNT_ID)] == [tx.id]

    @pytest.mark.asyncio
    async def test_timeframe_and_stats(self, session):
        """Test that stats and history follow the selected timeframe."""
        await session.start()
        await session.record_transaction(TransactionDraft(type="INCOME", amount=5000))
        await session.record_transaction(TransactionDraft(type="DEBT", amount=1000))

        assert session.set_timeframe("monthly") == Timeframe.MONTHLY
        stats = session.stats()
        assert stats.inflow == 5000
        assert stats.debt == 1000
        assert len(session.history(HistoryView.DEBTS)) == 1

    def test_first_run_flag(self, store, session):
        """Test that the welcome screen flag is kept in the store."""
        assert session.has_started() is False

        session.mark_started()

        assert session.has_started() is True
        assert store.has_started() is True


class TestContext:
    """Tests for the strings sent to the model."""

    @pytest.mark.asyncio
    async def test_build_context_contents(self, session):
        """Test that the context names the account, figures and recent items."""
        await session.start()
        await session.record_transaction(
            TransactionDraft(type="INCOME", amount=5000, description="Sold sodas")
        )

        context = session.build_context()

        assert "Business: My Business." in context
        assert "Currency: UGX." in context
        assert "Timeframe: today." in context
        assert "Inflow 5000" in context
        assert "Sold sodas" in context

    @pytest.mark.asyncio
    async def test_build_context_is_bounded(self, store):
        """Test that the context never exceeds the configured length."""
        settings = AppSettings(context_max_chars=100, context_recent_count=20)
        session = LedgerSession(store, StatisticsEngine(store), settings)
        await session.start()
        for _ in range(10):
            await session.record_transaction(
                TransactionDraft(type="INCOME", amount=1, description="x" * 50)
            )

        assert len(session.build_context()) <= 100
        assert len(session.insights_context()) <= 100

    def test_format_amount(self):
        """Test that whole amounts render without decimals."""
        assert format_amount(5000.0) == "5000"
        assert format_amount(12.5) == "12.5"
        assert format_amount(0.0) == "0"


class TestAuth:
    """Tests for session changes and the user id."""

    @pytest.mark.asyncio
    async def test_user_id_from_auth_session(self, store, app_settings):
        """Test that transactions carry the signed-in user's id."""
        auth = FakeAuth(make_session_for("user-42"))
        session = LedgerSession(store, StatisticsEngine(store), app_settings, auth=auth)
        await session.start()

        tx = await session.record_transaction(TransactionDraft(type="INCOME", amount=1))

        assert session.user_id == "user-42"
        assert tx.user_id == "user-42"

    @pytest.mark.asyncio
    async def test_auth_change_invalidates_tokens(self, store, app_settings):
        """Test that signing in or out bumps the generation."""
        auth = FakeAuth()
        session = LedgerSession(store, StatisticsEngine(store), app_settings, auth=auth)
        await session.start()
        token = session.current_token()

        auth.emit(AuthEvent.SIGNED_IN, make_session_for("user-7"))

        assert session.user_id == "user-7"
        assert not session.is_current(token)

    @pytest.mark.asyncio
    async def test_sign_out_falls_back_to_demo_user(self, store, app_settings):
        """Test that signing out returns to the demo user."""
        auth = FakeAuth(make_session_for("user-42"))
        session = LedgerSession(store, StatisticsEngine(store), app_settings, auth=auth)
        await session.start()

        await session.sign_out()

        assert session.auth_session is None
        assert session.user_id == "demo-user"

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, store, app_settings):
        auth = FakeAuth()
        session = LedgerSession(store, StatisticsEngine(store), app_settings, auth=auth)
        await session.start()
        session.close()
        assert auth.listeners == []


# =============================================================================
# CAPTURE
# =============================================================================

class TestCaptureFlow:
    """Tests for text and receipt capture."""

    @pytest.fixture
    def make_flow(self, session, app_settings):
        def factory(agent, timeout_seconds=5.0):
            return CaptureFlow(session, agent, app_settings, timeout_seconds=timeout_seconds)
        return factory

    @pytest.mark.asyncio
    async def test_record_becomes_draft_until_confirmed(self, session, store, make_flow):
        """Test that nothing is written before confirmation."""
        await session.start()
        flow = make_flow(FakeIntentAgent(record_result()))

        outcome = await flow.submit_text("Sold 3 sodas for 5000")

        assert outcome.status == CaptureStatus.DRAFT
        assert outcome.draft.amount == 5000
        assert store.list_transactions(DEFAULT_ACCOUNT_ID) == []

    @pytest.mark.asyncio
    async def test_confirm_stamps_date_and_saves(self, session, store, make_flow, mirror):
        """Test that a confirmed draft is stored with a date and user id."""
        await session.start()
        flow = make_flow(FakeIntentAgent(record_result()))
        outcome = await flow.submit_text("Sold 3 sodas for 5000")

        tx = await flow.resolve(outcome, Confirmation.CONFIRMED)

        assert tx is not None
        assert tx.date is not None
        assert tx.user_id == "demo-user"
        assert tx.type == TransactionType.INCOME
        assert [t.id for t in store.list_transactions(DEFAULT_ACCOUNT_ID)] == [tx.id]
        assert ("transaction", tx.id) in mirror.calls

    @pytest.mark.asyncio
    async def test_cancel_leaves_no_trace(self, session, store, make_flow):
        """Test that a discarded draft writes nothing."""
        await session.start()
        flow = make_flow(FakeIntentAgent(record_result()))
        outcome = await flow.submit_text("Sold 3 sodas for 5000")

        assert await flow.resolve(outcome, Confirmation.CANCELLED) is None
        assert store.list_transactions(DEFAULT_ACCOUNT_ID) == []

    @pytest.mark.asyncio
    async def test_query_never_writes(self, session, store, make_flow):
        """Test that a QUERY with a transaction attached is informational only."""
        await session.start()
        result = AIResult(
            intent=Intent.QUERY,
            transaction=TransactionDraft(type="INCOME", amount=99),
            query_answer="You made 5000 today.",
        )
        flow = make_flow(FakeIntentAgent(result))

        outcome = await flow.submit_text("How much did I make?")

        assert outcome.status == CaptureStatus.ANSWER
        assert outcome.message == "You made 5000 today."
        assert await flow.resolve(outcome, Confirmation.CONFIRMED) is None
        assert store.list_transactions(DEFAULT_ACCOUNT_ID) == []

    @pytest.mark.asyncio
    async def test_query_without_answer(self, session, make_flow):
        """Test the default sentence for a question with no answer."""
        await session.start()
        flow = make_flow(FakeIntentAgent(AIResult(intent=Intent.QUERY)))
        outcome = await flow.submit_text("What?")
        assert outcome.message == DEFAULT_QUERY_ANSWER

    @pytest.mark.asyncio
    async def test_unknown_is_unrecognized(self, session, store, make_flow):
        """Test that UNKNOWN and RECORD-without-transaction are unrecognized."""
        await session.start()
        for result in (AIResult.empty(), AIResult(intent=Intent.RECORD)):
            outcome = await make_flow(FakeIntentAgent(result)).submit_text("blah")
            assert outcome.status == CaptureStatus.UNRECOGNIZED
            assert outcome.message == UNRECOGNIZED_TEXT_MESSAGE
        assert store.list_transactions(DEFAULT_ACCOUNT_ID) == []

    @pytest.mark.asyncio
    async def test_blank_text_skips_model(self, session, make_flow):
        """Test that blank input never reaches the model."""
        await session.start()
        agent = FakeIntentAgent(record_result())
        outcome = await make_flow(agent).submit_text("   ")

        assert outcome.status == CaptureStatus.EMPTY
        assert agent.calls == []

    @pytest.mark.asyncio
    async def test_context_is_passed_to_model(self, session, make_flow):
        """Test that the parse receives the ledger summary."""
        await session.start()
        agent = FakeIntentAgent(AIResult(intent=Intent.QUERY))
        await make_flow(agent).submit_text("  how much?  ")

        _, text, context = agent.calls[0]
        assert text == "how much?"
        assert context.startswith("Business: My Business.")

    @pytest.mark.asyncio
    async def test_external_error_fails_gracefully(self, session, store, make_flow):
        """Test that a model failure is reported and changes nothing."""
        await session.start()
        agent = FakeIntentAgent(error=ExternalServiceError("gemini", "quota"))

        outcome = await make_flow(agent).submit_text("Sold item for 5000")

        assert outcome.status == CaptureStatus.FAILED
        assert outcome.message == ASSISTANT_FAILURE_MESSAGE
        assert store.list_transactions(DEFAULT_ACCOUNT_ID) == []

    @pytest.mark.asyncio
    async def test_timeout_fails(self, session, make_flow):
        """Test that a slow model is treated as a failure."""
        await session.start()
        agent = FakeIntentAgent(record_result(), delay=1.0)

        outcome = await make_flow(agent, timeout_seconds=0.01).submit_text("Sold item")

        assert outcome.status == CaptureStatus.FAILED

    @pytest.mark.asyncio
    async def test_account_switch_during_parse_is_stale(self, session, store, make_flow):
        """Test that a response for a previous account is discarded."""
        await session.start()
        other = store.create_account("Kiosk", "UGX")
        agent = FakeIntentAgent(record_result(), during_call=lambda: session.switch_account(other))

        outcome = await make_flow(agent).submit_text("Sold item for 5000")

        assert outcome.status == CaptureStatus.STALE
        assert outcome.draft is None

    @pytest.mark.asyncio
    async def test_draft_rejected_after_switch(self, session, store, make_flow):
        """Test that confirming a draft from another context writes nothing."""
        await session.start()
        other = store.create_account("Kiosk", "UGX")
        flow = make_flow(FakeIntentAgent(record_result()))
        outcome = await flow.submit_text("Sold item for 5000")

        session.switch_account(other)

        assert await flow.resolve(outcome, Confirmation.CONFIRMED) is None
        assert store.list_transactions(DEFAULT_ACCOUNT_ID) == []
        assert store.list_transactions(other.id) == []

    @pytest.mark.asyncio
    async def test_image_draft(self, session, make_flow):
        """Test that a readable receipt becomes a draft."""
        await session.start()
        agent = FakeIntentAgent(record_result(12500, "EXPENSE"))

        outcome = await make_flow(agent).submit_image(b"jpeg-bytes", "image/JPEG")

        assert outcome.status == CaptureStatus.DRAFT
        assert agent.calls == [("image", b"jpeg-bytes", "image/jpeg")]

    @pytest.mark.asyncio
    async def test_unreadable_receipt(self, session, make_flow):
        """Test the message for a receipt the model could not read."""
        await session.start()
        outcome = await make_flow(FakeIntentAgent()).submit_image(b"jpeg-bytes")
        assert outcome.status == CaptureStatus.UNRECOGNIZED
        assert outcome.message == UNREADABLE_RECEIPT_MESSAGE

    @pytest.mark.asyncio
    async def test_image_error(self, session, make_flow):
        """Test the message when receipt analysis fails."""
        await session.start()
        agent = FakeIntentAgent(error=ExternalServiceError("gemini", "down"))
        outcome = await make_flow(agent).submit_image(b"jpeg-bytes")
        assert outcome.status == CaptureStatus.FAILED
        assert outcome.message == RECEIPT_FAILURE_MESSAGE

    @pytest.mark.asyncio
    async def test_image_rejected_before_model(self, session, app_settings, make_flow):
        """Test that bad types and oversized files never reach the model."""
        await session.start()
        agent = FakeIntentAgent(record_result())
        flow = make_flow(agent)

        wrong_type = await flow.submit_image(b"%PDF", "application/pdf")
        too_big = await flow.submit_image(b"x" * (app_settings.max_upload_size_bytes + 1))
        empty = await flow.submit_image(b"")

        assert wrong_type.status == CaptureStatus.FAILED
        assert too_big.status == CaptureStatus.FAILED
        assert empty.status == CaptureStatus.EMPTY
        assert agent.calls == []


# =============================================================================
# INSIGHTS
# =============================================================================

class TestInsightsFlow:
    """Tests for dashboard tips."""

    @pytest.mark.asyncio
    async def test_no_transactions_no_tips(self, session):
        """Test that an empty ledger does not call the model."""
        await session.start()
        agent = FakeInsightsAgent()

        assert await InsightsFlow(session, agent).refresh() == []
        assert agent.contexts == []

    @pytest.mark.asyncio
    async def test_tips_for_active_ledger(self, session):
        """Test that tips come back for a ledger with activity."""
        await session.start()
        await session.record_transaction(
            TransactionDraft(type="INCOME", amount=5000, description="Sold sodas")
        )
        agent = FakeInsightsAgent()

        tips = await InsightsFlow(session, agent).refresh()

        assert tips == ["Sales up", "Cut rent", "Chase John"]
        assert "INCOME 5000 Sold sodas" in agent.contexts[0]

    @pytest.mark.asyncio
    async def test_stale_tips_dropped(self, session, store):
        """Test that tips for a ledger the user left are discarded."""
        await session.start()
        await session.record_transaction(TransactionDraft(type="INCOME", amount=1))
        other = store.create_account("Kiosk", "UGX")
        agent = FakeInsightsAgent(during_call=lambda: session.switch_account(other))

        assert await InsightsFlow(session, agent).refresh() == []

    @pytest.mark.asyncio
    async def test_timeout_uses_fallback_tips(self, session):
        """Test that a slow model still leaves the dashboard with tips."""
        await session.start()
        await session.record_transaction(TransactionDraft(type="INCOME", amount=1))
        agent = FakeInsightsAgent(delay=1.0)

        tips = await InsightsFlow(session, agent, timeout_seconds=0.05).refresh()

        assert tips == list(FALLBACK_INSIGHTS)
        assert tips


# =============================================================================
# WIRING
# =============================================================================

class TestCreateAppComponents:
    """Tests for the factory."""

    @pytest.mark.asyncio
    async def test_memory_wiring_without_remote_services(self):
        """Test that the app runs with nothing remote configured."""
        settings = Settings(
            storage=StorageSettings(backend="memory"),
            supabase=SupabaseSettings(url="", anon_key=""),
            google_sheets=GoogleSheetsSettings(credentials_path="", spreadsheet_id=""),
            app=AppSettings(default_account_name="Duka", default_currency="KES"),
        )

        session, capture_flow, insights_flow = create_app_components(settings)
        active = await session.start()

        assert active.name == "Duka"
        assert active.currency == "KES"
        assert isinstance(capture_flow, CaptureFlow)
        assert isinstance(insights_flow, InsightsFlow)

    @pytest.mark.asyncio
    async def test_file_wiring(self, tmp_path):
        """Test that the file backend persists between component sets."""
        settings = Settings(
            storage=StorageSettings(backend="file", data_dir=tmp_path),
            supabase=SupabaseSettings(url="", anon_key=""),
            google_sheets=GoogleSheetsSettings(credentials_path="", spreadsheet_id=""),
        )

        session, _, _ = create_app_components(settings)
        await session.start()
        account = await session.create_account_and_switch("Kiosk", "UGX")

        reopened, _, _ = create_app_components(settings)
        assert (await reopened.start()).id == account.id

    def test_environment_is_logged(self, caplog):
        """Test that the configured environment shows up in the startup log."""
        caplog.set_level(logging.INFO)
        settings = Settings(
            storage=StorageSettings(backend="memory"),
            supabase=SupabaseSettings(url="", anon_key=""),
            google_sheets=GoogleSheetsSettings(credentials_path="", spreadsheet_id=""),
            app=AppSettings(app_environment="staging"),
        )

        create_app_components(settings)

        created = [r.getMessage() for r in caplog.records if "app_components_created" in r.getMessage()]
        assert len(created) == 1
        assert "staging" in created[0]

    @pytest.mark.asyncio
    async def test_first_run_flag_survives_restart(self, tmp_path):
        """Test that dismissing the welcome screen is remembered."""
        settings = Settings(
            storage=StorageSettings(backend="file", data_dir=tmp_path),
            supabase=SupabaseSettings(url="", anon_key=""),
            google_sheets=GoogleSheetsSettings(credentials_path="", spreadsheet_id=""),
        )

        session, _, _ = create_app_components(settings)
        assert session.has_started() is False
        session.mark_started()

        reopened, _, _ = create_app_components(settings)
        assert reopened.has_started() is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
