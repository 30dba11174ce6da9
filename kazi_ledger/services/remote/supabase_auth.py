"""
Supabase Auth Client

Talks to the Supabase GoTrue REST endpoints with httpx:

- POST /auth/v1/token?grant_type=password   sign in
- POST /auth/v1/signup                      sign up
- GET  /auth/v1/user                        validate the current token
- POST /auth/v1/logout                      sign out

Only the session is kept in memory; nothing about the user is written
to the local ledger except the user id on each transaction.
"""

from typing import Any, Callable, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kazi_ledger.config import SupabaseSettings
from kazi_ledger.observability import get_logger
from kazi_ledger.services.remote.interface import (
    AuthEvent,
    AuthListener,
    AuthProviderInterface,
    AuthSession,
    AuthUser,
    ExternalServiceError,
)


SERVICE = "supabase_auth"


class SupabaseAuthClient(AuthProviderInterface):
    """
    Minimal async auth client.

    Pass a preconfigured httpx.AsyncClient to control transport
    (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        settings: SupabaseSettings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.url,
            timeout=settings.timeout_seconds,
        )
        self._session: Optional[AuthSession] = None
        self._listeners: list[AuthListener] = []
        self._logger = get_logger(__name__)

    @property
    def is_configured(self) -> bool:
        return self._settings.is_configured

    @property
    def current_session(self) -> Optional[AuthSession]:
        return self._session

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------------

    def _headers(self, access_token: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self._settings.anon_key,
            "Content-Type": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        path: str,
        payload: Optional[dict] = None,
        access_token: Optional[str] = None,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        return await self._client.request(
            method,
            path,
            json=payload,
            params=params,
            headers=self._headers(access_token),
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.is_configured:
            raise ExternalServiceError(
                SERVICE,
                "Authentication is currently unavailable. Please check system configuration.",
            )
        try:
            return await self._send(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ExternalServiceError(SERVICE, f"request failed: {e}")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            for key in ("error_description", "msg", "message", "error"):
                if body.get(key):
                    return str(body[key])
        return f"HTTP {response.status_code}"

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise ExternalServiceError(SERVICE, self._error_message(response))

    @staticmethod
    def _parse_session(body: Any) -> Optional[AuthSession]:
        if not isinstance(body, dict) or not body.get("access_token"):
            return None
        user = body.get("user") or {}
        return AuthSession(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            user=AuthUser(id=str(user.get("id", "")), email=user.get("email")),
        )

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def _emit(self, event: AuthEvent) -> None:
        self._logger.info("auth_state_changed", event=event.value)
        for listener in list(self._listeners):
            listener(event, self._session)

    def _set_session(self, session: Optional[AuthSession]) -> None:
        self._session = session
        self._emit(AuthEvent.SIGNED_IN if session else AuthEvent.SIGNED_OUT)

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password.

        Raises:
            ExternalServiceError: On bad credentials or transport failure
        """
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            payload={"email": email, "password": password},
        )
        self._raise_for_status(response)
        session = self._parse_session(response.json())
        if session is None:
            raise ExternalServiceError(SERVICE, "sign in returned no session")
        self._set_session(session)
        return session

    async def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        """
        Register a new user.

        Returns:
            The session when the project signs users in immediately,
            None when an email confirmation is required first
        """
        response = await self._request(
            "POST",
            "/auth/v1/signup",
            payload={"email": email, "password": password},
        )
        self._raise_for_status(response)
        session = self._parse_session(response.json())
        if session is not None:
            self._set_session(session)
        return session

    async def get_session(self) -> Optional[AuthSession]:
        if self._session is None:
            return None

        response = await self._request(
            "GET",
            "/auth/v1/user",
            access_token=self._session.access_token,
        )
        if response.status_code in (401, 403):
            self._logger.info("auth_session_expired")
            self._set_session(None)
            return None
        self._raise_for_status(response)

        user = response.json()
        self._session = self._session.model_copy(
            update={"user": AuthUser(id=str(user.get("id", "")), email=user.get("email"))}
        )
        return self._session

    async def sign_out(self) -> None:
        if self._session is None:
            return
        try:
            response = await self._request(
                "POST",
                "/auth/v1/logout",
                access_token=self._session.access_token,
            )
            self._raise_for_status(response)
        except ExternalServiceError as e:
            # The local session is dropped regardless
            self._logger.warning("auth_sign_out_failed", error=str(e))
        self._set_session(None)
