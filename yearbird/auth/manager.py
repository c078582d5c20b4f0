"""Authorization state machine.

The manager owns the session token and every pending consent flow. Two flow
families exist:

- **sign-in**: driven by a long-lived token client created in
  ``initialize``; ``sign_in`` starts a flow and the client callback validates
  and stores the result.
- **scope escalation**: ``request_additional_scope`` creates a throwaway
  client per call and awaits its callback through an ``asyncio.Future``.

Each flow registers its CSRF state in the ``StateCorrelationStore`` under its
family tag, so a callback can only settle a flow of the family whose client
received it. A state echoed by the provider must match the state this
family is waiting for; a callback without a state (some provider delivery
paths drop it) is accepted only while this family still has a pending flow.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from yearbird.auth.popup import PopupTracker
from yearbird.auth.provider import (
    ALL_SCOPES,
    DRIVE_APPDATA_SCOPE,
    SIGN_IN_SCOPES,
    ConsentResult,
    IdentityProvider,
    TokenClient,
)
from yearbird.auth.session import SessionStorage
from yearbird.auth.state_store import StateCorrelationStore, generate_state
from yearbird.models.session import (
    ACCESS_TOKEN_KEY,
    EXPIRES_AT_KEY,
    GRANTED_SCOPES_KEY,
    SESSION_SLOT_KEYS,
)

logger = logging.getLogger(__name__)

SignInStatus = Literal["opened", "focused", "unavailable"]

SIGN_IN_FLOW = "sign_in"
SCOPE_ESCALATION_FLOW = "scope_escalation"

STATE_MISMATCH = "state_mismatch"
MIN_ACCESS_TOKEN_LENGTH = 10


@dataclass
class TokenResponse:
    access_token: str
    expires_in: float
    scope: str
    token_type: str = "Bearer"


@dataclass
class StoredAuth:
    access_token: str
    expires_at: int  # epoch milliseconds
    granted_scopes: str | None = None


SuccessHandler = Callable[[TokenResponse], None]
ErrorHandler = Callable[[str], None]


class AuthorizationManager:
    """Sign-in, sign-out, scope escalation and session-token persistence."""

    def __init__(
        self,
        *,
        client_id: str,
        provider: IdentityProvider,
        storage: SessionStorage,
        popups: PopupTracker | None = None,
        flows: StateCorrelationStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client_id = client_id
        self._provider = provider
        self._storage = storage
        self._popups = popups if popups is not None else PopupTracker()
        self._flows = flows if flows is not None else StateCorrelationStore()
        self._clock = clock

        self._client: TokenClient | None = None
        self._on_success: SuccessHandler | None = None
        self._on_error: ErrorHandler | None = None
        self._sign_in_state: str | None = None
        self._scope_state: str | None = None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def has_client_id(self) -> bool:
        return bool(self._client_id)

    def initialize(self, on_success: SuccessHandler, on_error: ErrorHandler | None = None) -> bool:
        """
        Register result handlers and create the sign-in token client.

        Safe to call repeatedly: once the client exists, later calls only
        replace the handlers. Returns False while the client id is missing
        or the provider is not ready yet.
        """
        self._on_success = on_success
        self._on_error = on_error

        if self._client is not None:
            return True
        if not self._client_id:
            logger.warning("Missing GOOGLE_CLIENT_ID")
            return False
        if not self._provider.is_ready():
            return False

        self._client = self._provider.init_token_client(
            client_id=self._client_id,
            scopes=SIGN_IN_SCOPES,
            callback=self._handle_sign_in_result,
            error_callback=self._handle_sign_in_error,
        )
        return True

    # ------------------------------------------------------------------
    # Sign in / sign out
    # ------------------------------------------------------------------

    async def sign_in(self) -> SignInStatus:
        if self._client is None and self._on_success is not None:
            self.initialize(self._on_success, self._on_error)
        if self._client is None:
            logger.warning("Identity provider not ready")
            return "unavailable"

        self._drop_stale_popup()
        if self._popups.focus():
            return "focused"

        self._popups.mark_pending()
        state = generate_state()
        # One pending sign-in at a time; a newer attempt supersedes the old one.
        self._flows.discard(self._sign_in_state)
        self._flows.register(state, SIGN_IN_FLOW)
        self._sign_in_state = state

        self._client.request_access_token(state=state, hint="")
        return "opened"

    async def sign_out(self) -> None:
        token = self._storage.get_item(ACCESS_TOKEN_KEY)
        if token:
            await self._provider.revoke(token)
        self.clear_sign_in_popup()
        self.clear_stored_auth()

    def has_open_sign_in_popup(self) -> bool:
        self._drop_stale_popup()
        return self._popups.is_open()

    def clear_sign_in_popup(self) -> None:
        self._popups.clear()
        self._flows.discard(self._sign_in_state)
        self._sign_in_state = None

    def _drop_stale_popup(self) -> None:
        """Forget a consent window whose flow has expired or was settled."""
        if not any(
            state is not None and self._flows.is_pending(state)
            for state in (self._sign_in_state, self._scope_state)
        ):
            self._popups.clear()

    def _handle_sign_in_result(self, result: ConsentResult) -> None:
        expected = self._sign_in_state
        self._sign_in_state = None
        self._popups.clear()

        if result.error:
            logger.error(f"Auth error: {result.error}")
            self._flows.discard(expected)
            self._emit_error(result.error)
            return

        returned = result.state
        if returned and expected and returned != expected:
            logger.error("Auth state mismatch - possible CSRF attack")
            self._flows.discard(expected)
            self._emit_error(STATE_MISMATCH)
            return

        if self._flows.consume(returned or expected or "") != SIGN_IN_FLOW:
            logger.error("Auth callback does not belong to a pending sign-in")
            self._emit_error(STATE_MISMATCH)
            return

        try:
            self.store_auth(result.access_token, result.expires_in, result.scope)
        except ValueError as e:
            logger.error(f"Rejected token from provider: {e}")
            self._emit_error("invalid_token")
            return

        if self._on_success is not None:
            self._on_success(_token_response(result))

    def _handle_sign_in_error(self, error_type: str) -> None:
        logger.error(f"Auth error callback: {error_type}")
        self._flows.discard(self._sign_in_state)
        self._sign_in_state = None
        self._popups.clear()
        self._emit_error(error_type)

    def _emit_error(self, error: str) -> None:
        if self._on_error is not None:
            self._on_error(error)

    # ------------------------------------------------------------------
    # Scope escalation
    # ------------------------------------------------------------------

    async def request_additional_scope(self) -> bool:
        """
        Ask for the Drive app-data scope in a separate consent flow.

        Resolves True only when the callback echoes this call's state and
        the granted scopes include the Drive scope. The sign-in flow, if
        any, is left untouched.
        """
        if not self._client_id:
            logger.warning("Missing GOOGLE_CLIENT_ID")
            return False
        if not self._provider.is_ready():
            logger.warning("Identity provider not ready")
            return False

        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[bool] = loop.create_future()
        state = generate_state()
        self._flows.discard(self._scope_state)
        self._flows.register(state, SCOPE_ESCALATION_FLOW)
        self._scope_state = state

        def settle(granted: bool, error: str | None = None) -> None:
            if self._scope_state == state:
                self._scope_state = None
            self._popups.clear()
            if error is not None:
                self._emit_error(error)
            if not outcome.done():
                outcome.set_result(granted)

        def on_result(result: ConsentResult) -> None:
            if result.error:
                logger.error(f"Drive scope request failed: {result.error}")
                self._flows.discard(state)
                settle(False, result.error)
                return
            if result.state != state:
                logger.error("Drive scope request state mismatch")
                self._flows.discard(state)
                settle(False, STATE_MISMATCH)
                return
            if self._flows.consume(state) != SCOPE_ESCALATION_FLOW:
                logger.error("Drive scope request expired before its callback")
                settle(False, STATE_MISMATCH)
                return
            try:
                self.store_auth(result.access_token, result.expires_in, result.scope)
            except ValueError as e:
                logger.error(f"Token exchange failed during Drive scope request: {e}")
                settle(False, "invalid_token")
                return
            if self._on_success is not None:
                self._on_success(_token_response(result))
            settle(DRIVE_APPDATA_SCOPE in result.scope.split())

        def on_error(error_type: str) -> None:
            logger.error(f"Drive scope request error: {error_type}")
            self._flows.discard(state)
            settle(False, error_type)

        client = self._provider.init_token_client(
            client_id=self._client_id,
            scopes=ALL_SCOPES,
            callback=on_result,
            error_callback=on_error,
        )
        self._popups.mark_pending()
        client.request_access_token(state=state, prompt="consent")
        return await outcome

    # ------------------------------------------------------------------
    # Token storage
    # ------------------------------------------------------------------

    def store_auth(self, token: str, expires_in: float, scopes: str | None = None) -> int:
        """Persist a token and return its expiry in epoch milliseconds."""
        if not isinstance(token, str) or len(token) < MIN_ACCESS_TOKEN_LENGTH:
            raise ValueError("Invalid access token")
        if (
            isinstance(expires_in, bool)
            or not isinstance(expires_in, (int, float))
            or not math.isfinite(expires_in)
            or expires_in <= 0
        ):
            raise ValueError("Invalid token expiration")

        expires_at = int(self._clock() * 1000 + expires_in * 1000)
        self._storage.set_item(ACCESS_TOKEN_KEY, token)
        self._storage.set_item(EXPIRES_AT_KEY, str(expires_at))
        if scopes:
            self._storage.set_item(GRANTED_SCOPES_KEY, scopes)
        return expires_at

    def get_stored_auth(self) -> StoredAuth | None:
        """The current token, or None when absent or expired (expired is cleared)."""
        access_token = self._storage.get_item(ACCESS_TOKEN_KEY)
        expires_at_raw = self._storage.get_item(EXPIRES_AT_KEY)
        if not access_token or not expires_at_raw:
            return None

        try:
            expires_at = int(expires_at_raw)
        except ValueError:
            self.clear_stored_auth()
            return None
        if self._clock() * 1000 >= expires_at:
            self.clear_stored_auth()
            return None

        return StoredAuth(
            access_token=access_token,
            expires_at=expires_at,
            granted_scopes=self._storage.get_item(GRANTED_SCOPES_KEY),
        )

    def access_token(self) -> str | None:
        stored = self.get_stored_auth()
        return stored.access_token if stored else None

    def clear_stored_auth(self) -> None:
        self._storage.remove_items(*SESSION_SLOT_KEYS)

    def get_granted_scopes(self) -> str | None:
        return self._storage.get_item(GRANTED_SCOPES_KEY)

    def has_drive_scope(self) -> bool:
        scopes = self.get_granted_scopes()
        if not scopes:
            return False
        return DRIVE_APPDATA_SCOPE in scopes.split()

    def reset(self) -> None:
        """Drop every in-memory flow and handler. Used in tests."""
        self._client = None
        self._on_success = None
        self._on_error = None
        self._sign_in_state = None
        self._scope_state = None
        self._flows.clear()
        self._popups.clear()


def _token_response(result: ConsentResult) -> TokenResponse:
    return TokenResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        scope=result.scope,
        token_type=result.token_type,
    )
