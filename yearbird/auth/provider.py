"""Identity provider contract and its Google implementation.

The authorization manager only relies on the small contract below, which
mirrors a browser token-client SDK: a client is created with a result
callback, asked to begin consent tagged with a caller-supplied state, and
eventually calls back with either credentials or an error code.

``GoogleIdentityProvider`` fulfils the contract for a server: beginning
consent builds the authorization URL with ``google_auth_oauthlib`` and
opens it through a window host; Google redirects the browser to
``/auth/callback``, whose handler passes the query parameters to
``complete`` which exchanges the code and fires the client's callback.
"""

import asyncio
import logging
import os
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

import httpx
import requests
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from yearbird.auth.popup import WindowHost
from yearbird.auth.state_store import PENDING_FLOW_TTL_SECONDS

logger = logging.getLogger(__name__)

# Google returns previously granted scopes alongside new ones.
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events.readonly"
CALENDAR_LIST_SCOPE = "https://www.googleapis.com/auth/calendar.calendarlist.readonly"
DRIVE_APPDATA_SCOPE = "https://www.googleapis.com/auth/drive.appdata"

SIGN_IN_SCOPES = (CALENDAR_SCOPE, CALENDAR_LIST_SCOPE)
ALL_SCOPES = (*SIGN_IN_SCOPES, DRIVE_APPDATA_SCOPE)


@dataclass
class ConsentResult:
    """What the provider reports back for one consent attempt."""
    access_token: str = ""
    expires_in: float = 0
    scope: str = ""
    token_type: str = "Bearer"
    state: str | None = None
    error: str | None = None


ConsentCallback = Callable[[ConsentResult], None]
ConsentErrorCallback = Callable[[str], None]


class TokenClient(Protocol):
    def request_access_token(
        self,
        *,
        state: str,
        prompt: str | None = None,
        hint: str | None = None,
    ) -> None: ...


class IdentityProvider(Protocol):
    def is_ready(self) -> bool: ...

    def init_token_client(
        self,
        *,
        client_id: str,
        scopes: Sequence[str],
        callback: ConsentCallback,
        error_callback: ConsentErrorCallback | None = None,
    ) -> TokenClient: ...

    async def revoke(self, token: str) -> None: ...


class GoogleTokenClient:
    """Token client bound to one result callback."""

    def __init__(
        self,
        provider: "GoogleIdentityProvider",
        *,
        client_id: str,
        scopes: Sequence[str],
        callback: ConsentCallback,
        error_callback: ConsentErrorCallback | None,
    ) -> None:
        self._provider = provider
        self.client_id = client_id
        self.scopes = list(scopes)
        self.callback = callback
        self.error_callback = error_callback

    def request_access_token(
        self,
        *,
        state: str,
        prompt: str | None = None,
        hint: str | None = None,
    ) -> None:
        self._provider.begin_consent(self, state=state, prompt=prompt, hint=hint)

    def fail(self, error_type: str) -> None:
        if self.error_callback is not None:
            self.error_callback(error_type)
        else:
            self.callback(ConsentResult(error=error_type))


@dataclass
class _OutstandingConsent:
    client: GoogleTokenClient
    flow: Flow
    expires_at: float


class GoogleIdentityProvider:
    """Authorization-code consent against Google's OAuth endpoints."""

    def __init__(
        self,
        *,
        client_secret: str,
        redirect_uri: str,
        window_host: WindowHost,
        http_client: httpx.AsyncClient | None = None,
        ttl_seconds: float = PENDING_FLOW_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._window_host = window_host
        self._http_client = http_client
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._outstanding: OrderedDict[str, _OutstandingConsent] = OrderedDict()

    def is_ready(self) -> bool:
        return bool(self._client_secret and self._redirect_uri)

    def init_token_client(
        self,
        *,
        client_id: str,
        scopes: Sequence[str],
        callback: ConsentCallback,
        error_callback: ConsentErrorCallback | None = None,
    ) -> GoogleTokenClient:
        return GoogleTokenClient(
            self,
            client_id=client_id,
            scopes=scopes,
            callback=callback,
            error_callback=error_callback,
        )

    def begin_consent(
        self,
        client: GoogleTokenClient,
        *,
        state: str,
        prompt: str | None = None,
        hint: str | None = None,
    ) -> None:
        """Open the consent page for ``client`` tagged with ``state``."""
        flow = Flow.from_client_config(
            self._client_config(client.client_id),
            scopes=client.scopes,
            redirect_uri=self._redirect_uri,
        )
        options = {
            "access_type": "online",
            "include_granted_scopes": "true",
            "state": state,
        }
        if prompt:
            options["prompt"] = prompt
        if hint:
            options["login_hint"] = hint
        url, _ = flow.authorization_url(**options)

        now = self._clock()
        # A client has one consent in flight; a new request supersedes the old one.
        self._evict(lambda entry: entry.client is client or entry.expires_at <= now)
        self._outstanding[state] = _OutstandingConsent(
            client=client, flow=flow, expires_at=now + self._ttl_seconds
        )
        if self._window_host.open(url) is None:
            self._outstanding.pop(state, None)
            logger.warning("Consent page could not be opened")
            client.fail("popup_failed_to_open")

    @property
    def outstanding_count(self) -> int:
        return len(self._outstanding)

    async def complete(self, params: Mapping[str, str]) -> bool:
        """
        Finish a consent attempt from the redirect's query parameters.

        Returns False when no outstanding attempt matches the redirect.
        A redirect without a state is delivered to the most recent unexpired
        attempt and reported to its client without a state.
        """
        state = params.get("state") or None
        now = self._clock()
        self._evict(lambda entry: entry.expires_at <= now)
        if state is not None:
            pending = self._outstanding.pop(state, None)
        elif self._outstanding:
            _, pending = self._outstanding.popitem(last=True)
        else:
            pending = None

        if pending is None:
            logger.warning("Consent redirect does not match any outstanding request")
            return False

        error = params.get("error")
        if error:
            pending.client.callback(ConsentResult(state=state, error=error))
            return True

        code = params.get("code")
        if not code:
            pending.client.callback(ConsentResult(state=state, error="invalid_request"))
            return True

        try:
            token = await asyncio.to_thread(pending.flow.fetch_token, code=code)
        except (OAuth2Error, requests.RequestException, Warning) as e:
            logger.error(f"Token exchange failed: {e}")
            pending.client.callback(ConsentResult(state=state, error="token_exchange_failed"))
            return True

        scope = token.get("scope", "")
        if isinstance(scope, (list, tuple)):
            scope = " ".join(scope)
        pending.client.callback(
            ConsentResult(
                access_token=str(token.get("access_token", "")),
                expires_in=float(token.get("expires_in") or 0),
                scope=scope,
                token_type=str(token.get("token_type", "Bearer")),
                state=state,
            )
        )
        return True

    async def revoke(self, token: str) -> None:
        """Revoke ``token``; failures are logged, never raised."""
        client = self._http_client or httpx.AsyncClient(timeout=10.0)
        try:
            response = await client.post(
                GOOGLE_REVOKE_URL,
                data={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            if response.status_code >= 400:
                logger.warning(f"Token revoke returned {response.status_code}")
            else:
                logger.info("Token revoked")
        except httpx.HTTPError as e:
            logger.warning(f"Token revoke failed: {e}")
        finally:
            if client is not self._http_client:
                await client.aclose()

    def reset(self) -> None:
        self._outstanding.clear()

    def _evict(self, predicate: Callable[[_OutstandingConsent], bool]) -> None:
        stale = [state for state, entry in self._outstanding.items() if predicate(entry)]
        for state in stale:
            del self._outstanding[state]

    def _client_config(self, client_id: str) -> dict:
        return {
            "web": {
                "client_id": client_id,
                "client_secret": self._client_secret,
                "auth_uri": GOOGLE_AUTH_URL,
                "token_uri": GOOGLE_TOKEN_URL,
                "redirect_uris": [self._redirect_uri],
            }
        }
