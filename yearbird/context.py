"""Application object graph.

Every piece of process-wide mutable state (session storage, pending flows,
the consent popup, the feature stores) is owned by one ``AppContext``. The
FastAPI lifespan builds it once and stores it on ``app.state``; routes reach
it through the ``get_context`` dependency, which tests override with a
context built from fakes.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
from fastapi import Request

from yearbird.auth.manager import AuthorizationManager, TokenResponse
from yearbird.auth.popup import BrowserWindowHost, PopupTracker, WindowHost
from yearbird.auth.provider import GoogleIdentityProvider, IdentityProvider
from yearbird.auth.session import SessionStorage
from yearbird.auth.state_store import StateCorrelationStore
from yearbird.calendar.client import list_calendars
from yearbird.cloud.drive import RemoteConfigStore
from yearbird.cloud.sync import CloudSyncManager, ScheduleWrite, SyncStatus
from yearbird.core.config import Settings
from yearbird.core.scheduler import schedule_cloud_write
from yearbird.models.config import DisplaySettings
from yearbird.stores.calendars import CalendarVisibilityStore
from yearbird.stores.categories import CategoryStore, default_categories
from yearbird.stores.display import DisplaySettingsStore
from yearbird.stores.filters import FilterStore

logger = logging.getLogger(__name__)

CalendarLister = Callable[[str], Awaitable[list[dict]]]


@dataclass
class AppContext:
    settings: Settings
    storage: SessionStorage
    popups: PopupTracker
    flows: StateCorrelationStore
    provider: IdentityProvider
    auth: AuthorizationManager
    categories: CategoryStore
    filters: FilterStore
    calendars: CalendarVisibilityStore
    display: DisplaySettingsStore
    remote: RemoteConfigStore
    sync: CloudSyncManager
    calendar_lister: CalendarLister = list_calendars
    http_client: httpx.AsyncClient | None = None
    last_auth_error: str | None = None

    def on_auth_success(self, response: TokenResponse) -> None:
        self.last_auth_error = None
        logger.info(f"Signed in, token valid for {int(response.expires_in)}s")

    def on_auth_error(self, error: str) -> None:
        self.last_auth_error = error
        logger.warning(f"Sign-in failed: {error}")

    def initialize_auth(self) -> bool:
        return self.auth.initialize(self.on_auth_success, self.on_auth_error)

    def reset(self) -> None:
        """Return every in-memory component to its startup state."""
        self.auth.reset()
        reset_provider = getattr(self.provider, "reset", None)
        if callable(reset_provider):
            reset_provider()
        self.categories.set_all(default_categories())
        self.filters.set_all([])
        self.calendars.set_all([])
        self.display.set_all(DisplaySettings())
        self.sync.status = SyncStatus()
        self.last_auth_error = None
        self.initialize_auth()

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()


def _default_schedule_write(func, delay_seconds: float) -> None:
    schedule_cloud_write(func, delay_seconds=delay_seconds)


def build_context(
    settings: Settings,
    *,
    engine,
    provider: IdentityProvider | None = None,
    window_host: WindowHost | None = None,
    http_client: httpx.AsyncClient | None = None,
    schedule_write: ScheduleWrite | None = None,
    calendar_lister: CalendarLister | None = None,
) -> AppContext:
    """Compose the application from settings and optional replacements."""
    popups = PopupTracker()
    if provider is None:
        window_host = window_host or BrowserWindowHost()
        popups.attach(window_host)
        provider = GoogleIdentityProvider(
            client_secret=settings.google_client_secret,
            redirect_uri=settings.google_redirect_uri,
            window_host=window_host,
            http_client=http_client,
        )
    elif window_host is not None:
        popups.attach(window_host)

    storage = SessionStorage(engine)
    flows = StateCorrelationStore()
    auth = AuthorizationManager(
        client_id=settings.google_client_id,
        provider=provider,
        storage=storage,
        popups=popups,
        flows=flows,
    )

    remote = RemoteConfigStore(
        auth.access_token,
        http_client=http_client,
        file_name=settings.cloud_config_file_name,
        timeout_seconds=settings.drive_request_timeout_seconds,
        is_online=lambda: not settings.offline,
    )
    categories = CategoryStore()
    filters = FilterStore()
    calendars = CalendarVisibilityStore()
    display = DisplaySettingsStore()
    sync = CloudSyncManager(
        remote,
        categories=categories,
        filters=filters,
        calendars=calendars,
        display=display,
        is_enabled=lambda: auth.has_drive_scope() and auth.access_token() is not None,
        schedule_write=schedule_write or _default_schedule_write,
        debounce_seconds=settings.cloud_sync_debounce_seconds,
        device_id=settings.device_id,
    )

    context = AppContext(
        settings=settings,
        storage=storage,
        popups=popups,
        flows=flows,
        provider=provider,
        auth=auth,
        categories=categories,
        filters=filters,
        calendars=calendars,
        display=display,
        remote=remote,
        sync=sync,
        calendar_lister=calendar_lister or list_calendars,
        http_client=http_client,
    )
    context.initialize_auth()
    return context


def get_context(request: Request) -> AppContext:
    """FastAPI dependency returning the application's context."""
    return request.app.state.context
