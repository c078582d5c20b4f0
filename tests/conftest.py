"""Shared test fixtures."""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool

from yearbird.auth.manager import AuthorizationManager
from yearbird.auth.popup import PopupAccessError, PopupTracker
from yearbird.auth.provider import ConsentResult
from yearbird.auth.session import SessionStorage
from yearbird.auth.state_store import StateCorrelationStore
from yearbird.context import build_context, get_context
from yearbird.core.config import Settings
from yearbird.main import app

CLIENT_ID = "client-123.apps.googleusercontent.com"
VALID_TOKEN = "ya29.valid-access-token"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.appdata"
CALENDAR_SCOPES = (
    "https://www.googleapis.com/auth/calendar.events.readonly "
    "https://www.googleapis.com/auth/calendar.calendarlist.readonly"
)


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePopup:
    def __init__(self, url: str):
        self.url = url
        self.closed_flag = False
        self.blocked = False
        self.focus_count = 0

    @property
    def closed(self) -> bool:
        if self.blocked:
            raise PopupAccessError("cross-origin")
        return self.closed_flag

    def focus(self) -> None:
        if self.blocked:
            raise PopupAccessError("cross-origin")
        self.focus_count += 1

    def close(self) -> None:
        self.closed_flag = True


class FakeWindowHost:
    def __init__(self):
        self.opened: list[FakePopup] = []
        self.refuse = False

    def open(self, url: str):
        if self.refuse:
            return None
        popup = FakePopup(url)
        self.opened.append(popup)
        return popup


class FakeTokenClient:
    def __init__(self, provider, *, scopes, callback, error_callback):
        self.provider = provider
        self.scopes = list(scopes)
        self.callback = callback
        self.error_callback = error_callback
        self.requests: list[dict] = []

    def request_access_token(self, *, state, prompt=None, hint=None):
        self.requests.append({"state": state, "prompt": prompt, "hint": hint})
        self.provider.window_host.open(
            f"https://accounts.google.com/o/oauth2/v2/auth?state={state}"
        )
        if self.provider.responder is not None:
            self.provider.responder(self, state)

    @property
    def last_state(self) -> str:
        return self.requests[-1]["state"]

    def respond(self, **fields):
        self.callback(ConsentResult(**fields))

    def fail(self, error_type: str):
        self.error_callback(error_type)


class FakeProvider:
    """Identity provider double; ``responder`` answers consent synchronously."""

    def __init__(self, window_host: FakeWindowHost):
        self.window_host = window_host
        self.ready = True
        self.clients: list[FakeTokenClient] = []
        self.revoked: list[str] = []
        self.responder = None

    def is_ready(self) -> bool:
        return self.ready

    def init_token_client(self, *, client_id, scopes, callback, error_callback=None):
        client = FakeTokenClient(
            self, scopes=scopes, callback=callback, error_callback=error_callback
        )
        self.clients.append(client)
        return client

    async def revoke(self, token: str) -> None:
        self.revoked.append(token)


class DriveBackend:
    """In-memory Drive ``appDataFolder`` served through ``httpx.MockTransport``."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.failures: list[httpx.Response | Exception] = []
        self._next_id = 1

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return failure

        path = request.url.path
        if request.method == "GET" and path == "/drive/v3/files":
            files = [{"id": file_id, "name": "yearbird-config.json"} for file_id in self.files]
            return httpx.Response(200, json={"files": files[:1]})
        if request.method == "GET" and path.startswith("/drive/v3/files/"):
            file_id = path.rsplit("/", 1)[-1]
            if file_id not in self.files:
                return httpx.Response(404, json={"error": {"message": "File not found"}})
            return httpx.Response(200, content=self.files[file_id])
        if request.method == "POST" and path == "/upload/drive/v3/files":
            file_id = f"file-{self._next_id}"
            self._next_id += 1
            self.files[file_id] = _multipart_payload(request)
            return httpx.Response(200, json={"id": file_id, "name": "yearbird-config.json"})
        if request.method == "PATCH" and path.startswith("/upload/drive/v3/files/"):
            file_id = path.rsplit("/", 1)[-1]
            self.files[file_id] = request.content
            return httpx.Response(200, json={"id": file_id, "name": "yearbird-config.json"})
        if request.method == "DELETE" and path.startswith("/drive/v3/files/"):
            self.files.pop(path.rsplit("/", 1)[-1], None)
            return httpx.Response(204)
        return httpx.Response(400, json={"error": {"message": "unexpected request"}})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _multipart_payload(request: httpx.Request) -> bytes:
    """Second part of a multipart/related upload body."""
    boundary = request.headers["content-type"].split("boundary=", 1)[1]
    parts = request.content.split(f"--{boundary}".encode())
    return parts[2].split(b"\r\n\r\n", 1)[1].strip()


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="storage")
def storage_fixture(engine) -> SessionStorage:
    return SessionStorage(engine)


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="window_host")
def window_host_fixture() -> FakeWindowHost:
    return FakeWindowHost()


@pytest.fixture(name="provider")
def provider_fixture(window_host: FakeWindowHost) -> FakeProvider:
    return FakeProvider(window_host)


@pytest.fixture(name="manager")
def manager_fixture(storage, provider, window_host, clock) -> AuthorizationManager:
    """Authorization manager wired to fakes, with a shared fake clock."""
    popups = PopupTracker()
    popups.attach(window_host)
    return AuthorizationManager(
        client_id=CLIENT_ID,
        provider=provider,
        storage=storage,
        popups=popups,
        flows=StateCorrelationStore(clock=clock),
        clock=clock,
    )


@pytest.fixture(name="drive")
def drive_fixture() -> DriveBackend:
    return DriveBackend()


@pytest.fixture(name="scheduled")
def scheduled_fixture() -> list:
    """Records debounced cloud writes instead of scheduling them."""
    return []


@pytest.fixture(name="calendar_entries")
def calendar_entries_fixture() -> list[dict]:
    return [
        {"id": "primary@example.com", "summary": "Me", "backgroundColor": "#123456", "primary": True},
        {"id": "team@example.com", "summary": "Team", "backgroundColor": "#654321"},
    ]


@pytest.fixture(name="context")
def context_fixture(engine, provider, window_host, drive, scheduled, calendar_entries):
    """Application context built from fakes."""

    async def fake_list_calendars(token: str) -> list[dict]:
        return calendar_entries

    settings = Settings(
        _env_file=None,
        google_client_id=CLIENT_ID,
        google_client_secret="secret",
        device_id="test-device",
    )
    return build_context(
        settings,
        engine=engine,
        provider=provider,
        window_host=window_host,
        http_client=drive.client(),
        schedule_write=lambda func, delay: scheduled.append((func, delay)),
        calendar_lister=fake_list_calendars,
    )


@pytest.fixture(name="client")
def client_fixture(context):
    """Create a test client bound to the fake application context."""
    app.dependency_overrides[get_context] = lambda: context
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def sign_in_with(context, scope: str = CALENDAR_SCOPES, token: str = VALID_TOKEN) -> None:
    """Store a session directly, as a completed consent would."""
    context.auth.store_auth(token, 3600, scope)
