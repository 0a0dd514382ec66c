"""Pytest configuration and fixtures."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import contextlib
import json
import threading
import time

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlencode, urlparse
from urllib.request import urlopen

import httpx
import pytest

from hyprism.auth.models import Session
from hyprism.auth.pkce import AntiCsrfState
from hyprism.auth.session_store import FileSessionStore
from hyprism.auth.account import AccountClient
from hyprism.auth.provider import OAuthProvider
from hyprism.config import AccountSettings, HyPrismSettings, clear_settings


if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path


TOKEN_URL = "https://idp.test/oauth2/token"
AUTHORIZE_URL = "https://idp.test/oauth2/auth"
LAUNCHER_DATA_URL = "https://account.test/my-account/get-launcher-data"
SESSION_URL = "https://sessions.test/game-session/new"
REDIRECT_URI = "https://idp.test/consent/client"


# ── Isolation ───────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def isolated_app_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Point the per-user directory at a temp dir and reset cached globals."""
    app_dir = tmp_path / "app"
    monkeypatch.setenv("HYPRISM_APP_DIR", str(app_dir))
    monkeypatch.delenv("HYPRISM_CONFIG_FILE", raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings()
    yield app_dir
    clear_settings()


# ── Sessions ────────────────────────────────────────────────────────


def _make_session(expires_in: float = 3600.0, **overrides: Any) -> Session:
    """Build a fully populated session expiring ``expires_in`` seconds from now."""
    fields: dict[str, Any] = {
        "access_token": "at_stored",
        "refresh_token": "rt_stored",
        "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "session_token": "st_stored",
        "identity_token": "it_stored",
        "username": "Steve",
        "uuid": "0b7e1f9a-2c11-4d6e-9a55-3f1c2d4e5f60",
        "account_owner_id": "owner-1",
    }
    fields.update(overrides)
    return Session(**fields)


@pytest.fixture()
def make_session() -> Callable[..., Session]:
    """Factory for sessions expiring a given number of seconds from now."""
    return _make_session


@pytest.fixture()
def session() -> Session:
    """Create an unexpired session."""
    return _make_session()


@pytest.fixture()
def file_store(tmp_path: Path) -> FileSessionStore:
    """Create a file store under a temp dir."""
    return FileSessionStore(tmp_path / "HyPrism" / "session.json")


# ── Fake account services ───────────────────────────────────────────


class FakeAccountServices:
    """Scriptable handler for ``httpx.MockTransport``.

    Serves the token, launcher-data and game-session endpoints and
    records every request for later assertions.
    """

    token_url = TOKEN_URL
    authorize_url = AUTHORIZE_URL
    launcher_data_url = LAUNCHER_DATA_URL
    session_url = SESSION_URL
    redirect_uri = REDIRECT_URI

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict[str, Any] = {
            "access_token": "at_new",
            "refresh_token": "rt_new",
            "expires_in": 3600,
            "token_type": "Bearer",
        }
        self.profiles_status = 200
        self.profiles_body: Any = {
            "owner": "owner-1",
            "profiles": [{"uuid": "0b7e1f9a-2c11-4d6e-9a55-3f1c2d4e5f60", "username": "Steve"}],
        }
        self.session_status = 200
        self.session_body: dict[str, Any] = {
            "sessionToken": "st_new",
            "identityToken": "it_new",
            "expiresAt": _rfc3339(datetime.now(timezone.utc) + timedelta(hours=10)),
        }
        self.raise_on: dict[str, Exception] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.raise_on:
            raise self.raise_on[url]
        if url == TOKEN_URL:
            return httpx.Response(self.token_status, json=self.token_body)
        if url == LAUNCHER_DATA_URL:
            return httpx.Response(self.profiles_status, json=self.profiles_body)
        if url == SESSION_URL:
            return httpx.Response(self.session_status, json=self.session_body)
        return httpx.Response(404, text="not found")

    def calls_to(self, url: str) -> list[httpx.Request]:
        """Requests sent to one endpoint."""
        return [r for r in self.requests if str(r.url) == url]

    def form(self, request: httpx.Request) -> dict[str, str]:
        """Decode a form-encoded request body."""
        return {k: v[0] for k, v in parse_qs(request.content.decode("utf-8")).items()}

    def json(self, request: httpx.Request) -> Any:
        """Decode a JSON request body."""
        return json.loads(request.content)


def _rfc3339(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture()
def services() -> FakeAccountServices:
    """Create a scriptable fake of the account services."""
    return FakeAccountServices()


@pytest.fixture()
def transport(services: FakeAccountServices) -> httpx.MockTransport:
    """Create a mock transport backed by the fake services."""
    return httpx.MockTransport(services)


# ── Browser simulation ──────────────────────────────────────────────


def port_from_authorize_url(url: str) -> int:
    """Extract the loopback port carried in the ``state`` parameter."""
    state = parse_qs(urlparse(url).query)["state"][0]
    return AntiCsrfState.decode(state).port


def send_redirect(
    port: int,
    params: dict[str, str],
    path: str = "/authorization-callback",
    delay: float = 0.1,
) -> threading.Thread:
    """Simulate the browser following the provider redirect."""

    def _send() -> None:
        time.sleep(delay)
        url = f"http://127.0.0.1:{port}{path}?{urlencode(params)}"
        with contextlib.suppress(Exception):
            urlopen(url, timeout=5)  # noqa: S310

    t = threading.Thread(target=_send, daemon=True)
    t.start()
    return t


def redirecting_browser(
    params: dict[str, str], opened: list[str] | None = None
) -> Callable[[str], bool]:
    """Create a browser opener that immediately follows the redirect."""

    def _open(url: str) -> bool:
        if opened is not None:
            opened.append(url)
        send_redirect(port_from_authorize_url(url), params)
        return True

    return _open


@pytest.fixture()
def browser() -> Callable[..., Callable[[str], bool]]:
    """Factory for browser openers that follow the redirect with given params."""
    return redirecting_browser


@pytest.fixture()
def redirect() -> Callable[..., threading.Thread]:
    """Send a redirect to a running callback receiver."""
    return send_redirect


# ── Clients and settings ────────────────────────────────────────────


@pytest.fixture()
def account_settings() -> AccountSettings:
    """Account settings pointing at the fake services."""
    return AccountSettings(
        client_id="hytale-launcher",
        authorize_url=AUTHORIZE_URL,
        token_url=TOKEN_URL,
        launcher_data_url=LAUNCHER_DATA_URL,
        session_url=SESSION_URL,
        redirect_uri=REDIRECT_URI,
        request_timeout_seconds=5.0,
    )


@pytest.fixture()
def settings(account_settings: AccountSettings) -> HyPrismSettings:
    """Full settings pointing at the fake services."""
    return HyPrismSettings(account=account_settings)


@pytest.fixture()
def provider(transport: httpx.MockTransport) -> OAuthProvider:
    """OAuth provider wired to the mock transport."""
    return OAuthProvider(
        client_id="hytale-launcher",
        authorize_url=AUTHORIZE_URL,
        token_url=TOKEN_URL,
        redirect_uri=REDIRECT_URI,
        scopes=["openid", "offline", "auth:launcher"],
        request_timeout=5.0,
        transport=transport,
    )


@pytest.fixture()
def account_client(transport: httpx.MockTransport) -> AccountClient:
    """Account client wired to the mock transport."""
    return AccountClient(
        launcher_data_url=LAUNCHER_DATA_URL,
        session_url=SESSION_URL,
        request_timeout=5.0,
        transport=transport,
    )
