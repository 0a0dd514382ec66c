"""Tests for the HyPrism account facade."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from hyprism import HyPrism
from hyprism.app import EVENT_LOGOUT, EVENT_PROGRESS, EVENT_SUCCESS
from hyprism.auth.session_store import FileSessionStore
from hyprism.exceptions import LoginRequiredError, ProviderError, SessionExpiredError


if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path

    import httpx

    from conftest import FakeAccountServices

    from hyprism.config import HyPrismSettings


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def events() -> list[tuple[str, Any]]:
    """Collected UI events."""
    return []


@pytest.fixture()
def make_app(
    settings: HyPrismSettings,
    transport: httpx.MockTransport,
    events: list[tuple[str, Any]],
) -> Generator[Any, None, None]:
    """Factory for facades wired to the fake services."""
    apps: list[HyPrism] = []

    def _make(open_browser=None) -> HyPrism:
        app = HyPrism(
            settings=settings,
            on_event=lambda name, payload: events.append((name, payload)),
            open_browser=open_browser,
            transport=transport,
        )
        apps.append(app)
        return app

    yield _make
    for app in apps:
        app.close()


# ── Tests ────────────────────────────────────────────────────────────


class TestLogin:
    """Tests for login through the facade."""

    def test_login_emits_progress_and_success(self, make_app, browser, events) -> None:
        """Progress messages precede a single success event."""
        app = make_app(browser({"code": "abc123"}))
        session = app.login_interactive()

        names = [name for name, _ in events]
        assert names[-1] == EVENT_SUCCESS
        assert names.count(EVENT_SUCCESS) == 1
        assert names[:-1] == [EVENT_PROGRESS] * (len(names) - 1)
        assert ("auth-progress", "Logged in as: Steve") in events
        assert events[-1] == ("auth-success", {"username": "Steve", "uuid": session.uuid})

    def test_login_persists_to_app_dir(
        self, make_app, browser, isolated_app_dir: Path
    ) -> None:
        """The default store writes <app dir>/session.json."""
        app = make_app(browser({"code": "abc123"}))
        app.login()
        assert (isolated_app_dir / "session.json").exists()
        assert isinstance(app.store, FileSessionStore)

    def test_failed_login_emits_no_success(self, make_app, browser, events) -> None:
        """A denied login raises and sends no success event."""
        app = make_app(browser({"error": "access_denied"}))
        with pytest.raises(ProviderError):
            app.login_interactive()
        assert EVENT_SUCCESS not in [name for name, _ in events]

    def test_event_handler_errors_are_contained(self, settings, transport, browser) -> None:
        """A failing UI callback does not break the login."""

        def broken(name: str, payload: Any) -> None:
            raise RuntimeError("ui gone")

        with HyPrism(
            settings=settings,
            on_event=broken,
            open_browser=browser({"code": "abc123"}),
            transport=transport,
        ) as app:
            assert app.login_interactive().username == "Steve"


class TestStatusAndProfile:
    """Tests for status and profile queries."""

    def test_status_logged_out(self, make_app) -> None:
        """No session reports logged out."""
        assert make_app().get_auth_status() == {"logged_in": False}

    def test_status_after_login(self, make_app, browser) -> None:
        """Status reports identity after login."""
        app = make_app(browser({"code": "abc123"}))
        session = app.login_interactive()
        assert app.get_auth_status() == {
            "logged_in": True,
            "username": "Steve",
            "uuid": session.uuid,
        }
        assert app.is_logged_in()

    def test_profile_requires_login(self, make_app) -> None:
        """Profile access without a session asks for login."""
        with pytest.raises(LoginRequiredError, match="Not logged in"):
            make_app().get_user_profile()

    def test_profile_and_uuid(self, make_app, session) -> None:
        """Profile fields come from the stored session."""
        app = make_app()
        app.store.save(session)
        assert app.get_user_profile() == {
            "username": "Steve",
            "uuid": session.uuid,
            "account_owner_id": "owner-1",
        }
        assert app.get_user_uuid() == session.uuid

    def test_expired_session_refreshed_on_access(
        self, make_app, make_session, services: FakeAccountServices
    ) -> None:
        """get_valid_session() refreshes an expired session."""
        app = make_app()
        app.store.save(make_session(expires_in=-1))

        refreshed = app.get_valid_session()

        assert refreshed.access_token == "at_new"
        assert not refreshed.is_expired()
        assert len(services.calls_to(services.token_url)) == 1

    def test_failed_refresh_logs_out(
        self, make_app, make_session, services: FakeAccountServices
    ) -> None:
        """A rejected refresh clears the session."""
        app = make_app()
        app.store.save(make_session(expires_in=-1))
        services.token_status = 401

        with pytest.raises(SessionExpiredError):
            app.get_valid_session()
        assert app.get_auth_status() == {"logged_in": False}


class TestLogout:
    """Tests for logout."""

    def test_logout_emits_event(self, make_app, session, events) -> None:
        """logout() clears the session and notifies the UI."""
        app = make_app()
        app.store.save(session)
        app.logout()

        assert app.store.load() is None
        assert events == [(EVENT_LOGOUT, None)]
