"""HyPrism account facade.

The entry points the launcher shell calls: interactive login, logout,
status, and access to a valid session for launching the game. UI
notifications go through a single ``on_event(name, payload)`` callback.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import contextlib
import logging

from typing import TYPE_CHECKING, Any

from .auth.account import create_account_client_from_settings
from .auth.flow import AuthFlowManager
from .auth.provider import create_provider_from_settings
from .auth.session import SessionManager
from .auth.session_store import FileSessionStore
from .config import get_settings
from .exceptions import AuthenticationError, LoginRequiredError
from .utils.sync_helpers import run_async


if TYPE_CHECKING:
    import threading

    from collections.abc import Callable

    import httpx

    from .auth.models import Session
    from .auth.session_store import SessionStore
    from .config import HyPrismSettings


logger = logging.getLogger("hyprism")

EVENT_PROGRESS = "auth-progress"
EVENT_SUCCESS = "auth-success"
EVENT_LOGOUT = "auth-logout"


class HyPrism:
    """Account authentication for the launcher.

    Parameters
    ----------
    settings : HyPrismSettings, optional
        Configuration (defaults to the cached global settings).
    store : SessionStore, optional
        Session persistence (defaults to the file store).
    on_event : callable, optional
        ``on_event(name, payload)`` for ``auth-progress``,
        ``auth-success`` and ``auth-logout``.
    open_browser : callable, optional
        Browser opener passed to the login flow.
    transport : httpx.AsyncBaseTransport, optional
        Custom HTTP transport for all account services.
    """

    def __init__(
        self,
        settings: HyPrismSettings | None = None,
        store: SessionStore | None = None,
        on_event: Callable[[str, Any], None] | None = None,
        open_browser: Callable[[str], Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the account facade."""
        self.settings = settings or get_settings()
        account = self.settings.account

        self.store = store or FileSessionStore(account.session_file or None)
        self.provider = create_provider_from_settings(account, transport=transport)
        self.account_client = create_account_client_from_settings(account, transport=transport)
        self.on_event = on_event

        self.sessions = SessionManager(self.provider, self.account_client, self.store)
        self.flow = AuthFlowManager(
            provider=self.provider,
            account_client=self.account_client,
            store=self.store,
            auth_timeout=account.auth_timeout_seconds,
            callback_path=account.callback_path,
            open_browser=open_browser,
            on_progress=lambda message: self._emit(EVENT_PROGRESS, message),
        )

    def _emit(self, name: str, payload: Any) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(name, payload)
        except Exception:
            logger.exception("Event handler failed for %s", name)

    def login_interactive(self, cancel_event: threading.Event | None = None) -> Session:
        """Log in through the system browser and persist the session.

        Parameters
        ----------
        cancel_event : threading.Event, optional
            Setting this event aborts the attempt.

        Returns
        -------
        Session
            The new session.
        """
        logger.info("Starting account login...")
        session = self.flow.run_interactive(cancel_event=cancel_event)
        self._emit(EVENT_SUCCESS, {"username": session.username, "uuid": session.uuid})
        logger.info("Successfully logged in as %s (UUID: %s)", session.username, session.uuid)
        return session

    login = login_interactive

    def cancel_login(self) -> None:
        """Abort a login attempt waiting for the browser."""
        self.flow.cancel()

    def logout(self) -> None:
        """Delete the stored session."""
        self.sessions.logout()
        self._emit(EVENT_LOGOUT, None)

    def get_auth_status(self) -> dict[str, Any]:
        """Return ``{logged_in, expired?, username?, uuid?}`` without network calls."""
        return self.sessions.status().to_dict()

    def get_valid_session(self) -> Session:
        """Return an unexpired session, refreshing the stored one if needed."""
        return self.sessions.get_valid_session_sync()

    def is_logged_in(self) -> bool:
        """Whether a valid session exists."""
        return self.sessions.is_logged_in()

    def get_user_profile(self) -> dict[str, str]:
        """Return username, UUID and account owner of the current session.

        Raises
        ------
        LoginRequiredError
            If no valid session is available.
        """
        try:
            session = self.get_valid_session()
        except AuthenticationError as exc:
            msg = f"Not logged in: {exc.message}"
            raise LoginRequiredError(msg) from exc
        return {
            "username": session.username,
            "uuid": session.uuid,
            "account_owner_id": session.account_owner_id,
        }

    def get_user_uuid(self) -> str:
        """Return the profile UUID of the current session."""
        return self.get_user_profile()["uuid"]

    def close(self) -> None:
        """Release the HTTP clients."""
        for client in (self.provider, self.account_client):
            with contextlib.suppress(RuntimeError, TimeoutError):
                run_async(client.close(), timeout=5.0)

    def __enter__(self) -> HyPrism:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
