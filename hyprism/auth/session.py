"""Session manager with refresh-on-read.

Manages the lifecycle of the persisted session: status queries that
never touch the network, refresh of an expired session through the
refresh token and a new game session, and logout.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

from ..exceptions import (
    AuthenticationError,
    LoginRequiredError,
    SessionExpiredError,
    SessionReadError,
)
from ..utils.sync_helpers import run_async
from .account import compose_session
from .models import AuthStatus


if TYPE_CHECKING:
    from .account import AccountClient
    from .models import Session
    from .provider import OAuthProvider
    from .session_store import SessionStore


logger = logging.getLogger("hyprism.auth")


class SessionManager:
    """Keeps the stored session usable across restarts.

    Parameters
    ----------
    provider : OAuthProvider
        The identity provider, for refresh-token exchanges.
    account_client : AccountClient
        Issues replacement game sessions after a refresh.
    store : SessionStore
        Where the session is persisted.
    """

    def __init__(
        self,
        provider: OAuthProvider,
        account_client: AccountClient,
        store: SessionStore,
    ) -> None:
        """Initialize the session manager."""
        self.provider = provider
        self.account_client = account_client
        self.store = store

    async def get_valid_session(self) -> Session:
        """Return the stored session, refreshing it first if expired.

        Returns
        -------
        Session
            An unexpired session.

        Raises
        ------
        LoginRequiredError
            If no session is stored.
        SessionReadError
            If the stored session is unreadable.
        SessionExpiredError
            If the session expired and the refresh failed; the stored
            session has been cleared.
        """
        session = self.store.load()
        if session is None:
            msg = "No session found - please login"
            raise LoginRequiredError(msg)

        if not session.is_expired():
            return session

        logger.info("Session expired, attempting to refresh...")
        try:
            refreshed = await self.refresh(session)
        except AuthenticationError as exc:
            logger.warning("Session refresh failed: %s", exc)
            self.store.clear()
            msg = "Session expired and refresh failed - please login again"
            raise SessionExpiredError(msg) from exc
        except ValueError as exc:
            logger.warning("Refreshed session is incomplete: %s", exc)
            self.store.clear()
            msg = "Session expired and refresh failed - please login again"
            raise SessionExpiredError(msg) from exc

        self.store.save(refreshed)
        return refreshed

    async def refresh(self, session: Session) -> Session:
        """Build a replacement session from the refresh token.

        Runs one refresh-token exchange and one game-session creation;
        profile identity carries over unchanged. Does not persist.

        Parameters
        ----------
        session : Session
            The expired session.

        Returns
        -------
        Session
            A fully populated replacement.
        """
        tokens = await self.provider.refresh_tokens(session.refresh_token)
        game_session = await self.account_client.create_game_session(
            tokens.access_token, session.uuid
        )
        refreshed = compose_session(
            tokens,
            game_session,
            username=session.username,
            uuid=session.uuid,
            account_owner_id=session.account_owner_id,
        )
        logger.info("Session refreshed for %s", refreshed.username)
        return refreshed

    def get_valid_session_sync(self, timeout: float | None = 75.0) -> Session:
        """Blocking variant of :meth:`get_valid_session` for sync callers."""
        return run_async(self.get_valid_session(), timeout=timeout)

    def status(self) -> AuthStatus:
        """Report login status from the stored session alone.

        Unreadable and missing sessions both report logged out; no
        refresh is attempted.
        """
        try:
            session = self.store.load()
        except SessionReadError as exc:
            logger.warning("Ignoring unreadable session: %s", exc)
            return AuthStatus(logged_in=False)

        if session is None:
            return AuthStatus(logged_in=False)
        if session.is_expired():
            return AuthStatus(logged_in=False, expired=True)
        return AuthStatus(logged_in=True, username=session.username, uuid=session.uuid)

    def is_logged_in(self) -> bool:
        """Whether a valid session exists, refreshing it if needed."""
        try:
            self.get_valid_session_sync()
        except (AuthenticationError, TimeoutError):
            return False
        return True

    def logout(self) -> None:
        """Delete the stored session."""
        self.store.clear()
        logger.info("Logged out successfully")
