"""Interactive login orchestrator.

Provides AuthFlowManager, which runs one Authorization Code + PKCE
login: loopback receiver, system browser, code exchange, profile
lookup, game-session creation and persistence. The wait for the
browser redirect is a first-wins race between the delivered code or
error, caller cancellation and the interactive timeout.
"""

# pylint: disable=logging-too-many-args,too-many-instance-attributes

from __future__ import annotations

import logging
import secrets
import threading
import time
import webbrowser

from typing import TYPE_CHECKING, Any

from ..exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    AuthFlowTimeout,
    BrowserOpenError,
    LoginInProgressError,
    NetworkError,
    NoProfileError,
    ProviderError,
)
from ..utils.sync_helpers import run_async
from .account import compose_session
from .callback_server import DEFAULT_CALLBACK_PATH, CallbackResult, OAuthCallbackServer
from .models import AuthFlowState
from .pkce import AntiCsrfState, PKCEChallenge


if TYPE_CHECKING:
    from collections.abc import Callable

    from .account import AccountClient
    from .models import Session
    from .provider import OAuthProvider
    from .session_store import SessionStore


logger = logging.getLogger("hyprism.auth")

DEFAULT_AUTH_TIMEOUT = 300.0

# Only one interactive login may be in flight per process.
_login_lock = threading.Lock()


class _RedirectSignal:
    """One-shot outcome of the redirect wait.

    The first of ``code``, ``error``, ``cancelled`` or ``timeout`` to
    settle wins; later attempts are ignored.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._outcome: tuple[str, Any] | None = None

    def settle(self, kind: str, value: Any = None) -> bool:
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = (kind, value)
        self._event.set()
        return True

    def deliver(self, result: CallbackResult) -> None:
        """Callback-server listener."""
        if result.ok:
            self.settle("code", result)
        else:
            self.settle("error", result)

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout=timeout)

    @property
    def outcome(self) -> tuple[str, Any] | None:
        with self._lock:
            return self._outcome


def _default_open_browser(url: str) -> bool:
    return webbrowser.open(url)


class AuthFlowManager:
    """Orchestrates interactive account logins.

    Parameters
    ----------
    provider : OAuthProvider
        The identity provider client.
    account_client : AccountClient
        Profile and game-session client.
    store : SessionStore
        Where the resulting session is persisted.
    auth_timeout : float
        Seconds to wait for the browser redirect (default ``300``).
    callback_path : str
        Path served by the loopback receiver.
    open_browser : callable, optional
        ``open_browser(url) -> bool | None``; defaults to the system
        browser. Returning ``False`` means no browser could be opened.
    on_progress : callable, optional
        ``on_progress(message)`` invoked on every stage change.
    """

    poll_interval = 0.1

    def __init__(
        self,
        provider: OAuthProvider,
        account_client: AccountClient,
        store: SessionStore,
        auth_timeout: float = DEFAULT_AUTH_TIMEOUT,
        callback_path: str = DEFAULT_CALLBACK_PATH,
        open_browser: Callable[[str], Any] | None = None,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the auth flow manager."""
        self.provider = provider
        self.account_client = account_client
        self.store = store
        self.auth_timeout = auth_timeout
        self.callback_path = callback_path
        self.open_browser = open_browser or _default_open_browser
        self.on_progress = on_progress

        self._flow_state = AuthFlowState.IDLE
        self._stage = AuthFlowState.IDLE
        self._flow_id: str | None = None
        self._signal: _RedirectSignal | None = None
        self._callback_server: OAuthCallbackServer | None = None

    @property
    def flow_state(self) -> AuthFlowState:
        """Current state of the auth flow."""
        return self._flow_state

    @property
    def flow_id(self) -> str | None:
        """Identifier of the current or last attempt."""
        return self._flow_id

    @property
    def network_timeout(self) -> float:
        """Upper bound for one network call, slightly above the request timeout."""
        return max(self.provider.request_timeout, self.account_client.request_timeout) + 5.0

    def _set_state(self, state: AuthFlowState) -> None:
        self._flow_state = state
        if not state.is_terminal:
            self._stage = state
        logger.debug("Auth flow %s: %s", self._flow_id, state.value)

    def _progress(self, message: str) -> None:
        logger.info("[AUTH] %s", message)
        if self.on_progress is None:
            return
        try:
            self.on_progress(message)
        except Exception:
            logger.exception("Progress callback failed")

    def run_interactive(self, cancel_event: threading.Event | None = None) -> Session:
        """Run the interactive login flow.

        Blocks until the session is persisted, the attempt fails,
        times out, or is cancelled.

        Parameters
        ----------
        cancel_event : threading.Event, optional
            Setting this event aborts the wait for the redirect.

        Returns
        -------
        Session
            The new, persisted session.

        Raises
        ------
        LoginInProgressError
            If another login attempt is running in this process.
        AuthFlowTimeout
            If no redirect arrives within ``auth_timeout``.
        AuthFlowCancelled
            If the attempt is cancelled while waiting.
        ProviderError
            If the provider redirects with an error or rejects the code.
        NoProfileError
            If the account has no game profile.
        AuthenticationError
            For any other failure, with the failing stage as context.
        """
        if not _login_lock.acquire(blocking=False):
            msg = "A login attempt is already in progress"
            raise LoginInProgressError(msg)
        # cancel() settles this signal from here until the attempt ends
        self._signal = _RedirectSignal()
        try:
            return self._run(self._signal, cancel_event)
        finally:
            self._signal = None
            _login_lock.release()

    def _run(  # noqa: PLR0915
        self, signal: _RedirectSignal, cancel_event: threading.Event | None
    ) -> Session:
        self._flow_id = secrets.token_urlsafe(8)
        self._stage = AuthFlowState.IDLE

        try:
            # 1. PKCE for this attempt only
            self._set_state(AuthFlowState.GENERATING_PKCE)
            pkce = PKCEChallenge.generate()

            # 2. Bind the receiver first; its port goes into the state
            self._set_state(AuthFlowState.SERVER_STARTING)
            self._callback_server = OAuthCallbackServer(
                callback_path=self.callback_path,
                on_result=signal.deliver,
            )
            port = self._callback_server.start()
            logger.info("Auth flow %s: callback server on port %d", self._flow_id, port)

            state = AntiCsrfState.generate(port)
            authorize_url = self.provider.build_authorize_url(pkce, state.encode())

            # 3. Hand the URL to the browser
            if signal.outcome is None:
                self._progress("Opening browser for authentication...")
                self._launch_browser(authorize_url)

            # 4. Wait for code, error, cancellation or timeout
            self._set_state(AuthFlowState.AWAITING_REDIRECT)
            self._progress("Waiting for authorization...")
            result = self._wait_for_redirect(signal, cancel_event)
            self._stop_server()

            # 5. Code for tokens
            self._set_state(AuthFlowState.EXCHANGING_CODE)
            self._progress("Exchanging authorization code for token...")
            tokens = run_async(
                self.provider.exchange_code(
                    code=result.code or "",
                    verifier=pkce.verifier,
                    redirect_uri=self.provider.redirect_uri,
                ),
                timeout=self.network_timeout,
            )

            # 6. Profile identity
            self._set_state(AuthFlowState.FETCHING_PROFILE)
            self._progress("Fetching profile information...")
            profiles = run_async(
                self.account_client.fetch_profiles(tokens.access_token),
                timeout=self.network_timeout,
            )
            if not profiles.profiles:
                msg = "No profiles found for this account"
                raise NoProfileError(msg, provider=self.account_client.service_name)
            profile = profiles.profiles[0]
            self._progress(f"Logged in as: {profile.username}")

            # 7. Game session tokens
            self._set_state(AuthFlowState.DERIVING_GAME_SESSION)
            self._progress("Creating game session...")
            game_session = run_async(
                self.account_client.create_game_session(tokens.access_token, profile.uuid),
                timeout=self.network_timeout,
            )
            session = compose_session(
                tokens,
                game_session,
                username=profile.username,
                uuid=profile.uuid,
                account_owner_id=profiles.owner,
            )

            # 8. Persist
            self.store.save(session)
            self._set_state(AuthFlowState.PERSISTED)
            self._progress("Session saved")
            logger.info("Auth flow %s completed for %s", self._flow_id, session.username)
            return session

        except AuthenticationError as exc:
            exc.add_context(stage=self._stage.value, flow_id=self._flow_id)
            if exc.flow_id is None:
                exc.flow_id = self._flow_id
            if not self._flow_state.is_terminal:
                self._set_state(AuthFlowState.FAILED)
            logger.warning(
                "Auth flow %s failed during %s: %s", self._flow_id, self._stage.value, exc
            )
            raise
        except TimeoutError as exc:
            self._set_state(AuthFlowState.FAILED)
            msg = f"Request timed out during {self._stage.value}"
            raise NetworkError(msg, flow_id=self._flow_id, stage=self._stage.value) from exc
        except Exception as exc:
            self._set_state(AuthFlowState.FAILED)
            msg = f"Authentication flow failed: {exc}"
            raise AuthenticationError(msg, flow_id=self._flow_id, stage=self._stage.value) from exc
        finally:
            self._stop_server()

    def cancel(self) -> None:
        """Cancel the current authentication flow.

        Has an effect only while the flow waits for the redirect.
        """
        signal = self._signal
        if signal is not None and signal.settle("cancelled"):
            logger.info("Auth flow %s cancellation requested", self._flow_id)

    def _launch_browser(self, url: str) -> None:
        try:
            opened = self.open_browser(url)
        except Exception as exc:
            msg = f"Failed to open browser: {exc}"
            raise BrowserOpenError(msg) from exc
        if opened is False:
            msg = "Failed to open browser: no browser available"
            raise BrowserOpenError(msg)

    def _wait_for_redirect(
        self,
        signal: _RedirectSignal,
        cancel_event: threading.Event | None,
    ) -> CallbackResult:
        """Block until the race is decided and translate the winner.

        Returns
        -------
        CallbackResult
            The redirect carrying an authorization code.
        """
        deadline = time.monotonic() + self.auth_timeout

        while True:
            if cancel_event is not None and cancel_event.is_set():
                signal.settle("cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                signal.settle("timeout")
            if signal.wait(min(max(remaining, 0.0), self.poll_interval)):
                break

        kind, value = signal.outcome or ("timeout", None)

        if kind == "code":
            return value
        if kind == "error":
            self._set_state(AuthFlowState.FAILED)
            description = value.error_description or value.error
            msg = f"Provider returned error: {value.error} ({description})"
            raise ProviderError(msg, error_code=value.error, provider=self.provider.service_name)
        if kind == "cancelled":
            self._set_state(AuthFlowState.CANCELLED)
            msg = "Authentication flow was cancelled"
            raise AuthFlowCancelled(msg, provider=self.provider.service_name)

        self._set_state(AuthFlowState.TIMED_OUT)
        msg = f"Authentication timed out after {self.auth_timeout}s"
        raise AuthFlowTimeout(msg, timeout=self.auth_timeout, provider=self.provider.service_name)

    def _stop_server(self) -> None:
        server = self._callback_server
        self._callback_server = None
        if server is not None:
            server.stop()
