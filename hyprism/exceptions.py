"""HyPrism exception hierarchy.

All HyPrism-specific exceptions inherit from HyPrismException, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class HyPrismException(Exception):
    """Base exception for all HyPrism errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize HyPrism exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (stage, flow_id, status_code, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        ctx_items = {k: v for k, v in self.context.items() if v is not None}
        if ctx_items:
            ctx = ", ".join(f"{k}={v!r}" for k, v in ctx_items.items())
            return f"{self.message} ({ctx})"
        return self.message

    def add_context(self, **context: Any) -> None:
        """Attach extra context without replacing keys that already hold a value.

        Parameters
        ----------
        **context : Any
            Context entries to add.
        """
        for key, value in context.items():
            if self.context.get(key) is None:
                self.context[key] = value


class AuthenticationError(HyPrismException):
    """Base exception for all authentication failures.

    Raised when an authentication operation fails, including the
    interactive login flow, token exchange, or session management.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The identity provider or service that failed.
        flow_id : str, optional
            The unique identifier of the login attempt that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, **context)
        self.provider = provider
        self.flow_id = flow_id


class CryptoError(AuthenticationError):
    """The OS random source could not produce bytes.

    Fatal; a login attempt cannot continue without PKCE material.
    """


class NetworkError(AuthenticationError):
    """Transport-level failure reaching an endpoint.

    Connection refused, DNS failure, or the bounded request timeout
    expired. Never retried internally.
    """

    def __init__(self, message: str, url: str | None = None, **context: Any) -> None:
        """Initialize network error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        url : str, optional
            The endpoint that could not be reached.
        **context : Any
            Additional context.
        """
        super().__init__(message, url=url, **context)
        self.url = url


class BrowserOpenError(AuthenticationError):
    """The system browser could not be opened for the authorization URL."""


class ProviderError(AuthenticationError):
    """Structured error returned by the identity provider.

    Covers errors delivered on the redirect (``error=access_denied``)
    and non-200 responses from the token endpoint.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize provider error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        error_code : str, optional
            The provider's ``error`` value (e.g. ``access_denied``).
        status_code : int, optional
            HTTP status of the failing response, if any.
        body : str, optional
            Raw response body, if any.
        **context : Any
            Additional context.
        """
        super().__init__(message, error_code=error_code, status_code=status_code, **context)
        self.error_code = error_code
        self.status_code = status_code
        self.body = body

    @property
    def is_pending(self) -> bool:
        """Whether the provider asked the caller to poll again."""
        return self.error_code == "authorization_pending"


class AuthorizationPending(ProviderError):
    """The token endpoint answered ``authorization_pending``.

    Distinct from terminal denials so a caller may decide to retry.
    """


class TokenExchangeError(ProviderError):
    """The token endpoint rejected an authorization-code exchange."""


class TokenRefreshError(TokenExchangeError):
    """The token endpoint rejected a refresh-token exchange."""


class ProfileFetchError(AuthenticationError):
    """The account-data endpoint did not return a profile list."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize profile fetch error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status_code : int, optional
            HTTP status of the failing response.
        body : str, optional
            Raw response body.
        **context : Any
            Additional context.
        """
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code
        self.body = body


class NoProfileError(AuthenticationError):
    """The account exists but has no playable game profile."""


class GameSessionError(AuthenticationError):
    """The session endpoint did not issue game-session tokens."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize game session error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status_code : int, optional
            HTTP status of the failing response.
        body : str, optional
            Raw response body.
        **context : Any
            Additional context.
        """
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code
        self.body = body


class AuthFlowCancelled(AuthenticationError):
    """Authentication flow was cancelled.

    Raised when the caller aborts the login attempt while it waits
    for the browser redirect.
    """


class AuthFlowTimeout(AuthenticationError):
    """Authentication flow timed out.

    Raised when no redirect arrives within the interactive timeout.
    """

    def __init__(
        self,
        message: str,
        timeout: float,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize timeout error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        timeout : float
            The timeout value in seconds.
        provider : str, optional
            The identity provider name.
        flow_id : str, optional
            The unique identifier of the login attempt.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, timeout=timeout, **context)
        self.timeout = timeout


class LoginInProgressError(AuthenticationError):
    """Another interactive login attempt is already running in this process."""


class SessionError(AuthenticationError):
    """Base exception for persisted-session failures."""


class SessionReadError(SessionError):
    """The session file exists but cannot be read or parsed.

    Callers should treat the user as logged out and may clear the file.
    """

    def __init__(self, message: str, path: str | None = None, **context: Any) -> None:
        """Initialize session read error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        path : str, optional
            Location of the session file.
        **context : Any
            Additional context.
        """
        super().__init__(message, path=path, **context)
        self.path = path


class SessionWriteError(SessionError):
    """The session file could not be written or removed."""

    def __init__(self, message: str, path: str | None = None, **context: Any) -> None:
        """Initialize session write error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        path : str, optional
            Location of the session file.
        **context : Any
            Additional context.
        """
        super().__init__(message, path=path, **context)
        self.path = path


class LoginRequiredError(SessionError):
    """No session is stored; an interactive login is required."""


class SessionExpiredError(SessionError):
    """The stored session expired and could not be refreshed.

    The stale session has already been cleared when this is raised.
    """
