"""HyPrism - game account login for the HyPrism launcher.

Logs the player in through the identity provider's browser flow,
derives game-session credentials, and keeps them valid across
restarts without asking for a password again.
"""

from __future__ import annotations

from .app import HyPrism
from .auth import (
    AuthFlowManager,
    AuthFlowState,
    FileSessionStore,
    MemorySessionStore,
    Session,
    SessionManager,
)
from .config import AccountSettings, HyPrismSettings, LogSettings, get_settings
from .exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    AuthFlowTimeout,
    AuthorizationPending,
    BrowserOpenError,
    CryptoError,
    GameSessionError,
    HyPrismException,
    LoginInProgressError,
    LoginRequiredError,
    NetworkError,
    NoProfileError,
    ProfileFetchError,
    ProviderError,
    SessionError,
    SessionExpiredError,
    SessionReadError,
    SessionWriteError,
    TokenExchangeError,
    TokenRefreshError,
)


__version__ = "0.1.0"

__all__ = [
    "AccountSettings",
    "AuthFlowCancelled",
    "AuthFlowManager",
    "AuthFlowState",
    "AuthFlowTimeout",
    "AuthenticationError",
    "AuthorizationPending",
    "BrowserOpenError",
    "CryptoError",
    "FileSessionStore",
    "GameSessionError",
    "HyPrism",
    "HyPrismException",
    "HyPrismSettings",
    "LogSettings",
    "LoginInProgressError",
    "LoginRequiredError",
    "MemorySessionStore",
    "NetworkError",
    "NoProfileError",
    "ProfileFetchError",
    "ProviderError",
    "Session",
    "SessionError",
    "SessionExpiredError",
    "SessionManager",
    "SessionReadError",
    "SessionWriteError",
    "TokenExchangeError",
    "TokenRefreshError",
    "__version__",
    "get_settings",
]
