"""Account authentication for HyPrism.

Authorization Code + PKCE login through the system browser with a
loopback redirect receiver, game-session derivation, and a persisted
session refreshed on read.
"""

from __future__ import annotations

from .account import AccountClient, compose_session
from .callback_server import CallbackResult, OAuthCallbackServer
from .flow import AuthFlowManager
from .models import (
    AuthFlowState,
    AuthStatus,
    GameSession,
    OAuthTokenSet,
    Profile,
    ProfileList,
    Session,
)
from .pkce import AntiCsrfState, PKCEChallenge, challenge_from, new_verifier
from .provider import OAuthProvider, create_provider_from_settings
from .session import SessionManager
from .session_store import FileSessionStore, MemorySessionStore, SessionStore


__all__ = [
    "AccountClient",
    "AntiCsrfState",
    "AuthFlowManager",
    "AuthFlowState",
    "AuthStatus",
    "CallbackResult",
    "FileSessionStore",
    "GameSession",
    "MemorySessionStore",
    "OAuthCallbackServer",
    "OAuthProvider",
    "OAuthTokenSet",
    "PKCEChallenge",
    "Profile",
    "ProfileList",
    "Session",
    "SessionManager",
    "SessionStore",
    "challenge_from",
    "compose_session",
    "create_provider_from_settings",
    "new_verifier",
]
