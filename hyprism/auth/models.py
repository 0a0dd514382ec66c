"""Type definitions for HyPrism account authentication.

Transient protocol values are plain dataclasses; the persisted
``Session`` is a pydantic model so the file format is validated on load.
"""

from __future__ import annotations

import time

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class OAuthTokenSet:
    """OAuth2 token set returned by the token endpoint.

    Attributes
    ----------
    access_token : str
        The access token for API requests.
    refresh_token : str
        Refresh token for obtaining new access tokens.
    expires_in : int
        Token lifetime in seconds from issuance.
    raw : dict[str, Any]
        The raw token response from the provider.
    issued_at : float
        Unix timestamp when the token was issued.
    """

    access_token: str
    refresh_token: str = ""
    expires_in: int = 0
    raw: dict[str, Any] = field(default_factory=dict)
    issued_at: float = field(default_factory=time.time)

    @property
    def expires_at(self) -> datetime:
        """Absolute expiry of the access token."""
        issued = datetime.fromtimestamp(self.issued_at, tz=timezone.utc)
        return issued + timedelta(seconds=self.expires_in)


@dataclass(frozen=True)
class Profile:
    """A playable game profile on the account."""

    uuid: str
    username: str


@dataclass
class ProfileList:
    """Launcher data returned by the account-data endpoint.

    Attributes
    ----------
    owner : str
        Account owner identifier.
    profiles : list[Profile]
        Zero or more game profiles, in the order the service lists them.
    """

    owner: str
    profiles: list[Profile] = field(default_factory=list)


@dataclass
class GameSession:
    """Short-lived credentials for the game client and servers.

    Attributes
    ----------
    session_token : str
        Game-session token.
    identity_token : str
        Game identity token.
    expires_at : datetime or None
        Expiry stated by the session service, or None when it could
        not be parsed.
    """

    session_token: str
    identity_token: str
    expires_at: datetime | None = None


class Session(BaseModel):
    """The persisted account session.

    Every field is required and non-empty; a partially populated
    session fails validation and is never written.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    expires_at: datetime
    session_token: str = Field(min_length=1)
    identity_token: str = Field(min_length=1)
    username: str = Field(min_length=1)
    uuid: str = Field(min_length=1)
    account_owner_id: str = Field(min_length=1)

    @field_validator("expires_at")
    @classmethod
    def _ensure_aware(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the session needs a refresh.

        The boundary is inclusive: a session expiring exactly ``now``
        is already expired.

        Parameters
        ----------
        now : datetime, optional
            Reference time (defaults to the current UTC time).
        """
        return (now or utcnow()) >= self.expires_at


@dataclass
class AuthStatus:
    """Login status as reported to the surrounding application."""

    logged_in: bool
    expired: bool = False
    username: str | None = None
    uuid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Render as ``{logged_in, expired?, username?, uuid?}``."""
        result: dict[str, Any] = {"logged_in": self.logged_in}
        if self.expired:
            result["expired"] = True
        if self.username is not None:
            result["username"] = self.username
        if self.uuid is not None:
            result["uuid"] = self.uuid
        return result


class AuthFlowState(str, Enum):
    """State of an interactive login attempt."""

    IDLE = "idle"
    GENERATING_PKCE = "generating_pkce"
    SERVER_STARTING = "server_starting"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING_CODE = "exchanging_code"
    FETCHING_PROFILE = "fetching_profile"
    DERIVING_GAME_SESSION = "deriving_game_session"
    PERSISTED = "persisted"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the attempt has concluded."""
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        AuthFlowState.PERSISTED,
        AuthFlowState.FAILED,
        AuthFlowState.TIMED_OUT,
        AuthFlowState.CANCELLED,
    }
)
