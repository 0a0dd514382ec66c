"""Game account services: profile lookup and game-session creation.

Both endpoints take the OAuth access token as a bearer credential. The
game session they issue is what the game client presents to servers;
it is derived from, but independent of, the OAuth token.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import re

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import httpx

from pydantic import TypeAdapter, ValidationError

from ..exceptions import GameSessionError, ProfileFetchError
from .models import GameSession, OAuthTokenSet, Profile, ProfileList, Session
from .provider import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, ApiClient


if TYPE_CHECKING:
    from ..config import AccountSettings


logger = logging.getLogger("hyprism.auth")

_DATETIME = TypeAdapter(datetime)
_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})?$"
)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z`` and any number of fractional-second digits
    (truncated to microseconds). Naive values are taken as UTC.

    Raises
    ------
    ValueError
        If the value is not a valid timestamp.
    """
    match = _RFC3339.match(value) if isinstance(value, str) else None
    if match is None:
        msg = f"Invalid timestamp: {value!r}"
        raise ValueError(msg)
    fraction = (match["fraction"] or "")[:6]
    text = match["base"] + (f".{fraction}" if fraction else "") + (match["offset"] or "")
    try:
        parsed = _DATETIME.validate_python(text.upper())
    except ValidationError as exc:
        msg = f"Invalid timestamp: {value!r}"
        raise ValueError(msg) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class AccountClient(ApiClient):
    """Client for the account-data and game-session endpoints.

    Parameters
    ----------
    launcher_data_url : str
        Account-data endpoint returning the profile list.
    session_url : str
        Endpoint issuing game-session and identity tokens.
    user_agent : str
        ``User-Agent`` header value.
    request_timeout : float
        Per-request timeout in seconds (default 30).
    transport : httpx.AsyncBaseTransport, optional
        Custom HTTP transport.
    """

    service_name = "account"

    def __init__(
        self,
        launcher_data_url: str,
        session_url: str,
        user_agent: str = DEFAULT_USER_AGENT,
        request_timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the account client."""
        super().__init__(
            user_agent=user_agent,
            request_timeout=request_timeout,
            transport=transport,
        )
        self.launcher_data_url = launcher_data_url
        self.session_url = session_url

    async def fetch_profiles(self, access_token: str) -> ProfileList:
        """Fetch the account owner and its game profiles.

        Parameters
        ----------
        access_token : str
            A valid OAuth access token.

        Returns
        -------
        ProfileList
            Owner identifier and zero or more profiles.

        Raises
        ------
        ProfileFetchError
            On a non-200 response or an unreadable body.
        NetworkError
            If the endpoint cannot be reached.
        """
        resp = await self._request(
            "GET",
            self.launcher_data_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if resp.status_code != httpx.codes.OK:
            msg = f"Launcher data request failed with status {resp.status_code}"
            raise ProfileFetchError(
                msg, status_code=resp.status_code, body=resp.text, provider=self.service_name
            )

        try:
            raw = resp.json()
            profiles = [
                Profile(uuid=str(item["uuid"]), username=str(item["username"]))
                for item in raw.get("profiles") or []
            ]
            owner = str(raw.get("owner") or "")
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            msg = "Launcher data response could not be parsed"
            raise ProfileFetchError(
                msg, status_code=resp.status_code, body=resp.text, provider=self.service_name
            ) from exc

        logger.debug("Account %s has %d profile(s)", owner, len(profiles))
        return ProfileList(owner=owner, profiles=profiles)

    async def create_game_session(self, access_token: str, uuid: str) -> GameSession:
        """Create a game session for one profile.

        A malformed ``expiresAt`` is not fatal: it is logged and the
        returned session carries ``expires_at=None``.

        Parameters
        ----------
        access_token : str
            A valid OAuth access token.
        uuid : str
            The profile to open the session for.

        Returns
        -------
        GameSession
            Session and identity tokens with their stated expiry.

        Raises
        ------
        GameSessionError
            On a non-200 response or a body without tokens.
        NetworkError
            If the endpoint cannot be reached.
        """
        resp = await self._request(
            "POST",
            self.session_url,
            json={"uuid": uuid},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if resp.status_code != httpx.codes.OK:
            msg = f"Game session creation failed with status {resp.status_code}"
            raise GameSessionError(
                msg, status_code=resp.status_code, body=resp.text, provider=self.service_name
            )

        try:
            raw = resp.json()
            session_token = raw["sessionToken"]
            identity_token = raw["identityToken"]
        except (ValueError, KeyError, TypeError) as exc:
            msg = "Game session response could not be parsed"
            raise GameSessionError(
                msg, status_code=resp.status_code, body=resp.text, provider=self.service_name
            ) from exc

        expires_at: datetime | None = None
        try:
            expires_at = parse_timestamp(raw.get("expiresAt"))
        except ValueError as exc:
            logger.warning("Failed to parse game session expiry: %s", exc)

        return GameSession(
            session_token=session_token,
            identity_token=identity_token,
            expires_at=expires_at,
        )


def compose_session(
    tokens: OAuthTokenSet,
    game_session: GameSession,
    username: str,
    uuid: str,
    account_owner_id: str,
) -> Session:
    """Combine OAuth tokens, game-session tokens and identity into a Session.

    The stored expiry is the earlier of the two lifetimes, so a single
    check governs both credentials.

    Raises
    ------
    pydantic.ValidationError
        If any field is empty.
    """
    expires_at = tokens.expires_at
    if game_session.expires_at is not None and game_session.expires_at < expires_at:
        expires_at = game_session.expires_at

    return Session(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=expires_at,
        session_token=game_session.session_token,
        identity_token=game_session.identity_token,
        username=username,
        uuid=uuid,
        account_owner_id=account_owner_id,
    )


def create_account_client_from_settings(
    settings: AccountSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AccountClient:
    """Create the account client from the ``[account]`` settings section."""
    return AccountClient(
        launcher_data_url=settings.launcher_data_url,
        session_url=settings.session_url,
        user_agent=settings.user_agent,
        request_timeout=settings.request_timeout_seconds,
        transport=transport,
    )
