"""OAuth2 identity provider client.

Builds the authorization URL and performs the authorization-code and
refresh-token exchanges against the provider's token endpoint.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import time

from typing import TYPE_CHECKING, Any
from urllib.parse import quote_plus

import httpx

from ..exceptions import (
    AuthorizationPending,
    NetworkError,
    TokenExchangeError,
    TokenRefreshError,
)
from .models import OAuthTokenSet


if TYPE_CHECKING:
    from ..config import AccountSettings
    from .pkce import PKCEChallenge


logger = logging.getLogger("hyprism.auth")

DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = "HyPrism/1.0"


class ApiClient:
    """Shared HTTP plumbing for the account services.

    Parameters
    ----------
    user_agent : str
        Value of the ``User-Agent`` header on every request.
    request_timeout : float
        Per-request timeout in seconds.
    transport : httpx.AsyncBaseTransport, optional
        Custom transport (e.g. ``httpx.MockTransport`` in tests).
    """

    service_name = "api"

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        request_timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the API client."""
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.request_timeout,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client. Call from app shutdown lifecycle."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to ``NetworkError``.

        Non-2xx responses are returned to the caller, which owns the
        error contract of its endpoint.
        """
        client = await self._get_client()
        logger.debug("%s %s", method, url)
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            msg = f"Request to {self.service_name} timed out after {self.request_timeout}s"
            raise NetworkError(msg, url=url, provider=self.service_name) from exc
        except httpx.HTTPError as exc:
            msg = f"Request to {self.service_name} failed: {exc}"
            raise NetworkError(msg, url=url, provider=self.service_name) from exc


def _parse_error_body(resp: httpx.Response) -> tuple[str | None, str | None]:
    """Extract ``error`` and ``error_description`` from a provider response."""
    try:
        obj = resp.json()
    except ValueError:
        return None, None
    if not isinstance(obj, dict):
        return None, None
    return obj.get("error"), obj.get("error_description")


class OAuthProvider(ApiClient):
    """OAuth2 public client for the game's identity provider.

    Parameters
    ----------
    client_id : str
        The OAuth2 client ID.
    authorize_url : str
        The provider's authorization endpoint.
    token_url : str
        The provider's token exchange endpoint.
    redirect_uri : str
        Redirect URI registered for the client; sent on both the
        authorization request and the code exchange.
    scopes : list[str]
        Requested OAuth2 scopes.
    user_agent : str
        ``User-Agent`` header value.
    request_timeout : float
        Per-request timeout in seconds (default 30).
    transport : httpx.AsyncBaseTransport, optional
        Custom HTTP transport.
    """

    service_name = "oauth"

    def __init__(
        self,
        client_id: str,
        authorize_url: str,
        token_url: str,
        redirect_uri: str,
        scopes: list[str] | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        request_timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize OAuth provider."""
        super().__init__(
            user_agent=user_agent,
            request_timeout=request_timeout,
            transport=transport,
        )
        self.client_id = client_id
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.redirect_uri = redirect_uri
        self.scopes = scopes or []

    def build_authorize_url(self, pkce: PKCEChallenge, state: str) -> str:
        """Build the full authorization URL.

        The provider's client validation is sensitive to parameter
        order, so the query is assembled literally rather than through
        ``urlencode`` on a mapping.

        Parameters
        ----------
        pkce : PKCEChallenge
            PKCE pair for this attempt; only the challenge is sent.
        state : str
            Encoded anti-CSRF state (see ``AntiCsrfState.encode``).

        Returns
        -------
        str
            The full authorization URL.
        """
        query = (
            "access_type=offline"
            f"&client_id={quote_plus(self.client_id)}"
            f"&code_challenge={quote_plus(pkce.challenge)}"
            f"&code_challenge_method={pkce.method}"
            f"&redirect_uri={quote_plus(self.redirect_uri)}"
            "&response_type=code"
            f"&scope={quote_plus(' '.join(self.scopes))}"
            f"&state={quote_plus(state)}"
        )
        return f"{self.authorize_url}?{query}"

    async def exchange_code(
        self,
        code: str,
        verifier: str,
        redirect_uri: str | None = None,
    ) -> OAuthTokenSet:
        """Exchange an authorization code for tokens.

        Parameters
        ----------
        code : str
            The authorization code from the callback.
        verifier : str
            The PKCE verifier generated for this attempt.
        redirect_uri : str, optional
            Must equal the one used in the authorization request;
            defaults to :attr:`redirect_uri`.

        Returns
        -------
        OAuthTokenSet
            The token set from the provider.

        Raises
        ------
        AuthorizationPending
            If the provider reports ``authorization_pending``.
        TokenExchangeError
            On any other non-200 response or an unusable body.
        NetworkError
            If the token endpoint cannot be reached.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or self.redirect_uri,
            "client_id": self.client_id,
            "code_verifier": verifier,
        }
        return await self._token_request(data, TokenExchangeError, "Token exchange")

    async def refresh_tokens(self, refresh_token: str) -> OAuthTokenSet:
        """Obtain a new access token from a refresh token.

        Parameters
        ----------
        refresh_token : str
            The refresh token.

        Returns
        -------
        OAuthTokenSet
            A new token set with a fresh access token.

        Raises
        ------
        TokenRefreshError
            If the provider rejects the refresh.
        NetworkError
            If the token endpoint cannot be reached.
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
        }
        tokens = await self._token_request(data, TokenRefreshError, "Token refresh")
        if not tokens.refresh_token:
            tokens.refresh_token = refresh_token
        return tokens

    async def _token_request(
        self,
        data: dict[str, str],
        error_cls: type[TokenExchangeError],
        action: str,
    ) -> OAuthTokenSet:
        """POST a form-encoded grant and parse the token response."""
        resp = await self._request(
            "POST",
            self.token_url,
            data=data,
            headers={"Accept": "application/json"},
        )

        if resp.status_code != httpx.codes.OK:
            error_code, description = _parse_error_body(resp)
            if error_code == "authorization_pending":
                raise AuthorizationPending(
                    "Authorization pending",
                    error_code=error_code,
                    status_code=resp.status_code,
                    body=resp.text,
                    provider=self.service_name,
                )
            detail = " - ".join(part for part in (error_code, description) if part) or resp.text
            msg = f"{action} failed with status {resp.status_code}: {detail}"
            raise error_cls(
                msg,
                error_code=error_code,
                status_code=resp.status_code,
                body=resp.text,
                provider=self.service_name,
            )

        try:
            raw = resp.json()
            access_token = raw["access_token"]
            expires_in = int(raw.get("expires_in") or 0)
        except (ValueError, KeyError, TypeError) as exc:
            msg = f"{action} returned an unreadable token response"
            raise error_cls(
                msg,
                status_code=resp.status_code,
                body=resp.text,
                provider=self.service_name,
            ) from exc

        return OAuthTokenSet(
            access_token=access_token,
            refresh_token=raw.get("refresh_token") or "",
            expires_in=expires_in,
            raw=raw,
            issued_at=time.time(),
        )


def create_provider_from_settings(
    settings: AccountSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthProvider:
    """Create the OAuth provider from the ``[account]`` settings section.

    Parameters
    ----------
    settings : AccountSettings
        Account configuration.
    transport : httpx.AsyncBaseTransport, optional
        Custom HTTP transport.

    Returns
    -------
    OAuthProvider
        A configured provider instance.
    """
    return OAuthProvider(
        client_id=settings.client_id,
        authorize_url=settings.authorize_url,
        token_url=settings.token_url,
        redirect_uri=settings.redirect_uri,
        scopes=settings.scopes.split(),
        user_agent=settings.user_agent,
        request_timeout=settings.request_timeout_seconds,
        transport=transport,
    )
