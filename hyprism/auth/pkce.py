"""PKCE (Proof Key for Code Exchange) implementation.

RFC 7636 - Proof Key for Code Exchange for OAuth 2.0 public clients.
Uses S256 challenge method (SHA-256 hash of the code verifier).

Also builds the opaque ``state`` parameter the identity provider
echoes back: a random token plus the loopback port, JSON-encoded and
then base64-encoded.
"""

from __future__ import annotations

import binascii
import hashlib
import json
import secrets

from base64 import b64decode, b64encode, urlsafe_b64encode
from dataclasses import dataclass

from ..exceptions import CryptoError


VERIFIER_BYTES = 32
STATE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
STATE_LENGTH = 26


def _random_bytes(count: int) -> bytes:
    """Read ``count`` bytes from the OS CSPRNG."""
    try:
        return secrets.token_bytes(count)
    except (OSError, NotImplementedError) as exc:
        msg = "Secure random source unavailable"
        raise CryptoError(msg) from exc


def new_verifier(length: int = VERIFIER_BYTES) -> str:
    """Generate a PKCE code verifier.

    Parameters
    ----------
    length : int
        Number of raw random bytes (default 32, giving 43 characters).

    Returns
    -------
    str
        URL-safe base64 without padding.

    Raises
    ------
    CryptoError
        If the OS random source fails.
    """
    return urlsafe_b64encode(_random_bytes(length)).rstrip(b"=").decode("ascii")


def challenge_from(verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    Parameters
    ----------
    verifier : str
        The code verifier.

    Returns
    -------
    str
        Base64url-encoded SHA-256 of the verifier, without padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class PKCEChallenge:
    """PKCE code verifier and challenge pair.

    Attributes
    ----------
    verifier : str
        The code verifier (high-entropy random string).
    challenge : str
        The code challenge (base64url-encoded SHA-256 hash of verifier).
    method : str
        The challenge method, always "S256".
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = VERIFIER_BYTES) -> PKCEChallenge:
        """Generate a new PKCE code verifier and challenge.

        Parameters
        ----------
        length : int
            Number of bytes for the random verifier (default 32).

        Returns
        -------
        PKCEChallenge
            A new PKCE challenge pair.
        """
        verifier = new_verifier(length)
        return cls(verifier=verifier, challenge=challenge_from(verifier))


def random_state_text() -> str:
    """Generate the 26-character random part of the state parameter.

    Each character is one random byte masked to 5 bits and used as an
    index into ``A-Z2-7``.
    """
    return "".join(STATE_ALPHABET[b & 0x1F] for b in _random_bytes(STATE_LENGTH))


@dataclass(frozen=True)
class AntiCsrfState:
    """Random state token bound to the loopback callback port.

    Attributes
    ----------
    value : str
        The random state text.
    port : int
        The port the callback receiver is bound to.
    """

    value: str
    port: int

    @classmethod
    def generate(cls, port: int) -> AntiCsrfState:
        """Create a fresh state for the given callback port."""
        return cls(value=random_state_text(), port=port)

    def encode(self) -> str:
        """Encode as base64 of ``{"state": ..., "port": "..."}``."""
        payload = json.dumps({"state": self.value, "port": str(self.port)}, separators=(",", ":"))
        return b64encode(payload.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, param: str) -> AntiCsrfState:
        """Parse a state parameter produced by :meth:`encode`.

        Raises
        ------
        ValueError
            If the parameter is not base64 JSON with ``state`` and ``port``.
        """
        try:
            obj = json.loads(b64decode(param, validate=True))
            return cls(value=str(obj["state"]), port=int(obj["port"]))
        except (binascii.Error, UnicodeDecodeError, TypeError, KeyError) as exc:
            msg = f"Malformed state parameter: {param!r}"
            raise ValueError(msg) from exc
