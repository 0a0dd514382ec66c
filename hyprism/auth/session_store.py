"""Pluggable session storage backends.

Provides the SessionStore ABC, the owner-only JSON file store used by
the launcher, and an in-memory store for tests and embedding.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import threading

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from ..env import get_session_path
from ..exceptions import SessionReadError, SessionWriteError
from .models import Session


logger = logging.getLogger("hyprism.auth")

_DIR_MODE = 0o700
_FILE_MODE = 0o600


class SessionStore(ABC):
    """Abstract base class for session persistence."""

    @abstractmethod
    def save(self, session: Session) -> None:
        """Persist the session, replacing any previous one.

        Parameters
        ----------
        session : Session
            A fully populated session.
        """

    @abstractmethod
    def load(self) -> Session | None:
        """Load the stored session.

        Returns
        -------
        Session or None
            The stored session, or None if nobody has logged in.

        Raises
        ------
        SessionReadError
            If stored data exists but is unreadable.
        """

    @abstractmethod
    def clear(self) -> None:
        """Delete the stored session. Absence is not an error."""

    def exists(self) -> bool:
        """Check whether a session is stored."""
        try:
            return self.load() is not None
        except SessionReadError:
            return True


def _serialize_session(session: Session) -> str:
    """Serialize a Session to indented JSON."""
    return session.model_dump_json(indent=2)


def _deserialize_session(data: str | bytes) -> Session:
    """Deserialize a Session from JSON.

    Raises
    ------
    pydantic.ValidationError
        If the JSON is invalid or any field is missing or empty.
    """
    return Session.model_validate_json(data)


class FileSessionStore(SessionStore):
    """JSON file store restricted to the current user.

    The directory is created with mode ``0700`` and the file is written
    with mode ``0600`` via a temporary file and an atomic rename.

    Parameters
    ----------
    path : str or Path, optional
        Session file location (defaults to ``<app dir>/session.json``).
    """

    def __init__(self, path: str | Path | None = None) -> None:
        """Initialize the file session store."""
        self.path = Path(path).expanduser() if path else get_session_path()

    def save(self, session: Session) -> None:
        """Write the session file atomically with owner-only permissions."""
        data = _serialize_session(session)
        directory = self.path.parent
        try:
            directory.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
        except OSError as exc:
            msg = f"Failed to create session directory: {exc}"
            raise SessionWriteError(msg, path=str(self.path)) from exc

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.chmod(tmp_path, _FILE_MODE)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            msg = f"Failed to write session file: {exc}"
            raise SessionWriteError(msg, path=str(self.path)) from exc

        logger.info("Session saved for user: %s (UUID: %s)", session.username, session.uuid)

    def load(self) -> Session | None:
        """Read the session file, or None if it does not exist."""
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            msg = f"Failed to read session file: {exc}"
            raise SessionReadError(msg, path=str(self.path)) from exc

        try:
            return _deserialize_session(data)
        except ValidationError as exc:
            msg = f"Failed to parse session: {exc.error_count()} invalid field(s)"
            raise SessionReadError(msg, path=str(self.path)) from exc

    def clear(self) -> None:
        """Remove the session file."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            msg = f"Failed to remove session file: {exc}"
            raise SessionWriteError(msg, path=str(self.path)) from exc
        logger.info("Session cleared")


class MemorySessionStore(SessionStore):
    """In-memory session store for tests and single-process embedding.

    Stores the serialized form so loads go through the same
    validation as the file store.
    """

    def __init__(self) -> None:
        """Initialize the memory session store."""
        self._data: str | None = None
        self._lock = threading.Lock()

    def save(self, session: Session) -> None:
        """Save the session in memory."""
        with self._lock:
            self._data = _serialize_session(session)

    def load(self) -> Session | None:
        """Load the session from memory."""
        with self._lock:
            data = self._data
        if data is None:
            return None
        try:
            return _deserialize_session(data)
        except ValidationError as exc:
            msg = "Failed to parse in-memory session"
            raise SessionReadError(msg) from exc

    def clear(self) -> None:
        """Forget the stored session."""
        with self._lock:
            self._data = None

