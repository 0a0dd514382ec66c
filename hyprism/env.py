"""Per-user application directory resolution."""

from __future__ import annotations

import os
import sys

from pathlib import Path


APP_DIR_NAME = "HyPrism"
SESSION_FILE_NAME = "session.json"


def get_default_app_dir() -> Path:
    """Return the per-user directory holding config and session files.

    ``HYPRISM_APP_DIR`` overrides the platform default:

    - Windows: ``%APPDATA%\\HyPrism`` (``%USERPROFILE%`` if unset)
    - macOS: ``~/Library/Application Support/HyPrism``
    - Others: ``~/.config/HyPrism``

    Returns
    -------
    Path
        The application directory (not created).
    """
    override = os.environ.get("HYPRISM_APP_DIR")
    if override:
        return Path(override).expanduser()

    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.environ.get("USERPROFILE") or "~"
        base_dir = Path(base)
    elif sys.platform == "darwin":
        base_dir = Path("~/Library/Application Support")
    else:
        base_dir = Path("~/.config")
    return (base_dir / APP_DIR_NAME).expanduser()


def get_session_path() -> Path:
    """Return the default location of the persisted session file."""
    return get_default_app_dir() / SESSION_FILE_NAME


def create_folders() -> Path:
    """Create the application directory, restricted to the owner.

    Returns
    -------
    Path
        The created (or existing) directory.
    """
    app_dir = get_default_app_dir()
    app_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    return app_dir
