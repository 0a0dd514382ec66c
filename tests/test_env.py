"""Tests for per-user directory resolution."""

from __future__ import annotations

import stat
import sys

from pathlib import Path

import pytest

from hyprism import env


class TestAppDir:
    """Tests for get_default_app_dir()."""

    def test_override(self, isolated_app_dir: Path) -> None:
        """HYPRISM_APP_DIR wins over the platform default."""
        assert env.get_default_app_dir() == isolated_app_dir

    def test_linux_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Other platforms use ~/.config/HyPrism."""
        monkeypatch.delenv("HYPRISM_APP_DIR")
        monkeypatch.setattr(env.sys, "platform", "linux")
        assert env.get_default_app_dir() == Path("~/.config/HyPrism").expanduser()

    def test_macos_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """macOS uses Application Support."""
        monkeypatch.delenv("HYPRISM_APP_DIR")
        monkeypatch.setattr(env.sys, "platform", "darwin")
        expected = Path("~/Library/Application Support/HyPrism").expanduser()
        assert env.get_default_app_dir() == expected

    def test_windows_default(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Windows uses %APPDATA%."""
        monkeypatch.delenv("HYPRISM_APP_DIR")
        monkeypatch.setattr(env.sys, "platform", "win32")
        monkeypatch.setenv("APPDATA", str(tmp_path))
        assert env.get_default_app_dir() == tmp_path / "HyPrism"

    def test_session_path(self, isolated_app_dir: Path) -> None:
        """The session file lives in the app dir."""
        assert env.get_session_path() == isolated_app_dir / "session.json"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_create_folders(self, isolated_app_dir: Path) -> None:
        """create_folders() makes an owner-only directory."""
        created = env.create_folders()
        assert created == isolated_app_dir
        assert stat.S_IMODE(created.stat().st_mode) == 0o700
