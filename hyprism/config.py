"""Configuration system for HyPrism using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.hyprism] section (project-level)
3. ./hyprism.toml (project-level, explicit)
4. <app dir>/config.toml (user-level, overrides project)
5. HYPRISM_CONFIG_FILE (explicit file)
6. Environment variables (highest priority)

Environment variables use HYPRISM_ prefix with nested delimiter __.
Example: HYPRISM_ACCOUNT__AUTH_TIMEOUT_SECONDS, HYPRISM_LOG__LEVEL
"""

from __future__ import annotations

import logging
import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .env import get_default_app_dir


if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


logger = logging.getLogger("hyprism.config")


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    hyprism_toml = Path("hyprism.toml")
    if hyprism_toml.exists():
        files.append(hyprism_toml)

    user_config = get_default_app_dir() / "config.toml"
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("HYPRISM_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring invalid config file %s: %s", config_file, exc)
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("hyprism", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class AccountSettings(BaseSettings):
    """Game account (OAuth2) settings.

    Environment prefix: HYPRISM_ACCOUNT__
    Example: HYPRISM_ACCOUNT__AUTH_TIMEOUT_SECONDS=120

    TOML section: [account]
    """

    model_config = SettingsConfigDict(
        env_prefix="HYPRISM_ACCOUNT__",
        extra="ignore",
    )

    client_id: str = Field(
        default="hytale-launcher",
        description="OAuth2 public client ID of the launcher",
    )
    authorize_url: str = Field(
        default="https://oauth.accounts.hytale.com/oauth2/auth",
        description="Authorization endpoint opened in the browser",
    )
    token_url: str = Field(
        default="https://oauth.accounts.hytale.com/oauth2/token",
        description="Token endpoint for code and refresh exchanges",
    )
    launcher_data_url: str = Field(
        default="https://account-data.hytale.com/my-account/get-launcher-data",
        description="Account-data endpoint listing game profiles",
    )
    session_url: str = Field(
        default="https://sessions.hytale.com/game-session/new",
        description="Endpoint issuing game-session and identity tokens",
    )
    redirect_uri: str = Field(
        default="https://accounts.hytale.com/consent/client",
        description="Redirect URI registered for the client",
    )
    scopes: str = Field(
        default="openid offline auth:launcher",
        description="Space-separated OAuth2 scopes to request",
    )
    callback_path: str = Field(
        default="/authorization-callback",
        description="Path served by the loopback callback receiver",
    )
    user_agent: str = Field(
        default="HyPrism/1.0",
        description="User-Agent header sent on every request",
    )
    auth_timeout_seconds: float = Field(
        default=300.0,
        ge=10.0,
        description="Maximum seconds to wait for the browser redirect",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Timeout for each HTTP request",
    )
    session_file: str = Field(
        default="",
        description="Session file location (empty for <app dir>/session.json)",
    )


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: HYPRISM_LOG__
    Example: HYPRISM_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="HYPRISM_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


_SECTION_TYPES: dict[str, type[BaseSettings]] = {
    "account": AccountSettings,
    "log": LogSettings,
}


class HyPrismSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: HYPRISM__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.hyprism] section
    3. ./hyprism.toml (project-level)
    4. <app dir>/config.toml (user-level, overrides project)
    5. HYPRISM_CONFIG_FILE
    6. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="HYPRISM__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    account: AccountSettings = Field(default_factory=AccountSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    _sections: ClassVar[list[tuple[str, str, str]]] = [
        ("Account", "account", "ACCOUNT"),
        ("Logging", "log", "LOG"),
    ]

    def __init__(self, **data: Any) -> None:
        toml_config = _load_toml_config()

        # Section objects are rebuilt so environment variables still
        # win over TOML values.
        for _, section, _ in self._sections:
            file_values = toml_config.get(section)
            if isinstance(file_values, dict) and section not in data:
                section_cls = _SECTION_TYPES[section]
                env_values = section_cls().model_dump(exclude_unset=True)
                data[section] = section_cls(**{**file_values, **env_values})

        super().__init__(**data)

    def to_toml(self) -> str:
        """Export settings as TOML."""
        lines = ["# HyPrism Configuration", ""]
        all_data = self.model_dump()
        for _, section, _ in self._sections:
            lines.append(f"[{section}]")
            for field_name, field_value in all_data[section].items():
                if isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                elif isinstance(field_value, str):
                    value_str = f'"{field_value}"'
                else:
                    value_str = str(field_value)
                lines.append(f"{field_name} = {value_str}")
            lines.append("")
        return "\n".join(lines)

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = ["# HyPrism Environment Variables", ""]
        all_data = self.model_dump()
        for _, section, env_prefix in self._sections:
            for field_name, field_value in all_data[section].items():
                env_name = f"HYPRISM_{env_prefix}__{field_name.upper()}"
                if isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                else:
                    value_str = str(field_value)
                lines.append(f'export {env_name}="{value_str}"')
        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["HyPrism Configuration", "=" * 60]
        all_data = self.model_dump()
        for display_name, section, _ in self._sections:
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in all_data[section].items():
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:24} = {value_str}")
        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> HyPrismSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return HyPrismSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> HyPrismSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
