"""Logging setup for HyPrism.

Every module logs under the ``hyprism`` namespace (``hyprism.auth``,
``hyprism.config``). The root ``hyprism`` logger owns a single stderr
handler; its level comes from the ``[log]`` settings or ``--debug``.
"""

from __future__ import annotations

import logging
import sys

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from .config import LogSettings


LOGGER_NAME = "hyprism"
DEFAULT_FORMAT = "%(name)s - %(levelname)s - %(message)s"
REDACTED = "[REDACTED]"


class _LoggerHolder:
    """Holder for the configured package logger."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Return the ``hyprism`` logger, attaching a stderr handler on first use.

    Returns
    -------
    logging.Logger
        The package logger (level ``WARNING`` until configured).
    """
    if _LoggerHolder.instance is not None:
        return _LoggerHolder.instance

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.WARNING)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        logger.addHandler(handler)

    _LoggerHolder.instance = logger
    return logger


def set_level(level: int | str) -> None:
    """Set the package log level.

    Parameters
    ----------
    level : int or str
        A ``logging`` constant or its name, case-insensitive.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Log callback server access lines, flow transitions and endpoint calls."""
    set_level(logging.DEBUG)


def configure_from_settings(settings: LogSettings) -> logging.Logger:
    """Apply log level and format from settings.

    Parameters
    ----------
    settings : LogSettings
        The ``[log]`` configuration section.

    Returns
    -------
    logging.Logger
        The configured hyprism logger.
    """
    logger = get_logger()
    set_level(settings.level)
    formatter = logging.Formatter(settings.format)
    for handler in logger.handlers:
        handler.setFormatter(formatter)
    return logger


# Substrings marking a key whose value must never be printed
_SENSITIVE_PARTS = ("token", "verifier", "code", "secret", "password", "auth", "credential")


def _is_sensitive(key: Any) -> bool:
    name = str(key).lower()
    return any(part in name for part in _SENSITIVE_PARTS)


def redact_sensitive_data(data: Any, max_depth: int = 5) -> Any:
    """Return a copy of ``data`` safe to print or log.

    Dict values whose key looks like a credential (``access_token``,
    ``code_verifier``, ...) become ``"[REDACTED]"``. Dicts and lists are
    walked up to ``max_depth`` levels; deeper containers are replaced
    by ``"[MAX_DEPTH]"``. Other values pass through unchanged.

    Parameters
    ----------
    data : Any
        Value to redact, typically ``Session.model_dump(mode="json")``.
    max_depth : int, optional
        Maximum nesting to walk (default 5).

    Returns
    -------
    Any
        The redacted copy.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"
    if isinstance(data, dict):
        return {
            k: REDACTED if _is_sensitive(k) else redact_sensitive_data(v, max_depth - 1)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]
    return data
