"""Command-line interface for HyPrism account management."""

from __future__ import annotations

import argparse
import json
import sys
import threading

from typing import TYPE_CHECKING

from .exceptions import HyPrismException
from .log import configure_from_settings, enable_debug, redact_sensitive_data


if TYPE_CHECKING:
    from .app import HyPrism
    from .config import HyPrismSettings


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Parser with all subcommands registered.
    """
    parser = argparse.ArgumentParser(
        prog="hyprism",
        description="HyPrism account login and session tools",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    login_parser = subparsers.add_parser("login", help="Log in through the system browser")
    login_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the browser redirect (uses config default)",
    )
    login_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Print the authorization URL instead of opening a browser",
    )

    subparsers.add_parser("logout", help="Delete the stored session")

    status_parser = subparsers.add_parser("status", help="Show login status (no network)")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Print status as JSON",
    )

    subparsers.add_parser("profile", help="Show the logged-in profile, refreshing if needed")
    subparsers.add_parser("session", help="Show the valid session with tokens redacted")

    config_parser = subparsers.add_parser("config", help="Show or export configuration")
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--toml",
        action="store_true",
        help="Export configuration as TOML",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the main CLI entry point.

    Parameters
    ----------
    argv : list[str], optional
        Arguments (defaults to ``sys.argv[1:]``).

    Returns
    -------
    int
        Exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    from .config import get_settings

    settings = get_settings()
    configure_from_settings(settings.log)
    if args.debug:
        enable_debug()

    if args.command == "config":
        return handle_config(args, settings)

    from .app import HyPrism

    open_browser = _print_url if args.command == "login" and args.no_browser else None
    app = HyPrism(settings=settings, open_browser=open_browser)
    try:
        if args.command == "login":
            return handle_login(args, app)
        if args.command == "logout":
            app.logout()
            print("Logged out.")
            return 0
        if args.command == "status":
            return handle_status(args, app)
        if args.command == "profile":
            return handle_profile(app)
        if args.command == "session":
            return handle_session(app)
    except HyPrismException as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        app.close()

    parser.print_help()
    return 0


def _print_url(url: str) -> bool:
    print(f"Open this URL to log in:\n  {url}")
    return True


def handle_login(args: argparse.Namespace, app: HyPrism) -> int:
    """Handle the login command.

    Ctrl-C while waiting for the browser cancels the attempt.

    Returns
    -------
    int
        Exit code.
    """
    if args.timeout is not None:
        app.flow.auth_timeout = args.timeout

    app.on_event = lambda name, payload: print(payload) if name == "auth-progress" else None

    cancel_event = threading.Event()
    try:
        session = app.login_interactive(cancel_event=cancel_event)
    except KeyboardInterrupt:
        cancel_event.set()
        print("\nLogin cancelled.", file=sys.stderr)
        return 130

    print(f"Logged in as {session.username} ({session.uuid})")
    return 0


def handle_status(args: argparse.Namespace, app: HyPrism) -> int:
    """Handle the status command."""
    status = app.get_auth_status()
    if args.json:
        print(json.dumps(status))
    elif status["logged_in"]:
        print(f"Logged in as {status['username']} ({status['uuid']})")
    elif status.get("expired"):
        print("Session expired; it will be refreshed on next use.")
    else:
        print("Not logged in.")
    return 0


def handle_profile(app: HyPrism) -> int:
    """Handle the profile command."""
    profile = app.get_user_profile()
    for key, value in profile.items():
        print(f"{key:18} {value}")
    return 0


def handle_session(app: HyPrism) -> int:
    """Handle the session command."""
    session = app.get_valid_session()
    data = redact_sensitive_data(session.model_dump(mode="json"))
    print(json.dumps(data, indent=2))
    return 0


def handle_config(args: argparse.Namespace, settings: HyPrismSettings) -> int:
    """Handle the config command."""
    if args.toml:
        print(settings.to_toml())
    elif args.env:
        print(settings.to_env())
    else:
        print(settings.show())
    return 0
