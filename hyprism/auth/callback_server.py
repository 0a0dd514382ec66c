"""Ephemeral localhost HTTP server for OAuth2 redirect capture.

Binds an OS-assigned port on the loopback interface before the
authorization URL is built (the port travels inside the ``state``
parameter), serves the provider's redirect once, and hands the
authorization code or error to the ``on_result`` listener.

Uses only stdlib (http.server, threading, urllib.parse).
"""

# pylint: disable=logging-too-many-args

# pylint: disable=C0103,W0212

from __future__ import annotations

import html
import logging
import threading

from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("hyprism.auth")

DEFAULT_CALLBACK_PATH = "/authorization-callback"
# Idle or half-open connections are dropped after this many seconds
CONNECTION_TIMEOUT = 5.0

_PAGE_STYLE = """
  body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #14161c; color: #e8e8ee; }
  .card { text-align: center; padding: 2rem 3rem; background: #1f222b;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.4); }
  h1 { font-size: 1.5rem; margin-bottom: 0.5rem; }
  h1.error { color: #ff6b6b; }
  p { color: #a0a3ad; }
"""

_SUCCESS_HTML = f"""<!DOCTYPE html>
<html>
<head><title>Authentication Complete</title><style>{_PAGE_STYLE}</style></head>
<body><div class="card">
  <h1>Authentication successful!</h1>
  <p>You can close this window and return to HyPrism.</p>
</div></body></html>"""

_ERROR_HTML = """<!DOCTYPE html>
<html>
<head><title>Authentication Error</title><style>{style}</style></head>
<body><div class="card">
  <h1 class="error">Authentication failed</h1>
  <p>{error}</p>
  <p>You can close this window.</p>
</div></body></html>"""

_WAITING_HTML = f"""<!DOCTYPE html>
<html>
<head><title>Waiting for Authentication</title><style>{_PAGE_STYLE}</style></head>
<body><div class="card">
  <h1>Waiting for authentication&hellip;</h1>
  <p>Please complete the login in the browser window.</p>
</div></body></html>"""


@dataclass(frozen=True)
class CallbackResult:
    """Query parameters captured from the provider redirect.

    Exactly one of ``code`` and ``error`` is set. A redirect carrying
    neither is reported with ``error="missing_code"``.
    """

    code: str | None = None
    error: str | None = None
    error_description: str | None = None
    state: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the redirect delivered an authorization code."""
        return self.error is None and bool(self.code)


def _render_error(message: str) -> str:
    return _ERROR_HTML.format(style=_PAGE_STYLE, error=html.escape(message, quote=True))


class OAuthCallbackServer:
    """Ephemeral localhost HTTP server for capturing OAuth2 redirects.

    Parameters
    ----------
    host : str
        Bind address (default ``"127.0.0.1"``).
    port : int
        Port number (``0`` for auto-assign).
    callback_path : str
        Path the provider redirects to.
    on_result : callable, optional
        Invoked once, from the server thread, with the first
        :class:`CallbackResult`.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        callback_path: str = DEFAULT_CALLBACK_PATH,
        on_result: Callable[[CallbackResult], None] | None = None,
    ) -> None:
        """Initialize the callback server."""
        self._host = host
        self._port = port
        self._callback_path = callback_path
        self._on_result = on_result
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._delivered = False
        self._deliver_lock = threading.Lock()
        self._actual_port: int = 0

    @property
    def port(self) -> int:
        """The bound port (``0`` before :meth:`start`)."""
        return self._actual_port

    @property
    def callback_url(self) -> str:
        """Full local URL of the callback route."""
        return f"http://{self._host}:{self._actual_port}{self._callback_path}"

    @property
    def is_running(self) -> bool:
        """Whether the server is currently bound and serving."""
        return self._server is not None

    def _deliver(self, result: CallbackResult) -> bool:
        """Store the first result; later results are dropped.

        Returns
        -------
        bool
            True if this call delivered the result.
        """
        with self._deliver_lock:
            if self._delivered:
                return False
            self._delivered = True

        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception:
                logger.exception("OAuth callback listener failed")
        return True

    def start(self) -> int:
        """Bind the listener and start serving on a daemon thread.

        Returns
        -------
        int
            The OS-assigned port.
        """
        server_ref = self

        class _CallbackHandler(BaseHTTPRequestHandler):
            """HTTP request handler for OAuth2 callbacks."""

            timeout = CONNECTION_TIMEOUT

            def do_GET(self) -> None:
                """Handle GET requests."""
                parsed = urlparse(self.path)

                if parsed.path == server_ref._callback_path:
                    params = parse_qs(parsed.query)
                    code = params.get("code", [None])[0]
                    error = params.get("error", [None])[0]
                    description = params.get("error_description", [None])[0]
                    state = params.get("state", [None])[0]

                    if error:
                        result = CallbackResult(
                            error=error, error_description=description, state=state
                        )
                        status, page = 400, _render_error(f"Error: {description or error}")
                    elif code:
                        result = CallbackResult(code=code, state=state)
                        status, page = 200, _SUCCESS_HTML
                    else:
                        result = CallbackResult(
                            error="missing_code",
                            error_description="No authorization code received",
                            state=state,
                        )
                        status, page = 400, _render_error("No code received.")

                    if not server_ref._deliver(result):
                        logger.debug("Ignoring repeated OAuth callback")
                    self._send_html(page, status=status)

                elif parsed.path == "/":
                    self._send_html(_WAITING_HTML)
                else:
                    self.send_error(404)

            def _send_html(self, html_content: str, status: int = 200) -> None:
                """Send an HTML response with security headers."""
                encoded = html_content.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.send_header("Cache-Control", "no-store")
                self.send_header(
                    "Content-Security-Policy",
                    "default-src 'none'; style-src 'unsafe-inline'",
                )
                self.send_header("X-Content-Type-Options", "nosniff")
                self.end_headers()
                self.wfile.write(encoded)

            def log_message(self, *args: Any) -> None:
                """Redirect HTTP server logging to the hyprism logger."""
                if args:
                    logger.debug("OAuth callback server: %s", args[0] % args[1:])

        self._server = ThreadingHTTPServer((self._host, self._port), _CallbackHandler)
        self._server.daemon_threads = True
        self._actual_port = self._server.server_address[1]

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name=f"hyprism-oauth-callback-{self._actual_port}",
            daemon=True,
        )
        self._thread.start()

        logger.debug("OAuth callback server listening on port %d", self._actual_port)
        return self._actual_port

    def stop(self) -> None:
        """Shut down the server and release the port. Safe to call twice."""
        server = self._server
        self._server = None
        if server is not None:
            server.shutdown()
            server.server_close()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None
        if server is not None:
            logger.debug("OAuth callback server on port %d stopped", self._actual_port)
