"""Unit tests for the loopback OAuth2 redirect receiver."""

# pylint: disable=consider-using-with

from __future__ import annotations

import contextlib
import socket
import threading
import time

from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import urlopen

import pytest

from hyprism.auth.callback_server import CallbackResult, OAuthCallbackServer


def _get(url: str) -> tuple[int, str]:
    """GET a URL, returning status and body even for error statuses."""
    try:
        resp = urlopen(url, timeout=5)  # noqa: S310
    except HTTPError as exc:
        return exc.code, exc.read().decode("utf-8")
    return resp.status, resp.read().decode("utf-8")


class _Received:
    """Listener that records delivered results."""

    def __init__(self) -> None:
        self.results: list[CallbackResult] = []
        self._event = threading.Event()

    def __call__(self, result: CallbackResult) -> None:
        self.results.append(result)
        self._event.set()

    def wait(self, timeout: float) -> CallbackResult | None:
        if self._event.wait(timeout=timeout):
            return self.results[0]
        return None


class TestOAuthCallbackServer:
    """Tests for OAuthCallbackServer."""

    def test_start_binds_loopback_port(self) -> None:
        """start() returns a real OS-assigned port."""
        server = OAuthCallbackServer()
        port = server.start()
        try:
            assert port > 0
            assert server.port == port
            assert server.is_running
            assert server.callback_url == f"http://127.0.0.1:{port}/authorization-callback"
        finally:
            server.stop()
        assert not server.is_running

    def test_nothing_delivered_without_redirect(self) -> None:
        """The listener is not called until a redirect arrives."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        server.start()
        try:
            assert received.wait(timeout=0.2) is None
        finally:
            server.stop()

    def test_callback_with_code(self) -> None:
        """Redirect with a code yields 200 and captures code and state."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        server.start()
        try:
            params = urlencode({"code": "abc123", "state": "s1"})
            status, body = _get(f"{server.callback_url}?{params}")

            assert status == 200
            assert "Authentication successful!" in body

            result = received.wait(timeout=1.0)
            assert result == CallbackResult(code="abc123", state="s1")
            assert result.ok
        finally:
            server.stop()

    def test_callback_with_error(self) -> None:
        """Redirect with an error yields 400 and captures the error."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        server.start()
        try:
            params = urlencode({"error": "access_denied", "error_description": "User cancelled"})
            status, body = _get(f"{server.callback_url}?{params}")

            assert status == 400
            assert "User cancelled" in body

            result = received.wait(timeout=1.0)
            assert result is not None
            assert result.error == "access_denied"
            assert result.error_description == "User cancelled"
            assert result.code is None
            assert not result.ok
        finally:
            server.stop()

    def test_error_page_escapes_description(self) -> None:
        """Provider text is HTML-escaped on the error page."""
        server = OAuthCallbackServer()
        server.start()
        try:
            params = urlencode({"error": "bad", "error_description": "<script>x</script>"})
            _, body = _get(f"{server.callback_url}?{params}")
            assert "<script>x</script>" not in body
            assert "&lt;script&gt;" in body
        finally:
            server.stop()

    def test_callback_without_code_or_error(self) -> None:
        """Redirect with neither code nor error is a missing_code failure."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        server.start()
        try:
            status, _ = _get(f"{server.callback_url}?state=only")
            assert status == 400

            result = received.wait(timeout=1.0)
            assert result is not None
            assert result.error == "missing_code"
            assert result.error_description == "No authorization code received"
        finally:
            server.stop()

    def test_waiting_page(self) -> None:
        """Root path returns the waiting page."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        server.start()
        try:
            status, body = _get(f"http://127.0.0.1:{server.port}/")
            assert status == 200
            assert "Waiting for authentication" in body
            assert received.wait(timeout=0.1) is None
        finally:
            server.stop()

    def test_unknown_path_is_404(self) -> None:
        """Other paths return 404 and deliver nothing."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        server.start()
        try:
            status, _ = _get(f"http://127.0.0.1:{server.port}/favicon.ico")
            assert status == 404
            assert received.wait(timeout=0.1) is None
        finally:
            server.stop()

    def test_custom_callback_path(self) -> None:
        """The receiver serves the configured path only."""
        server = OAuthCallbackServer(callback_path="/cb")
        server.start()
        try:
            status, _ = _get(f"http://127.0.0.1:{server.port}/authorization-callback?code=x")
            assert status == 404
            status, _ = _get(f"http://127.0.0.1:{server.port}/cb?code=x")
            assert status == 200
        finally:
            server.stop()

    def test_only_first_callback_captured(self) -> None:
        """Only the first callback result is captured."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        server.start()
        try:
            _get(f"{server.callback_url}?{urlencode({'code': 'first'})}")
            _get(f"{server.callback_url}?{urlencode({'code': 'second'})}")

            result = received.wait(timeout=1.0)
            assert result is not None
            assert result.code == "first"
            time.sleep(0.1)
            assert [r.code for r in received.results] == ["first"]
        finally:
            server.stop()

    def test_listener_exception_does_not_break_response(self) -> None:
        """A failing listener is logged and the browser still gets a page."""

        received = _Received()

        def boom(result: CallbackResult) -> None:
            received(result)
            raise RuntimeError("listener failed")

        server = OAuthCallbackServer(on_result=boom)
        server.start()
        try:
            status, _ = _get(f"{server.callback_url}?code=abc")
            assert status == 200
            assert received.wait(timeout=1.0) is not None
        finally:
            server.stop()

    def test_callback_from_background_thread(self) -> None:
        """A redirect arriving later is delivered from the server thread."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        server.start()

        def send_request() -> None:
            time.sleep(0.1)
            with contextlib.suppress(Exception):
                urlopen(f"{server.callback_url}?code=late", timeout=5)  # noqa: S310

        t = threading.Thread(target=send_request, daemon=True)
        t.start()
        try:
            result = received.wait(timeout=5.0)
            assert result is not None
            assert result.code == "late"
        finally:
            server.stop()

    def test_stop_releases_port(self) -> None:
        """After stop() the port can be bound again."""
        server = OAuthCallbackServer()
        port = server.start()
        server.stop()

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("127.0.0.1", port))

    def test_stop_is_idempotent(self) -> None:
        """Calling stop() twice, or before start(), is safe."""
        server = OAuthCallbackServer()
        server.stop()
        server.start()
        server.stop()
        server.stop()

    def test_idle_connection_does_not_block_callback(self) -> None:
        """A pre-opened connection that never sends a request is not waited on."""
        received = _Received()
        server = OAuthCallbackServer(on_result=received)
        port = server.start()
        idle = socket.create_connection(("127.0.0.1", port), timeout=5)
        try:
            status, _ = _get(f"{server.callback_url}?code=abc123")
            assert status == 200
            assert received.wait(timeout=1.0) == CallbackResult(code="abc123")
        finally:
            idle.close()
            server.stop()

    def test_stop_with_idle_connection(self) -> None:
        """stop() returns promptly while a connection sits idle."""
        server = OAuthCallbackServer()
        port = server.start()
        idle = socket.create_connection(("127.0.0.1", port), timeout=5)
        try:
            time.sleep(0.1)
            start = time.monotonic()
            server.stop()
            assert time.monotonic() - start < 2.0
            assert not server.is_running
        finally:
            idle.close()

    def test_security_headers(self) -> None:
        """Pages are served with no-store and a restrictive CSP."""
        server = OAuthCallbackServer()
        server.start()
        try:
            resp = urlopen(f"http://127.0.0.1:{server.port}/", timeout=5)  # noqa: S310
            assert resp.headers["Cache-Control"] == "no-store"
            assert "default-src 'none'" in resp.headers["Content-Security-Policy"]
            assert resp.headers["X-Content-Type-Options"] == "nosniff"
        finally:
            server.stop()


class TestCallbackResult:
    """Tests for CallbackResult."""

    @pytest.mark.parametrize(
        ("result", "ok"),
        [
            (CallbackResult(code="abc"), True),
            (CallbackResult(error="access_denied"), False),
            (CallbackResult(code="", error=None), False),
        ],
    )
    def test_ok(self, result: CallbackResult, ok: bool) -> None:
        """ok is true only for a non-empty code without error."""
        assert result.ok is ok
