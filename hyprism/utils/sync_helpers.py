"""Synchronous helpers for the async HTTP clients.

Provides blocking wrappers that allow sync code (the login flow, the
CLI, a GUI callback) to await coroutines. All coroutines run on one
background event loop that persists across calls, so the shared
``httpx.AsyncClient`` instances stay bound to a live loop.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
import time

from typing import TYPE_CHECKING, Any, TypeVar


if TYPE_CHECKING:
    from collections.abc import Coroutine


T = TypeVar("T")


class _BackgroundLoopHolder:
    """Holder for the background event loop to avoid global statement."""

    loop: asyncio.AbstractEventLoop | None = None
    thread: threading.Thread | None = None


_holder = _BackgroundLoopHolder()
_holder_lock = threading.Lock()


def get_background_loop() -> asyncio.AbstractEventLoop:
    """Get or create the background event loop.

    The loop runs in a daemon thread and is reused by every
    ``run_async`` call.
    """
    with _holder_lock:
        if _holder.loop is not None and _holder.loop.is_running():
            return _holder.loop

        loop = asyncio.new_event_loop()
        _holder.loop = loop

        def run_loop() -> None:
            asyncio.set_event_loop(loop)
            loop.run_forever()

        _holder.thread = threading.Thread(target=run_loop, name="hyprism-async", daemon=True)
        _holder.thread.start()

        for _ in range(50):  # 500ms max wait
            if loop.is_running():
                break
            time.sleep(0.01)

        return loop


def run_async(coro: Coroutine[Any, Any, T], timeout: float | None = 35.0) -> T:
    """Run an async coroutine from sync code.

    NOTE: This function CANNOT be called from a coroutine running on
    the background loop - it would deadlock. Use ``await`` there.

    Parameters
    ----------
    coro : Coroutine
        The coroutine to run.
    timeout : float, optional
        Timeout in seconds. Default is 35.0. On expiry the coroutine
        is cancelled.

    Returns
    -------
    T
        The result of the coroutine.

    Raises
    ------
    TimeoutError
        If the operation times out.
    RuntimeError
        If called from within the background loop.
    """
    loop = get_background_loop()

    try:
        running_loop = asyncio.get_running_loop()
    except RuntimeError:
        running_loop = None

    if running_loop is loop:
        coro.close()
        raise RuntimeError(
            "run_async() cannot be called from the background loop. Use 'await' directly instead."
        )

    future = asyncio.run_coroutine_threadsafe(coro, loop)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        future.cancel()
        raise TimeoutError(f"Operation did not finish within {timeout}s") from None
