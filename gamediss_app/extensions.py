"""
Application extensions: the resolution engine running on its own event loop.

Flask routes are sync, the engine is async and keeps loop-bound state
(locks, single-flight futures, HTTP clients, the catalog refresh task).
EngineRunner gives the engine one long-lived loop on a daemon thread and
lets request threads submit coroutines to it.
"""

import asyncio
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Awaitable, Callable, Optional, TypeVar

from .log import log, logger
from .resolution import ResolutionEngine


T = TypeVar('T')


class EngineRunner:
    """Owns a background event loop thread and the engine living on it."""

    def __init__(self, engine: ResolutionEngine, request_timeout: float = 15.0):
        self.engine = engine
        self.request_timeout = request_timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._lock = threading.Lock()
        # Set when engine.start() raised on the loop thread
        self.start_error: Optional[BaseException] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, wait_for_catalog: bool = False) -> None:
        """
        Start the loop thread and the engine.

        Args:
            wait_for_catalog: Block until the first catalog load attempt is
                done instead of letting it run in the background
        """
        with self._lock:
            if self.is_running:
                return

            def worker():
                loop = asyncio.new_event_loop()
                asyncio.set_event_loop(loop)
                self._loop = loop
                self._ready.set()
                try:
                    loop.run_forever()
                finally:
                    loop.close()

            self._thread = threading.Thread(target=worker, name="gamediss-engine", daemon=True)
            self._thread.start()
            self._ready.wait()

        future = asyncio.run_coroutine_threadsafe(self.engine.start(), self._loop)
        future.add_done_callback(self._on_started)
        if wait_for_catalog:
            future.result()
        log("🎮 Resolution engine started")

    def _on_started(self, future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.start_error = error
            logger.error(f"Resolution engine failed to start: {error!r}", exc_info=error)

    def run(self, factory: Callable[[ResolutionEngine], Awaitable[T]],
            timeout: Optional[float] = None) -> T:
        """
        Run a coroutine against the engine and wait for its result.

        Args:
            factory: Called with the engine, returns the coroutine to run
            timeout: Seconds to wait (defaults to request_timeout)

        Raises:
            TimeoutError: If the coroutine does not finish in time
        """
        if not self.is_running or self._loop is None:
            raise RuntimeError("Engine loop is not running")

        future = asyncio.run_coroutine_threadsafe(factory(self.engine), self._loop)
        try:
            return future.result(timeout or self.request_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise TimeoutError("Engine call timed out") from None

    def stop(self) -> None:
        """Close the engine and stop the loop thread."""
        if not self.is_running or self._loop is None:
            return
        asyncio.run_coroutine_threadsafe(self.engine.close(), self._loop).result(10)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._thread = None
        self._loop = None
        self._ready.clear()
        log("🛑 Resolution engine stopped")
