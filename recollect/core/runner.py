"""Dedicated asyncio loop for synchronous callers such as the Flask app."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Coroutine
from concurrent.futures import Future
from typing import Any

from loguru import logger


class BackgroundLoop:
    """Runs an event loop forever on a daemon thread.

    Tasks spawned by submitted coroutines keep running after the coroutine
    that created them has returned.
    """

    def __init__(self, name: str = "recollect-loop"):
        self.name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def _run() -> None:
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()

            self._loop = loop
            self._thread = threading.Thread(target=_run, name=self.name, daemon=True)
            self._thread.start()
            ready.wait()
            logger.debug(f"Background loop {self.name} started")

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        self.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
        """Run ``coro`` on the loop and block for its result."""

        return self.submit(coro).result(timeout)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            if not self.running or self._loop is None:
                return
            loop = self._loop
            loop.call_soon_threadsafe(loop.stop)
            self._thread.join(timeout)
            if not loop.is_running():
                loop.close()
            self._loop = None
            self._thread = None
            logger.debug(f"Background loop {self.name} stopped")
