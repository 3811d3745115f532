"""Dedicated event loop thread for synchronous callers of the async search core.

Flask views run in worker threads without a loop of their own. The Redis
client and the provider calls must all live on one long-running loop, so
coroutines are handed to this thread and their result awaited from the caller.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Optional

logger = logging.getLogger(__name__)


class LoopRunner:
    def __init__(self, name: str = "search-loop") -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_forever, name=name, daemon=True)
        self._started = False
        self._lock = threading.Lock()

    def _run_forever(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def start(self) -> None:
        with self._lock:
            if not self._started:
                self._thread.start()
                self._started = True
                logger.info("Search event loop started")

    def run(self, coro: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """Run ``coro`` on the loop thread and block until it finishes."""
        self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
            self._loop.close()
        logger.info("Search event loop stopped")
