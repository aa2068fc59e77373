"""Rolling-window throttle for calls to the external generation service."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any

logger = logging.getLogger(__name__)


class RateLimiter:
    """Starts at most ``max_requests`` tasks per ``window_seconds``.

    Tasks wait in a FIFO queue. A single drain thread pops them in order;
    when the window is full it sleeps ``backoff_seconds`` and checks again.
    The window resets once ``window_seconds`` have passed since the last
    reset. Submitted tasks cannot be cancelled; wrap ``Future.result`` with
    a timeout if the caller needs to give up waiting.
    """

    def __init__(
        self,
        max_requests: int = 50,
        window_seconds: float = 60.0,
        backoff_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        executor: Executor | None = None,
        max_workers: int = 8,
    ) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be at least 1, got {max_requests}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._sleep = sleep
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="rate-limited"
        )

        self._lock = threading.Lock()
        self._queue: deque[tuple[Callable[[], Any], Future]] = deque()
        self._draining = False
        self._drain_thread: threading.Thread | None = None
        self._window_count = 0
        self._window_start = clock()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def window_count(self) -> int:
        with self._lock:
            return self._window_count

    def submit(self, task: Callable[[], Any]) -> Future:
        """Queue a zero-argument callable; returns a Future for its result."""
        future: Future = Future()
        # Marked running at once so Future.cancel() is refused
        future.set_running_or_notify_cancel()
        with self._lock:
            self._queue.append((task, future))
            if not self._draining:
                self._draining = True
                self._drain_thread = threading.Thread(
                    target=self._drain, name="rate-limiter-drain", daemon=True
                )
                self._drain_thread.start()
        return future

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._queue:
                    self._draining = False
                    return
                now = self._clock()
                if now - self._window_start >= self.window_seconds:
                    self._window_count = 0
                    self._window_start = now
                at_capacity = self._window_count >= self.max_requests
                if not at_capacity:
                    task, future = self._queue.popleft()
                    self._window_count += 1

            if at_capacity:
                logger.debug(
                    "Rate limit reached (%d per %.0fs), backing off %.1fs",
                    self.max_requests,
                    self.window_seconds,
                    self.backoff_seconds,
                )
                self._sleep(self.backoff_seconds)
                continue

            self._start(task, future)

    def _start(self, task: Callable[[], Any], future: Future) -> None:
        def run() -> None:
            try:
                result = task()
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

        try:
            self._executor.submit(run)
        except Exception as exc:
            logger.error("Could not start rate-limited task: %s", exc)
            future.set_exception(exc)

    def shutdown(self, wait: bool = True) -> None:
        """Wait for queued tasks to start, then stop the owned executor."""
        thread = self._drain_thread
        if wait and thread is not None:
            thread.join()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
