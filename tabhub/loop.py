"""
Control Loop

The single thread on which every lifecycle signal and command runs.
Other threads (the CDP reader, HTTP workers) only submit work here, so the
registry, cache and host set are never touched concurrently.
"""

import logging
import queue
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Optional, Tuple

from .errors import CommandTimeout

logger = logging.getLogger(__name__)

Task = Tuple[Future, Callable[..., Any], Tuple[Any, ...]]


def _log_failure(future: Future):
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error("Control loop task failed: %r", error, exc_info=error)


class ControlLoop(threading.Thread):
    """
    Serial task runner.

    Usage:
        loop = ControlLoop()
        loop.start()
        result = loop.call(context.invoke, "tabs.get", host, 1, timeout=5)
        loop.stop()
    """

    def __init__(self, name: str = "tabhub-control"):
        super().__init__(name=name, daemon=True)
        self._tasks: "queue.Queue[Optional[Task]]" = queue.Queue()
        self._running = threading.Event()

    def run(self):
        self._running.set()
        while True:
            task = self._tasks.get()
            if task is None:
                break
            future, fn, args = task
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args)
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(result)
        self._running.clear()

    @property
    def in_loop(self) -> bool:
        return threading.current_thread() is self

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        future: Future = Future()
        if self.in_loop:
            # Already serialized; run inline instead of deadlocking
            try:
                future.set_result(fn(*args))
            except BaseException as e:
                future.set_exception(e)
            return future
        self._tasks.put((future, fn, args))
        return future

    def post(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Fire-and-forget submit; exceptions are logged instead of kept."""
        future = self.submit(fn, *args)
        future.add_done_callback(_log_failure)
        return future

    def call(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> Any:
        """Run fn on the loop and wait for its result."""
        future = self.submit(fn, *args)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            name = getattr(fn, "__qualname__", repr(fn))
            raise CommandTimeout(f"{name} did not complete within {timeout}s") from None

    def stop(self, timeout: float = 5.0):
        """Finish queued work, then exit the thread."""
        if not self.is_alive():
            return
        self._tasks.put(None)
        if not self.in_loop:
            self.join(timeout)
