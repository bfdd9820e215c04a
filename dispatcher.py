"""Single-consumer event queue shared by capture, transport and UI callbacks.

Producers on any thread call ``post``; exactly one control thread drains the
queue with ``run_pending`` or ``run_until``. Callbacks therefore run one at a
time, in posting order, and state touched only from them needs no locking.
"""

from __future__ import annotations

import logging
import time
from queue import Empty, Queue
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventDispatcher:
    def __init__(self) -> None:
        self._queue: Queue[tuple[Callable[..., Any], tuple[Any, ...]]] = Queue()

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        self._queue.put((callback, args))

    def try_post(self, callback: Callable[..., Any], *args: Any, max_pending: int) -> bool:
        """Post unless ``max_pending`` callbacks are already waiting.

        For producers whose items may be discarded, such as audio frames,
        so a stalled control thread does not let the queue grow without bound.
        """
        if self._queue.qsize() >= max_pending:
            return False
        self._queue.put((callback, args))
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    def run_pending(self) -> int:
        """Run every callback queued so far without blocking."""
        handled = 0
        while True:
            try:
                callback, args = self._queue.get_nowait()
            except Empty:
                return handled
            self._invoke(callback, args)
            handled += 1

    def run_until(
        self,
        predicate: Callable[[], bool],
        timeout_s: float = 5.0,
        poll_s: float = 0.02,
    ) -> bool:
        """Drain callbacks until ``predicate()`` holds or the timeout expires."""
        deadline = time.monotonic() + timeout_s
        while not predicate():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            try:
                callback, args = self._queue.get(timeout=min(poll_s, remaining))
            except Empty:
                continue
            self._invoke(callback, args)
        return True

    def _invoke(self, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Dispatched callback %r failed", callback)
