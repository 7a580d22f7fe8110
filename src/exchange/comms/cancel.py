"""Cooperative cancellation for blocking channel operations."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from exchange.errors import Cancelled

logger = logging.getLogger(__name__)


class CancelToken:
    """An external interruption signal shared between threads.

    Blocking operations register a wake-up callback with :meth:`subscribe`
    for the duration of their wait; :meth:`cancel` fires every registered
    callback so the waiter unblocks immediately instead of polling.
    A token cannot be reset once cancelled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        # Re-entrant so cancel() is safe from a signal handler running on
        # a thread that is inside subscribe().
        self._lock = threading.RLock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Trigger the token and wake every current waiter."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)

        logger.debug("Cancel token triggered, waking %d waiter(s)", len(callbacks))
        for callback in callbacks:
            callback()

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to *timeout* seconds; return ``True`` if cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self, operation: str = "wait") -> None:
        if self._event.is_set():
            raise Cancelled(f"{operation} was cancelled")

    @contextmanager
    def subscribe(self, callback: Callable[[], None]) -> Iterator[None]:
        """Register *callback* for the lifetime of the ``with`` block.

        If the token is already cancelled the callback fires immediately.
        """
        with self._lock:
            self._callbacks.append(callback)
            fire_now = self._event.is_set()
        if fire_now:
            callback()
        try:
            yield
        finally:
            with self._lock:
                self._callbacks.remove(callback)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


@contextmanager
def watching(
    cancel: CancelToken | None, callback: Callable[[], None]
) -> Iterator[None]:
    """Subscribe *callback* to *cancel* when a token was supplied."""
    if cancel is None:
        yield
        return
    with cancel.subscribe(callback):
        yield
