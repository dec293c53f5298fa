"""Cooperative cancellation shared between the event loop and worker threads."""

import threading
from typing import Callable, List, Optional

from .errors import OperationCancelledError


class CancellationToken:
    """Thread-safe cancellation flag.

    Long-running operations poll :meth:`raise_if_cancelled` at safe
    checkpoints (per archive entry, per message). Tokens can be linked so that
    cancelling a parent also cancels every token derived from it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._parents: List["CancellationToken"] = []

    @classmethod
    def linked(cls, *parents: Optional["CancellationToken"]) -> "CancellationToken":
        """Create a token that is cancelled when any of ``parents`` is."""
        token = cls()
        token._parents = [parent for parent in parents if parent is not None]
        for parent in token._parents:
            parent.register(token.cancel)
        return token

    def detach(self) -> None:
        """Unregister from the parents given to :meth:`linked`."""
        parents, self._parents = self._parents, []
        for parent in parents:
            parent.unregister(self.cancel)

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Calling it more than once has no further effect."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelledError` if cancellation was requested."""
        if self._event.is_set():
            raise OperationCancelledError("Operation was cancelled")
