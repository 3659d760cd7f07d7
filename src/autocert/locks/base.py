"""Keyed mutual exclusion."""

import threading
from abc import ABC, abstractmethod
from types import TracebackType


class LockHandle(ABC):
    """A held lock. Release it exactly once, ideally with ``with``.

    Usage:
        with provider.acquire("cert:example.com", cancel) as lock:
            ...
    """

    def __init__(self, key: str):
        self.key = key
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Free the lock. Calling it again is a no-op."""
        if self._released:
            return
        self._released = True
        self._release()

    @abstractmethod
    def _release(self) -> None: ...

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class LockProvider(ABC):
    """Acquires locks by key; one holder per key across every process sharing the backend."""

    @abstractmethod
    def acquire(self, key: str, cancel: threading.Event | None = None) -> LockHandle:
        """Block until the lock for ``key`` is held.

        Raises:
            LockTimeout: If the lock is not acquired within the provider's wait budget.
            OperationCancelled: If ``cancel`` is set while waiting.
        """
        ...
