"""In-memory stores, suitable as a cache tier or for single-process use."""

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from autocert.models import StoredCertificate
from autocert.stores.base import CertificateStore, ChallengeStore, KeyedStore, OrderStore, T


class MemoryStore(KeyedStore[T]):
    """Dict-backed keyed store."""

    def __init__(self) -> None:
        self._items: dict[str, T] = {}

    def get(self, key: str) -> T | None:
        return self._items.get(key)

    def save(self, key: str, value: T) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


class MemoryCertificateStore(MemoryStore[StoredCertificate], CertificateStore):
    pass


class MemoryOrderStore(MemoryStore[str], OrderStore):
    pass


class MemoryChallengeStore(ChallengeStore):
    """Challenge responses held in process memory with per-entry expiry.

    Args:
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._challenges: dict[str, tuple[str, datetime]] = {}

    def save(self, token: str, response: str, ttl: int = 300) -> None:
        expires = self._clock() + timedelta(seconds=ttl)
        with self._lock:
            self._challenges[token] = (response, expires)

    def get(self, token: str) -> str | None:
        with self._lock:
            entry = self._challenges.get(token)
            if entry is None:
                return None
            response, expires = entry
            if expires > self._clock():
                return response
            del self._challenges[token]
            return None

    def delete(self, token: str) -> None:
        with self._lock:
            self._challenges.pop(token, None)
