"""Two-tier cache + persistence store."""

from autocert._logging import get_logger
from autocert.models import StoredCertificate
from autocert.stores.base import CertificateStore, KeyedStore, T

logger = get_logger(__name__)


class LayeredStore(KeyedStore[T]):
    """Compose a cache tier over a persistent tier.

    Reads hit the cache first and repopulate it from the persistent tier on
    a miss. Writes and deletes go to the persistent tier first, so a crash
    between the two steps leaves the cache stale rather than authoritative.

    There is no locking: concurrent writers to the same key race and the last
    write wins. Callers that mutate must serialize per key themselves.

    Args:
        cache: Fast, possibly volatile store.
        persistent: Durable store of record.
    """

    def __init__(self, cache: KeyedStore[T], persistent: KeyedStore[T]):
        self.cache = cache
        self.persistent = persistent

    def get(self, key: str) -> T | None:
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        persisted = self.persistent.get(key)
        if persisted is None:
            return None

        logger.debug("Repopulating cache from persistent store", extra={"key": key})
        self.cache.save(key, persisted)
        return persisted

    def save(self, key: str, value: T) -> None:
        self.persistent.save(key, value)
        self.cache.save(key, value)

    def delete(self, key: str) -> None:
        self.persistent.delete(key)
        self.cache.delete(key)


class LayeredCertificateStore(LayeredStore[StoredCertificate], CertificateStore):
    """A ``LayeredStore`` usable wherever a ``CertificateStore`` is expected."""
