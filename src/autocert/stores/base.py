"""Abstract storage contracts."""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from autocert.models import StoredCertificate

T = TypeVar("T")


class KeyedStore(ABC, Generic[T]):
    """Get/save/delete by string key.

    Every concrete store in autocert is a keyed store, which is what lets
    ``LayeredStore`` compose any two of them.
    """

    @abstractmethod
    def get(self, key: str) -> T | None:
        """Return the value stored under ``key``, or None if absent."""
        ...

    @abstractmethod
    def save(self, key: str, value: T) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key is not an error."""
        ...


class CertificateStore(KeyedStore[StoredCertificate]):
    """Issued certificates keyed by domain (wildcards as ``*.example.com``)."""


class OrderStore(KeyedStore[str]):
    """In-flight ACME order URLs keyed by primary domain."""


class ChallengeStore(ABC):
    """Published HTTP-01 challenge responses.

    An HTTP endpoint serving ``/.well-known/acme-challenge/{token}`` reads
    responses from here.
    """

    @abstractmethod
    def save(self, token: str, response: str, ttl: int = 300) -> None:
        """Publish ``response`` for ``token`` for ``ttl`` seconds."""
        ...

    @abstractmethod
    def get(self, token: str) -> str | None:
        """Return the response for ``token`` if published and not expired."""
        ...

    @abstractmethod
    def delete(self, token: str) -> None:
        """Withdraw the response for ``token``. Unknown tokens are ignored."""
        ...
