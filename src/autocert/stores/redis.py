"""Redis-backed stores for multi-instance deployments."""

from datetime import timedelta

import redis

from autocert._logging import get_logger
from autocert.models import StoredCertificate
from autocert.stores.base import CertificateStore, ChallengeStore, KeyedStore, OrderStore

logger = get_logger(__name__)

# Orders not finalized within this window are presumed abandoned
ORDER_EXPIRY = timedelta(hours=48)


def _text(value: bytes | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisCertificateStore(CertificateStore):
    """Certificates as PKCS#12 bytes under ``acme:cert:<domain>``.

    Args:
        client: A ``redis.Redis`` client (``decode_responses`` must be False).
        password: Password protecting the blobs, needed to read expiry on load.
    """

    KEY_PREFIX = "acme:cert:"

    def __init__(self, client: redis.Redis, password: str):
        self.client = client
        self.password = password

    def get(self, key: str) -> StoredCertificate | None:
        data = self.client.get(f"{self.KEY_PREFIX}{key}")
        if data is None:
            return None
        try:
            return StoredCertificate.from_pkcs12(key, data, self.password)
        except ValueError as e:
            logger.error("Failed to load certificate from Redis", extra={"domain": key, "error": str(e)})
            return None

    def save(self, key: str, value: StoredCertificate) -> None:
        self.client.set(f"{self.KEY_PREFIX}{key}", value.pfx)

    def delete(self, key: str) -> None:
        self.client.delete(f"{self.KEY_PREFIX}{key}")


class RedisAccountKeyStore(KeyedStore[str]):
    """Account keys under ``acme:account:<id>``."""

    KEY_PREFIX = "acme:account:"

    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> str | None:
        return _text(self.client.get(f"{self.KEY_PREFIX}{key}"))

    def save(self, key: str, value: str) -> None:
        self.client.set(f"{self.KEY_PREFIX}{key}", value)

    def delete(self, key: str) -> None:
        self.client.delete(f"{self.KEY_PREFIX}{key}")


class RedisOrderStore(OrderStore):
    """Order URLs under ``acme:order:<domain>``, expiring after ``expiry``."""

    KEY_PREFIX = "acme:order:"

    def __init__(self, client: redis.Redis, expiry: timedelta = ORDER_EXPIRY):
        self.client = client
        self.expiry = expiry

    def get(self, key: str) -> str | None:
        return _text(self.client.get(f"{self.KEY_PREFIX}{key}"))

    def save(self, key: str, value: str) -> None:
        self.client.set(f"{self.KEY_PREFIX}{key}", value, ex=self.expiry)

    def delete(self, key: str) -> None:
        self.client.delete(f"{self.KEY_PREFIX}{key}")


class RedisChallengeStore(ChallengeStore):
    """HTTP-01 responses under ``acme:challenge:<token>`` with Redis TTLs."""

    KEY_PREFIX = "acme:challenge:"

    def __init__(self, client: redis.Redis):
        self.client = client

    def save(self, token: str, response: str, ttl: int = 300) -> None:
        self.client.set(f"{self.KEY_PREFIX}{token}", response, ex=ttl)

    def get(self, token: str) -> str | None:
        return _text(self.client.get(f"{self.KEY_PREFIX}{token}"))

    def delete(self, token: str) -> None:
        self.client.delete(f"{self.KEY_PREFIX}{token}")
