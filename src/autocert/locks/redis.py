"""Distributed locks on Redis.

Each lock key carries an expiry, so a holder that dies frees the lock when
the key times out. While a lock is held, a background thread resets that
expiry every third of it, so a long operation never outlives its lock.
"""

import threading
import time

import redis
from redis.exceptions import LockError, RedisError
from redis.lock import Lock

from autocert import _cancel
from autocert._logging import get_logger
from autocert.exceptions import LockTimeout
from autocert.locks.base import LockHandle, LockProvider

logger = get_logger(__name__)


class RedisLock(LockHandle):
    """A held Redis lock whose expiry is renewed until it is released.

    Args:
        key: Lock key, as passed to ``acquire``.
        lock: The acquired redis-py lock.
        renew_interval: Seconds between expiry resets.
    """

    def __init__(self, key: str, lock: Lock, renew_interval: float):
        super().__init__(key)
        self._lock = lock
        self._renew_interval = renew_interval
        self._stop_renewing = threading.Event()
        self._renewer = threading.Thread(target=self._renew, name=f"autocert-lock-{key}", daemon=True)
        self._renewer.start()

    def _renew(self) -> None:
        while not self._stop_renewing.wait(self._renew_interval):
            try:
                self._lock.reacquire()
            except LockError as e:
                logger.error("Lost Redis lock while holding it", extra={"key": self.key, "error": str(e)})
                return
            except RedisError as e:
                logger.warning("Failed to renew Redis lock", extra={"key": self.key, "error": str(e)})

    def _release(self) -> None:
        self._stop_renewing.set()
        self._renewer.join()
        try:
            self._lock.release()
        except LockError as e:
            # The key expired (or was taken over) before we released it
            logger.warning(
                "Redis lock was no longer held at release", extra={"key": self.key, "error": str(e)}
            )
            return
        logger.debug("Released Redis lock", extra={"key": self.key})


class RedisLockProvider(LockProvider):
    """Locks shared by every process using the same Redis.

    Args:
        client: A ``redis.Redis`` client.
        expiry: Seconds before a lock expires once its holder stops renewing it.
        wait: Seconds to keep retrying before raising LockTimeout.
        retry_interval: Seconds between attempts.
        key_prefix: Prefix for the Redis keys backing the locks.
    """

    def __init__(
        self,
        client: redis.Redis,
        expiry: float = 30.0,
        wait: float = 30.0,
        retry_interval: float = 1.0,
        key_prefix: str = "acme:lock:",
    ):
        self.client = client
        self.expiry = expiry
        self.wait = wait
        self.retry_interval = retry_interval
        self.key_prefix = key_prefix

    def acquire(self, key: str, cancel: threading.Event | None = None) -> RedisLock:
        lock = self.client.lock(f"{self.key_prefix}{key}", timeout=self.expiry)
        deadline = time.monotonic() + self.wait

        while True:
            _cancel.raise_if_cancelled(cancel)

            if lock.acquire(blocking=False):
                logger.debug("Acquired Redis lock", extra={"key": key})
                return RedisLock(key, lock, renew_interval=self.expiry / 3)

            if time.monotonic() >= deadline:
                logger.error("Failed to acquire Redis lock", extra={"key": key})
                raise LockTimeout(key)

            _cancel.sleep(self.retry_interval, cancel)
