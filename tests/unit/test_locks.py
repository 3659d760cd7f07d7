"""Unit tests for lock providers."""

import threading
import time
from unittest.mock import MagicMock

import pytest
from redis.exceptions import LockError

from autocert.exceptions import LockTimeout, OperationCancelled
from autocert.locks import FileLockProvider
from autocert.locks.redis import RedisLockProvider


class TestFileLockProvider:
    @pytest.fixture
    def provider(self, tmp_path) -> FileLockProvider:
        return FileLockProvider(tmp_path, timeout=0.3, retry_interval=0.01)

    def test_lock_file_under_locks_directory(self, provider, tmp_path):
        with provider.acquire("cert:*.example.com") as lock:
            assert lock.path.parent == tmp_path / ".locks"
            assert lock.path.name == "cert__.example.com.lock"
            assert lock.path.exists()

        assert lock.released
        assert not lock.path.exists()

    def test_second_acquirer_times_out(self, provider, log_capture):
        with provider.acquire("cert:example.com"):
            with pytest.raises(LockTimeout) as exc_info:
                provider.acquire("cert:example.com")

        assert exc_info.value.key == "cert:example.com"
        assert "Timed out waiting for lock" in log_capture.get_messages()

    def test_different_keys_do_not_contend(self, provider):
        with provider.acquire("cert:a.example.com"), provider.acquire("cert:b.example.com"):
            pass

    def test_waiter_proceeds_after_release(self, tmp_path):
        provider = FileLockProvider(tmp_path, timeout=5.0, retry_interval=0.01)
        order: list[str] = []
        held = provider.acquire("account:rollover")

        def waiter() -> None:
            with provider.acquire("account:rollover"):
                order.append("waiter")

        thread = threading.Thread(target=waiter)
        thread.start()
        time.sleep(0.05)
        order.append("holder")
        held.release()
        thread.join(5)

        assert order == ["holder", "waiter"]

    def test_cancel_while_waiting(self, provider):
        cancel = threading.Event()
        cancel.set()

        with provider.acquire("cert:example.com"):
            with pytest.raises(OperationCancelled):
                provider.acquire("cert:example.com", cancel)

    def test_release_is_idempotent(self, provider):
        lock = provider.acquire("cert:example.com")
        lock.release()
        lock.release()

        with provider.acquire("cert:example.com"):
            pass


class TestRedisLockProvider:
    @pytest.fixture
    def redis_lock(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def client(self, redis_lock) -> MagicMock:
        client = MagicMock()
        client.lock.return_value = redis_lock
        return client

    def test_acquire_and_release(self, client, redis_lock):
        redis_lock.acquire.return_value = True

        with RedisLockProvider(client, expiry=60).acquire("cert:example.com"):
            client.lock.assert_called_once_with("acme:lock:cert:example.com", timeout=60)
            redis_lock.acquire.assert_called_once_with(blocking=False)

        redis_lock.release.assert_called_once()

    def test_times_out_when_held_elsewhere(self, client, redis_lock):
        redis_lock.acquire.return_value = False
        provider = RedisLockProvider(client, wait=0.05, retry_interval=0.01)

        with pytest.raises(LockTimeout):
            provider.acquire("cert:example.com")
        assert redis_lock.acquire.call_count > 1

    def test_retries_until_acquired(self, client, redis_lock):
        redis_lock.acquire.side_effect = [False, False, True]

        RedisLockProvider(client, wait=5, retry_interval=0).acquire("cert:example.com").release()

        assert redis_lock.acquire.call_count == 3

    def test_cancel_stops_retrying(self, client, redis_lock):
        redis_lock.acquire.return_value = False
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelled):
            RedisLockProvider(client).acquire("cert:example.com", cancel)
        redis_lock.acquire.assert_not_called()

    def test_expired_lock_release_is_logged(self, client, redis_lock, log_capture):
        redis_lock.acquire.return_value = True
        redis_lock.release.side_effect = LockError("Cannot release an unlocked lock")

        RedisLockProvider(client).acquire("cert:example.com").release()

        assert "Redis lock was no longer held at release" in log_capture.get_messages()

    def test_expiry_is_renewed_while_held(self, client, redis_lock):
        redis_lock.acquire.return_value = True

        handle = RedisLockProvider(client, expiry=0.15).acquire("cert:example.com")
        time.sleep(0.3)
        handle.release()
        renewals = redis_lock.reacquire.call_count
        time.sleep(0.15)

        assert renewals >= 2
        assert redis_lock.reacquire.call_count == renewals

    def test_lost_lock_stops_renewing(self, client, redis_lock, log_capture):
        redis_lock.acquire.return_value = True
        redis_lock.reacquire.side_effect = LockError("Cannot reacquire a lock that's no longer owned")

        handle = RedisLockProvider(client, expiry=0.06).acquire("cert:example.com")
        time.sleep(0.15)
        handle.release()

        redis_lock.reacquire.assert_called_once()
        assert "Lost Redis lock while holding it" in log_capture.get_messages()


class ExpiringLocks:
    """In-memory stand-in for ``redis.Redis.lock`` that honours the key expiry."""

    def __init__(self) -> None:
        self.expires_at: dict[str, float] = {}
        self.guard = threading.Lock()

    def lock(self, name: str, timeout: float) -> "ExpiringLock":
        return ExpiringLock(self, name, timeout)


class ExpiringLock:
    def __init__(self, locks: ExpiringLocks, name: str, timeout: float):
        self.locks, self.name, self.timeout = locks, name, timeout

    def acquire(self, blocking: bool = True) -> bool:
        with self.locks.guard:
            if self.locks.expires_at.get(self.name, 0) > time.monotonic():
                return False
            self.locks.expires_at[self.name] = time.monotonic() + self.timeout
            return True

    def reacquire(self) -> None:
        with self.locks.guard:
            self.locks.expires_at[self.name] = time.monotonic() + self.timeout

    def release(self) -> None:
        with self.locks.guard:
            self.locks.expires_at.pop(self.name, None)


class TestRedisLockExclusion:
    def test_holder_keeps_lock_past_its_expiry(self):
        provider = RedisLockProvider(ExpiringLocks(), expiry=0.3, wait=0.1, retry_interval=0.02)

        with provider.acquire("cert:example.com"):
            time.sleep(0.6)
            with pytest.raises(LockTimeout):
                provider.acquire("cert:example.com")

        provider.acquire("cert:example.com").release()

    def test_crashed_holder_frees_lock_after_expiry(self):
        locks = ExpiringLocks()
        assert locks.lock("acme:lock:cert:example.com", timeout=0.1).acquire()
        provider = RedisLockProvider(locks, expiry=0.3, wait=1, retry_interval=0.02)

        provider.acquire("cert:example.com").release()
