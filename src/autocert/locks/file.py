"""Lock files under ``<certificate_path>/.locks`` using ``fcntl.flock``.

The kernel drops a flock when its holder's file descriptor closes, including
when the process dies, so a crash never leaves a stuck lock. Lock files are
unlinked on release; an acquirer re-checks that the inode it locked is still
the one on disk, otherwise it raced a release and retries.
"""

import fcntl
import os
import re
import threading
import time
from pathlib import Path

from autocert import _cancel
from autocert._logging import get_logger
from autocert.exceptions import LockTimeout
from autocert.locks.base import LockHandle, LockProvider

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileLock(LockHandle):
    def __init__(self, key: str, path: Path, fd: int):
        super().__init__(key)
        self.path = path
        self._fd = fd

    def _release(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        finally:
            os.close(self._fd)
        logger.debug("Released lock", extra={"key": self.key})


class FileLockProvider(LockProvider):
    """Process- and host-local locks backed by files.

    Args:
        root: The certificate path; lock files live in ``root/.locks``.
        timeout: Seconds to keep retrying before raising LockTimeout.
        retry_interval: Seconds between attempts.
    """

    def __init__(self, root: Path | str, timeout: float = 30.0, retry_interval: float = 0.2):
        self.directory = Path(root) / ".locks"
        self.timeout = timeout
        self.retry_interval = retry_interval

    def lock_path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}.lock"

    def acquire(self, key: str, cancel: threading.Event | None = None) -> FileLock:
        path = self.lock_path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout

        while True:
            _cancel.raise_if_cancelled(cancel)

            fd = self._try_lock(path)
            if fd is not None:
                logger.debug("Acquired lock", extra={"key": key})
                return FileLock(key, path, fd)

            if time.monotonic() >= deadline:
                logger.error("Timed out waiting for lock", extra={"key": key})
                raise LockTimeout(key)

            _cancel.sleep(self.retry_interval, cancel)

    @staticmethod
    def _try_lock(path: Path) -> int | None:
        """Return a locked descriptor for ``path``, or None if someone else holds it."""
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return None

        try:
            on_disk = os.stat(path)
        except FileNotFoundError:
            os.close(fd)
            return None
        if on_disk.st_ino != os.fstat(fd).st_ino:
            os.close(fd)
            return None
        return fd
