"""Lock providers serializing lifecycle operations per key."""

from autocert.locks.base import LockHandle, LockProvider
from autocert.locks.file import FileLockProvider

__all__ = ["FileLockProvider", "LockHandle", "LockProvider"]
