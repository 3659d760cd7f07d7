"""Filesystem stores rooted at the configured certificate path.

Layout::

    <root>/<domain>.pfx            certificates ("*" written as "wildcard")
    <root>/accounts/<id>.pem       account keys (ciphertext when a cipher is used)
    <root>/orders/<domain>.order   in-flight order URLs
"""

import os
import tempfile
from pathlib import Path

from autocert._logging import get_logger
from autocert.models import StoredCertificate
from autocert.stores.base import CertificateStore, KeyedStore, OrderStore

logger = get_logger(__name__)


def _filename(key: str) -> str:
    """Map a store key to a safe file name."""
    if not key or "/" in key or "\\" in key or key in (".", ".."):
        raise ValueError(f"Invalid store key: {key!r}")
    return key.replace("*", "wildcard")


def _atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temporary file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as tmp_handle:
            tmp_handle.write(data)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class FileSystemCertificateStore(CertificateStore):
    """Certificates as PKCS#12 files.

    Args:
        root: Directory holding the ``.pfx`` files.
        password: Password protecting the blobs, needed to read expiry on load.
    """

    def __init__(self, root: Path | str, password: str):
        self.root = Path(root)
        self.password = password

    def _path(self, domain: str) -> Path:
        return self.root / f"{_filename(domain)}.pfx"

    def get(self, key: str) -> StoredCertificate | None:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return StoredCertificate.from_pkcs12(key, path.read_bytes(), self.password)
        except (OSError, ValueError) as e:
            logger.error(
                "Failed to load certificate",
                extra={"domain": key, "path": str(path), "error": str(e)},
            )
            return None

    def save(self, key: str, value: StoredCertificate) -> None:
        _atomic_write(self._path(key), value.pfx)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class FileSystemAccountKeyStore(KeyedStore[str]):
    """Account keys as text files under ``<root>/accounts``."""

    def __init__(self, root: Path | str):
        self.root = Path(root) / "accounts"

    def _path(self, account_id: str) -> Path:
        return self.root / f"{_filename(account_id)}.pem"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def save(self, key: str, value: str) -> None:
        _atomic_write(self._path(key), value.encode("utf-8"))

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class FileSystemOrderStore(OrderStore):
    """Order URLs as text files under ``<root>/orders``."""

    def __init__(self, root: Path | str):
        self.root = Path(root) / "orders"

    def _path(self, domain: str) -> Path:
        return self.root / f"{_filename(domain)}.order"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8").strip() or None

    def save(self, key: str, value: str) -> None:
        _atomic_write(self._path(key), value.encode("utf-8"))

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
