"""Certificate, account, order and challenge stores."""

from autocert.stores.account import DEFAULT_ACCOUNT_ID, AccountStore
from autocert.stores.base import CertificateStore, ChallengeStore, KeyedStore, OrderStore
from autocert.stores.filesystem import (
    FileSystemAccountKeyStore,
    FileSystemCertificateStore,
    FileSystemOrderStore,
)
from autocert.stores.layered import LayeredCertificateStore, LayeredStore
from autocert.stores.memory import (
    MemoryCertificateStore,
    MemoryChallengeStore,
    MemoryOrderStore,
    MemoryStore,
)

__all__ = [
    "DEFAULT_ACCOUNT_ID",
    "AccountStore",
    "CertificateStore",
    "ChallengeStore",
    "FileSystemAccountKeyStore",
    "FileSystemCertificateStore",
    "FileSystemOrderStore",
    "KeyedStore",
    "LayeredCertificateStore",
    "LayeredStore",
    "MemoryCertificateStore",
    "MemoryChallengeStore",
    "MemoryOrderStore",
    "MemoryStore",
    "OrderStore",
]
