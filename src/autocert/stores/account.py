"""Account key storage."""

from autocert.cipher import AccountKeyCipher
from autocert.stores.base import KeyedStore

DEFAULT_ACCOUNT_ID = "default"


class AccountStore:
    """Load and save the installation's single ACME account key.

    The PEM is encrypted with ``cipher`` before it reaches the backend, so
    every backend tier (cache and persistence alike) only ever holds
    ciphertext.

    Args:
        backend: Any keyed store of strings, e.g. a ``LayeredStore``.
        cipher: Encrypts the key at rest; None stores the PEM as-is.
        account_id: Key under which the account is stored.
    """

    def __init__(
        self,
        backend: KeyedStore[str],
        cipher: AccountKeyCipher | None = None,
        account_id: str = DEFAULT_ACCOUNT_ID,
    ):
        self.backend = backend
        self.cipher = cipher
        self.account_id = account_id

    def load(self) -> str | None:
        """Return the account key PEM, or None if no account exists yet.

        Raises:
            ValueError: If the stored key cannot be decrypted.
        """
        stored = self.backend.get(self.account_id)
        if not stored:
            return None
        if self.cipher is None:
            return stored
        return self.cipher.decrypt(stored)

    def save(self, pem: str) -> None:
        value = self.cipher.encrypt(pem) if self.cipher is not None else pem
        self.backend.save(self.account_id, value)
