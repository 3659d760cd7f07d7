"""Encryption at rest for the ACME account key."""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

_SALT_SIZE = 16
_NONCE_SIZE = 12
_ITERATIONS = 100_000


class AccountKeyCipher:
    """AES-GCM cipher keyed from a password with PBKDF2.

    Each call to ``encrypt`` uses a fresh random salt and nonce, so the same
    plaintext never encrypts to the same token. Tokens are
    ``base64(salt || nonce || ciphertext)``.

    Args:
        password: Secret used to derive the encryption key.
    """

    def __init__(self, password: str):
        if not password:
            raise ValueError("Cipher password must not be empty")
        self._password = password.encode("utf-8")

    def _derive(self, salt: bytes) -> AESGCM:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=_ITERATIONS,
        )
        return AESGCM(kdf.derive(self._password))

    def encrypt(self, plaintext: str) -> str:
        salt = os.urandom(_SALT_SIZE)
        nonce = os.urandom(_NONCE_SIZE)
        ciphertext = self._derive(salt).encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(salt + nonce + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Decrypt a token produced by ``encrypt``.

        Raises:
            ValueError: If the token is malformed, was tampered with, or the
                password is wrong. Cleartext PEM input is rejected too.
        """
        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Encrypted account key is not valid base64") from e

        if len(raw) <= _SALT_SIZE + _NONCE_SIZE:
            raise ValueError("Encrypted account key is too short")

        salt = raw[:_SALT_SIZE]
        nonce = raw[_SALT_SIZE : _SALT_SIZE + _NONCE_SIZE]
        ciphertext = raw[_SALT_SIZE + _NONCE_SIZE :]
        try:
            return self._derive(salt).decrypt(nonce, ciphertext, None).decode("utf-8")
        except InvalidTag as e:
            raise ValueError("Unable to decrypt account key (wrong password or corrupt data)") from e
