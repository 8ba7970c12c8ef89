"""Symmetric codec for per-user integration secrets.

Secrets are stored as compact JWE tokens (direct key agreement, AES-256-GCM)
under a key derived from the configured master secret. Plaintext only exists
for the duration of the call that needs it.
"""

import hashlib

from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

from cont3xt.exceptions import SecretDecodeError


def derive_key(master_secret: str) -> bytes:
    """Derive a 256-bit encryption key from the master secret."""
    if not master_secret:
        raise ValueError("master secret must not be empty")
    return hashlib.sha256(master_secret.encode("utf-8")).digest()


class SecretCodec:
    """Encrypts and decrypts secret strings under one master secret."""

    def __init__(self, master_secret: str):
        self._key = derive_key(master_secret)

    def __repr__(self) -> str:
        return "<SecretCodec>"

    def encrypt(self, plaintext: str) -> str:
        token = jwe.encrypt(
            plaintext.encode("utf-8"),
            self._key,
            algorithm=ALGORITHMS.DIR,
            encryption=ALGORITHMS.A256GCM,
        )
        return token.decode("ascii") if isinstance(token, bytes) else token

    def decrypt(self, token: str) -> str:
        try:
            plaintext = jwe.decrypt(token, self._key)
        except (JOSEError, ValueError, TypeError) as e:
            raise SecretDecodeError() from e
        if plaintext is None:
            raise SecretDecodeError()
        return plaintext.decode("utf-8")
