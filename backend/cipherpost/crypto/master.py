# backend/cipherpost/crypto/master.py
"""Master-key cipher: wraps private key material at rest."""
from __future__ import annotations

import logging

from cipherpost.core.config import Settings
from cipherpost.core.errors import UnwrapError
from cipherpost.crypto.aead import AeadError, open_text, seal_text
from cipherpost.crypto.kdf import Argon2Params, derive_key_from_secret, params_from_settings

logger = logging.getLogger(__name__)

MASTER_KEY_CONTEXT = "master-key/v1"
PRIVATE_KEY_AAD = b"cipherpost:private-key:v1"


class MasterKeyCipher:
    """AES-256-GCM under a key stretched from the process-wide master secret.

    The derived key is computed once at construction and never changes, so one
    instance can be shared freely between threads.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            raise ValueError("Master key must be 32 bytes")
        self._key = key

    @classmethod
    def from_secret(cls, secret: str, params: Argon2Params | None = None) -> "MasterKeyCipher":
        return cls(derive_key_from_secret(secret, MASTER_KEY_CONTEXT, params or Argon2Params()))

    @classmethod
    def from_settings(cls, settings: Settings) -> "MasterKeyCipher":
        return cls.from_secret(settings.master_encryption_key, params_from_settings(settings))

    def wrap(self, plaintext: str) -> str:
        return seal_text(self._key, plaintext, aad=PRIVATE_KEY_AAD)

    def unwrap(self, ciphertext: str) -> str:
        try:
            return open_text(self._key, ciphertext, aad=PRIVATE_KEY_AAD)
        except AeadError as err:
            logger.warning("Master-key unwrap failed: %s", err)
            raise UnwrapError("Wrapped key was not produced under the current master key") from err

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key=<redacted>)"
