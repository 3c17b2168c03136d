# backend/cipherpost/crypto/fields.py
"""Symmetric encryption of individual personal-data fields.

Every call to ``encrypt_field`` draws a fresh nonce, so the same value encrypts
to a different token each time. Stored tokens therefore cannot be compared or
searched; lookups have to decrypt candidates and compare plaintext.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from cipherpost.core.config import Settings
from cipherpost.core.errors import FieldDecryptionError
from cipherpost.crypto.aead import AeadError, open_text, seal_text
from cipherpost.crypto.kdf import Argon2Params, derive_key_from_secret, params_from_settings

logger = logging.getLogger(__name__)

FIELD_KEY_CONTEXT = "field-key/v1"
FIELD_AAD = b"cipherpost:field:v1"
REDACTED_FIELD = "[redacted]"


class FieldFallback(str, enum.Enum):
    RAISE = "raise"
    REDACT = "redact"
    RAW = "raw"


@dataclass(frozen=True)
class FieldValue:
    value: str
    decrypted: bool


class FieldCipher:
    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            raise ValueError("Field key must be 32 bytes")
        self._key = key

    @classmethod
    def from_secret(cls, secret: str, params: Argon2Params | None = None) -> "FieldCipher":
        return cls(derive_key_from_secret(secret, FIELD_KEY_CONTEXT, params or Argon2Params()))

    @classmethod
    def from_settings(cls, settings: Settings) -> "FieldCipher":
        return cls.from_secret(settings.field_encryption_key, params_from_settings(settings))

    def encrypt_field(self, plaintext: str) -> str:
        if not isinstance(plaintext, str):
            raise TypeError("Field value must be a string")
        return seal_text(self._key, plaintext, aad=FIELD_AAD)

    def decrypt_field(self, ciphertext: str) -> str:
        try:
            return open_text(self._key, ciphertext, aad=FIELD_AAD)
        except AeadError as err:
            raise FieldDecryptionError(str(err)) from err

    def reveal_field(
        self,
        ciphertext: str | None,
        on_error: FieldFallback = FieldFallback.REDACT,
    ) -> FieldValue | None:
        """Decrypt for display, applying an explicit policy to bad input.

        RAISE re-raises FieldDecryptionError, REDACT returns REDACTED_FIELD and
        RAW returns the stored token. Both fallbacks carry decrypted=False.
        """
        if ciphertext is None:
            return None
        try:
            return FieldValue(self.decrypt_field(ciphertext), decrypted=True)
        except FieldDecryptionError:
            if on_error is FieldFallback.RAISE:
                raise
            logger.warning("Stored field could not be decrypted; applying %s policy", on_error.value)
            if on_error is FieldFallback.RAW:
                return FieldValue(ciphertext, decrypted=False)
            return FieldValue(REDACTED_FIELD, decrypted=False)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key=<redacted>)"
