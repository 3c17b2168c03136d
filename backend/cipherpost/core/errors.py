"""Typed failures raised by the cipherpost core.

Every error here is recoverable by the caller. Decryption-side errors must be
turned into a redacted or sentinel value by whoever catches them; the original
ciphertext is never a valid stand-in for plaintext.
"""
from __future__ import annotations


class CipherpostError(Exception):
    """Base class for all cipherpost errors."""


class KeyGenerationError(CipherpostError):
    """Key pair could not be generated. Fatal to registration and rotation."""


class EncryptionError(CipherpostError):
    """Payload could not be encrypted (too large for the key, or unusable key)."""


class DecryptionError(CipherpostError):
    """Ciphertext could not be decrypted with the given key."""


class UnwrapError(DecryptionError):
    """Wrapped private key was not produced under the current master key."""


class FieldDecryptionError(DecryptionError):
    """Stored personal field is not a valid field ciphertext."""


class KeyIntegrityError(CipherpostError):
    """Freshly generated key pair failed its encrypt/decrypt check."""


class KeyRotationConflictError(CipherpostError):
    """Principal's keys changed underneath a rotation in progress."""


class MessageRejectedError(CipherpostError):
    """Message was refused before any cryptographic work."""


class MissingKeyError(MessageRejectedError):
    """Sender or recipient has no usable public key."""


class InvalidRecipientError(MessageRejectedError):
    """Recipient is not a valid target (e.g. the sender themselves)."""


class EmptyMessageError(MessageRejectedError):
    """Message content is empty after trimming."""


class UnauthorizedReaderError(CipherpostError):
    """Reader is neither the sender nor the recipient of a message."""


class PrincipalNotFoundError(CipherpostError):
    pass


class DuplicatePrincipalError(CipherpostError):
    pass


class MessageNotFoundError(CipherpostError):
    pass


class SelfSearchError(CipherpostError):
    """A principal cannot record a search for themselves."""
