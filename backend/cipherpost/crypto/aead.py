# backend/cipherpost/crypto/aead.py
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16


class AeadError(ValueError):
    """Blob is malformed or failed authentication."""


def generate_key() -> bytes:
    return os.urandom(KEY_LEN)


def encrypt_aesgcm(key: bytes, plaintext: bytes, aad: bytes = b"") -> bytes:
    if len(key) != KEY_LEN:
        raise ValueError("AES-256-GCM requires 32-byte key")
    nonce = os.urandom(NONCE_LEN)
    ct = AESGCM(key).encrypt(nonce, plaintext, aad)
    return nonce + ct


def decrypt_aesgcm(key: bytes, blob: bytes, aad: bytes = b"") -> bytes:
    if len(key) != KEY_LEN:
        raise ValueError("AES-256-GCM requires 32-byte key")
    if len(blob) < NONCE_LEN + TAG_LEN:
        raise AeadError("Invalid ciphertext blob")
    nonce = blob[:NONCE_LEN]
    ct = blob[NONCE_LEN:]
    try:
        return AESGCM(key).decrypt(nonce, ct, aad)
    except InvalidTag as err:
        raise AeadError("Ciphertext failed authentication") from err


def seal_text(key: bytes, plaintext: str, aad: bytes = b"") -> str:
    """Encrypt a UTF-8 string into URL-safe base64 text (nonce || ct || tag)."""
    blob = encrypt_aesgcm(key, plaintext.encode("utf-8"), aad=aad)
    return base64.urlsafe_b64encode(blob).decode("ascii")


def open_text(key: bytes, token: str, aad: bytes = b"") -> str:
    """Inverse of seal_text. Raises AeadError on any malformed or forged input."""
    if not isinstance(token, str) or not token:
        raise AeadError("Ciphertext must be a non-empty string")
    try:
        blob = base64.urlsafe_b64decode(token.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as err:
        raise AeadError("Ciphertext is not valid base64") from err
    plaintext = decrypt_aesgcm(key, blob, aad=aad)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as err:
        raise AeadError("Plaintext is not valid UTF-8") from err
