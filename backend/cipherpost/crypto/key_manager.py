# backend/cipherpost/crypto/key_manager.py
"""RSA key lifecycle and public-key encryption for principals."""
from __future__ import annotations

import base64
import binascii
import logging
import struct
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from cipherpost.core.config import MIN_RSA_KEY_SIZE, Settings
from cipherpost.core.errors import (
    DecryptionError,
    EncryptionError,
    KeyGenerationError,
    UnwrapError,
)
from cipherpost.core.logging import short_fp
from cipherpost.crypto.aead import AeadError, decrypt_aesgcm, encrypt_aesgcm, generate_key
from cipherpost.crypto.asymmetric import (
    load_private_key,
    load_public_key,
    max_oaep_payload,
    oaep_decrypt,
    oaep_encrypt,
    public_key_fingerprint,
    unwrap_key_for_recipient,
    wrap_key_for_recipient,
)
from cipherpost.crypto.keys import KeyPair, PrincipalKeyRecord, generate_rsa_keys
from cipherpost.crypto.master import MasterKeyCipher
from cipherpost.schemas.keys import KeyInfo

logger = logging.getLogger(__name__)

INTEGRITY_SAMPLE = "cipherpost key-pair integrity sample"
HYBRID_AAD = b"cipherpost:hybrid:v1"
_WRAPPED_LEN = struct.Struct(">H")


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(text: str) -> bytes:
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError) as err:
        raise DecryptionError("Ciphertext is not valid base64") from err


class KeyManager:
    """Stateless service over one master-key cipher.

    Construct once at startup and share; nothing here mutates after __init__.
    """

    def __init__(self, master: MasterKeyCipher, default_key_size: int = MIN_RSA_KEY_SIZE) -> None:
        if default_key_size < MIN_RSA_KEY_SIZE:
            raise ValueError(f"Key size must be at least {MIN_RSA_KEY_SIZE} bits")
        self._master = master
        self.default_key_size = default_key_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeyManager":
        return cls(MasterKeyCipher.from_settings(settings), default_key_size=settings.rsa_key_size)

    # --- generation -------------------------------------------------------

    def generate_key_pair(self, bits: Optional[int] = None) -> KeyPair:
        bits = bits if bits is not None else self.default_key_size
        if bits < MIN_RSA_KEY_SIZE:
            raise KeyGenerationError(f"Refusing to generate {bits}-bit RSA key (minimum {MIN_RSA_KEY_SIZE})")
        try:
            material = generate_rsa_keys(bits)
            wrapped = self._master.wrap(material.private_key)
        except Exception as err:
            logger.error("RSA key generation failed (%d bits): %s", bits, err)
            raise KeyGenerationError("Failed to generate RSA key pair") from err
        return KeyPair(public_key=material.public_key, wrapped_private_key=wrapped)

    def generate_record(self, bits: Optional[int] = None) -> PrincipalKeyRecord:
        pair = self.generate_key_pair(bits)
        return PrincipalKeyRecord(
            public_key=pair.public_key,
            wrapped_private_key=pair.wrapped_private_key,
            fingerprint=self.fingerprint(pair.public_key),
        )

    def generate_records(self, count: int, max_workers: int = 4) -> list[PrincipalKeyRecord]:
        """Generate `count` independent records on a thread pool."""
        if count <= 0:
            return []
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, count))) as pool:
            return list(pool.map(lambda _: self.generate_record(), range(count)))

    def rotate(self, principal: Optional[PrincipalKeyRecord] = None) -> PrincipalKeyRecord:
        """Return a full replacement record. The old pair is not retained.

        Nothing is persisted here; callers verify the new record before storing it.
        """
        record = self.generate_record()
        logger.info(
            "Rotated key pair %s -> %s",
            short_fp(principal.fingerprint if principal else None),
            short_fp(record.fingerprint),
        )
        return record

    # --- introspection ----------------------------------------------------

    def fingerprint(self, public_key: str) -> str:
        try:
            return public_key_fingerprint(load_public_key(public_key))
        except (ValueError, TypeError) as err:
            raise EncryptionError("Invalid public key") from err

    def validate_public_key(self, public_key: Optional[str]) -> bool:
        if not public_key:
            return False
        try:
            load_public_key(public_key)
        except (ValueError, TypeError):
            return False
        return True

    def key_info(self, public_key: str) -> KeyInfo:
        try:
            pub = load_public_key(public_key)
        except (ValueError, TypeError) as err:
            raise EncryptionError("Invalid public key") from err
        return KeyInfo(key_size=pub.key_size, fingerprint=public_key_fingerprint(pub))

    def max_payload_size(self, public_key: str) -> int:
        try:
            return max_oaep_payload(load_public_key(public_key))
        except (ValueError, TypeError) as err:
            raise EncryptionError("Invalid public key") from err

    # --- direct RSA-OAEP --------------------------------------------------

    def encrypt_with_public(self, plaintext: str, public_key: str) -> str:
        try:
            pub = load_public_key(public_key)
        except (ValueError, TypeError) as err:
            raise EncryptionError("Invalid public key") from err

        try:
            data = plaintext.encode("utf-8")
        except UnicodeEncodeError as err:
            raise EncryptionError("Plaintext is not encodable as UTF-8") from err
        limit = max_oaep_payload(pub)
        if len(data) > limit:
            raise EncryptionError(
                f"Payload of {len(data)} bytes exceeds the {limit}-byte RSA-OAEP limit of a {pub.key_size}-bit key"
            )
        return _b64encode(oaep_encrypt(pub, data))

    def decrypt_with_private(self, ciphertext: str, wrapped_private_key: str) -> str:
        priv = self._load_wrapped(wrapped_private_key)
        try:
            data = oaep_decrypt(priv, _b64decode(ciphertext))
            return data.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as err:
            raise DecryptionError("Failed to decrypt data with private key") from err

    # --- hybrid RSA-OAEP + AES-256-GCM ------------------------------------

    def encrypt_hybrid(self, plaintext: str, public_key: str) -> str:
        """Encrypt under a fresh AES key; only that key goes through RSA.

        Layout (base64): u16 wrapped-key length || wrapped key || nonce || ct || tag.
        """
        try:
            data = plaintext.encode("utf-8")
        except UnicodeEncodeError as err:
            raise EncryptionError("Plaintext is not encodable as UTF-8") from err
        msg_key = generate_key()
        try:
            wrapped = wrap_key_for_recipient(recipient_public_key_pem=public_key, msg_key=msg_key)
        except (ValueError, TypeError) as err:
            raise EncryptionError("Invalid public key") from err
        body = encrypt_aesgcm(msg_key, data, aad=HYBRID_AAD)
        return _b64encode(_WRAPPED_LEN.pack(len(wrapped)) + wrapped + body)

    def decrypt_hybrid(self, ciphertext: str, wrapped_private_key: str) -> str:
        blob = _b64decode(ciphertext)
        if len(blob) < _WRAPPED_LEN.size:
            raise DecryptionError("Hybrid ciphertext too short")
        (wrapped_len,) = _WRAPPED_LEN.unpack_from(blob)
        wrapped = blob[_WRAPPED_LEN.size:_WRAPPED_LEN.size + wrapped_len]
        body = blob[_WRAPPED_LEN.size + wrapped_len:]
        if len(wrapped) != wrapped_len:
            raise DecryptionError("Hybrid ciphertext truncated")

        private_pem = self._unwrap(wrapped_private_key)
        try:
            msg_key = unwrap_key_for_recipient(recipient_private_key_pem=private_pem, wrapped_key=wrapped)
            return decrypt_aesgcm(msg_key, body, aad=HYBRID_AAD).decode("utf-8")
        except (AeadError, ValueError, UnicodeDecodeError) as err:
            raise DecryptionError("Failed to decrypt hybrid ciphertext") from err

    # --- integrity --------------------------------------------------------

    def verify_key_pair_integrity(self, public_key: Optional[str], wrapped_private_key: Optional[str]) -> bool:
        if not public_key or not wrapped_private_key:
            return False
        try:
            sample = self.encrypt_with_public(INTEGRITY_SAMPLE, public_key)
            return self.decrypt_with_private(sample, wrapped_private_key) == INTEGRITY_SAMPLE
        except (EncryptionError, DecryptionError) as err:
            logger.warning("Key pair integrity check failed: %s", err)
            return False

    # --- internals --------------------------------------------------------

    def _unwrap(self, wrapped_private_key: str) -> str:
        if not wrapped_private_key:
            raise UnwrapError("No wrapped private key")
        return self._master.unwrap(wrapped_private_key)

    def _load_wrapped(self, wrapped_private_key: str):
        private_pem = self._unwrap(wrapped_private_key)
        try:
            return load_private_key(private_pem)
        except (ValueError, TypeError) as err:
            raise DecryptionError("Unwrapped private key is not a valid RSA key") from err

    def __repr__(self) -> str:
        return f"{type(self).__name__}(default_key_size={self.default_key_size})"
