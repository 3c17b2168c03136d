# backend/cipherpost/crypto/keys.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import rsa

from cipherpost.crypto.asymmetric import private_key_to_pem, public_key_to_pem

PUBLIC_EXPONENT = 65537


@dataclass(frozen=True)
class RsaKeyMaterial:
    """Freshly generated RSA key pair, both halves as PEM text. Never persisted as is."""
    public_key: str    # SubjectPublicKeyInfo PEM
    private_key: str   # PKCS#8 PEM, unencrypted
    key_size: int


@dataclass(frozen=True)
class KeyPair:
    public_key: str
    wrapped_private_key: str


@dataclass(frozen=True)
class PrincipalKeyRecord:
    """
    Persisted key state of one principal.

    - public_key: RSA public key (PEM)
    - wrapped_private_key: PKCS#8 PEM encrypted under the master key
    - fingerprint: SHA-256 over the DER public key

    Public and wrapped private key only ever travel together; a record holding
    just one of them is incomplete and unusable.
    """
    public_key: Optional[str]
    wrapped_private_key: Optional[str]
    fingerprint: Optional[str]

    @property
    def is_complete(self) -> bool:
        return bool(self.public_key and self.wrapped_private_key and self.fingerprint)

    @classmethod
    def from_user(cls, user) -> "PrincipalKeyRecord":
        return cls(
            public_key=user.public_key,
            wrapped_private_key=user.wrapped_private_key,
            fingerprint=user.key_fingerprint,
        )


def generate_rsa_keys(key_size: int) -> RsaKeyMaterial:
    sk = rsa.generate_private_key(
        public_exponent=PUBLIC_EXPONENT,
        key_size=key_size,
    )
    return RsaKeyMaterial(
        public_key=public_key_to_pem(sk.public_key()),
        private_key=private_key_to_pem(sk),
        key_size=key_size,
    )
