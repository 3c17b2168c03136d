from __future__ import annotations

import hashlib

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import load_pem_public_key, load_pem_private_key

OAEP_HASH_LEN = 32  # SHA-256


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def _as_bytes(pem: str | bytes) -> bytes:
    return pem.encode("ascii") if isinstance(pem, str) else pem


def load_public_key(pem: str | bytes) -> rsa.RSAPublicKey:
    pub = load_pem_public_key(_as_bytes(pem))
    if not isinstance(pub, rsa.RSAPublicKey):
        raise ValueError('Public key must be RSA for OAEP')
    return pub


def load_private_key(pem: str | bytes) -> rsa.RSAPrivateKey:
    priv = load_pem_private_key(_as_bytes(pem), password=None)
    if not isinstance(priv, rsa.RSAPrivateKey):
        raise ValueError('Private key must be RSA for OAEP')
    return priv


def max_oaep_payload(pub: rsa.RSAPublicKey) -> int:
    """Largest plaintext, in bytes, that one RSA-OAEP-SHA256 block can carry."""
    return pub.key_size // 8 - 2 * OAEP_HASH_LEN - 2


def oaep_encrypt(pub: rsa.RSAPublicKey, data: bytes) -> bytes:
    return pub.encrypt(data, _oaep())


def oaep_decrypt(priv: rsa.RSAPrivateKey, data: bytes) -> bytes:
    return priv.decrypt(data, _oaep())


def wrap_key_for_recipient(*, recipient_public_key_pem: str | bytes, msg_key: bytes) -> bytes:
    """
    Hybrid encryption: wrap the per-message AES key for one key holder with RSA-OAEP.

    Args:
        recipient_public_key_pem: Key holder's RSA public key (PEM encoded)
        msg_key: Message key to wrap (32 bytes for AES-256)

    Returns:
        RSA ciphertext of the message key (key_size / 8 bytes)
    """
    return oaep_encrypt(load_public_key(recipient_public_key_pem), msg_key)


def unwrap_key_for_recipient(*, recipient_private_key_pem: str | bytes, wrapped_key: bytes) -> bytes:
    """
    Hybrid decryption: recover the per-message AES key with the holder's private key.
    """
    return oaep_decrypt(load_private_key(recipient_private_key_pem), wrapped_key)


def public_key_to_pem(pub: rsa.RSAPublicKey) -> str:
    return pub.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def private_key_to_pem(priv: rsa.RSAPrivateKey) -> str:
    return priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def public_key_der(pub: rsa.RSAPublicKey) -> bytes:
    return pub.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def public_key_fingerprint(pub: rsa.RSAPublicKey) -> str:
    # DER, not PEM text, so line wrapping and trailing whitespace cannot change it.
    return hashlib.sha256(public_key_der(pub)).hexdigest()
