# backend/cipherpost/crypto/kdf.py
import hashlib
from dataclasses import dataclass

from argon2.low_level import Type, hash_secret_raw

from cipherpost.core.config import Settings


@dataclass(frozen=True)
class Argon2Params:
    time_cost: int = 3
    memory_cost: int = 64 * 1024  # KiB (64 MiB)
    parallelism: int = 1
    hash_len: int = 32
    salt_len: int = 16


def params_from_settings(settings: Settings) -> Argon2Params:
    return Argon2Params(
        time_cost=settings.kdf_time_cost,
        memory_cost=settings.kdf_memory_cost,
        parallelism=settings.kdf_parallelism,
    )


def context_salt(context: str, params: Argon2Params) -> bytes:
    # Salt only separates purposes; secrecy comes from the configured secret.
    return hashlib.sha256(f"cipherpost:{context}".encode("utf-8")).digest()[: params.salt_len]


def derive_key_from_secret(secret: str, context: str, params: Argon2Params) -> bytes:
    """Stretch a configured secret into a 32-byte AES key bound to `context`."""
    if not isinstance(secret, str) or not secret:
        raise ValueError("Secret required")
    return hash_secret_raw(
        secret=secret.encode("utf-8"),
        salt=context_salt(context, params),
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=params.hash_len,
        type=Type.ID,
    )
