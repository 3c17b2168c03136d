from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class KeyInfo(BaseModel):
    """Introspection of a principal's public key."""
    model_config = ConfigDict(frozen=True)

    algorithm: str = 'RSA'
    key_size: int
    fingerprint: str
    format: str = 'PEM'


class KeyValidationOut(BaseModel):
    model_config = ConfigDict(extra='forbid')

    is_valid: bool
    key_info: Optional[KeyInfo] = None
    key_fingerprint: Optional[str] = None


class KeyRotationOut(BaseModel):
    model_config = ConfigDict(extra='forbid')

    key_info: KeyInfo
    key_fingerprint: str
    previous_fingerprint: Optional[str] = None
    rotated_at: datetime


class EncryptionTestOut(BaseModel):
    """Round trip of caller-chosen text through the principal's own keys."""
    model_config = ConfigDict(extra='forbid')

    is_successful: bool
    original_message: str
    encrypted_message: str
    decrypted_message: Optional[str] = None
    key_fingerprint: Optional[str] = None
