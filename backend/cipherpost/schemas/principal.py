from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class PrincipalCreate(BaseModel):
    """Registration data for a new principal. Authentication is handled elsewhere."""
    model_config = ConfigDict(extra='forbid')

    username: str = Field(
        min_length=3,
        max_length=64,
        pattern=r'^[a-zA-Z0-9_\-]+$',
        description="Username (3-64 alphanumeric/dash/underscore)"
    )
    email: EmailStr
    mobile_number: Optional[str] = Field(default=None, max_length=32)
    district: Optional[str] = Field(default=None, max_length=128)
    birthdate: Optional[date] = None

    @field_validator('email')
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator('mobile_number', 'district')
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class PrincipalProfile(BaseModel):
    """Decrypted view of a principal. Never includes the wrapped private key."""
    model_config = ConfigDict(extra='forbid')

    id: int
    username: str
    email: Optional[str] = None
    mobile_number: Optional[str] = None
    district: Optional[str] = None
    birthdate: Optional[date] = None
    public_key: Optional[str] = None
    key_fingerprint: Optional[str] = None
    created_at: datetime
    # False when any personal field fell back to a redacted or raw value
    fields_decrypted: bool = True


class PrincipalSearch(BaseModel):
    model_config = ConfigDict(extra='forbid')

    query: Optional[str] = None
    district: Optional[str] = None
    min_age: Optional[int] = Field(default=None, ge=0)
    max_age: Optional[int] = Field(default=None, ge=0)
