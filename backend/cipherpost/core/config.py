from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_MASTER_KEY = "dev-master-key-change-me"
DEV_FIELD_KEY = "dev-field-key-change-me"

MIN_RSA_KEY_SIZE = 2048
MESSAGE_SCHEMES = ("direct", "hybrid", "auto")
_DEV_ENVS = ("development", "test")


class Settings(BaseSettings):
    app_name: str = "cipherpost"
    app_env: str = "development"

    database_url: str = "sqlite:///./cipherpost.db"

    # Secrets
    master_encryption_key: str = DEV_MASTER_KEY
    field_encryption_key: str = DEV_FIELD_KEY

    # RSA
    rsa_key_size: int = MIN_RSA_KEY_SIZE
    message_scheme: str = "direct"
    keygen_workers: int = 4

    # Argon2id parameters for deriving the wrapping keys from the secrets above
    kdf_time_cost: int = 3
    kdf_memory_cost: int = 64 * 1024  # KiB
    kdf_parallelism: int = 1

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("rsa_key_size")
    @classmethod
    def _check_key_size(cls, v: int) -> int:
        if v < MIN_RSA_KEY_SIZE:
            raise ValueError(f"rsa_key_size must be at least {MIN_RSA_KEY_SIZE} bits")
        return v

    @field_validator("message_scheme")
    @classmethod
    def _check_scheme(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in MESSAGE_SCHEMES:
            raise ValueError(f"message_scheme must be one of {', '.join(MESSAGE_SCHEMES)}")
        return v

    @model_validator(mode="after")
    def _check_secrets(self) -> "Settings":
        if not self.master_encryption_key or not self.field_encryption_key:
            raise ValueError("Encryption secrets must not be empty")
        if self.is_development:
            return self
        if self.master_encryption_key == DEV_MASTER_KEY or self.field_encryption_key == DEV_FIELD_KEY:
            raise ValueError("Development encryption secrets are not allowed outside development")
        if self.master_encryption_key == self.field_encryption_key:
            raise ValueError("Master key and field key must be distinct secrets")
        return self

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() in _DEV_ENVS


@lru_cache
def get_settings() -> Settings:
    return Settings()
