# conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("APP_ENV", "test")

from cipherpost.core.config import Settings
from cipherpost.crud.users import register_principal
from cipherpost.crypto.fields import FieldCipher
from cipherpost.crypto.key_manager import KeyManager
from cipherpost.crypto.keys import PrincipalKeyRecord
from cipherpost.crypto.messages import MessageCrypto
from cipherpost.db.init_db import init_db
from cipherpost.models.user import User
from cipherpost.schemas.principal import PrincipalCreate

TEST_DB_URL = "sqlite://"

# Argon2 at its cheapest; these secrets only live for the test run.
FAST_KDF = {"kdf_time_cost": 1, "kdf_memory_cost": 8 * 1024, "kdf_parallelism": 1}


@pytest.fixture(scope="session")
def settings() -> Settings:
    return Settings(
        app_env="test",
        master_encryption_key="test-master-secret",
        field_encryption_key="test-field-secret",
        **FAST_KDF,
    )


@pytest.fixture(scope="session")
def key_manager(settings: Settings) -> KeyManager:
    return KeyManager.from_settings(settings)


@pytest.fixture(scope="session")
def field_cipher(settings: Settings) -> FieldCipher:
    return FieldCipher.from_settings(settings)


@pytest.fixture(scope="session")
def crypto(key_manager: KeyManager) -> MessageCrypto:
    return MessageCrypto(key_manager)


@pytest.fixture(scope="session")
def alice_keys(key_manager: KeyManager) -> PrincipalKeyRecord:
    return key_manager.generate_record()


@pytest.fixture(scope="session")
def bob_keys(key_manager: KeyManager) -> PrincipalKeyRecord:
    return key_manager.generate_record()


@pytest.fixture()
def db() -> Iterator[Session]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def register(db: Session, key_manager: KeyManager, field_cipher: FieldCipher) -> Callable[..., User]:
    def _register(username: str, email: str | None = None, **fields) -> User:
        data = PrincipalCreate(username=username, email=email or f"{username}@example.com", **fields)
        return register_principal(db, key_manager, field_cipher, data)

    return _register
