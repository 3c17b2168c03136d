from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from cipherpost import __version__
from cipherpost.core.config import Settings, get_settings
from cipherpost.core.logging import configure_logging
from cipherpost.crud.users import provision_missing_keys
from cipherpost.crypto.fields import FieldCipher
from cipherpost.crypto.key_manager import KeyManager
from cipherpost.crypto.messages import MessageCrypto
from cipherpost.db.init_db import init_db
from cipherpost.db.session import make_engine, make_session_factory

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    key_manager: KeyManager
    field_cipher: FieldCipher
    crypto: MessageCrypto


def build_services(settings: Settings | None = None) -> Services:
    settings = settings or get_settings()
    engine = make_engine(settings.database_url)
    key_manager = KeyManager.from_settings(settings)
    return Services(
        settings=settings,
        engine=engine,
        session_factory=make_session_factory(engine),
        key_manager=key_manager,
        field_cipher=FieldCipher.from_settings(settings),
        crypto=MessageCrypto.from_settings(settings, key_manager),
    )


def startup(settings: Settings | None = None, *, provision: bool = True) -> Services:
    """Configure logging, create tables and issue keys to principals that lack them."""
    services = build_services(settings)
    configure_logging(services.settings)
    init_db(services.engine)
    logger.info(
        "%s %s starting (env=%s, scheme=%s)",
        services.settings.app_name, __version__, services.settings.app_env, services.settings.message_scheme,
    )

    if provision:
        with services.session_factory() as db:
            count = provision_missing_keys(db, services.key_manager, max_workers=services.settings.keygen_workers)
        if count:
            logger.info("Provisioned keys for %d principal(s)", count)
    return services


if __name__ == "__main__":
    startup()
