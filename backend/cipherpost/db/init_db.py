# backend/cipherpost/db/init_db.py
from __future__ import annotations

from sqlalchemy.engine import Engine

from cipherpost.core.config import get_settings
from cipherpost.db.base import Base
from cipherpost.db.session import make_engine

# Models must be imported so their tables are registered on Base.metadata
from cipherpost import models  # noqa: F401


def init_db(bind: Engine | None = None) -> None:
    if bind is None:
        bind = make_engine(get_settings().database_url)
    Base.metadata.create_all(bind=bind)
