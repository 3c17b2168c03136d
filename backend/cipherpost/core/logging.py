# backend/cipherpost/core/logging.py
from __future__ import annotations

import logging

from cipherpost.core.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """Attach one stream handler to the package logger at the configured level."""
    settings = settings or get_settings()
    root = logging.getLogger("cipherpost")
    root.setLevel(settings.log_level.upper())

    if not any(getattr(h, "_cipherpost", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._cipherpost = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def short_fp(fingerprint: str | None) -> str:
    # Log-safe prefix of a key fingerprint.
    if not fingerprint:
        return "-"
    return fingerprint[:16]
