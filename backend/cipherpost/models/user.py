# backend/cipherpost/models/user.py
from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cipherpost.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    username: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    birthdate: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Field-cipher tokens. Randomised, so neither unique nor indexable.
    email: Mapped[str] = mapped_column(Text, nullable=False)
    mobile_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    district: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Key record: written together or not at all
    public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    wrapped_private_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_fingerprint: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    keys_rotated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    @property
    def has_keys(self) -> bool:
        return bool(self.public_key and self.wrapped_private_key and self.key_fingerprint)

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, username={self.username!r})"
