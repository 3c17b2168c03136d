# backend/cipherpost/models/message.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cipherpost.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(primary_key=True)

    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)

    # Same plaintext, encrypted once per party
    cipher_for_recipient: Mapped[str] = mapped_column(Text, nullable=False)
    cipher_for_sender: Mapped[str] = mapped_column(Text, nullable=False)

    # SHA-256 of the plaintext. Advisory only, not a MAC.
    content_digest: Mapped[str] = mapped_column(String(64), nullable=False)

    algorithm_tag: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_key_fingerprint: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    recipient_key_fingerprint: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])

    __table_args__ = (
        Index("ix_messages_pair_sent", "sender_id", "recipient_id", "sent_at"),
        Index("ix_messages_recipient_unread", "recipient_id", "is_read"),
    )
