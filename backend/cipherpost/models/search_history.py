# backend/cipherpost/models/search_history.py
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cipherpost.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchHistory(Base):
    __tablename__ = "search_history"

    id: Mapped[int] = mapped_column(primary_key=True)

    searcher_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    searched_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Field-cipher token; a query may be an email or phone number
    search_query: Mapped[str | None] = mapped_column(Text, nullable=True)
    search_type: Mapped[str] = mapped_column(String(16), default="general", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    searcher = relationship("User", foreign_keys=[searcher_id])
    searched_user = relationship("User", foreign_keys=[searched_user_id])

    __table_args__ = (
        Index("ix_search_history_searcher", "searcher_id", "searched_user_id", "created_at"),
        Index("ix_search_history_searched", "searched_user_id", "created_at"),
    )
