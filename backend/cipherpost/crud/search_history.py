# backend/cipherpost/crud/search_history.py
"""Who looked up whom: recorded searches between principals."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cipherpost.core.errors import SelfSearchError
from cipherpost.crud.users import get_principal
from cipherpost.crypto.fields import FieldCipher, FieldFallback
from cipherpost.models.search_history import SearchHistory
from cipherpost.models.user import User
from cipherpost.schemas.search_history import (
    SearchAnalytics,
    SearchHistoryPage,
    SearchParty,
    SearchRecordOut,
    SearchType,
)

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=7)
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _party(fields: FieldCipher, user: User) -> SearchParty:
    email = fields.reveal_field(user.email, on_error=FieldFallback.REDACT)
    district = fields.reveal_field(user.district, on_error=FieldFallback.REDACT)
    return SearchParty(
        id=user.id,
        username=user.username,
        email=email.value if email else None,
        district=district.value if district else None,
    )


def _record_out(fields: FieldCipher, row: SearchHistory, counterpart: User | None = None) -> SearchRecordOut:
    query = fields.reveal_field(row.search_query, on_error=FieldFallback.REDACT)
    return SearchRecordOut(
        id=row.id,
        searcher_id=row.searcher_id,
        searched_user_id=row.searched_user_id,
        search_query=query.value if query else '',
        search_type=SearchType(row.search_type),
        created_at=row.created_at,
        counterpart=_party(fields, counterpart) if counterpart is not None else None,
    )


def record_search(
    db: Session,
    fields: FieldCipher,
    searcher_id: int,
    searched_user_id: int,
    search_query: str | None = None,
    search_type: SearchType = SearchType.GENERAL,
) -> SearchRecordOut:
    get_principal(db, searched_user_id)
    get_principal(db, searcher_id)
    if searcher_id == searched_user_id:
        raise SelfSearchError("Cannot record search for yourself")

    query = (search_query or "").strip()
    row = SearchHistory(
        searcher_id=searcher_id,
        searched_user_id=searched_user_id,
        search_query=fields.encrypt_field(query) if query else None,
        search_type=SearchType(search_type).value,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Search %s recorded (%s -> %s)", row.id, searcher_id, searched_user_id)
    return _record_out(fields, row)


def _page(
    db: Session,
    fields: FieldCipher,
    column,
    principal_id: int,
    counterpart_attr: str,
    page: int,
    limit: int,
) -> SearchHistoryPage:
    if page < 1:
        raise ValueError("page must be at least 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    total = db.execute(
        select(func.count()).select_from(SearchHistory).where(column == principal_id)
    ).scalar_one()
    stmt = (
        select(SearchHistory)
        .where(column == principal_id)
        .order_by(SearchHistory.created_at.desc(), SearchHistory.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [_record_out(fields, row, getattr(row, counterpart_attr)) for row in db.execute(stmt).scalars()]
    return SearchHistoryPage(
        items=items,
        current_page=page,
        total_pages=math.ceil(total / limit),
        total_items=total,
        items_per_page=limit,
    )


def who_searched_for_me(
    db: Session,
    fields: FieldCipher,
    principal_id: int,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> SearchHistoryPage:
    """Searches that targeted `principal_id`, newest first, with the searcher attached."""
    return _page(db, fields, SearchHistory.searched_user_id, principal_id, "searcher", page, limit)


def my_search_history(
    db: Session,
    fields: FieldCipher,
    principal_id: int,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> SearchHistoryPage:
    """Searches made by `principal_id`, newest first, with the searched principal attached."""
    return _page(db, fields, SearchHistory.searcher_id, principal_id, "searched_user", page, limit)


def search_analytics(db: Session, principal_id: int, now: datetime | None = None) -> SearchAnalytics:
    since = (now or datetime.now(timezone.utc)) - RECENT_WINDOW

    def count(*conditions) -> int:
        stmt = select(func.count()).select_from(SearchHistory).where(*conditions)
        return db.execute(stmt).scalar_one()

    return SearchAnalytics(
        total_searches=count(SearchHistory.searcher_id == principal_id),
        total_times_searched=count(SearchHistory.searched_user_id == principal_id),
        recent_searches=count(SearchHistory.searcher_id == principal_id, SearchHistory.created_at >= since),
        recent_searches_on_me=count(
            SearchHistory.searched_user_id == principal_id, SearchHistory.created_at >= since
        ),
    )
