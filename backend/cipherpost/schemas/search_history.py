from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class SearchType(str, enum.Enum):
    USERNAME = 'username'
    EMAIL = 'email'
    DISTRICT = 'district'
    GENERAL = 'general'


class SearchParty(BaseModel):
    """The other principal of a search record, with decrypted contact fields."""
    model_config = ConfigDict(extra='forbid')

    id: int
    username: str
    email: Optional[str] = None
    district: Optional[str] = None


class SearchRecordOut(BaseModel):
    model_config = ConfigDict(extra='forbid')

    id: int
    searcher_id: int
    searched_user_id: int
    search_query: str = ''
    search_type: SearchType
    created_at: datetime
    # Searcher when listing who searched for me, searched principal for my own history
    counterpart: Optional[SearchParty] = None


class SearchHistoryPage(BaseModel):
    model_config = ConfigDict(extra='forbid')

    items: List[SearchRecordOut] = []
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class SearchAnalytics(BaseModel):
    model_config = ConfigDict(extra='forbid')

    total_searches: int
    total_times_searched: int
    recent_searches: int
    recent_searches_on_me: int
