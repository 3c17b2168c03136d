# backend/cipherpost/models/__init__.py
from .user import User
from .message import Message
from .search_history import SearchHistory

__all__ = ["User", "Message", "SearchHistory"]
