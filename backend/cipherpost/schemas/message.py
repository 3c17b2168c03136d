from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

UNDECRYPTABLE_PLACEHOLDER = '[Message could not be decrypted]'


class DecryptStatus(str, enum.Enum):
    OK = 'ok'
    UNDECRYPTABLE = 'undecryptable'


class ReaderRole(str, enum.Enum):
    SENDER = 'sender'
    RECIPIENT = 'recipient'


class ReadTransition(str, enum.Enum):
    FIRST_READ = 'first_read'
    ALREADY_READ = 'already_read'


class SentMessage(BaseModel):
    """Send result: stored metadata plus the sender's own plaintext echo."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    recipient_id: int
    algorithm_tag: str
    sender_key_fingerprint: str
    recipient_key_fingerprint: str
    content_digest: str
    sent_at: datetime
    content: str


class DecryptedMessage(BaseModel):
    """
    A stored message as seen by one of its two parties.

    content is None exactly when status is UNDECRYPTABLE; an empty string is
    never used to signal failure. integrity_warning is advisory: the digest is
    an unkeyed hash and only flags accidental or naive tampering.
    """
    model_config = ConfigDict(extra='forbid')

    id: Optional[int] = None
    sender_id: int
    recipient_id: int
    role: ReaderRole
    status: DecryptStatus
    content: Optional[str] = None
    integrity_warning: bool = False
    algorithm_tag: str
    sent_at: Optional[datetime] = None
    is_read: bool = False
    read_at: Optional[datetime] = None

    @property
    def decryption_error(self) -> bool:
        return self.status is DecryptStatus.UNDECRYPTABLE

    @property
    def display_content(self) -> str:
        if self.content is None:
            return UNDECRYPTABLE_PLACEHOLDER
        return self.content


class ConversationSummary(BaseModel):
    """One entry per conversation partner, newest message first."""
    model_config = ConfigDict(extra='forbid')

    partner_id: int
    partner_username: Optional[str] = None
    last_message_id: int
    last_message_at: datetime
    unread_count: int = 0


class ConversationOut(BaseModel):
    """Both directions of a two-party thread, oldest first, as one reader sees it."""
    model_config = ConfigDict(extra='forbid')

    reader_id: int
    partner_id: int
    partner_username: Optional[str] = None
    messages: List[DecryptedMessage] = []
