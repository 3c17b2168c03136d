# backend/cipherpost/crud/messages.py
from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cipherpost.core.errors import MessageNotFoundError, PrincipalNotFoundError, UnauthorizedReaderError
from cipherpost.crypto.keys import PrincipalKeyRecord
from cipherpost.crypto.messages import MessageCrypto
from cipherpost.models.message import Message
from cipherpost.models.user import User
from cipherpost.schemas.message import (
    ConversationOut,
    ConversationSummary,
    DecryptedMessage,
    ReadTransition,
    SentMessage,
)

logger = logging.getLogger(__name__)


def _load_party(db: Session, principal_id: int, role: str) -> User:
    user = db.get(User, principal_id)
    if user is None:
        raise PrincipalNotFoundError(f"{role.capitalize()} not found")
    return user


def send_message(
    db: Session,
    crypto: MessageCrypto,
    sender_id: int,
    recipient_id: int,
    content: str,
) -> SentMessage:
    """Encrypt `content` for both parties and store it as one row.

    Every rejection (missing keys, self-send, empty content, oversized
    payload) happens before anything is added to the session.
    """
    recipient = _load_party(db, recipient_id, "recipient")
    sender = _load_party(db, sender_id, "sender")

    sealed = crypto.seal(
        content,
        sender_id=sender_id,
        recipient_id=recipient_id,
        sender=PrincipalKeyRecord.from_user(sender),
        recipient=PrincipalKeyRecord.from_user(recipient),
    )

    msg = Message(**asdict(sealed))
    db.add(msg)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to store message %s -> %s", sender_id, recipient_id)
        raise
    db.refresh(msg)

    logger.info("Message %s stored (%s -> %s, %s)", msg.id, sender_id, recipient_id, msg.algorithm_tag)
    return SentMessage(
        id=msg.id,
        sender_id=msg.sender_id,
        recipient_id=msg.recipient_id,
        algorithm_tag=msg.algorithm_tag,
        sender_key_fingerprint=msg.sender_key_fingerprint,
        recipient_key_fingerprint=msg.recipient_key_fingerprint,
        content_digest=msg.content_digest,
        sent_at=msg.sent_at,
        content=content.strip(),
    )


def read_message(db: Session, crypto: MessageCrypto, message_id: int, reader_id: int) -> DecryptedMessage:
    msg = db.get(Message, message_id)
    if msg is None:
        raise MessageNotFoundError(f"Message {message_id} not found")
    role = crypto.role_of(msg, reader_id)
    reader = _load_party(db, reader_id, role.value)
    return crypto.open(msg, reader_id, reader.wrapped_private_key)


def get_conversation(db: Session, crypto: MessageCrypto, reader_id: int, partner_id: int) -> ConversationOut:
    """All messages between two principals, oldest first, decrypted for `reader_id`."""
    reader = _load_party(db, reader_id, "reader")
    partner = _load_party(db, partner_id, "partner")
    stmt = (
        select(Message)
        .where(
            or_(
                and_(Message.sender_id == reader_id, Message.recipient_id == partner_id),
                and_(Message.sender_id == partner_id, Message.recipient_id == reader_id),
            )
        )
        .order_by(Message.sent_at, Message.id)
    )
    return ConversationOut(
        reader_id=reader_id,
        partner_id=partner_id,
        partner_username=partner.username,
        messages=[crypto.open(m, reader_id, reader.wrapped_private_key) for m in db.execute(stmt).scalars()],
    )


def list_conversations(db: Session, reader_id: int) -> list[ConversationSummary]:
    stmt = (
        select(Message)
        .where(or_(Message.sender_id == reader_id, Message.recipient_id == reader_id))
        .order_by(Message.sent_at.desc(), Message.id.desc())
    )

    summaries: dict[int, ConversationSummary] = {}
    for m in db.execute(stmt).scalars():
        partner = m.recipient if m.sender_id == reader_id else m.sender
        summary = summaries.get(partner.id)
        if summary is None:
            summary = summaries[partner.id] = ConversationSummary(
                partner_id=partner.id,
                partner_username=partner.username,
                last_message_id=m.id,
                last_message_at=m.sent_at,
            )
        if m.recipient_id == reader_id and not m.is_read:
            summary.unread_count += 1
    return list(summaries.values())


def mark_as_read(db: Session, message_id: int, reader_id: int) -> ReadTransition:
    """Move a message to Read. Only its recipient may do this; repeats are no-ops."""
    msg = db.get(Message, message_id)
    if msg is None:
        raise MessageNotFoundError(f"Message {message_id} not found")
    if msg.recipient_id != reader_id:
        raise UnauthorizedReaderError("Only the recipient can mark a message as read")

    stmt = (
        update(Message)
        .where(Message.id == message_id, Message.recipient_id == reader_id, Message.is_read.is_(False))
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    db.expire(msg)

    if result.rowcount == 1:
        logger.info("Message %s read by %s", message_id, reader_id)
        return ReadTransition.FIRST_READ
    logger.debug("Message %s already read", message_id)
    return ReadTransition.ALREADY_READ
