# backend/cipherpost/crypto/messages.py
"""Dual encryption of message content for sender and recipient.

Each message is encrypted twice: once under the recipient's public key so they
can read it, once under the sender's so the sender can re-read their own
conversation later. A SHA-256 digest of the plaintext travels alongside as an
advisory tamper signal.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from cipherpost.core.config import Settings
from cipherpost.core.errors import (
    DecryptionError,
    EmptyMessageError,
    EncryptionError,
    InvalidRecipientError,
    MissingKeyError,
    UnauthorizedReaderError,
)
from cipherpost.core.logging import short_fp
from cipherpost.crypto.key_manager import KeyManager
from cipherpost.crypto.keys import PrincipalKeyRecord
from cipherpost.schemas.message import DecryptedMessage, DecryptStatus, ReaderRole

logger = logging.getLogger(__name__)

ALG_DIRECT = "RSA-OAEP-SHA256"
ALG_HYBRID = "RSA-OAEP-SHA256+AES-256-GCM"


@dataclass(frozen=True)
class SealedMessage:
    sender_id: int
    recipient_id: int
    cipher_for_recipient: str
    cipher_for_sender: str
    content_digest: str
    algorithm_tag: str
    sender_key_fingerprint: str
    recipient_key_fingerprint: str
    sent_at: datetime


def content_digest(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


class MessageCrypto:
    def __init__(self, key_manager: KeyManager, scheme: str = "direct") -> None:
        if scheme not in ("direct", "hybrid", "auto"):
            raise ValueError(f"Unknown message scheme: {scheme}")
        self.key_manager = key_manager
        self.scheme = scheme

    @classmethod
    def from_settings(cls, settings: Settings, key_manager: Optional[KeyManager] = None) -> "MessageCrypto":
        return cls(key_manager or KeyManager.from_settings(settings), scheme=settings.message_scheme)

    def _require_keys(self, record: Optional[PrincipalKeyRecord], party: str) -> PrincipalKeyRecord:
        if record is None or not record.is_complete:
            raise MissingKeyError(f"{party.capitalize()} does not have valid encryption keys")
        if not self.key_manager.validate_public_key(record.public_key):
            raise MissingKeyError(f"{party.capitalize()} public key is not a valid RSA key")
        return record

    def _pick_algorithm(self, data_len: int, sender: PrincipalKeyRecord, recipient: PrincipalKeyRecord) -> str:
        if self.scheme == "direct":
            return ALG_DIRECT
        if self.scheme == "hybrid":
            return ALG_HYBRID
        limit = min(
            self.key_manager.max_payload_size(sender.public_key),
            self.key_manager.max_payload_size(recipient.public_key),
        )
        return ALG_DIRECT if data_len <= limit else ALG_HYBRID

    def _encrypt(self, algorithm: str, plaintext: str, public_key: str) -> str:
        if algorithm == ALG_HYBRID:
            return self.key_manager.encrypt_hybrid(plaintext, public_key)
        return self.key_manager.encrypt_with_public(plaintext, public_key)

    def _decrypt(self, algorithm: str, ciphertext: str, wrapped_private_key: str) -> str:
        if algorithm == ALG_HYBRID:
            return self.key_manager.decrypt_hybrid(ciphertext, wrapped_private_key)
        if algorithm == ALG_DIRECT:
            return self.key_manager.decrypt_with_private(ciphertext, wrapped_private_key)
        raise DecryptionError(f"Unsupported algorithm tag: {algorithm}")

    def seal(
        self,
        plaintext: str,
        *,
        sender_id: int,
        recipient_id: int,
        sender: Optional[PrincipalKeyRecord],
        recipient: Optional[PrincipalKeyRecord],
        sent_at: Optional[datetime] = None,
    ) -> SealedMessage:
        """Encrypt `plaintext` for both parties.

        Raises MissingKeyError, InvalidRecipientError or EmptyMessageError before
        any cryptographic work, and EncryptionError if the payload does not fit
        the direct scheme.
        """
        content = (plaintext or "").strip()
        if not content:
            raise EmptyMessageError("Message content is required")

        sender = self._require_keys(sender, "sender")
        recipient = self._require_keys(recipient, "recipient")

        if sender_id == recipient_id:
            raise InvalidRecipientError("Cannot send message to yourself")

        try:
            data_len = len(content.encode("utf-8"))
        except UnicodeEncodeError as err:
            raise EncryptionError("Message content is not encodable as UTF-8") from err
        algorithm = self._pick_algorithm(data_len, sender, recipient)
        sealed = SealedMessage(
            sender_id=sender_id,
            recipient_id=recipient_id,
            cipher_for_recipient=self._encrypt(algorithm, content, recipient.public_key),
            cipher_for_sender=self._encrypt(algorithm, content, sender.public_key),
            content_digest=content_digest(content),
            algorithm_tag=algorithm,
            sender_key_fingerprint=sender.fingerprint,
            recipient_key_fingerprint=recipient.fingerprint,
            sent_at=sent_at or datetime.now(timezone.utc),
        )
        logger.debug(
            "Sealed message %s -> %s with %s (keys %s / %s)",
            sender_id, recipient_id, algorithm,
            short_fp(sender.fingerprint), short_fp(recipient.fingerprint),
        )
        return sealed

    def role_of(self, message, reader_id: int) -> ReaderRole:
        if message.recipient_id == reader_id:
            return ReaderRole.RECIPIENT
        if message.sender_id == reader_id:
            return ReaderRole.SENDER
        raise UnauthorizedReaderError("Reader is not a party to this message")

    def open(self, message, reader_id: int, reader_wrapped_private_key: Optional[str]) -> DecryptedMessage:
        """Decrypt the copy that belongs to `reader_id`.

        `message` is a SealedMessage or a stored Message row. Decryption failures
        produce an UNDECRYPTABLE result instead of raising; a digest mismatch
        returns the plaintext with integrity_warning set.
        """
        role = self.role_of(message, reader_id)
        ciphertext = message.cipher_for_recipient if role is ReaderRole.RECIPIENT else message.cipher_for_sender

        result = dict(
            id=getattr(message, "id", None),
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            role=role,
            algorithm_tag=message.algorithm_tag,
            sent_at=message.sent_at,
            is_read=bool(getattr(message, "is_read", False)),
            read_at=getattr(message, "read_at", None),
        )

        try:
            content = self._decrypt(message.algorithm_tag, ciphertext, reader_wrapped_private_key)
        except DecryptionError as err:
            logger.warning("Message %s undecryptable for %s %s: %s", result["id"], role.value, reader_id, err)
            return DecryptedMessage(status=DecryptStatus.UNDECRYPTABLE, content=None, **result)

        warning = not hmac.compare_digest(content_digest(content), message.content_digest or "")
        if warning:
            logger.warning("Message %s failed content digest check", result["id"])
        return DecryptedMessage(status=DecryptStatus.OK, content=content, integrity_warning=warning, **result)
