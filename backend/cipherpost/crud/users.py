# backend/cipherpost/crud/users.py
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Iterator

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cipherpost.core.errors import (
    DecryptionError,
    DuplicatePrincipalError,
    FieldDecryptionError,
    KeyIntegrityError,
    KeyRotationConflictError,
    MissingKeyError,
    PrincipalNotFoundError,
)
from cipherpost.core.logging import short_fp
from cipherpost.crypto.fields import FieldCipher, FieldFallback, FieldValue
from cipherpost.crypto.key_manager import KeyManager
from cipherpost.crypto.keys import PrincipalKeyRecord
from cipherpost.models.user import User
from cipherpost.schemas.keys import EncryptionTestOut, KeyInfo, KeyRotationOut, KeyValidationOut
from cipherpost.schemas.principal import PrincipalCreate, PrincipalProfile, PrincipalSearch

logger = logging.getLogger(__name__)

# Encrypted fields can only be filtered after decryption, so scans walk the
# whole table in id-ordered pages of this size.
SCAN_BATCH_SIZE = 200

PERSONAL_FIELDS = ("email", "mobile_number", "district")


def get_principal(db: Session, principal_id: int) -> User:
    user = db.get(User, principal_id)
    if user is None:
        raise PrincipalNotFoundError(f"Principal {principal_id} not found")
    return user


def get_by_username(db: Session, username: str) -> User | None:
    stmt = select(User).where(User.username == username)
    return db.execute(stmt).scalar_one_or_none()


def iter_principals(db: Session) -> Iterator[User]:
    """Yield every principal by id, one keyset page at a time."""
    last_id = 0
    while True:
        stmt = select(User).where(User.id > last_id).order_by(User.id).limit(SCAN_BATCH_SIZE)
        page = db.execute(stmt).scalars().all()
        if not page:
            return
        yield from page
        last_id = page[-1].id


def find_by_email(db: Session, fields: FieldCipher, email: str) -> User | None:
    """Linear decrypt-and-compare; stored emails are randomised tokens."""
    wanted = email.strip().lower()
    for user in iter_principals(db):
        try:
            if fields.decrypt_field(user.email).lower() == wanted:
                return user
        except FieldDecryptionError:
            logger.warning("Skipping principal %s with undecryptable email", user.id)
    return None


def register_principal(db: Session, km: KeyManager, fields: FieldCipher, data: PrincipalCreate) -> User:
    """Create a principal with encrypted personal fields and a verified key pair.

    KeyGenerationError and KeyIntegrityError propagate; nothing is written then.
    """
    if get_by_username(db, data.username) is not None:
        raise DuplicatePrincipalError("User with this username or email already exists")
    if find_by_email(db, fields, data.email) is not None:
        raise DuplicatePrincipalError("User with this username or email already exists")

    record = km.generate_record()
    if not km.verify_key_pair_integrity(record.public_key, record.wrapped_private_key):
        raise KeyIntegrityError("Generated key pair failed integrity check")

    u = User(
        username=data.username,
        birthdate=data.birthdate,
        email=fields.encrypt_field(data.email),
        mobile_number=fields.encrypt_field(data.mobile_number) if data.mobile_number else None,
        district=fields.encrypt_field(data.district) if data.district else None,
        public_key=record.public_key,
        wrapped_private_key=record.wrapped_private_key,
        key_fingerprint=record.fingerprint,
    )

    db.add(u)
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise DuplicatePrincipalError("User with this username or email already exists") from err
    db.refresh(u)
    logger.info("Registered principal %s with key %s", u.id, short_fp(u.key_fingerprint))
    return u


def _reveal_fields(fields: FieldCipher, user: User, on_error: FieldFallback) -> dict[str, FieldValue | None]:
    return {name: fields.reveal_field(getattr(user, name), on_error=on_error) for name in PERSONAL_FIELDS}


def _profile(user: User, revealed: dict[str, FieldValue | None]) -> PrincipalProfile:
    return PrincipalProfile(
        id=user.id,
        username=user.username,
        birthdate=user.birthdate,
        public_key=user.public_key,
        key_fingerprint=user.key_fingerprint,
        created_at=user.created_at,
        fields_decrypted=all(v is None or v.decrypted for v in revealed.values()),
        **{name: (v.value if v is not None else None) for name, v in revealed.items()},
    )


def principal_profile(
    fields: FieldCipher,
    user: User,
    on_error: FieldFallback = FieldFallback.REDACT,
) -> PrincipalProfile:
    return _profile(user, _reveal_fields(fields, user, on_error))


def list_profiles(db: Session, fields: FieldCipher) -> list[PrincipalProfile]:
    return [principal_profile(fields, u) for u in iter_principals(db)]


def calculate_age(birthdate: date, today: date | None = None) -> int:
    today = today or date.today()
    age = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        age -= 1
    return age


def search_principals(
    db: Session,
    fields: FieldCipher,
    search: PrincipalSearch,
    today: date | None = None,
) -> list[PrincipalProfile]:
    """Filter every principal in memory after decrypting their fields.

    Each field is matched only if it decrypted; a redacted field never matches,
    but it does not hide the principal's other fields from the query.
    """
    query = search.query.lower() if search.query else None
    district = search.district.lower() if search.district else None

    results = []
    for user in iter_principals(db):
        revealed = _reveal_fields(fields, user, FieldFallback.REDACT)
        plain = {name: (v.value if v is not None and v.decrypted else "") for name, v in revealed.items()}

        if query and not (
            query in user.username.lower()
            or query in plain["email"].lower()
            or query in plain["district"].lower()
            or query in plain["mobile_number"]
        ):
            continue
        if district and district not in plain["district"].lower():
            continue
        if search.min_age is not None or search.max_age is not None:
            if user.birthdate is None:
                continue
            age = calculate_age(user.birthdate, today)
            if search.min_age is not None and age < search.min_age:
                continue
            if search.max_age is not None and age > search.max_age:
                continue
        results.append(_profile(user, revealed))
    return results


def get_key_info(db: Session, km: KeyManager, principal_id: int) -> KeyInfo:
    user = get_principal(db, principal_id)
    if not user.has_keys:
        raise MissingKeyError(f"Principal {principal_id} has no key pair")
    return km.key_info(user.public_key)


def validate_keys(db: Session, km: KeyManager, principal_id: int) -> KeyValidationOut:
    user = get_principal(db, principal_id)
    if not user.has_keys:
        return KeyValidationOut(is_valid=False)
    return KeyValidationOut(
        is_valid=km.verify_key_pair_integrity(user.public_key, user.wrapped_private_key),
        key_info=km.key_info(user.public_key),
        key_fingerprint=user.key_fingerprint,
    )


def run_encryption_test(db: Session, km: KeyManager, principal_id: int, test_message: str) -> EncryptionTestOut:
    """Round-trip a caller-chosen message through the principal's own key pair.

    EncryptionError (message too long for direct RSA) propagates.
    """
    user = get_principal(db, principal_id)
    if not user.has_keys:
        raise MissingKeyError(f"Principal {principal_id} has no key pair")

    encrypted = km.encrypt_with_public(test_message, user.public_key)
    try:
        decrypted = km.decrypt_with_private(encrypted, user.wrapped_private_key)
    except DecryptionError as err:
        logger.warning("Encryption test failed for principal %s: %s", principal_id, err)
        decrypted = None

    return EncryptionTestOut(
        is_successful=decrypted == test_message,
        original_message=test_message,
        encrypted_message=encrypted,
        decrypted_message=decrypted,
        key_fingerprint=user.key_fingerprint,
    )


def rotate_keys(db: Session, km: KeyManager, principal_id: int) -> KeyRotationOut:
    """Rotate, verify, then swap the record in only if nobody rotated meanwhile.

    On KeyRotationConflictError retry the whole call, never just the write.
    """
    user = get_principal(db, principal_id)
    current = PrincipalKeyRecord.from_user(user)

    new = km.rotate(current)
    if not km.verify_key_pair_integrity(new.public_key, new.wrapped_private_key):
        raise KeyIntegrityError("Rotated key pair failed integrity check")

    rotated_at = datetime.now(timezone.utc)
    guard = (
        User.key_fingerprint == current.fingerprint
        if current.fingerprint is not None
        else User.key_fingerprint.is_(None)
    )
    stmt = (
        update(User)
        .where(User.id == principal_id, guard)
        .values(
            public_key=new.public_key,
            wrapped_private_key=new.wrapped_private_key,
            key_fingerprint=new.fingerprint,
            keys_rotated_at=rotated_at,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        db.rollback()
        raise KeyRotationConflictError(f"Keys of principal {principal_id} changed during rotation")
    db.commit()
    db.expire(user)

    logger.info(
        "Principal %s keys rotated %s -> %s",
        principal_id, short_fp(current.fingerprint), short_fp(new.fingerprint),
    )
    return KeyRotationOut(
        key_info=km.key_info(new.public_key),
        key_fingerprint=new.fingerprint,
        previous_fingerprint=current.fingerprint,
        rotated_at=rotated_at,
    )


def provision_missing_keys(db: Session, km: KeyManager, max_workers: int = 4) -> int:
    """Backfill principals without a complete key record. Returns how many were fixed."""
    stmt = select(User).where(
        or_(
            User.public_key.is_(None),
            User.wrapped_private_key.is_(None),
            User.key_fingerprint.is_(None),
        )
    ).order_by(User.id)
    users = list(db.execute(stmt).scalars())
    logger.info("Found %d principals without a complete key pair", len(users))
    if not users:
        return 0

    records = km.generate_records(len(users), max_workers=max_workers)
    provisioned = 0
    for user, record in zip(users, records):
        if not km.verify_key_pair_integrity(record.public_key, record.wrapped_private_key):
            logger.error("Key pair verification failed for principal %s; skipped", user.id)
            continue
        user.public_key = record.public_key
        user.wrapped_private_key = record.wrapped_private_key
        user.key_fingerprint = record.fingerprint
        db.commit()
        provisioned += 1
        logger.info("Provisioned key %s for principal %s", short_fp(record.fingerprint), user.id)
    return provisioned
