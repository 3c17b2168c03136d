from __future__ import annotations

import base64
import hashlib

import pytest
from cryptography.hazmat.primitives import serialization

from cipherpost.core.errors import (
    DecryptionError,
    EncryptionError,
    KeyGenerationError,
    UnwrapError,
)
from cipherpost.crypto.kdf import Argon2Params
from cipherpost.crypto.key_manager import KeyManager
from cipherpost.crypto.keys import PrincipalKeyRecord
from cipherpost.crypto.master import MasterKeyCipher


def test_generated_pair_passes_integrity(key_manager: KeyManager) -> None:
    pair = key_manager.generate_key_pair()
    assert pair.public_key.startswith("-----BEGIN PUBLIC KEY-----")
    assert "PRIVATE KEY" not in pair.wrapped_private_key
    assert key_manager.verify_key_pair_integrity(pair.public_key, pair.wrapped_private_key) is True


def test_roundtrip(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    for message in ("hello", "zażółć gęślą jaźń", "x" * 190):
        ct = key_manager.encrypt_with_public(message, alice_keys.public_key)
        assert ct != message
        assert key_manager.decrypt_with_private(ct, alice_keys.wrapped_private_key) == message


def test_encryption_is_randomised(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    a = key_manager.encrypt_with_public("hello", alice_keys.public_key)
    b = key_manager.encrypt_with_public("hello", alice_keys.public_key)
    assert a != b


def test_mismatched_pair_fails(
    key_manager: KeyManager, alice_keys: PrincipalKeyRecord, bob_keys: PrincipalKeyRecord
) -> None:
    ct = key_manager.encrypt_with_public("for alice only", alice_keys.public_key)
    with pytest.raises(DecryptionError):
        key_manager.decrypt_with_private(ct, bob_keys.wrapped_private_key)
    assert key_manager.verify_key_pair_integrity(alice_keys.public_key, bob_keys.wrapped_private_key) is False


def test_payload_limit(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    assert key_manager.max_payload_size(alice_keys.public_key) == 190
    with pytest.raises(EncryptionError):
        key_manager.encrypt_with_public("x" * 191, alice_keys.public_key)
    # Limit is in bytes, not characters
    with pytest.raises(EncryptionError):
        key_manager.encrypt_with_public("ż" * 96, alice_keys.public_key)


def test_invalid_public_key(key_manager: KeyManager) -> None:
    with pytest.raises(EncryptionError):
        key_manager.encrypt_with_public("hello", "not a pem")
    assert key_manager.validate_public_key("not a pem") is False
    assert key_manager.validate_public_key(None) is False


def test_decrypt_garbage_ciphertext(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    with pytest.raises(DecryptionError):
        key_manager.decrypt_with_private("%%% not base64 %%%", alice_keys.wrapped_private_key)
    with pytest.raises(DecryptionError):
        key_manager.decrypt_with_private(base64.b64encode(b"\x00" * 256).decode(), alice_keys.wrapped_private_key)


def test_decrypt_with_corrupted_wrapped_key(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    ct = key_manager.encrypt_with_public("hello", alice_keys.public_key)
    corrupted = alice_keys.wrapped_private_key[:-4] + "AAAA"
    with pytest.raises(UnwrapError):
        key_manager.decrypt_with_private(ct, corrupted)
    with pytest.raises(UnwrapError):
        key_manager.decrypt_with_private(ct, "")


def test_other_master_key_cannot_unwrap(alice_keys: PrincipalKeyRecord, key_manager: KeyManager) -> None:
    other = KeyManager(MasterKeyCipher.from_secret("different-master", Argon2Params(time_cost=1, memory_cost=8 * 1024)))
    ct = key_manager.encrypt_with_public("hello", alice_keys.public_key)
    with pytest.raises(DecryptionError):
        other.decrypt_with_private(ct, alice_keys.wrapped_private_key)
    assert other.verify_key_pair_integrity(alice_keys.public_key, alice_keys.wrapped_private_key) is False


def test_fingerprint_is_sha256_of_der(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    pub = serialization.load_pem_public_key(alice_keys.public_key.encode())
    der = pub.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    assert key_manager.fingerprint(alice_keys.public_key) == hashlib.sha256(der).hexdigest()
    assert alice_keys.fingerprint == hashlib.sha256(der).hexdigest()


def test_fingerprint_ignores_pem_formatting(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    reformatted = alice_keys.public_key.rstrip("\n") + "\n\n"
    assert key_manager.fingerprint(reformatted) == key_manager.fingerprint(alice_keys.public_key)


def test_fingerprint_stable_and_unique(key_manager: KeyManager) -> None:
    records = key_manager.generate_records(100, max_workers=4)
    assert len(records) == 100
    fingerprints = {r.fingerprint for r in records}
    assert len(fingerprints) == 100
    sample = records[0]
    assert key_manager.fingerprint(sample.public_key) == sample.fingerprint
    assert key_manager.fingerprint(sample.public_key) == key_manager.fingerprint(sample.public_key)


def test_generate_records_empty(key_manager: KeyManager) -> None:
    assert key_manager.generate_records(0) == []


def test_rotation_isolates_old_and_new(key_manager: KeyManager) -> None:
    old = key_manager.generate_record()
    new = key_manager.rotate(old)

    assert new.is_complete
    assert new.fingerprint != old.fingerprint
    assert new.public_key != old.public_key
    assert key_manager.verify_key_pair_integrity(new.public_key, new.wrapped_private_key)

    under_new = key_manager.encrypt_with_public("after rotation", new.public_key)
    with pytest.raises(DecryptionError):
        key_manager.decrypt_with_private(under_new, old.wrapped_private_key)

    under_old = key_manager.encrypt_with_public("before rotation", old.public_key)
    with pytest.raises(DecryptionError):
        key_manager.decrypt_with_private(under_old, new.wrapped_private_key)


def test_key_info(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    info = key_manager.key_info(alice_keys.public_key)
    assert info.algorithm == "RSA"
    assert info.key_size == 2048
    assert info.format == "PEM"
    assert info.fingerprint == alice_keys.fingerprint


def test_small_keys_refused(key_manager: KeyManager) -> None:
    with pytest.raises(KeyGenerationError):
        key_manager.generate_key_pair(bits=1024)
    with pytest.raises(ValueError):
        KeyManager(MasterKeyCipher(b"\x00" * 32), default_key_size=1024)


def test_library_failure_raises_key_generation_error(key_manager: KeyManager, monkeypatch) -> None:
    def boom(key_size: int):
        raise RuntimeError("entropy source unavailable")

    monkeypatch.setattr("cipherpost.crypto.key_manager.generate_rsa_keys", boom)
    with pytest.raises(KeyGenerationError) as exc_info:
        key_manager.generate_key_pair()
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_hybrid_roundtrip_for_long_content(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    body = "long message body " * 200
    ct = key_manager.encrypt_hybrid(body, alice_keys.public_key)
    assert key_manager.decrypt_hybrid(ct, alice_keys.wrapped_private_key) == body


def test_hybrid_wrong_key_and_tamper(
    key_manager: KeyManager, alice_keys: PrincipalKeyRecord, bob_keys: PrincipalKeyRecord
) -> None:
    ct = key_manager.encrypt_hybrid("secret", alice_keys.public_key)
    with pytest.raises(DecryptionError):
        key_manager.decrypt_hybrid(ct, bob_keys.wrapped_private_key)

    blob = bytearray(base64.b64decode(ct))
    blob[-1] ^= 0x80
    with pytest.raises(DecryptionError):
        key_manager.decrypt_hybrid(base64.b64encode(bytes(blob)).decode(), alice_keys.wrapped_private_key)

    with pytest.raises(DecryptionError):
        key_manager.decrypt_hybrid(base64.b64encode(b"\x01").decode(), alice_keys.wrapped_private_key)


def test_record_completeness() -> None:
    assert PrincipalKeyRecord("pub", "wrapped", "fp").is_complete
    assert not PrincipalKeyRecord("pub", None, "fp").is_complete
    assert not PrincipalKeyRecord(None, "wrapped", None).is_complete


def test_zero_bits_is_not_the_default(key_manager: KeyManager) -> None:
    with pytest.raises(KeyGenerationError):
        key_manager.generate_key_pair(bits=0)


def test_unencodable_plaintext(key_manager: KeyManager, alice_keys: PrincipalKeyRecord) -> None:
    with pytest.raises(EncryptionError):
        key_manager.encrypt_with_public("lone \ud800 surrogate", alice_keys.public_key)
    with pytest.raises(EncryptionError):
        key_manager.encrypt_hybrid("lone \ud800 surrogate", alice_keys.public_key)
