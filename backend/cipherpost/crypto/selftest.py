from __future__ import annotations

import os

from cipherpost.core.errors import UnwrapError
from cipherpost.crypto.fields import FieldCipher
from cipherpost.crypto.kdf import Argon2Params
from cipherpost.crypto.key_manager import KeyManager
from cipherpost.crypto.master import MasterKeyCipher
from cipherpost.crypto.messages import MessageCrypto
from cipherpost.schemas.message import DecryptStatus

# Cheap KDF settings; the selftest secrets are throwaway.
_SELFTEST_KDF = Argon2Params(time_cost=1, memory_cost=8 * 1024)


def main() -> None:
    master = MasterKeyCipher.from_secret(os.urandom(16).hex(), _SELFTEST_KDF)
    fields = FieldCipher.from_secret(os.urandom(16).hex(), _SELFTEST_KDF)
    km = KeyManager(master)

    # --- master-key wrap/unwrap ---
    wrapped = master.wrap('private key material')
    assert master.unwrap(wrapped) == 'private key material', 'Master-key roundtrip failed'
    other = MasterKeyCipher.from_secret(os.urandom(16).hex(), _SELFTEST_KDF)
    try:
        other.unwrap(wrapped)
    except UnwrapError:
        pass
    else:
        raise AssertionError('Unwrap under a different master key should fail')

    # --- key generation + integrity ---
    alice = km.generate_record()
    bob = km.generate_record()
    assert km.verify_key_pair_integrity(alice.public_key, alice.wrapped_private_key), 'Alice key pair broken'
    assert alice.fingerprint != bob.fingerprint, 'Fingerprint collision'

    # --- dual encryption ---
    crypto = MessageCrypto(km)
    sealed = crypto.seal('hello encrypted world', sender_id=1, recipient_id=2, sender=alice, recipient=bob)
    for reader_id, record in ((2, bob), (1, alice)):
        out = crypto.open(sealed, reader_id, record.wrapped_private_key)
        assert out.status is DecryptStatus.OK and not out.integrity_warning, 'Message roundtrip failed'
        assert out.content == 'hello encrypted world', 'Message content mismatch'

    # --- field cipher ---
    a = fields.encrypt_field('alice@example.com')
    b = fields.encrypt_field('alice@example.com')
    assert a != b, 'Field cipher must be randomised'
    assert fields.decrypt_field(a) == fields.decrypt_field(b) == 'alice@example.com', 'Field roundtrip failed'

    print('OK: crypto selftest passed')


if __name__ == '__main__':
    main()
