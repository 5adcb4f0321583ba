import base64

import pytest

from shieldkit.account import NO_INDEX, V1_PLAINTEXT_BYTES, V2_PLAINTEXT_BYTES, Account
from shieldkit.crypto.envelope import encrypt_message, pack_envelope
from shieldkit.crypto.field import SNARK_FIELD
from shieldkit.crypto.poseidon import poseidon_hash
from shieldkit.errors import DecryptionFailure, InvalidAccount
from shieldkit.tests import configure_test_logging

configure_test_logging()


def test_hashes_follow_their_definitions():
    acc = Account.create(amount=100, debt=7, secret=11, nullifier=13)
    assert acc.commitment == poseidon_hash([100, 7, 11, 13])
    assert acc.account_hash == poseidon_hash([100, 7, 11, 13, acc.salt])
    assert acc.nullifier_hash == poseidon_hash([13])


def test_equality_ignores_salt_and_placement():
    a = Account.create(1, 2, 3, 4)
    b = Account.create(1, 2, 3, 4, account_index=9)
    assert a == b
    assert a.salt != b.salt
    assert a.account_hash != b.account_hash


def test_fresh_accounts_get_random_secrets():
    a, b = Account.create(), Account.create()
    assert a.is_empty and b.is_empty
    assert a.secret != b.secret
    assert a.nullifier != b.nullifier


@pytest.mark.parametrize("bad", [{"amount": -1}, {"debt": SNARK_FIELD}, {"secret": "x"}])
def test_invalid_values_are_rejected(bad):
    with pytest.raises(InvalidAccount):
        Account(**bad)


def test_with_index_keeps_identity():
    a = Account.create(5)
    b = a.with_index(3)
    assert b.account_index == 3
    assert b == a
    assert b.salt == a.salt


def test_envelope_roundtrip_generation_1(keypair):
    sk, pk = keypair
    acc = Account.create(amount=10**18, debt=5)
    assert len(acc.plaintext(1)) == V1_PLAINTEXT_BYTES
    wire = pack_envelope(acc.encrypt(pk))
    back = Account.decrypt(sk, wire, index=4)
    assert back == acc
    assert back.account_index == 4
    assert back.previous_account_index is None


def test_envelope_roundtrip_generation_2_carries_previous_index(keypair):
    sk, pk = keypair
    acc = Account.create(amount=1, previous_account_index=41)
    plain = acc.plaintext(2)
    assert len(plain) == V2_PLAINTEXT_BYTES
    back = Account.decrypt(sk, acc.encrypt(pk, generation=2))
    assert back.previous_account_index == 41

    fresh = Account.create(amount=1)
    assert fresh.plaintext(2)[-31:] == NO_INDEX
    assert Account.decrypt(sk, fresh.encrypt(pk, generation=2)).previous_account_index is None


def test_negative_balances_survive_the_envelope(keypair):
    sk, pk = keypair
    overdrawn = Account.create(amount=(5 - 10) % SNARK_FIELD)
    back = Account.decrypt(sk, overdrawn.encrypt(pk))
    assert back.amount == SNARK_FIELD - 5
    assert back == overdrawn


def test_try_decrypt_with_foreign_key(keypair, other_keypair):
    _, pk = keypair
    other_sk, _ = other_keypair
    res = Account.try_decrypt(other_sk, pack_envelope(Account.create(1).encrypt(pk)))
    assert not res
    assert isinstance(res.error, DecryptionFailure)
    with pytest.raises(DecryptionFailure):
        res.unwrap()


def test_garbage_plaintext_is_a_decryption_failure(keypair):
    sk, pk = keypair
    not_b64 = encrypt_message(pk, "***")
    with pytest.raises(DecryptionFailure):
        Account.decrypt(sk, not_b64)
    wrong_len = encrypt_message(pk, base64.b64encode(b"\x00" * 10).decode())
    with pytest.raises(DecryptionFailure):
        Account.decrypt(sk, wrong_len)
    assert not Account.try_decrypt(sk, b"\x00" * 10)
