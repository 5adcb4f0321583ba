import pytest

from shieldkit.account import Account
from shieldkit.crypto.envelope import pack_envelope
from shieldkit.discovery import (
    AccountDiscovery,
    NewAccountEvent,
    by_recency,
    discover_account,
    discover_account_history,
)
from shieldkit.errors import EncodingError
from shieldkit.tests import configure_test_logging

configure_test_logging()


def _event(index, account, public_key, block=None):
    return NewAccountEvent(
        index=index,
        commitment=account.commitment,
        encrypted_account=pack_envelope(account.encrypt(public_key)),
        block_number=block if block is not None else 1000 + index,
    )


def test_finds_the_one_envelope_addressed_to_us(keypair, other_keypair):
    sk, pk = keypair
    _, other_pk = other_keypair
    mine = Account.create(amount=77)
    events = [_event(i, Account.create(amount=i), other_pk) for i in range(10)]
    events[6] = _event(6, mine, pk)

    found = discover_account(sk, events)
    assert found == mine
    assert found.account_index == 6


def test_latest_wins_and_history_is_newest_first(keypair):
    sk, pk = keypair
    old, new = Account.create(amount=1), Account.create(amount=2)
    events = [_event(0, old, pk), _event(1, new, pk)]
    assert discover_account(sk, events) == new
    assert [a.amount for a in discover_account_history(sk, events)] == [2, 1]


def test_block_number_orders_before_index():
    a = NewAccountEvent(index=5, commitment=1, encrypted_account=b"", block_number=10)
    b = NewAccountEvent(index=2, commitment=2, encrypted_account=b"", block_number=11)
    c = NewAccountEvent(index=6, commitment=3, encrypted_account=b"", block_number=10)
    assert [e.commitment for e in by_recency([a, b, c])] == [2, 3, 1]


def test_nothing_found(keypair, other_keypair):
    sk, _ = keypair
    _, other_pk = other_keypair
    events = [_event(i, Account.create(amount=i), other_pk) for i in range(3)]
    assert discover_account(sk, events) is None
    assert discover_account(sk, []) is None


def test_commitment_verification(keypair):
    sk, pk = keypair
    acc = Account.create(amount=3)
    forged = NewAccountEvent(index=0, commitment=12345, encrypted_account=pack_envelope(acc.encrypt(pk)))
    assert AccountDiscovery(sk).discover([forged]) == acc
    assert AccountDiscovery(sk, verify_commitment=True).discover([forged]) is None


def test_bad_key_is_not_mistaken_for_no_account():
    with pytest.raises(EncodingError):
        AccountDiscovery(b"\x00" * 5)


def test_event_from_web3_log(keypair):
    _, pk = keypair
    acc = Account.create(amount=9)
    wire = pack_envelope(acc.encrypt(pk))
    entry = {
        "blockNumber": 1234,
        "transactionHash": "0x" + "aa" * 32,
        "returnValues": {
            "commitment": hex(acc.commitment),
            "index": "7",
            "encryptedAccount": "0x" + wire.hex(),
        },
    }
    ev = NewAccountEvent.from_log(entry)
    assert ev.index == 7
    assert ev.commitment == acc.commitment
    assert ev.encrypted_account == wire
    assert ev.block_number == 1234
    assert ev.tx_hash == b"\xaa" * 32
    with pytest.raises(EncodingError):
        NewAccountEvent.from_log({"returnValues": {"index": 1}})
