import base64

import pytest

from shieldkit.crypto.envelope import (
    HEADER_BYTES,
    VERSION,
    EncryptedMessage,
    decrypt_message,
    encrypt_message,
    encryption_public_key,
    pack_envelope,
    unpack_envelope,
)
from shieldkit.errors import DecryptionFailure, EncodingError
from shieldkit.tests import configure_test_logging

configure_test_logging()


def test_encrypt_then_decrypt(keypair):
    sk, pk = keypair
    msg = encrypt_message(pk, "hello pool")
    assert msg.version == VERSION
    assert len(msg.nonce) == 24
    assert len(msg.ephemeral_public_key) == 32
    assert decrypt_message(sk, msg) == b"hello pool"


def test_public_key_is_base64_x25519(keypair):
    sk, pk = keypair
    assert len(base64.b64decode(pk)) == 32
    assert encryption_public_key(sk.hex()) == pk
    assert encryption_public_key("0x" + sk.hex()) == pk


def test_foreign_key_fails_with_decryption_failure(keypair, other_keypair):
    _, pk = keypair
    other_sk, _ = other_keypair
    msg = encrypt_message(pk, b"secret")
    with pytest.raises(DecryptionFailure):
        decrypt_message(other_sk, msg)


def test_tampered_ciphertext_is_rejected(keypair):
    sk, pk = keypair
    msg = encrypt_message(pk, b"secret")
    flipped = bytes([msg.ciphertext[0] ^ 1]) + msg.ciphertext[1:]
    bad = EncryptedMessage(msg.version, msg.nonce, msg.ephemeral_public_key, flipped)
    with pytest.raises(DecryptionFailure):
        decrypt_message(sk, bad)


def test_wire_layout_is_nonce_then_key_then_ciphertext(keypair):
    sk, pk = keypair
    msg = encrypt_message(pk, b"x" * 40)
    wire = pack_envelope(msg)
    assert wire[:24] == msg.nonce
    assert wire[24:HEADER_BYTES] == msg.ephemeral_public_key
    assert wire[HEADER_BYTES:] == msg.ciphertext
    assert unpack_envelope(wire) == msg
    assert unpack_envelope("0x" + wire.hex()) == msg
    assert decrypt_message(sk, unpack_envelope(wire)) == b"x" * 40


def test_short_envelope_is_an_encoding_error():
    with pytest.raises(EncodingError):
        unpack_envelope(b"\x00" * (HEADER_BYTES - 1))


def test_json_shape_matches_eth_sig_util(keypair):
    _, pk = keypair
    msg = encrypt_message(pk, b"abc")
    doc = msg.to_json()
    assert set(doc) == {"version", "nonce", "ephemPublicKey", "ciphertext"}
    assert EncryptedMessage.from_json(doc) == msg
    with pytest.raises(EncodingError):
        EncryptedMessage.from_json({"version": VERSION})


def test_bad_keys_are_encoding_errors(keypair):
    with pytest.raises(EncodingError):
        encryption_public_key(b"\x01" * 31)
    with pytest.raises(EncodingError):
        encrypt_message(base64.b64encode(b"\x01" * 16).decode(), b"x")
