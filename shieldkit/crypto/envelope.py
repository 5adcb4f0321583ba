"""
Account envelopes: eth-sig-util compatible `x25519-xsalsa20-poly1305`
encryption and the fixed on-chain wire layout.

Wire layout (bit-exact)::

    nonce[24] ‖ ephemeralPublicKey[32] ‖ ciphertext[...]

Both fixed slots are left-zero-padded when the underlying value is shorter.
`unpack_envelope(pack_envelope(m)) == m` and `pack_envelope(unpack_envelope(b)) == b`
for every byte string of at least 56 bytes.

Keys follow eth-sig-util: a private key is the 32-byte secret (usually an
Ethereum private key as hex), the public key is its X25519 public key in
base64 (`getEncryptionPublicKey`).
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Dict, Union

from nacl.exceptions import CryptoError
from nacl.public import Box, PrivateKey, PublicKey
from nacl.utils import random as nacl_random

from shieldkit.crypto.field import parse_hex
from shieldkit.errors import DecryptionFailure, EncodingError

VERSION = "x25519-xsalsa20-poly1305"
NONCE_BYTES = Box.NONCE_SIZE  # 24
PUBLIC_KEY_BYTES = PublicKey.SIZE  # 32
HEADER_BYTES = NONCE_BYTES + PUBLIC_KEY_BYTES

KeyLike = Union[str, bytes, bytearray]


@dataclass(frozen=True)
class EncryptedMessage:
    version: str
    nonce: bytes
    ephemeral_public_key: bytes
    ciphertext: bytes

    def to_json(self) -> Dict[str, str]:
        """eth-sig-util `EthEncryptedData` shape (base64 fields)."""
        return {
            "version": self.version,
            "nonce": base64.b64encode(self.nonce).decode(),
            "ephemPublicKey": base64.b64encode(self.ephemeral_public_key).decode(),
            "ciphertext": base64.b64encode(self.ciphertext).decode(),
        }

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "EncryptedMessage":
        try:
            return cls(
                version=str(obj.get("version", VERSION)),
                nonce=base64.b64decode(obj["nonce"]),
                ephemeral_public_key=base64.b64decode(obj["ephemPublicKey"]),
                ciphertext=base64.b64decode(obj["ciphertext"]),
            )
        except (KeyError, binascii.Error, TypeError) as e:
            raise EncodingError("malformed encrypted message").with_cause(e) from e


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


def _private_key(private_key: KeyLike) -> PrivateKey:
    raw = parse_hex(private_key) if isinstance(private_key, str) else bytes(private_key)
    if len(raw) != PrivateKey.SIZE:
        raise EncodingError("private key must be 32 bytes", size=len(raw))
    return PrivateKey(raw)


def _public_key(public_key: KeyLike) -> PublicKey:
    if isinstance(public_key, str):
        try:
            raw = base64.b64decode(public_key, validate=True)
        except binascii.Error as e:
            raise EncodingError("public key must be base64").with_cause(e) from e
    else:
        raw = bytes(public_key)
    if len(raw) != PUBLIC_KEY_BYTES:
        raise EncodingError("public key must be 32 bytes", size=len(raw))
    return PublicKey(raw)


def encryption_public_key(private_key: KeyLike) -> str:
    """Base64 X25519 public key for `private_key` (eth-sig-util `getEncryptionPublicKey`)."""
    return base64.b64encode(bytes(_private_key(private_key).public_key)).decode()


# ---------------------------------------------------------------------------
# Encrypt / decrypt
# ---------------------------------------------------------------------------


def encrypt_message(public_key: KeyLike, plaintext: Union[str, bytes]) -> EncryptedMessage:
    """Encrypt to `public_key` with a fresh ephemeral keypair and random nonce."""
    data = plaintext.encode("utf-8") if isinstance(plaintext, str) else bytes(plaintext)
    ephemeral = PrivateKey.generate()
    nonce = nacl_random(NONCE_BYTES)
    boxed = Box(ephemeral, _public_key(public_key)).encrypt(data, nonce)
    return EncryptedMessage(
        version=VERSION,
        nonce=nonce,
        ephemeral_public_key=bytes(ephemeral.public_key),
        ciphertext=boxed.ciphertext,
    )


def decrypt_message(private_key: KeyLike, message: EncryptedMessage) -> bytes:
    """
    Open `message` with `private_key`.

    Raises DecryptionFailure when the message was not encrypted to this key
    (or was tampered with).
    """
    if message.version != VERSION:
        raise DecryptionFailure("unsupported envelope version", version=message.version)
    sk = _private_key(private_key)
    try:
        box = Box(sk, PublicKey(message.ephemeral_public_key))
        return box.decrypt(message.ciphertext, message.nonce)
    except (CryptoError, ValueError, TypeError) as e:
        raise DecryptionFailure().with_cause(e) from e


# ---------------------------------------------------------------------------
# Wire packing
# ---------------------------------------------------------------------------


def _slot(value: bytes, size: int, name: str) -> bytes:
    if len(value) > size:
        raise EncodingError(f"{name} does not fit its slot", size=len(value), slot=size)
    return value.rjust(size, b"\x00")


def pack_envelope(message: EncryptedMessage) -> bytes:
    return (
        _slot(message.nonce, NONCE_BYTES, "nonce")
        + _slot(message.ephemeral_public_key, PUBLIC_KEY_BYTES, "ephemeral public key")
        + message.ciphertext
    )


def unpack_envelope(data: Union[str, bytes, bytearray]) -> EncryptedMessage:
    """Inverse of `pack_envelope`; accepts bytes or a (0x-)hex string."""
    raw = parse_hex(data) if isinstance(data, str) else bytes(data)
    if len(raw) < HEADER_BYTES:
        raise EncodingError("envelope shorter than its fixed header", size=len(raw))
    return EncryptedMessage(
        version=VERSION,
        nonce=raw[:NONCE_BYTES],
        ephemeral_public_key=raw[NONCE_BYTES:HEADER_BYTES],
        ciphertext=raw[HEADER_BYTES:],
    )


__all__ = [
    "VERSION",
    "NONCE_BYTES",
    "PUBLIC_KEY_BYTES",
    "HEADER_BYTES",
    "EncryptedMessage",
    "encryption_public_key",
    "encrypt_message",
    "decrypt_message",
    "pack_envelope",
    "unpack_envelope",
]
