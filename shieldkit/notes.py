"""
Legacy fixed-denomination deposit notes.

A note is the bearer secret of a Pedersen-committed deposit::

    poof-<currency>-<amount>-<netId>-0x<nullifier_le31 ‖ secret_le31 as 124 hex>

commitment     = Pedersen(nullifier_le31 ‖ secret_le31)
nullifier_hash = Pedersen(nullifier_le31)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from shieldkit.crypto.field import SCALAR_BYTES, fixed_hex, random_scalar
from shieldkit.crypto.pedersen import pedersen_hash
from shieldkit.errors import EncodingError

NOTE_PREFIX = "poof"
NOTE_RE = re.compile(
    r"poof-(?P<currency>\w+)-(?P<amount>[\d.]+)-(?P<net_id>\d+)-0x(?P<note>[0-9a-fA-F]{124})"
)


def _le31(value: int) -> bytes:
    if not 0 <= value < 1 << (8 * SCALAR_BYTES):
        raise EncodingError("note scalar does not fit 31 bytes")
    return value.to_bytes(SCALAR_BYTES, "little")


@dataclass(frozen=True)
class Deposit:
    nullifier: int
    secret: int
    preimage: bytes
    commitment: int
    nullifier_hash: int

    @property
    def commitment_hex(self) -> str:
        return fixed_hex(self.commitment)

    @property
    def nullifier_hex(self) -> str:
        return fixed_hex(self.nullifier_hash)

    @property
    def secret_hex(self) -> str:
        return fixed_hex(self.secret)


@dataclass(frozen=True)
class ParsedNote:
    currency: str
    amount: str
    net_id: int
    deposit: Deposit


def create_deposit(nullifier: int, secret: int) -> Deposit:
    preimage = _le31(nullifier) + _le31(secret)
    return Deposit(
        nullifier=nullifier,
        secret=secret,
        preimage=preimage,
        commitment=pedersen_hash(preimage),
        nullifier_hash=pedersen_hash(_le31(nullifier)),
    )


def generate_note(
    currency: str,
    amount: str,
    net_id: int,
    nullifier: Optional[int] = None,
    secret: Optional[int] = None,
) -> str:
    """New note string; nullifier and secret are random unless given."""
    n = random_scalar() if nullifier is None else nullifier
    s = random_scalar() if secret is None else secret
    return f"{NOTE_PREFIX}-{currency}-{amount}-{int(net_id)}-0x{(_le31(n) + _le31(s)).hex()}"


def is_valid_note(note: str) -> bool:
    return NOTE_RE.search(note) is not None


def parse_note(note: str) -> ParsedNote:
    m = NOTE_RE.search(note)
    if m is None:
        raise EncodingError("the note has an invalid format")
    buf = bytes.fromhex(m.group("note"))
    deposit = create_deposit(
        nullifier=int.from_bytes(buf[:SCALAR_BYTES], "little"),
        secret=int.from_bytes(buf[SCALAR_BYTES:], "little"),
    )
    return ParsedNote(
        currency=m.group("currency"),
        amount=m.group("amount"),
        net_id=int(m.group("net_id")),
        deposit=deposit,
    )


__all__ = [
    "Deposit",
    "ParsedNote",
    "create_deposit",
    "generate_note",
    "is_valid_note",
    "parse_note",
]
