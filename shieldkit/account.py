"""
shieldkit.account
=================

The private account: a balance (`amount`) and a minted liability (`debt`)
owned by whoever knows `secret` and `nullifier`.

    commitment     = Poseidon(amount, debt, secret, nullifier)     # tree leaf
    account_hash   = Poseidon(amount, debt, secret, nullifier, salt)
    nullifier_hash = Poseidon(nullifier)                           # spent marker

Accounts are immutable. Every mutation produces a new value with a fresh
`salt`, so two envelopes of otherwise identical accounts never share an
`account_hash`.

Envelope plaintext
------------------
Fixed 31-byte big-endian fields, concatenated and base64-encoded (the
eth-sig-util envelope carries text)::

    amount[31] ‖ debt[31] ‖ secret[31] ‖ nullifier[31] ‖ previousAccountIndex[31]?

The last field is written by generation 2 pools only; an account that has no
predecessor stores 31 bytes of 0xff there.

`amount` and `debt` are field elements. A value above SNARK_FIELD/2 stands for
the negative number it is congruent to and is written as a 248-bit two's
complement, so results of field arithmetic that went below zero survive the
envelope round trip unchanged. Ordinary balances encode exactly as plain
big-endian integers.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
from dataclasses import dataclass, field
from typing import Optional, Union

from shieldkit.crypto.envelope import (
    EncryptedMessage,
    KeyLike,
    decrypt_message,
    encrypt_message,
    unpack_envelope,
)
from shieldkit.crypto.field import (
    SCALAR_BYTES,
    SNARK_FIELD,
    IntLike,
    fixed_bytes,
    random_scalar,
    to_int,
)
from shieldkit.crypto.poseidon import poseidon_hash
from shieldkit.errors import DecryptionFailure, EncodingError, InvalidAccount, ShieldError

FIELD_BYTES = SCALAR_BYTES
V1_PLAINTEXT_BYTES = 4 * FIELD_BYTES
V2_PLAINTEXT_BYTES = 5 * FIELD_BYTES
NO_INDEX = b"\xff" * FIELD_BYTES

_SIGNED_BITS = 8 * FIELD_BYTES
_HALF_FIELD = SNARK_FIELD // 2


def _encode_signed(value: int) -> bytes:
    signed = value - SNARK_FIELD if value > _HALF_FIELD else value
    if not -(1 << (_SIGNED_BITS - 1)) <= signed < (1 << (_SIGNED_BITS - 1)):
        raise EncodingError("balance does not fit a 31-byte field", bits=signed.bit_length())
    return (signed % (1 << _SIGNED_BITS)).to_bytes(FIELD_BYTES, "big")


def _decode_signed(raw: bytes) -> int:
    n = int.from_bytes(raw, "big")
    if n >> (_SIGNED_BITS - 1):
        n -= 1 << _SIGNED_BITS
    return n % SNARK_FIELD


@dataclass(frozen=True)
class Account:
    amount: int = 0
    debt: int = 0
    secret: int = field(default_factory=random_scalar, repr=False)
    nullifier: int = field(default_factory=random_scalar, repr=False)
    salt: int = field(default_factory=random_scalar, compare=False, repr=False)
    account_index: Optional[int] = field(default=None, compare=False)
    previous_account_index: Optional[int] = field(default=None, compare=False)

    commitment: int = field(init=False, repr=False)
    account_hash: int = field(init=False, repr=False, compare=False)
    nullifier_hash: int = field(init=False, repr=False)

    def __post_init__(self) -> None:
        for name in ("amount", "debt", "secret", "nullifier", "salt"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidAccount(f"{name} must be an integer", type=type(value).__name__)
            if value < 0:
                raise InvalidAccount(f"cannot create an account with a negative {name}")
            if value >= SNARK_FIELD:
                raise InvalidAccount(f"{name} is not a field element")
        base = [self.amount, self.debt, self.secret, self.nullifier]
        object.__setattr__(self, "commitment", poseidon_hash(base))
        object.__setattr__(self, "account_hash", poseidon_hash(base + [self.salt]))
        object.__setattr__(self, "nullifier_hash", poseidon_hash([self.nullifier]))

    @classmethod
    def create(
        cls,
        amount: IntLike = 0,
        debt: IntLike = 0,
        secret: Optional[IntLike] = None,
        nullifier: Optional[IntLike] = None,
        *,
        account_index: Optional[int] = None,
        previous_account_index: Optional[int] = None,
    ) -> "Account":
        """
        New account value. Missing `secret` / `nullifier` are drawn from the
        OS CSPRNG; `salt` is always fresh.
        """
        return cls(
            amount=to_int(amount),
            debt=to_int(debt),
            secret=random_scalar() if secret is None else to_int(secret),
            nullifier=random_scalar() if nullifier is None else to_int(nullifier),
            salt=random_scalar(),
            account_index=account_index,
            previous_account_index=previous_account_index,
        )

    def with_index(self, index: int) -> "Account":
        """Copy of this account placed at `index` in the commitment tree."""
        return dataclasses.replace(self, account_index=int(index))

    @property
    def is_empty(self) -> bool:
        return self.amount == 0 and self.debt == 0

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    def plaintext(self, generation: int = 1) -> bytes:
        parts = [
            _encode_signed(self.amount),
            _encode_signed(self.debt),
            fixed_bytes(self.secret, FIELD_BYTES),
            fixed_bytes(self.nullifier, FIELD_BYTES),
        ]
        if generation >= 2:
            idx = self.previous_account_index
            parts.append(NO_INDEX if idx is None else fixed_bytes(idx, FIELD_BYTES))
        return b"".join(parts)

    def encrypt(self, public_key: KeyLike, *, generation: int = 1) -> EncryptedMessage:
        data = base64.b64encode(self.plaintext(generation)).decode("ascii")
        return encrypt_message(public_key, data)

    @classmethod
    def from_plaintext(cls, raw: bytes, index: Optional[int] = None) -> "Account":
        if len(raw) not in (V1_PLAINTEXT_BYTES, V2_PLAINTEXT_BYTES):
            raise DecryptionFailure("unexpected account plaintext length", size=len(raw))
        chunks = [raw[i : i + FIELD_BYTES] for i in range(0, len(raw), FIELD_BYTES)]
        previous: Optional[int] = None
        if len(chunks) == 5 and chunks[4] != NO_INDEX:
            previous = int.from_bytes(chunks[4], "big")
        return cls.create(
            amount=_decode_signed(chunks[0]),
            debt=_decode_signed(chunks[1]),
            secret=int.from_bytes(chunks[2], "big"),
            nullifier=int.from_bytes(chunks[3], "big"),
            account_index=index,
            previous_account_index=previous,
        )

    @classmethod
    def decrypt(
        cls,
        private_key: KeyLike,
        envelope: Union[EncryptedMessage, bytes, str],
        index: Optional[int] = None,
    ) -> "Account":
        """
        Recover an account from its envelope (an EncryptedMessage or the packed
        wire bytes). Raises DecryptionFailure if it is not addressed to `private_key`.
        """
        message = envelope if isinstance(envelope, EncryptedMessage) else unpack_envelope(envelope)
        opened = decrypt_message(private_key, message)
        try:
            raw = base64.b64decode(opened, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionFailure("account plaintext is not base64").with_cause(e) from e
        try:
            return cls.from_plaintext(raw, index)
        except InvalidAccount as e:
            raise DecryptionFailure("account plaintext is not a valid account").with_cause(e) from e

    @classmethod
    def try_decrypt(
        cls,
        private_key: KeyLike,
        envelope: Union[EncryptedMessage, bytes, str],
        index: Optional[int] = None,
    ) -> "DecryptResult":
        try:
            return DecryptResult(ok=True, account=cls.decrypt(private_key, envelope, index))
        except (DecryptionFailure, EncodingError) as e:
            return DecryptResult(ok=False, error=e)


@dataclass(frozen=True)
class DecryptResult:
    ok: bool
    account: Optional[Account] = None
    error: Optional[ShieldError] = None

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self) -> Account:
        if not self.ok or self.account is None:
            raise self.error or DecryptionFailure()
        return self.account


__all__ = [
    "Account",
    "DecryptResult",
    "NO_INDEX",
    "V1_PLAINTEXT_BYTES",
    "V2_PLAINTEXT_BYTES",
]
