"""
Bound-argument hashing (`extDataHash`).

The external fields of an operation (encrypted account, and for withdrawals
fee / recipient / relayer) are ABI-encoded as a single tuple exactly as the
pool contract decodes them, hashed with keccak-256 and the top byte is zeroed
so the value is a BN254 scalar. The circuit constrains this value, so none of
these fields can be changed after the proof is generated.

Layouts
-------
generation 1
    deposit / burn      (bytes encryptedAccount)
    withdraw / mint     (uint256 fee, address recipient, address relayer, bytes encryptedAccount)
generation 2
    deposit / burn      (bytes encryptedAccount, uint8 operation)
    withdraw / mint     (uint256 fee, address recipient, address relayer,
                         bytes32 depositProofHash, bytes encryptedAccount, uint8 operation)
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Mapping, Optional, Tuple, Union

from eth_abi import encode as abi_encode

from shieldkit.crypto.field import fixed_bytes, parse_hex, to_int
from shieldkit.crypto.keccak import keccak256
from shieldkit.errors import EncodingError

BytesLike = Union[str, bytes, bytearray]


class OperationKind(IntEnum):
    DEPOSIT = 0
    BURN = 1
    WITHDRAW = 2
    MINT = 3

    @property
    def method(self) -> str:
        return self.name.lower()

    @property
    def is_deposit_style(self) -> bool:
        return self in (OperationKind.DEPOSIT, OperationKind.BURN)


DEPOSIT_TYPES = {
    1: "(bytes)",
    2: "(bytes,uint8)",
}
WITHDRAW_TYPES = {
    1: "(uint256,address,address,bytes)",
    2: "(uint256,address,address,bytes32,bytes,uint8)",
}


def field_hash(data: bytes) -> bytes:
    """keccak-256 with the top byte zeroed (31 significant bytes)."""
    return b"\x00" + keccak256(data)[1:]


def _as_bytes(value: BytesLike) -> bytes:
    return parse_hex(value) if isinstance(value, str) else bytes(value)


def _address(value: Any) -> bytes:
    if value is None:
        return bytes(20)
    if isinstance(value, str):
        return fixed_bytes(parse_hex(value), 20)
    return fixed_bytes(value, 20)


def deposit_proof_hash(proof: Optional[BytesLike]) -> bytes:
    """Hash of a companion deposit proof's call-data; 32 zero bytes when absent."""
    if proof is None or len(proof) == 0:
        return bytes(32)
    return field_hash(_as_bytes(proof))


def encode_ext_data(
    kind: OperationKind, fields: Mapping[str, Any], generation: int = 1
) -> Tuple[str, bytes]:
    """Return (tuple type, ABI encoding) of the external data for `kind`."""
    if generation not in DEPOSIT_TYPES:
        raise EncodingError("unknown protocol generation", generation=generation)
    kind = OperationKind(kind)
    try:
        encrypted = _as_bytes(fields["encrypted_account"])
        if kind.is_deposit_style:
            typ = DEPOSIT_TYPES[generation]
            values: Tuple[Any, ...] = (encrypted,)
            if generation == 2:
                values += (int(kind),)
        else:
            typ = WITHDRAW_TYPES[generation]
            fee = to_int(fields.get("fee", 0))
            recipient = _address(fields["recipient"])
            relayer = _address(fields.get("relayer"))
            if generation == 2:
                proof_hash = fixed_bytes(_as_bytes(fields.get("deposit_proof_hash") or bytes(32)), 32)
                values = (fee, recipient, relayer, proof_hash, encrypted, int(kind))
            else:
                values = (fee, recipient, relayer, encrypted)
    except KeyError as e:
        raise EncodingError(f"missing bound field {e.args[0]!r}", kind=kind.method) from None
    return typ, abi_encode([typ], [values])


def bind_arguments(kind: OperationKind, fields: Mapping[str, Any], generation: int = 1) -> int:
    """`extDataHash` for `kind` as a field element."""
    _, encoded = encode_ext_data(kind, fields, generation)
    return int.from_bytes(field_hash(encoded), "big")


__all__ = [
    "OperationKind",
    "DEPOSIT_TYPES",
    "WITHDRAW_TYPES",
    "field_hash",
    "deposit_proof_hash",
    "encode_ext_data",
    "bind_arguments",
]
