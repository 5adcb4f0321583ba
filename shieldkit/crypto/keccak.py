"""Keccak-256 (pre-standard SHA-3, as used by the EVM) via pycryptodome."""

from __future__ import annotations

from Crypto.Hash import keccak as _keccak


def keccak256(data: bytes | bytearray | memoryview) -> bytes:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError("keccak256 expects bytes-like input")
    h = _keccak.new(digest_bits=256)
    h.update(bytes(data))
    return h.digest()


def keccak256_int(data: bytes | bytearray | memoryview) -> int:
    return int.from_bytes(keccak256(data), "big")


__all__ = ["keccak256", "keccak256_int"]
