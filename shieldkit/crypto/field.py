"""
BN254 scalar field (Fr) helpers and fixed-width encodings.

Every value that enters a circuit witness is an element of Fr; every value
that crosses into an on-chain encoding goes through `fixed_hex` /
`fixed_bytes`, which refuse to truncate.

Features:
- Canonical modulus `SNARK_FIELD` (the BN254 group order, via py_ecc).
- Reduction, inversion and Tonelli–Shanks square roots.
- `random_scalar(nbytes)` from the OS CSPRNG.
- Lenient integer coercion for decimal / 0x-hex strings and big-endian bytes.

These helpers are **not** constant-time.
"""

from __future__ import annotations

import secrets
from typing import Iterable, Optional, Union

from py_ecc.bn128 import curve_order

from shieldkit.errors import EncodingError

SNARK_FIELD: int = int(curve_order)
SCALAR_BYTES = 31

IntLike = Union[int, str, bytes, bytearray, memoryview]


def to_int(x: IntLike) -> int:
    """
    Coerce int / decimal or 0x-hex string / big-endian bytes to a Python int.
    Raises EncodingError for anything else.
    """
    if isinstance(x, bool):
        raise EncodingError("booleans are not integers here", value=x)
    if isinstance(x, int):
        return x
    if isinstance(x, (bytes, bytearray, memoryview)):
        return int.from_bytes(bytes(x), "big")
    if isinstance(x, str):
        s = x.strip().lower()
        try:
            if s.startswith("0x"):
                return int(s[2:] or "0", 16)
            return int(s, 10)
        except ValueError as e:
            raise EncodingError("not an integer literal", value=x).with_cause(e) from e
    raise EncodingError(f"cannot coerce {type(x).__name__} to int")


def reduce(x: IntLike) -> int:
    """Reduce to the canonical representative in [0, SNARK_FIELD)."""
    return to_int(x) % SNARK_FIELD


def is_field_element(x: int) -> bool:
    return isinstance(x, int) and 0 <= x < SNARK_FIELD


def fsub(a: int, b: int) -> int:
    return (int(a) - int(b)) % SNARK_FIELD


def fadd(a: int, b: int) -> int:
    return (int(a) + int(b)) % SNARK_FIELD


def inv(a: int, modulus: int = SNARK_FIELD) -> int:
    """Multiplicative inverse using Fermat's little theorem (modulus prime)."""
    if a % modulus == 0:
        raise ZeroDivisionError("inverse of zero")
    return pow(a, modulus - 2, modulus)


def sqrt(a: int, modulus: int = SNARK_FIELD) -> Optional[int]:
    """
    Tonelli–Shanks square root modulo a prime.
    Returns one of the two roots if it exists, else None.
    """
    a %= modulus
    if a == 0:
        return 0
    if pow(a, (modulus - 1) // 2, modulus) != 1:
        return None

    # Factor p-1 = q * 2^s with q odd
    q = modulus - 1
    s = 0
    while q & 1 == 0:
        q >>= 1
        s += 1

    z = 2
    while pow(z, (modulus - 1) // 2, modulus) != modulus - 1:
        z += 1

    m = s
    c = pow(z, q, modulus)
    t = pow(a, q, modulus)
    r = pow(a, (q + 1) // 2, modulus)

    while t != 1:
        # lowest i in [1..m) such that t^(2^i) == 1
        i = 1
        t2i = (t * t) % modulus
        while i < m and t2i != 1:
            t2i = (t2i * t2i) % modulus
            i += 1
        b = pow(c, 1 << (m - i - 1), modulus)
        r = (r * b) % modulus
        c = (b * b) % modulus
        t = (t * c) % modulus
        m = i
    return r


# ---------------------------------------------------------------------------
# Fixed-width encodings
# ---------------------------------------------------------------------------


def fixed_bytes(value: IntLike, length: int = 32) -> bytes:
    """
    Big-endian, zero-padded encoding of exactly `length` bytes.

    Bytes input is left-padded. Fails closed: negative values and values that
    do not fit raise EncodingError instead of being truncated.
    """
    if length <= 0:
        raise EncodingError("length must be > 0", length=length)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) > length:
            raise EncodingError("value does not fit", length=length, size=len(raw))
        return raw.rjust(length, b"\x00")
    n = to_int(value)
    if n < 0:
        raise EncodingError("negative values have no fixed-width encoding", value=n)
    if n.bit_length() > 8 * length:
        raise EncodingError("value does not fit", length=length, bits=n.bit_length())
    return n.to_bytes(length, "big")


def fixed_hex(value: IntLike, length: int = 32) -> str:
    """`fixed_bytes` rendered as a 0x-prefixed lowercase hex string."""
    return "0x" + fixed_bytes(value, length).hex()


def parse_hex(s: str) -> bytes:
    s = str(s).strip()
    if s.startswith(("0x", "0X")):
        s = s[2:]
    if len(s) % 2 == 1:
        s = "0" + s
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise EncodingError("invalid hex string").with_cause(e) from e


# ---------------------------------------------------------------------------
# Randomness / bits
# ---------------------------------------------------------------------------


def random_scalar(nbytes: int = SCALAR_BYTES) -> int:
    """Uniform integer of `nbytes` random bytes read little-endian (always < SNARK_FIELD for 31)."""
    return int.from_bytes(secrets.token_bytes(nbytes), "little")


def bits_to_int(bits: Iterable[int]) -> int:
    """Little-endian bit list (index 0 = LSB) to integer."""
    out = 0
    for i, b in enumerate(bits):
        if b:
            out |= 1 << i
    return out


def int_to_bits(x: int, n: int) -> list[int]:
    return [(x >> i) & 1 for i in range(n)]


__all__ = [
    "SNARK_FIELD",
    "SCALAR_BYTES",
    "to_int",
    "reduce",
    "is_field_element",
    "fadd",
    "fsub",
    "inv",
    "sqrt",
    "fixed_bytes",
    "fixed_hex",
    "parse_hex",
    "random_scalar",
    "bits_to_int",
    "int_to_bits",
]
