"""
Pedersen hash on the Baby Jubjub curve (circomlib `pedersenHash`).

The message is read as bits, least-significant bit of each byte first, and
split into segments of 50 windows of 4 bits. In each window the first three
bits select a magnitude 1..8 and the fourth bit its sign; window `w` is
weighted by 2^(5w). Each segment's scalar multiplies that segment's base
point and the points are summed. The hash is the x-coordinate of the sum.

Baby Jubjub is the twisted Edwards curve a*x^2 + y^2 = 1 + d*x^2*y^2 over the
BN254 scalar field with a = 168700, d = 168696.

Segment generators are circomlib's, derived on first use from blake256 by
try-and-increment and cleared of the cofactor (`circomlib_generator`).
Other points can be registered per segment as overrides
(`register_generators`, `load_generators_json`; `reset_generators` drops them).
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple, Union

from shieldkit.crypto.blake256 import blake256
from shieldkit.crypto.field import SNARK_FIELD, inv, sqrt, to_int
from shieldkit.errors import EncodingError
from shieldkit.logging import get_logger

log = get_logger(__name__)

Point = Tuple[int, int]

_P = SNARK_FIELD
A = 168700
D = 168696
SUB_ORDER = 2736030358979909402780800718157159386076813972158567259200215660948447373041
IDENTITY: Point = (0, 1)

WINDOW_SIZE = 4
WINDOWS_PER_SEGMENT = 50
BITS_PER_SEGMENT = WINDOW_SIZE * WINDOWS_PER_SEGMENT

GENERATOR_PREFIX = "PedersenGenerator"


# ---------------------------------------------------------------------------
# Curve arithmetic (affine, not constant-time)
# ---------------------------------------------------------------------------


def add_points(p1: Point, p2: Point) -> Point:
    x1, y1 = p1
    x2, y2 = p2
    t = D * x1 * x2 * y1 * y2 % _P
    x3 = (x1 * y2 + y1 * x2) * inv((1 + t) % _P) % _P
    y3 = (y1 * y2 - A * x1 * x2) * inv((1 - t) % _P) % _P
    return x3, y3


def mul_point(p: Point, scalar: int) -> Point:
    acc = IDENTITY
    base = p
    k = int(scalar)
    while k:
        if k & 1:
            acc = add_points(acc, base)
        base = add_points(base, base)
        k >>= 1
    return acc


def on_curve(p: Point) -> bool:
    x, y = p
    x2, y2 = x * x % _P, y * y % _P
    return (A * x2 + y2) % _P == (1 + D * x2 * y2) % _P


def in_subgroup(p: Point) -> bool:
    return on_curve(p) and mul_point(p, SUB_ORDER) == IDENTITY


def unpack_point(buf: bytes) -> Optional[Point]:
    """Decompress a 32-byte little-endian packed point; None if not on the curve."""
    if len(buf) != 32:
        raise EncodingError("packed point must be 32 bytes", size=len(buf))
    raw = bytearray(buf)
    sign = bool(raw[31] & 0x80)
    raw[31] &= 0x7F
    y = int.from_bytes(bytes(raw), "little")
    if y >= _P:
        return None
    y2 = y * y % _P
    den = (A - D * y2) % _P
    if den == 0:
        return None
    x = sqrt((1 - y2) * inv(den) % _P)
    if x is None:
        return None
    if x > _P // 2:
        x = _P - x
    if sign:
        x = (_P - x) % _P
    return x, y


def pack_point(p: Point) -> bytes:
    x, y = p
    buf = bytearray(y.to_bytes(32, "little"))
    if x > _P // 2:
        buf[31] |= 0x80
    return bytes(buf)


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------

# Overrides only; segments without an entry use circomlib_generator(segment).
_GENERATORS: Dict[int, Point] = {}


def register_generators(points: Sequence[Point]) -> None:
    """Register segment generators 0..len(points)-1, overriding circomlib's."""
    for i, (x, y) in enumerate(points):
        pt = (to_int(x) % _P, to_int(y) % _P)
        if not on_curve(pt):
            raise EncodingError("generator is not on Baby Jubjub", segment=i)
        _GENERATORS[i] = pt


def reset_generators() -> None:
    _GENERATORS.clear()


def load_generators_json(path: Union[str, os.PathLike]) -> List[Point]:
    """Load `[[x, y], ...]` (decimal or 0x-hex strings) and register it."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    points = [(to_int(x), to_int(y)) for x, y in raw]
    register_generators(points)
    log.info("loaded pedersen generators", extra={"count": len(points), "path": str(path)})
    return points


@lru_cache(maxsize=None)
def circomlib_generator(segment: int) -> Point:
    """
    circomlib's base point for `segment`: try-and-increment over
    blake256("PedersenGenerator_<segment:032>_<try:032>") with bit 254
    cleared, unpacked, then multiplied by the cofactor 8.
    """
    if segment < 0:
        raise EncodingError("negative pedersen segment", segment=segment)
    attempt = 0
    while True:
        seed = f"{GENERATOR_PREFIX}_{segment:032d}_{attempt:032d}".encode()
        h = bytearray(blake256(seed))
        h[31] &= 0xBF
        p = unpack_point(bytes(h))
        attempt += 1
        if p is not None:
            break
    p8 = mul_point(p, 8)
    if not in_subgroup(p8):
        raise EncodingError("derived pedersen generator is not in the subgroup", segment=segment)
    return p8


def generator(segment: int) -> Point:
    if segment in _GENERATORS:
        return _GENERATORS[segment]
    return circomlib_generator(segment)


# ---------------------------------------------------------------------------
# Hash
# ---------------------------------------------------------------------------


def _message_bits(data: bytes) -> List[int]:
    return [(byte >> i) & 1 for byte in data for i in range(8)]


def pedersen_point(data: bytes) -> Point:
    bits = _message_bits(bytes(data))
    if not bits:
        raise EncodingError("pedersen hash of an empty message")
    n_segments = (len(bits) - 1) // BITS_PER_SEGMENT + 1

    acc = IDENTITY
    for s in range(n_segments):
        if s == n_segments - 1:
            n_windows = ((len(bits) - s * BITS_PER_SEGMENT) - 1) // WINDOW_SIZE + 1
        else:
            n_windows = WINDOWS_PER_SEGMENT
        escalar = 0
        exp = 1
        for w in range(n_windows):
            o = s * BITS_PER_SEGMENT + w * WINDOW_SIZE
            window = 1
            for b in range(WINDOW_SIZE - 1):
                if o >= len(bits):
                    break
                if bits[o]:
                    window += 1 << b
                o += 1
            if o < len(bits):
                if bits[o]:
                    window = -window
            escalar += window * exp
            exp <<= WINDOW_SIZE + 1
        if escalar < 0:
            escalar += SUB_ORDER
        acc = add_points(acc, mul_point(generator(s), escalar))
    return acc


def pedersen_hash(data: bytes) -> int:
    """x-coordinate of the Pedersen point of `data`."""
    return pedersen_point(data)[0]


__all__ = [
    "A",
    "D",
    "SUB_ORDER",
    "IDENTITY",
    "add_points",
    "mul_point",
    "on_curve",
    "in_subgroup",
    "pack_point",
    "unpack_point",
    "register_generators",
    "load_generators_json",
    "reset_generators",
    "circomlib_generator",
    "generator",
    "pedersen_point",
    "pedersen_hash",
]
