"""
BLAKE-256 (the SHA-3 finalist, 14 rounds), as used by circomlib to derive
Pedersen generators. Not BLAKE2s: hashlib and pycryptodome only ship BLAKE2.

Big-endian words, no salt. Padding appends a 1 bit, zeros, a final 1 bit and
the 64-bit message length; a block holding no message bits is compressed
with a zero counter.
"""

from __future__ import annotations

from typing import List, Sequence

_M32 = 0xFFFFFFFF
ROUNDS = 14

IV = (
    0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A,
    0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19,
)

# leading digits of pi
C = (
    0x243F6A88, 0x85A308D3, 0x13198A2E, 0x03707344,
    0xA4093822, 0x299F31D0, 0x082EFA98, 0xEC4E6C89,
    0x452821E6, 0x38D01377, 0xBE5466CF, 0x34E90C6C,
    0xC0AC29B7, 0xC97C50DD, 0x3F84D5B5, 0xB5470917,
)

SIGMA = (
    (0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15),
    (14, 10, 4, 8, 9, 15, 13, 6, 1, 12, 0, 2, 11, 7, 5, 3),
    (11, 8, 12, 0, 5, 2, 15, 13, 10, 14, 3, 6, 7, 1, 9, 4),
    (7, 9, 3, 1, 13, 12, 11, 14, 2, 6, 5, 10, 4, 0, 15, 8),
    (9, 0, 5, 7, 2, 4, 10, 15, 14, 1, 11, 12, 6, 8, 3, 13),
    (2, 12, 6, 10, 0, 11, 8, 3, 4, 13, 7, 5, 15, 14, 1, 9),
    (12, 5, 1, 15, 14, 13, 4, 10, 0, 7, 6, 3, 9, 2, 8, 11),
    (13, 11, 7, 14, 12, 1, 3, 9, 5, 0, 15, 4, 8, 6, 2, 10),
    (6, 15, 14, 9, 11, 3, 0, 8, 12, 2, 13, 7, 1, 4, 10, 5),
    (10, 2, 8, 4, 7, 6, 1, 5, 15, 11, 9, 14, 3, 12, 13, 0),
)

# (a, b, c, d) for the four column steps then the four diagonal steps
_STEPS = (
    (0, 4, 8, 12), (1, 5, 9, 13), (2, 6, 10, 14), (3, 7, 11, 15),
    (0, 5, 10, 15), (1, 6, 11, 12), (2, 7, 8, 13), (3, 4, 9, 14),
)


def _rotr(x: int, n: int) -> int:
    return ((x >> n) | (x << (32 - n))) & _M32


def _compress(h: Sequence[int], block: bytes, counter: int) -> List[int]:
    m = [int.from_bytes(block[i : i + 4], "big") for i in range(0, 64, 4)]
    t0, t1 = counter & _M32, (counter >> 32) & _M32
    v = list(h) + [
        C[0], C[1], C[2], C[3],
        t0 ^ C[4], t0 ^ C[5], t1 ^ C[6], t1 ^ C[7],
    ]

    for r in range(ROUNDS):
        s = SIGMA[r % 10]
        for i, (a, b, c, d) in enumerate(_STEPS):
            x, y = s[2 * i], s[2 * i + 1]
            v[a] = (v[a] + v[b] + (m[x] ^ C[y])) & _M32
            v[d] = _rotr(v[d] ^ v[a], 16)
            v[c] = (v[c] + v[d]) & _M32
            v[b] = _rotr(v[b] ^ v[c], 12)
            v[a] = (v[a] + v[b] + (m[y] ^ C[x])) & _M32
            v[d] = _rotr(v[d] ^ v[a], 8)
            v[c] = (v[c] + v[d]) & _M32
            v[b] = _rotr(v[b] ^ v[c], 7)

    return [h[i] ^ v[i] ^ v[i + 8] for i in range(8)]


def _pad(data: bytes) -> bytes:
    if len(data) % 64 == 55:
        pad = b"\x81"
    else:
        pad = b"\x80" + b"\x00" * ((54 - len(data)) % 64) + b"\x01"
    return data + pad + (8 * len(data)).to_bytes(8, "big")


def blake256(data: bytes) -> bytes:
    """32-byte BLAKE-256 digest of `data`."""
    data = bytes(data)
    bit_len = 8 * len(data)
    padded = _pad(data)

    h = list(IV)
    for k in range(0, len(padded), 64):
        start_bits = 8 * k
        counter = min(start_bits + 512, bit_len) if start_bits < bit_len else 0
        h = _compress(h, padded[k : k + 64], counter)
    return b"".join(w.to_bytes(4, "big") for w in h)


__all__ = ["blake256"]
