"""
MiMC sponge over the BN254 scalar field (circomlib `mimcsponge`).

Feistel construction with exponent 5 and 220 rounds. Round constants are a
keccak-256 chain seeded by the ASCII string "mimcsponge"; the first and last
constants are zero.

    mimc_sponge_hash([a, b])          # multiHash, one output
    mimc_feistel(xL, xR, k)           # a single keyed permutation
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Sequence, Tuple

from shieldkit.crypto.field import SNARK_FIELD, reduce
from shieldkit.crypto.keccak import keccak256

SEED = b"mimcsponge"
ROUNDS = 220

_MOD = SNARK_FIELD


@lru_cache(maxsize=4)
def round_constants(seed: bytes = SEED, rounds: int = ROUNDS) -> Tuple[int, ...]:
    cts = [0] * rounds
    c = keccak256(seed)
    for i in range(1, rounds):
        c = keccak256(c)
        cts[i] = int.from_bytes(c, "big") % _MOD
    cts[0] = 0
    cts[rounds - 1] = 0
    return tuple(cts)


def mimc_feistel(x_left: int, x_right: int, key: int = 0) -> Tuple[int, int]:
    """One MiMC-Feistel permutation; returns (xL, xR)."""
    cts = round_constants()
    xl, xr, k = reduce(x_left), reduce(x_right), reduce(key)
    last = ROUNDS - 1
    for i in range(ROUNDS):
        t = (xl + k) % _MOD if i == 0 else (xl + k + cts[i]) % _MOD
        t5 = pow(t, 5, _MOD)
        if i < last:
            xl, xr = (xr + t5) % _MOD, xl
        else:
            xr = (xr + t5) % _MOD
    return xl, xr


def mimc_sponge(items: Sequence[int], key: int = 0, outputs: int = 1) -> List[int]:
    if outputs < 1:
        raise ValueError("outputs must be >= 1")
    r, c = 0, 0
    for item in items:
        r = (r + reduce(item)) % _MOD
        r, c = mimc_feistel(r, c, key)
    out = [r]
    for _ in range(1, outputs):
        r, c = mimc_feistel(r, c, key)
        out.append(r)
    return out


def mimc_sponge_hash(items: Sequence[int], key: int = 0) -> int:
    """circomlib `mimcsponge.multiHash(items, key)` with a single output."""
    return mimc_sponge(items, key, 1)[0]


__all__ = ["SEED", "ROUNDS", "round_constants", "mimc_feistel", "mimc_sponge", "mimc_sponge_hash"]
