"""
shieldkit.crypto.poseidon
=========================

Poseidon hash over the BN254 scalar field (Fr), circomlib convention.

For `n` inputs the permutation width is `t = n + 1`; the state starts as
`[0, x_1, …, x_n]`, is permuted once and `state[0]` is the digest. This is
what circomlib's `Poseidon(n)` template and `poseidon(inputs)` compute, so
commitments and tree nodes built here match the circuits.

Parameters
----------
The default parameters for every width are circomlib's: round constants and
the Cauchy MDS matrix are generated by the reference Grain LFSR
(`generate_parameters_grain.sage`, prime field, x^5 S-box, 254-bit field,
R_F = 8, R_P from `PARTIAL_ROUNDS`). They are derived lazily and cached.

Another parameter set can be registered under `bn254_t{t}` to override the
default for that width (`register_params`, `load_params_json`,
`load_params_dir`); `reset_params()` drops all overrides.

JSON schema
-----------
{
  "t": 3, "R_F": 8, "R_P": 57, "alpha": 5,
  "mds": [[...t ints...], ...],
  "rc":  [[...t ints...], ... R_F+R_P rows ...]
}

Integers are decimal strings, 0x-hex strings or JSON numbers, taken mod Fr.

Public API
----------
- PoseidonParams(t, R_F, R_P, alpha, mds, rc)
- circomlib_params(t)
- register_params(name, params) / get_params(name) / reset_params()
- load_params_json(path, name=None, register=True) / load_params_dir(path)
- poseidon_permute(state, params)
- poseidon_hash(inputs, params=None)   # alias: hash
- hash2(a, b)
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

from shieldkit.crypto.field import SNARK_FIELD, reduce
from shieldkit.logging import get_logger

log = get_logger(__name__)

_MOD = SNARK_FIELD
_FIELD_BITS = 254

# circomlib partial-round counts indexed by t - 2
PARTIAL_ROUNDS = (56, 57, 56, 60, 60, 63, 64, 63)
FULL_ROUNDS = 8
MAX_WIDTH = len(PARTIAL_ROUNDS) + 1


def _fpow_alpha(x: int, alpha: int) -> int:
    if alpha == 5:
        x2 = (x * x) % _MOD
        x4 = (x2 * x2) % _MOD
        return (x * x4) % _MOD
    return pow(x, alpha, _MOD)


# ---------------------------
# Parameters & registry
# ---------------------------


@dataclass(frozen=True)
class PoseidonParams:
    t: int  # state width
    R_F: int  # number of full rounds
    R_P: int  # number of partial rounds
    alpha: int  # S-box exponent
    mds: List[List[int]]  # t x t
    rc: List[List[int]]  # (R_F + R_P) x t

    def validate(self) -> None:
        if self.t < 2:
            raise ValueError("t must be >= 2")
        if self.R_F % 2 != 0:
            raise ValueError("R_F must be even (split half-before/after partial rounds)")
        if self.alpha < 3 or self.alpha % 2 == 0:
            raise ValueError("alpha must be an odd integer >= 3")
        if len(self.mds) != self.t or any(len(row) != self.t for row in self.mds):
            raise ValueError("mds must be t x t")
        expected_rounds = self.R_F + self.R_P
        if len(self.rc) != expected_rounds or any(len(row) != self.t for row in self.rc):
            raise ValueError(f"rc must be (R_F+R_P) x t = {expected_rounds} x {self.t}")


# Overrides only; widths without an entry use circomlib_params(t).
_PARAMS_REGISTRY: Dict[str, PoseidonParams] = {}

_NAME_RE = re.compile(r"^bn254_t(\d+)$")


def params_name(t: int) -> str:
    return f"bn254_t{t}"


def register_params(name: str, params: PoseidonParams) -> None:
    """Register a Poseidon parameter set under `name` (e.g. "bn254_t3")."""
    if not name or not isinstance(name, str):
        raise ValueError("name must be a non-empty string")
    params.validate()
    _PARAMS_REGISTRY[name] = params


def reset_params() -> None:
    """Drop every registered override; all widths fall back to circomlib's parameters."""
    _PARAMS_REGISTRY.clear()


def get_params(name: str = "bn254_t3") -> PoseidonParams:
    if name in _PARAMS_REGISTRY:
        return _PARAMS_REGISTRY[name]
    m = _NAME_RE.match(name)
    if m is None or not 2 <= int(m.group(1)) <= MAX_WIDTH:
        raise KeyError(
            f"Poseidon params '{name}' are not registered and have no circomlib default. "
            "Load them with load_params_json(...) or register_params(...)."
        )
    return circomlib_params(int(m.group(1)))


def _to_int(x: Union[int, str]) -> int:
    return reduce(x if isinstance(x, int) else str(x))


def load_params_json(
    path: Union[str, os.PathLike], name: Optional[str] = None, register: bool = True
) -> PoseidonParams:
    """
    Load a Poseidon params JSON file and (by default) register it.

    If `name` is None it is derived from the width (`bn254_t{t}`).
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    t = int(raw["t"])
    params = PoseidonParams(
        t=t,
        R_F=int(raw.get("R_F", FULL_ROUNDS)),
        R_P=int(raw["R_P"]),
        alpha=int(raw.get("alpha", 5)),
        mds=[[_to_int(v) for v in row] for row in raw["mds"]],
        rc=[[_to_int(v) for v in row] for row in raw["rc"]],
    )
    if register:
        register_params(name or params_name(t), params)
    else:
        params.validate()
    log.info("loaded poseidon params", extra={"t": t, "path": str(path)})
    return params


def load_params_dir(path: Union[str, os.PathLike]) -> List[PoseidonParams]:
    """Load and register every `*.json` parameter file in a directory."""
    loaded = []
    for p in sorted(Path(path).glob("*.json")):
        loaded.append(load_params_json(p))
    return loaded


# ---------------------------
# circomlib parameter generation (Grain LFSR)
# ---------------------------


def _grain_bits(t: int, R_F: int, R_P: int) -> Iterator[int]:
    """
    Self-shrinking Grain LFSR of the reference parameter script.

    The 80-bit register is seeded with field=1 (2 bits), sbox=0 (4 bits),
    field size (12 bits), t (12 bits), R_F (10 bits), R_P (10 bits) and thirty
    1 bits, clocked 160 times, then bits are emitted in pairs: when the first
    bit is 1 the second one is output, otherwise it is discarded.
    """
    seed = (
        format(1, "02b")
        + format(0, "04b")
        + format(_FIELD_BITS, "012b")
        + format(t, "012b")
        + format(R_F, "010b")
        + format(R_P, "010b")
        + "1" * 30
    )
    # bit i of `reg` is element i of the reference bit list (0 = oldest)
    reg = 0
    for i, b in enumerate(seed):
        reg |= int(b) << i

    def clock() -> int:
        nonlocal reg
        new = ((reg >> 62) ^ (reg >> 51) ^ (reg >> 38) ^ (reg >> 23) ^ (reg >> 13) ^ reg) & 1
        reg = (reg >> 1) | (new << 79)
        return new

    for _ in range(160):
        clock()
    while True:
        if clock():
            yield clock()
        else:
            clock()


def _grain_int(bits: Iterator[int], n: int) -> int:
    v = 0
    for _ in range(n):
        v = (v << 1) | next(bits)
    return v


@lru_cache(maxsize=None)
def circomlib_params(t: int) -> PoseidonParams:
    """circomlib's Poseidon parameters for width `t` (2..MAX_WIDTH)."""
    if not 2 <= t <= MAX_WIDTH:
        raise ValueError(f"circomlib parameters exist for t in 2..{MAX_WIDTH}, got {t}")
    R_F, R_P = FULL_ROUNDS, PARTIAL_ROUNDS[t - 2]
    bits = _grain_bits(t, R_F, R_P)

    # Round constants: rejection-sampled below the modulus.
    flat: List[int] = []
    while len(flat) < (R_F + R_P) * t:
        v = _grain_int(bits, _FIELD_BITS)
        if v < _MOD:
            flat.append(v)
    rc = [flat[r * t : (r + 1) * t] for r in range(R_F + R_P)]

    # Cauchy MDS 1/(x_i + y_j) from 2t distinct reduced samples.
    while True:
        xy = [_grain_int(bits, _FIELD_BITS) % _MOD for _ in range(2 * t)]
        if len(set(xy)) != 2 * t:
            continue
        xs, ys = xy[:t], xy[t:]
        if any((x + y) % _MOD == 0 for x in xs for y in ys):
            continue
        mds = [[pow(x + y, _MOD - 2, _MOD) for y in ys] for x in xs]
        break

    params = PoseidonParams(t=t, R_F=R_F, R_P=R_P, alpha=5, mds=mds, rc=rc)
    params.validate()
    log.debug("derived circomlib poseidon params", extra={"t": t})
    return params


# ---------------------------
# Permutation
# ---------------------------


def _apply_mds(state: List[int], mds: List[List[int]]) -> List[int]:
    t = len(state)
    return [sum(mds[i][j] * state[j] for j in range(t)) % _MOD for i in range(t)]


def poseidon_permute(state: Sequence[int], params: PoseidonParams) -> List[int]:
    """
    Poseidon permutation.

    Round schedule:
      - First R_F/2 full rounds (S-box on all t elements)
      - R_P partial rounds (S-box on the *first* element only)
      - Last  R_F/2 full rounds
    """
    t, alpha, mds, rc = params.t, params.alpha, params.mds, params.rc
    if len(state) != t:
        raise ValueError(f"state length {len(state)} != t={t}")

    x = [int(v) % _MOD for v in state]
    half = params.R_F // 2

    for rnd in range(params.R_F + params.R_P):
        for i in range(t):
            x[i] = (x[i] + rc[rnd][i]) % _MOD
        if rnd < half or rnd >= half + params.R_P:
            x = [_fpow_alpha(v, alpha) for v in x]
        else:
            x[0] = _fpow_alpha(x[0], alpha)
        x = _apply_mds(x, mds)
    return x


# ---------------------------
# Hash interface
# ---------------------------


def poseidon_hash(inputs: Sequence[int], params: Optional[PoseidonParams] = None) -> int:
    """
    circomlib `poseidon(inputs)`: width t = len(inputs) + 1, one permutation
    over `[0, *inputs]`, output `state[0]`.

    `params` pins an explicit parameter set; otherwise the width's registered
    override or circomlib default is used.
    """
    n = len(inputs)
    if params is None:
        if n < 1 or n + 1 > MAX_WIDTH:
            raise ValueError(f"poseidon supports 1..{MAX_WIDTH - 1} inputs, got {n}")
        params = get_params(params_name(n + 1))
    state = [0] + [reduce(v) for v in inputs]
    return poseidon_permute(state, params)[0]


hash = poseidon_hash  # noqa: A001


def hash2(a: int, b: int) -> int:
    """2-ary hash used as the commitment-tree node combiner."""
    return poseidon_hash([a, b])


__all__ = [
    "PoseidonParams",
    "PARTIAL_ROUNDS",
    "MAX_WIDTH",
    "params_name",
    "circomlib_params",
    "register_params",
    "reset_params",
    "get_params",
    "load_params_json",
    "load_params_dir",
    "poseidon_permute",
    "poseidon_hash",
    "hash",
    "hash2",
]
