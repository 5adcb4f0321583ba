"""
shieldkit.proving.snarkjs
=========================

`Prover` backed by the snarkjs CLI, plus helpers that **normalize** snarkjs
proof JSON and export verifier call-data.

Proving runs `snarkjs {groth16|plonk} fullprove input.json circuit.wasm
circuit.zkey proof.json public.json` in a temporary directory. There is no
internal timeout; cancel the awaiting task to abort (the child process is
killed).

Typical snarkjs shapes
----------------------
Groth16 proof.json:
{
  "pi_a": [ "x", "y", "1" ],
  "pi_b": [[ "x0","x1" ], [ "y0","y1" ], [ "1","0" ]],
  "pi_c": [ "x", "y", "1" ],
  "protocol": "groth16", "curve": "bn128"
}

PLONK proof.json:
{
  "A": [x, y, 1], "B": ..., "C": ..., "Z": ..., "T1": ..., "T2": ..., "T3": ...,
  "Wxi": ..., "Wxiw": ...,
  "eval_a": "..", "eval_b": "..", "eval_c": "..", "eval_s1": "..", "eval_s2": "..",
  "eval_zw": "..", ("eval_r": ".." on older snarkjs),
  "protocol": "plonk", "curve": "bn128"
}

Call-data
---------
Groth16: `a ‖ b ‖ c` as 8 uint256 words with each G2 coordinate pair in EVM
order (imaginary part first). PLONK: the G1 commitments followed by the
evaluations as 32-byte words, in snarkjs' Solidity verifier order.
"""

from __future__ import annotations

import asyncio
import json
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from py_ecc.bn128 import FQ, FQ2, b, b2, is_on_curve

from shieldkit.crypto.field import SNARK_FIELD, fixed_bytes
from shieldkit.errors import ProofGenerationFailure
from shieldkit.logging import get_logger
from shieldkit.proving import CircuitArtifacts, CircuitRole, Proof, ProvingSystem

log = get_logger(__name__)

PLONK_G1_KEYS = ("A", "B", "C", "Z", "T1", "T2", "T3", "Wxi", "Wxiw")
PLONK_EVAL_KEYS = ("eval_a", "eval_b", "eval_c", "eval_s1", "eval_s2", "eval_zw", "eval_r")


# -----------------------------------------------------------------------------
# Number coercion (dec/hex/JS BigInt strings → Python int)
# -----------------------------------------------------------------------------

_INT_RE = re.compile(r"^\s*([+-]?(?:0x[0-9a-fA-F]+|\d+))n?\s*$")


def _maybe_to_int(x: Any) -> Any:
    if isinstance(x, bool):
        return x
    if isinstance(x, int):
        return x
    if isinstance(x, str):
        m = _INT_RE.match(x)
        if m:
            return int(m.group(1), 0)
    return x


def normalize_numbers(obj: Any) -> Any:
    """Recursively turn numeric-like strings ("123", "0xabc", "123n") into ints."""
    if isinstance(obj, Mapping):
        return {k: normalize_numbers(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [normalize_numbers(v) for v in obj]
    return _maybe_to_int(obj)


def stringify_numbers(obj: Any) -> Any:
    """Inverse direction for witness files: ints become decimal strings."""
    if isinstance(obj, Mapping):
        return {k: stringify_numbers(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [stringify_numbers(v) for v in obj]
    if isinstance(obj, int) and not isinstance(obj, bool):
        return str(obj)
    return obj


# -----------------------------------------------------------------------------
# Point normalization + validation
# -----------------------------------------------------------------------------


def _norm_g1(pt: Sequence[Any]) -> Tuple[int, int]:
    arr = [int(_maybe_to_int(v)) for v in pt]
    if len(arr) == 3:
        if arr[2] != 1:
            raise ValueError("G1 point must be affine (z = 1)")
        arr = arr[:2]
    if len(arr) != 2:
        raise ValueError("G1 point must have 2 coordinates")
    x, y = arr
    if not is_on_curve((FQ(x), FQ(y)), b):
        raise ValueError("G1 point is not on the BN254 curve")
    return x, y


def _norm_g2(pt: Sequence[Sequence[Any]]) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    arr = [[int(_maybe_to_int(v)) for v in c] for c in pt]
    if len(arr) == 3:
        if arr[2] != [1, 0]:
            raise ValueError("G2 point must be affine (z = 1)")
        arr = arr[:2]
    if len(arr) != 2 or any(len(c) != 2 for c in arr):
        raise ValueError("G2 point must be [[x0,x1],[y0,y1]]")
    (x0, x1), (y0, y1) = arr
    if not is_on_curve((FQ2([x0, x1]), FQ2([y0, y1])), b2):
        raise ValueError("G2 point is not on the BN254 twist")
    return (x0, x1), (y0, y1)


def _norm_scalar(v: Any) -> int:
    n = int(_maybe_to_int(v))
    if not 0 <= n < SNARK_FIELD:
        raise ValueError("evaluation is not a field element")
    return n


def normalize_groth16_proof(proof: Mapping[str, Any]) -> Dict[str, Any]:
    if "proof" in proof and isinstance(proof["proof"], Mapping):
        proof = proof["proof"]
    for k in ("pi_a", "pi_b", "pi_c"):
        if k not in proof:
            raise ValueError(f"Groth16 proof missing '{k}'")
    return {
        "protocol": "groth16",
        "pi_a": _norm_g1(proof["pi_a"]),
        "pi_b": _norm_g2(proof["pi_b"]),
        "pi_c": _norm_g1(proof["pi_c"]),
    }


def normalize_plonk_proof(proof: Mapping[str, Any]) -> Dict[str, Any]:
    if "proof" in proof and isinstance(proof["proof"], Mapping):
        proof = proof["proof"]
    out: Dict[str, Any] = {"protocol": "plonk"}
    for k in PLONK_G1_KEYS:
        if k not in proof:
            raise ValueError(f"PLONK proof missing '{k}'")
        out[k] = _norm_g1(proof[k])
    for k in PLONK_EVAL_KEYS:
        if k in proof:
            out[k] = _norm_scalar(proof[k])
        elif k != "eval_r":
            raise ValueError(f"PLONK proof missing '{k}'")
    return out


# -----------------------------------------------------------------------------
# Call-data export
# -----------------------------------------------------------------------------


def _words(values: Iterable[int]) -> bytes:
    return b"".join(fixed_bytes(v, 32) for v in values)


def groth16_calldata(proof: Mapping[str, Any]) -> bytes:
    (ax, ay) = proof["pi_a"]
    (bx0, bx1), (by0, by1) = proof["pi_b"]
    (cx, cy) = proof["pi_c"]
    return _words([ax, ay, bx1, bx0, by1, by0, cx, cy])


def plonk_calldata(proof: Mapping[str, Any]) -> bytes:
    words: List[int] = []
    for k in PLONK_G1_KEYS:
        words.extend(proof[k])
    for k in PLONK_EVAL_KEYS:
        if k in proof:
            words.append(proof[k])
    return _words(words)


def to_proof(
    system: ProvingSystem,
    role: CircuitRole,
    proof_json: Mapping[str, Any],
    public_signals: Sequence[Any],
) -> Proof:
    """Normalize snarkjs output into a `Proof` with exported call-data."""
    system = ProvingSystem(system)
    try:
        if system is ProvingSystem.GROTH16:
            norm = normalize_groth16_proof(proof_json)
            calldata = groth16_calldata(norm)
        else:
            norm = normalize_plonk_proof(proof_json)
            calldata = plonk_calldata(norm)
        publics = [int(_maybe_to_int(v)) for v in public_signals]
    except (ValueError, TypeError, KeyError) as e:
        raise ProofGenerationFailure(
            "prover returned a malformed proof", role=CircuitRole(role).value, system=system.value
        ).with_cause(e) from e
    return Proof(
        system=system.value,
        role=CircuitRole(role).value,
        calldata=calldata,
        public_signals=publics,
        raw=norm,
    )


# -----------------------------------------------------------------------------
# Prover
# -----------------------------------------------------------------------------


class SnarkjsProver:
    def __init__(self, snarkjs_bin: str = "snarkjs") -> None:
        self.snarkjs_bin = snarkjs_bin

    @classmethod
    def from_config(cls, cfg) -> "SnarkjsProver":
        return cls(snarkjs_bin=cfg.snarkjs_bin)

    async def prove(
        self,
        witness: Mapping[str, Any],
        artifacts: CircuitArtifacts,
        system: ProvingSystem,
        role: CircuitRole,
    ) -> Proof:
        system = ProvingSystem(system)
        role = CircuitRole(role)
        with tempfile.TemporaryDirectory(prefix="shieldkit-prove-") as tmp:
            d = Path(tmp)
            (d / "input.json").write_text(json.dumps(stringify_numbers(witness)), encoding="utf-8")
            (d / "circuit.wasm").write_bytes(artifacts.program)
            (d / "circuit.zkey").write_bytes(artifacts.proving_key)
            await self._run(
                system.value,
                "fullprove",
                str(d / "input.json"),
                str(d / "circuit.wasm"),
                str(d / "circuit.zkey"),
                str(d / "proof.json"),
                str(d / "public.json"),
                role=role,
                system=system,
            )
            try:
                proof_json = json.loads((d / "proof.json").read_text(encoding="utf-8"))
                publics = json.loads((d / "public.json").read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise ProofGenerationFailure(
                    "snarkjs produced no readable proof", role=role.value, system=system.value
                ).with_cause(e) from e
        return to_proof(system, role, proof_json, publics)

    async def _run(self, *args: str, role: CircuitRole, system: ProvingSystem) -> None:
        log.debug("running snarkjs", extra={"role": role.value, "system": system.value})
        try:
            proc = await asyncio.create_subprocess_exec(
                self.snarkjs_bin,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ProofGenerationFailure(
                "snarkjs executable not found", bin=self.snarkjs_bin
            ).with_cause(e) from e
        try:
            out, err = await proc.communicate()
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise
        if proc.returncode != 0:
            tail = (err or out or b"").decode("utf-8", "replace")[-512:]
            raise ProofGenerationFailure(
                "snarkjs fullprove failed",
                role=role.value,
                system=system.value,
                returncode=proc.returncode,
                stderr=tail,
            )


__all__ = [
    "normalize_numbers",
    "stringify_numbers",
    "normalize_groth16_proof",
    "normalize_plonk_proof",
    "groth16_calldata",
    "plonk_calldata",
    "to_proof",
    "SnarkjsProver",
]
