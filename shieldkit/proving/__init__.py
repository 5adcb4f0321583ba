"""
Proving layer: circuit roles, the structured `Proof` value and the `Prover`
interface the controller talks to.

The circuits and their trusted-setup artifacts are external. The controller
only needs something that turns (witness, circuit artifacts) into a `Proof`
whose `calldata` is what the pool contract expects for the deployment's
proving system.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Protocol, runtime_checkable

import msgspec

from shieldkit.deployments import ProvingSystem


class CircuitRole(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    INPUT_ROOT = "inputRoot"
    OUTPUT_ROOT = "outputRoot"
    TREE_UPDATE = "treeUpdate"

    @property
    def artifact_stem(self) -> str:
        """File stem used by the published artifacts, e.g. "InputRoot"."""
        return self.value[0].upper() + self.value[1:]


class CircuitArtifacts(msgspec.Struct, frozen=True):
    """Circuit program (witness generator wasm) and proving key (zkey)."""

    program: bytes
    proving_key: bytes


class Proof(msgspec.Struct, frozen=True):
    """
    A proof ready for the chain-call layer.

    Fields:
        system: proving system tag ("plonk" | "groth16").
        role: circuit role that produced it.
        calldata: proof bytes exactly as the verifier contract takes them.
        public_signals: public inputs, as field elements.
        raw: normalized prover output (kept for debugging / re-export).
    """

    system: str
    role: str
    calldata: bytes
    public_signals: List[int] = msgspec.field(default_factory=list)
    raw: Dict[str, Any] = msgspec.field(default_factory=dict)

    @property
    def hex(self) -> str:
        return "0x" + self.calldata.hex()


@runtime_checkable
class Prover(Protocol):
    async def prove(
        self,
        witness: Mapping[str, Any],
        artifacts: CircuitArtifacts,
        system: ProvingSystem,
        role: CircuitRole,
    ) -> Proof:
        """Compute a proof for `witness`; may take seconds to minutes."""
        ...


__all__ = [
    "ProvingSystem",
    "CircuitRole",
    "CircuitArtifacts",
    "Proof",
    "Prover",
]
