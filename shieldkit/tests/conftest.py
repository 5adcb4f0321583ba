from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

import pytest
from nacl.public import PrivateKey

from shieldkit.controller import Controller, ControllerContext
from shieldkit.crypto.envelope import encryption_public_key
from shieldkit.deployments import Pool, ProvingSystem
from shieldkit.proving import CircuitArtifacts, CircuitRole, Proof
from shieldkit.proving.artifacts import ArtifactStore


class FakeProver:
    """Records every request and returns a deterministic dummy proof."""

    def __init__(self, delays: Optional[Mapping[str, float]] = None, fail_role: Optional[str] = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.delays = dict(delays or {})
        self.fail_role = fail_role
        self.cancelled: List[str] = []

    async def prove(self, witness, artifacts, system, role) -> Proof:
        role = CircuitRole(role)
        self.calls.append({"role": role.value, "system": ProvingSystem(system).value, "witness": dict(witness)})
        try:
            await asyncio.sleep(self.delays.get(role.value, 0))
        except asyncio.CancelledError:
            self.cancelled.append(role.value)
            raise
        if role.value == self.fail_role:
            raise RuntimeError(f"{role.value} circuit exploded")
        tag = role.value.encode()
        return Proof(
            system=ProvingSystem(system).value,
            role=role.value,
            calldata=tag.ljust(32, b"\x00"),
            public_signals=[len(self.calls)],
        )

    @property
    def roles(self) -> List[str]:
        return [c["role"] for c in self.calls]


def make_pool(system: ProvingSystem = ProvingSystem.PLONK, height: Optional[int] = None) -> Pool:
    return Pool(
        pool_address="0x" + "11" * 20,
        symbol="TEST_v2" if system is ProvingSystem.GROTH16 else "TEST_v1",
        p_symbol="pTEST",
        decimals=18,
        creation_block=100,
        proving_system=system,
        merkle_tree_height=height or (24 if system is ProvingSystem.GROTH16 else 20),
    )


def make_store(system: ProvingSystem) -> ArtifactStore:
    store = ArtifactStore()
    for role in CircuitRole:
        store.register(role, system, CircuitArtifacts(program=b"wasm", proving_key=b"zkey"))
    return store


def make_controller(system: ProvingSystem = ProvingSystem.PLONK, prover: Optional[FakeProver] = None) -> Controller:
    return Controller(
        ControllerContext(prover=prover or FakeProver(), artifacts=make_store(system), pool=make_pool(system))
    )


@pytest.fixture
def keypair():
    sk = PrivateKey.generate()
    return bytes(sk), encryption_public_key(bytes(sk))


@pytest.fixture
def other_keypair():
    sk = PrivateKey.generate()
    return bytes(sk), encryption_public_key(bytes(sk))


@pytest.fixture
def prover() -> FakeProver:
    return FakeProver()
