"""
shieldkit: client toolkit for shielded account pools.

A shielded account is a private (amount, debt) balance hidden behind a
Poseidon commitment in an on-chain Merkle tree. shieldkit builds the
witnesses and proofs for deposit / withdraw / burn / mint, encrypts the
account envelope for its owner, recovers accounts from the pool's event log
and optionally hands withdrawals to a relayer.

Quick start:
    from shieldkit import ShieldKit, load_config
    kit = ShieldKit(chain=my_chain_source, chain_id=42220, config=load_config())
    result = await kit.deposit(private_key, "CELO_v2", 10**18)
"""

from shieldkit.account import Account, DecryptResult
from shieldkit.config import ShieldConfig
from shieldkit.config import load as load_config
from shieldkit.controller import Controller, ControllerContext, OperationResult, TreeUpdateResult
from shieldkit.crypto.binding import OperationKind
from shieldkit.deployments import DEPLOYMENTS, Pool, ProvingSystem, find_pool
from shieldkit.discovery import AccountDiscovery, NewAccountEvent, discover_account
from shieldkit.errors import ShieldError, ShieldErrorCode
from shieldkit.kit import ChainSource, ShieldKit
from shieldkit.proving import CircuitArtifacts, CircuitRole, Proof, Prover
from shieldkit.proving.artifacts import ArtifactStore
from shieldkit.relayer import RelayerClient, RelayerStatus
from shieldkit.tree import CommitmentTree

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Account",
    "DecryptResult",
    "ShieldConfig",
    "load_config",
    "Controller",
    "ControllerContext",
    "OperationResult",
    "TreeUpdateResult",
    "OperationKind",
    "DEPLOYMENTS",
    "Pool",
    "ProvingSystem",
    "find_pool",
    "AccountDiscovery",
    "NewAccountEvent",
    "discover_account",
    "ShieldError",
    "ShieldErrorCode",
    "ChainSource",
    "ShieldKit",
    "CircuitArtifacts",
    "CircuitRole",
    "Proof",
    "Prover",
    "ArtifactStore",
    "RelayerClient",
    "RelayerStatus",
    "CommitmentTree",
]
