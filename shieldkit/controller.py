"""
shieldkit.controller
====================

Builds the witness for one account mutation, asks the prover for the
proof(s) and assembles the arguments of the pool contract call.

One request is handled at a time per call; the controller keeps no state
beyond its `ControllerContext` (prover, artifact store, pool descriptor).
The commitment list and the current account are immutable inputs.

Operation kinds
---------------
deposit()   DEPOSIT when no debt is repaid, BURN otherwise
withdraw()  WITHDRAW when no debt is taken, MINT otherwise

Debt deltas are always given as non-negative numbers: deposit/burn subtract
them from the account's debt, withdraw/mint add them. Output balances are
computed in the scalar field; range checks belong to the circuit, so an
overdrawn withdrawal still yields a complete witness.

Protocol generations
--------------------
1 (PLONK pools)    one proof per operation from the `deposit` / `withdraw` circuit.
2 (Groth16 pools)  three proofs requested concurrently and returned in order:
                   balance transition (`deposit` / `withdraw`), `inputRoot`
                   (old account is in the prior tree) and `outputRoot` (tree
                   moves to include the new commitment). They are linked by
                   the public input/output account hashes.

Fail-fast checks (FeeExceedsAmount, AccountNotFound, MissingProvingArtifacts)
all run before any proof is requested; a failing proof fails the operation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from shieldkit.account import Account
from shieldkit.crypto.binding import OperationKind, bind_arguments, deposit_proof_hash
from shieldkit.crypto.envelope import KeyLike, pack_envelope
from shieldkit.crypto.field import SNARK_FIELD, IntLike, fixed_hex, parse_hex, to_int
from shieldkit.deployments import Pool, ProvingSystem
from shieldkit.errors import (
    AccountNotFound,
    FeeExceedsAmount,
    ProofGenerationFailure,
    ShieldError,
)
from shieldkit.logging import get_logger, operation_scope
from shieldkit.proving import CircuitArtifacts, CircuitRole, Proof, Prover
from shieldkit.proving.artifacts import ArtifactStore
from shieldkit.tree import CommitmentTree, MerklePath, TreeUpdate, zero_path

log = get_logger(__name__)

Witness = Dict[str, Any]


@dataclass
class ControllerContext:
    prover: Prover
    artifacts: ArtifactStore
    pool: Pool

    @property
    def tree_height(self) -> int:
        return self.pool.merkle_tree_height

    @property
    def system(self) -> ProvingSystem:
        return self.pool.proving_system

    @property
    def generation(self) -> int:
        return self.pool.generation


@dataclass
class OperationResult:
    """
    Everything the chain-call layer needs for one operation.

    `method` is the pool method to call, `proofs` is the ordered proof list,
    `args` mirrors the contract argument tuple (0x-hex strings), `account` is
    the new account and `witness` maps circuit role to the witness it was given.
    """

    kind: OperationKind
    proofs: List[Proof]
    args: Dict[str, Any]
    account: Account
    witness: Dict[str, Witness] = field(default_factory=dict, repr=False)
    update: Optional[TreeUpdate] = field(default=None, repr=False)

    @property
    def method(self) -> str:
        return self.kind.method

    @property
    def proof(self) -> Proof:
        return self.proofs[0]

    def call_proofs(self) -> Union[str, List[str]]:
        """Proof argument(s) as hex: a single string for one proof, else a list."""
        hexes = [p.hex for p in self.proofs]
        return hexes[0] if len(hexes) == 1 else hexes


@dataclass
class TreeUpdateResult:
    proof: Proof
    args: Dict[str, str]
    update: TreeUpdate
    witness: Witness = field(default_factory=dict, repr=False)


class Controller:
    def __init__(self, context: ControllerContext) -> None:
        self.ctx = context

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def deposit(
        self,
        account: Account,
        amount: IntLike,
        public_key: KeyLike,
        commitments: Sequence[int],
        debt: IntLike = 0,
        unit_per_underlying: IntLike = 1,
        kind: Optional[OperationKind] = None,
    ) -> OperationResult:
        amount, debt = to_int(amount), to_int(debt)
        kind = OperationKind(kind) if kind is not None else (
            OperationKind.DEPOSIT if debt == 0 else OperationKind.BURN
        )
        if not kind.is_deposit_style:
            raise ValueError(f"{kind.method} is not a deposit-style operation")

        with operation_scope(operation=kind.method, pool=self.ctx.pool.pool_address):
            artifacts = await self.ctx.artifacts.require(self._roles(CircuitRole.DEPOSIT), self.ctx.system)

            tree = CommitmentTree(self.ctx.tree_height, commitments)
            index = tree.index_of(account.commitment)
            input_path = tree.path(index) if index != -1 else zero_path(self.ctx.tree_height)

            new_account = Account.create(
                amount=(account.amount + amount) % SNARK_FIELD,
                debt=(account.debt - debt) % SNARK_FIELD,
                previous_account_index=index if index != -1 else None,
            )
            update = tree.update(new_account.commitment)
            encrypted = pack_envelope(new_account.encrypt(public_key, generation=self.ctx.generation))
            ext_data = {"encrypted_account": encrypted}
            ext_data_hash = bind_arguments(kind, ext_data, self.ctx.generation)

            log.info(
                "building witness",
                extra={"in_tree": index != -1, "leaf_index": update.index},
            )
            return await self._finish(
                kind,
                CircuitRole.DEPOSIT,
                account,
                new_account,
                amount=amount,
                debt=debt,
                unit_per_underlying=to_int(unit_per_underlying),
                ext_data_hash=ext_data_hash,
                ext_args={"encryptedAccount": "0x" + encrypted.hex()},
                input_path=input_path,
                update=update,
                artifacts=artifacts,
            )

    async def withdraw(
        self,
        account: Account,
        amount: IntLike,
        recipient: Union[str, int],
        public_key: KeyLike,
        commitments: Sequence[int],
        debt: IntLike = 0,
        unit_per_underlying: IntLike = 1,
        fee: IntLike = 0,
        relayer: Union[str, int, None] = None,
        deposit_proof: Union[Proof, bytes, str, None] = None,
        deposit_args: Optional[Mapping[str, Any]] = None,
        kind: Optional[OperationKind] = None,
    ) -> OperationResult:
        requested = to_int(deposit_args["amount"]) if deposit_args else to_int(amount)
        debt, fee = to_int(debt), to_int(fee)
        kind = OperationKind(kind) if kind is not None else (
            OperationKind.WITHDRAW if debt == 0 else OperationKind.MINT
        )
        if kind.is_deposit_style:
            raise ValueError(f"{kind.method} is not a withdraw-style operation")

        with operation_scope(operation=kind.method, pool=self.ctx.pool.pool_address):
            # a pure mint is priced on the minted debt in pool units
            fee_from = requested if requested != 0 else debt * to_int(unit_per_underlying)
            if fee > 0 and fee >= fee_from:
                raise FeeExceedsAmount(fee, fee_from)

            tree = CommitmentTree(self.ctx.tree_height, commitments)
            index = tree.index_of(account.commitment)
            if index == -1:
                raise AccountNotFound(commitment=fixed_hex(account.commitment))
            input_path = tree.path(index)

            artifacts = await self.ctx.artifacts.require(self._roles(CircuitRole.WITHDRAW), self.ctx.system)

            total = requested + fee
            new_account = Account.create(
                amount=(account.amount - total) % SNARK_FIELD,
                debt=(account.debt + debt) % SNARK_FIELD,
                previous_account_index=index,
            )
            update = tree.update(new_account.commitment)
            encrypted = pack_envelope(new_account.encrypt(public_key, generation=self.ctx.generation))

            proof_bytes = deposit_proof.calldata if isinstance(deposit_proof, Proof) else deposit_proof
            proof_hash = deposit_proof_hash(proof_bytes)
            ext_data = {
                "fee": fee,
                "recipient": recipient,
                "relayer": relayer,
                "deposit_proof_hash": proof_hash,
                "encrypted_account": encrypted,
            }
            ext_data_hash = bind_arguments(kind, ext_data, self.ctx.generation)
            ext_args: Dict[str, Any] = {
                "fee": fixed_hex(fee),
                "recipient": _address_hex(recipient),
                "relayer": _address_hex(relayer),
            }
            if self.ctx.generation >= 2:
                ext_args["depositProofHash"] = "0x" + proof_hash.hex()
            ext_args["encryptedAccount"] = "0x" + encrypted.hex()

            log.info("building witness", extra={"leaf_index": update.index, "fee": fee})
            return await self._finish(
                kind,
                CircuitRole.WITHDRAW,
                account,
                new_account,
                amount=total,
                debt=debt,
                unit_per_underlying=to_int(unit_per_underlying),
                ext_data_hash=ext_data_hash,
                ext_args=ext_args,
                input_path=input_path,
                update=update,
                artifacts=artifacts,
            )

    async def tree_update(
        self,
        leaf: int,
        tree: Optional[CommitmentTree] = None,
        commitments: Sequence[int] = (),
    ) -> TreeUpdateResult:
        """Prove a standalone insertion of `leaf` (the caller's tree is not modified)."""
        with operation_scope(operation="treeUpdate", pool=self.ctx.pool.pool_address):
            artifacts = await self.ctx.artifacts.require([CircuitRole.TREE_UPDATE], self.ctx.system)
            work = tree.copy() if tree is not None else CommitmentTree(self.ctx.tree_height, commitments)
            update = work.update(leaf)
            witness = {
                "oldRoot": update.old_root,
                "newRoot": update.new_root,
                "leaf": update.leaf,
                "pathIndices": update.path_indices,
                "pathElements": update.path_elements,
            }
            (proof,) = await self._prove_all([(CircuitRole.TREE_UPDATE, witness)], artifacts)
            args = {
                "oldRoot": fixed_hex(update.old_root),
                "newRoot": fixed_hex(update.new_root),
                "leaf": fixed_hex(update.leaf),
                "pathIndices": fixed_hex(update.path_indices),
            }
            return TreeUpdateResult(proof=proof, args=args, update=update, witness=witness)

    # ------------------------------------------------------------------
    # Witness assembly
    # ------------------------------------------------------------------

    def _roles(self, balance_role: CircuitRole) -> List[CircuitRole]:
        if self.ctx.generation >= 2:
            return [balance_role, CircuitRole.INPUT_ROOT, CircuitRole.OUTPUT_ROOT]
        return [balance_role]

    async def _finish(
        self,
        kind: OperationKind,
        balance_role: CircuitRole,
        old: Account,
        new: Account,
        *,
        amount: int,
        debt: int,
        unit_per_underlying: int,
        ext_data_hash: int,
        ext_args: Dict[str, Any],
        input_path: MerklePath,
        update: TreeUpdate,
        artifacts: Mapping[CircuitRole, CircuitArtifacts],
    ) -> OperationResult:
        if self.ctx.generation >= 2:
            jobs = _split_witness(
                balance_role, kind, old, new, amount, debt, unit_per_underlying,
                ext_data_hash, input_path, update,
            )
        else:
            jobs = [(balance_role, _monolithic_witness(
                old, new, amount, debt, unit_per_underlying, ext_data_hash, input_path, update,
            ))]

        proofs = await self._prove_all(jobs, artifacts)

        account_args = {
            "inputRoot": fixed_hex(update.old_root),
            "inputNullifierHash": fixed_hex(old.nullifier_hash),
            "outputRoot": fixed_hex(update.new_root),
            "outputPathIndices": fixed_hex(update.path_indices),
            "outputCommitment": fixed_hex(new.commitment),
        }
        if self.ctx.generation >= 2:
            ext_args["operation"] = fixed_hex(int(kind), 1)
            account_args["inputAccountHash"] = fixed_hex(old.account_hash)
            account_args["outputAccountHash"] = fixed_hex(new.account_hash)
        args = {
            "amount": fixed_hex(amount),
            "debt": fixed_hex(debt),
            "unitPerUnderlying": fixed_hex(unit_per_underlying),
            "extDataHash": fixed_hex(ext_data_hash),
            "extData": ext_args,
            "account": account_args,
        }
        log.info("proof set ready", extra={"proofs": len(proofs)})
        return OperationResult(
            kind=kind,
            proofs=proofs,
            args=args,
            account=new.with_index(update.index),
            witness={role.value: w for role, w in jobs},
            update=update,
        )

    async def _prove_all(
        self,
        jobs: Sequence[Tuple[CircuitRole, Witness]],
        artifacts: Mapping[CircuitRole, CircuitArtifacts],
    ) -> List[Proof]:
        async def one(role: CircuitRole, witness: Witness) -> Proof:
            log.debug("requesting proof", extra={"role": role.value})
            try:
                return await self.ctx.prover.prove(witness, artifacts[role], self.ctx.system, role)
            except ProofGenerationFailure:
                raise
            except ShieldError as e:
                raise ProofGenerationFailure(e.message, role=role.value, code=getattr(e.code, "value", e.code)).with_cause(e) from e
            except Exception as e:
                raise ProofGenerationFailure(str(e) or type(e).__name__, role=role.value).with_cause(e) from e

        tasks = [asyncio.ensure_future(one(role, w)) for role, w in jobs]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


def _address_hex(value: Union[str, int, None]) -> str:
    if value is None:
        return fixed_hex(0, 20)
    if isinstance(value, str):
        return fixed_hex(parse_hex(value), 20)
    return fixed_hex(value, 20)


def _account_fields(prefix: str, acc: Account) -> Witness:
    return {
        f"{prefix}Amount": acc.amount,
        f"{prefix}Debt": acc.debt,
        f"{prefix}Secret": acc.secret,
        f"{prefix}Nullifier": acc.nullifier,
    }


def _monolithic_witness(
    old: Account,
    new: Account,
    amount: int,
    debt: int,
    unit_per_underlying: int,
    ext_data_hash: int,
    input_path: MerklePath,
    update: TreeUpdate,
) -> Witness:
    return {
        "amount": amount,
        "debt": debt,
        "unitPerUnderlying": unit_per_underlying,
        "extDataHash": ext_data_hash,
        **_account_fields("input", old),
        "inputRoot": update.old_root,
        "inputPathElements": input_path.path_elements,
        "inputPathIndices": input_path.path_bits,
        "inputNullifierHash": old.nullifier_hash,
        **_account_fields("output", new),
        "outputRoot": update.new_root,
        "outputPathIndices": update.path_indices,
        "outputPathElements": update.path_elements,
        "outputCommitment": new.commitment,
    }


def _split_witness(
    balance_role: CircuitRole,
    kind: OperationKind,
    old: Account,
    new: Account,
    amount: int,
    debt: int,
    unit_per_underlying: int,
    ext_data_hash: int,
    input_path: MerklePath,
    update: TreeUpdate,
) -> List[Tuple[CircuitRole, Witness]]:
    balance = {
        "amount": amount,
        "debt": debt,
        "unitPerUnderlying": unit_per_underlying,
        "extDataHash": ext_data_hash,
        "operation": int(kind),
        **_account_fields("input", old),
        "inputSalt": old.salt,
        "inputAccountHash": old.account_hash,
        "inputNullifierHash": old.nullifier_hash,
        **_account_fields("output", new),
        "outputSalt": new.salt,
        "outputAccountHash": new.account_hash,
    }
    input_root = {
        "inputRoot": update.old_root,
        "inputAccountHash": old.account_hash,
        **_account_fields("input", old),
        "inputSalt": old.salt,
        "inputPathElements": input_path.path_elements,
        "inputPathIndices": input_path.path_bits,
    }
    output_root = {
        "inputRoot": update.old_root,
        "outputRoot": update.new_root,
        "outputAccountHash": new.account_hash,
        **_account_fields("output", new),
        "outputSalt": new.salt,
        "outputCommitment": new.commitment,
        "outputPathIndices": update.path_indices,
        "outputPathElements": update.path_elements,
    }
    return [
        (balance_role, balance),
        (CircuitRole.INPUT_ROOT, input_root),
        (CircuitRole.OUTPUT_ROOT, output_root),
    ]


__all__ = [
    "ControllerContext",
    "Controller",
    "OperationKind",
    "OperationResult",
    "TreeUpdateResult",
]
