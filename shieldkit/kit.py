"""
shieldkit.kit
=============

High-level flows on top of the controller: pick the pool for a currency,
recover the caller's latest account from the pool's event log, and build
deposit / withdraw call bundles (optionally relaying withdrawals).

Chain access stays outside: a `ChainSource` supplies the pool's
`NewAccount` events and its `unitPerUnderlying`. Nothing here signs or
broadcasts a transaction; the returned `OperationResult` carries the method
name, proofs and arguments for the caller's own chain-call layer.

Units
-----
`amount` is in the currency's smallest units; the kit scales it
by the pool's `unitPerUnderlying` before building the witness
(`debt` is already in the pool's debt units and is passed through as is).
Relayer prices are whole native coins per whole currency unit and gas prices
are in gwei, as the relayer reports them; the native coin is assumed to have
18 decimals.
"""

from __future__ import annotations

from decimal import Decimal
from typing import (
    Any,
    Callable,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from shieldkit.account import Account
from shieldkit.config import ShieldConfig
from shieldkit.config import load as load_config
from shieldkit.controller import Controller, ControllerContext, OperationResult
from shieldkit.crypto.envelope import KeyLike, encryption_public_key
from shieldkit.crypto.fees import calculate_fee, with_fee_buffer
from shieldkit.crypto.poseidon import load_params_dir
from shieldkit.deployments import DEPLOYMENTS, Pool, find_pool
from shieldkit.discovery import AccountDiscovery, NewAccountEvent
from shieldkit.errors import AccountNotFound, FeeExceedsAmount
from shieldkit.logging import configure_from_config, get_logger, operation_scope
from shieldkit.proving import Prover
from shieldkit.proving.artifacts import ArtifactStore
from shieldkit.proving.snarkjs import SnarkjsProver
from shieldkit.relayer import RelayerClient

log = get_logger(__name__)

NATIVE_DECIMALS = 18
GWEI = 10**9

EventLike = Union[NewAccountEvent, Mapping[str, Any]]


@runtime_checkable
class ChainSource(Protocol):
    async def new_account_events(self, pool_address: str, from_block: int) -> Sequence[EventLike]:
        """`NewAccount` events of `pool_address` from `from_block` to the chain head."""
        ...

    async def unit_per_underlying(self, pool_address: str) -> int:
        ...


def _events(raw: Iterable[EventLike]) -> List[NewAccountEvent]:
    return [e if isinstance(e, NewAccountEvent) else NewAccountEvent.from_log(e) for e in raw]


def commitments_in_order(events: Iterable[NewAccountEvent]) -> List[int]:
    """Tree leaves: event commitments ordered by tree index."""
    return [e.commitment for e in sorted(events, key=lambda e: e.index)]


class ShieldKit:
    def __init__(
        self,
        chain: ChainSource,
        chain_id: int,
        config: Optional[ShieldConfig] = None,
        prover: Optional[Prover] = None,
        artifacts: Optional[ArtifactStore] = None,
        deployments: Optional[Mapping[int, Sequence[Pool]]] = None,
        relayer_factory: Optional[Callable[[str], RelayerClient]] = None,
    ) -> None:
        self.chain = chain
        self.chain_id = int(chain_id)
        self.config = config or ShieldConfig()
        self.prover = prover or SnarkjsProver.from_config(self.config)
        self.artifacts = artifacts or ArtifactStore.from_config(self.config)
        self.deployments = DEPLOYMENTS if deployments is None else deployments
        self._relayer_factory = relayer_factory or (
            lambda url: RelayerClient.from_config(url, self.config)
        )

    @classmethod
    def from_config(
        cls,
        chain: ChainSource,
        chain_id: int,
        config: Optional[ShieldConfig] = None,
        **kwargs: Any,
    ) -> "ShieldKit":
        """Process-level setup from configuration (logging, Poseidon parameters), then the kit."""
        cfg = config or load_config()
        configure_from_config(cfg)
        if cfg.poseidon_params_dir is not None:
            loaded = load_params_dir(cfg.poseidon_params_dir)
            log.info("poseidon parameters loaded", extra={"widths": [p.t for p in loaded]})
        return cls(chain, chain_id, config=cfg, **kwargs)

    def pool(self, currency: str) -> Pool:
        return find_pool(currency, self.chain_id, self.deployments)

    def controller(self, pool: Pool) -> Controller:
        return Controller(ControllerContext(prover=self.prover, artifacts=self.artifacts, pool=pool))

    async def events(self, pool: Pool) -> List[NewAccountEvent]:
        return _events(await self.chain.new_account_events(pool.pool_address, pool.creation_block))

    async def unit_per_underlying(self, currency: str) -> int:
        return int(await self.chain.unit_per_underlying(self.pool(currency).pool_address))

    async def latest_account(
        self,
        private_key: KeyLike,
        currency: str,
        events: Optional[Iterable[EventLike]] = None,
    ) -> Optional[Account]:
        pool = self.pool(currency)
        evs = _events(events) if events is not None else await self.events(pool)
        return AccountDiscovery(private_key).discover(evs)

    async def deposit(
        self,
        private_key: KeyLike,
        currency: str,
        amount: int,
        debt: int = 0,
        events: Optional[Iterable[EventLike]] = None,
    ) -> OperationResult:
        pool = self.pool(currency)
        with operation_scope(pool=pool.pool_address):
            evs = _events(events) if events is not None else await self.events(pool)
            unit = int(await self.chain.unit_per_underlying(pool.pool_address))
            account = AccountDiscovery(private_key).discover(evs) or Account.create()
            return await self.controller(pool).deposit(
                account,
                amount=int(amount) * unit,
                public_key=encryption_public_key(private_key),
                commitments=commitments_in_order(evs),
                debt=debt,
                unit_per_underlying=unit,
            )

    async def withdraw(
        self,
        private_key: KeyLike,
        currency: str,
        amount: int,
        recipient: str,
        debt: int = 0,
        relayer_url: Optional[str] = None,
        events: Optional[Iterable[EventLike]] = None,
    ) -> Union[OperationResult, str]:
        """
        Build a withdraw (or mint, when `debt` > 0) bundle.

        Without `relayer_url` the bundle is returned for the caller to submit.
        With it, the relayer's fee is charged, the bundle is relayed and the
        transaction hash is returned.
        """
        pool = self.pool(currency)
        with operation_scope(pool=pool.pool_address):
            evs = _events(events) if events is not None else await self.events(pool)
            account = AccountDiscovery(private_key).discover(evs)
            if account is None:
                raise AccountNotFound("no previous account found", currency=currency)
            unit = int(await self.chain.unit_per_underlying(pool.pool_address))
            amount_units = int(amount) * unit

            fee, reward_account = 0, None
            relayer = self._relayer_factory(relayer_url) if relayer_url else None
            try:
                if relayer is not None:
                    status = await relayer.status()
                    fee_from = amount_units if amount_units != 0 else int(debt) * unit
                    fee = self.quote_fee(
                        pool, fee_from, status.price_of(pool.symbol), status.fee_percent, status.min_gas_price
                    )
                    if fee >= fee_from:
                        raise FeeExceedsAmount(fee, fee_from)
                    reward_account = status.reward_account

                result = await self.controller(pool).withdraw(
                    account,
                    amount=amount_units,
                    recipient=recipient,
                    public_key=encryption_public_key(private_key),
                    commitments=commitments_in_order(evs),
                    debt=debt,
                    unit_per_underlying=unit,
                    fee=fee,
                    relayer=reward_account,
                )
                if relayer is None:
                    return result
                log.info("sending withdrawal through relayer", extra={"method": result.method})
                return await relayer.relay(result.kind, pool.pool_address, result.call_proofs(), result.args)
            finally:
                if relayer is not None:
                    await relayer.close()

    def quote_fee(
        self,
        pool: Pool,
        fee_from: int,
        price: Union[str, Decimal],
        fee_percent: Union[str, Decimal],
        gas_price_gwei: Union[str, Decimal],
    ) -> int:
        """Relayer fee in the pool currency's smallest units, with the configured buffer."""
        currency_price = Decimal(str(price)) * Decimal(10) ** (NATIVE_DECIMALS - pool.decimals)
        gas_price = int(Decimal(str(gas_price_gwei)) * GWEI)
        fee = calculate_fee(
            fee_from,
            currency_price,
            fee_percent,
            gas_price,
            self.config.gas_limit,
        )
        return with_fee_buffer(fee, self.config.fee_buffer_per_mille)


__all__ = ["ChainSource", "ShieldKit", "commitments_in_order"]
