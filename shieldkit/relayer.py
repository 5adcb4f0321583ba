"""
Async client for a withdrawal relayer.

The relayer submits withdraw/mint transactions on the caller's behalf and is
paid from the withdrawn amount. Its API is a job queue:

    POST /withdraw | /mint   {contract, proof(s), args}  -> {id}
    GET  /jobs/{id}                                      -> {txHash?, status?}
    GET  /status                                         -> {priceTable, feePercent, gasPrices, rewardAccount}

`wait_for_tx` polls at a fixed interval for a fixed number of attempts and
raises RelayerTimeout when the attempts run out (no backoff). Every other HTTP
or payload failure surfaces as RelayerError with the server's `error` text
when it sent one.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from shieldkit.config import DEFAULT_RELAYER_MAX_ATTEMPTS, DEFAULT_RELAYER_POLL_INTERVAL
from shieldkit.crypto.binding import OperationKind
from shieldkit.errors import RelayerError, RelayerTimeout
from shieldkit.logging import get_logger, operation_scope

log = get_logger(__name__)


@dataclass
class RelayerStatus:
    price_table: Dict[str, str] = field(default_factory=dict)
    fee_percent: str = "0"
    gas_prices: Dict[str, str] = field(default_factory=dict)
    reward_account: Optional[str] = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "RelayerStatus":
        prices = data.get("priceTable", data.get("celoPrices", {})) or {}
        return cls(
            price_table={str(k).lower(): str(v) for k, v in prices.items()},
            fee_percent=str(data.get("feePercent", data.get("poofServiceFee", "0"))),
            gas_prices={str(k): str(v) for k, v in (data.get("gasPrices") or {}).items()},
            reward_account=data.get("rewardAccount"),
        )

    def price_of(self, symbol: str) -> str:
        key = symbol.lower()
        # versioned pool symbols ("celo_v2") are priced by their base currency
        if key not in self.price_table and "_v" in key:
            key = key.rsplit("_v", 1)[0]
        try:
            return self.price_table[key]
        except KeyError:
            raise RelayerError("relayer has no price for currency", currency=symbol) from None

    @property
    def min_gas_price(self) -> str:
        if "min" in self.gas_prices:
            return self.gas_prices["min"]
        if not self.gas_prices:
            raise RelayerError("relayer reported no gas prices")
        return min(self.gas_prices.values(), key=lambda v: float(v))


class RelayerClient:
    def __init__(
        self,
        base_url: str,
        poll_interval: float = DEFAULT_RELAYER_POLL_INTERVAL,
        max_attempts: int = DEFAULT_RELAYER_MAX_ATTEMPTS,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.poll_interval = float(poll_interval)
        self.max_attempts = int(max_attempts)
        self._client = client
        self._owned = client is None
        self._timeout = timeout

    @classmethod
    def from_config(cls, base_url: str, cfg, client: Optional[httpx.AsyncClient] = None) -> "RelayerClient":
        return cls(
            base_url,
            poll_interval=cfg.relayer_poll_interval,
            max_attempts=cfg.relayer_max_attempts,
            client=client,
        )

    # ---------- lifecycle ----------

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owned:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RelayerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---------- transport ----------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = self.base_url + path
        try:
            resp = await self._http().request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RelayerError("relayer unreachable", url=url).with_cause(e) from e
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            err = body.get("error") if isinstance(body, dict) else None
            raise RelayerError(
                str(err) if err else f"relayer returned HTTP {resp.status_code}",
                url=url,
                status=resp.status_code,
            )
        if not isinstance(body, dict):
            raise RelayerError("relayer returned a non-object body", url=url)
        return body

    # ---------- API ----------

    async def status(self) -> RelayerStatus:
        return RelayerStatus.from_json(await self._request("GET", "/status"))

    async def submit(
        self,
        kind: OperationKind,
        contract: str,
        proofs: Union[str, List[str]],
        args: Mapping[str, Any],
    ) -> str:
        kind = OperationKind(kind)
        if kind not in (OperationKind.WITHDRAW, OperationKind.MINT):
            raise RelayerError("only withdraw and mint can be relayed", kind=kind.method)
        payload: Dict[str, Any] = {"contract": contract, "args": dict(args)}
        if isinstance(proofs, str):
            payload["proof"] = proofs
        else:
            payload["proofs"] = list(proofs)
        body = await self._request("POST", f"/{kind.method}", json=payload)
        job_id = body.get("id", body.get("jobId"))
        if not job_id:
            raise RelayerError("relayer accepted the job without an id")
        log.info("relayer job submitted", extra={"job_id": str(job_id)})
        return str(job_id)

    async def job(self, job_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/jobs/{job_id}")

    async def wait_for_tx(self, job_id: str) -> str:
        with operation_scope(job_id=job_id):
            for attempt in range(1, self.max_attempts + 1):
                body = await self.job(job_id)
                tx_hash = body.get("txHash")
                if tx_hash:
                    log.info("relayer transaction submitted", extra={"tx_hash": tx_hash, "attempt": attempt})
                    return str(tx_hash)
                if str(body.get("status", "")).upper() == "FAILED":
                    raise RelayerError(str(body.get("error") or "relayer job failed"), job_id=job_id)
                log.debug("relayer job pending", extra={"attempt": attempt})
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.poll_interval)
            raise RelayerTimeout(job_id, self.max_attempts)

    async def relay(
        self,
        kind: OperationKind,
        contract: str,
        proofs: Union[str, List[str]],
        args: Mapping[str, Any],
    ) -> str:
        """Submit and wait for the transaction hash."""
        return await self.wait_for_tx(await self.submit(kind, contract, proofs, args))


__all__ = ["RelayerStatus", "RelayerClient"]
