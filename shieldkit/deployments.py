"""
Pool deployment descriptors.

Static, read-only data mapping a chain id to its pools. Generation 1 pools
use PLONK proofs and a tree of height 20; generation 2 pools use Groth16,
a tree of height 24 and three sub-circuit proofs per operation.

Additional or private deployments can be loaded with `load_deployments_json`.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from shieldkit.errors import ConfigError, PoolNotFound


class ProvingSystem(str, Enum):
    PLONK = "plonk"
    GROTH16 = "groth16"


@dataclass(frozen=True)
class Pool:
    pool_address: str
    symbol: str
    p_symbol: str
    decimals: int
    creation_block: int
    proving_system: ProvingSystem
    merkle_tree_height: int
    token_address: Optional[str] = None
    p_token_address: Optional[str] = None

    @property
    def generation(self) -> int:
        return 2 if self.proving_system is ProvingSystem.GROTH16 else 1

    def matches(self, currency: str) -> bool:
        c = currency.lower()
        return self.symbol.lower() == c or self.p_symbol.lower() == c


def v1_pool(
    pool_address: str,
    symbol: str,
    p_symbol: str,
    decimals: int,
    creation_block: int,
    token_address: Optional[str] = None,
    p_token_address: Optional[str] = None,
) -> Pool:
    return Pool(
        pool_address=pool_address,
        symbol=f"{symbol}_v1",
        p_symbol=f"{p_symbol}_v1",
        decimals=decimals,
        creation_block=creation_block,
        proving_system=ProvingSystem.PLONK,
        merkle_tree_height=20,
        token_address=token_address,
        p_token_address=p_token_address,
    )


def v2_pool(
    pool_address: str,
    symbol: str,
    p_symbol: str,
    decimals: int,
    creation_block: int,
    token_address: Optional[str] = None,
    p_token_address: Optional[str] = None,
) -> Pool:
    return Pool(
        pool_address=pool_address,
        symbol=f"{symbol}_v2",
        p_symbol=f"{p_symbol}_v2",
        decimals=decimals,
        creation_block=creation_block,
        proving_system=ProvingSystem.GROTH16,
        merkle_tree_height=24,
        token_address=token_address,
        p_token_address=p_token_address,
    )


DEPLOYMENTS: Dict[int, List[Pool]] = {
    # Celo mainnet
    42220: [
        v2_pool("0x5e1a05E9797aB64841792Bcd320D0EFDB1Ab70ac", "CELO", "pCELO", 18, 9419623,
                "0x471EcE3750Da237f93B8E339c536989b8978a438", "0x301a61D01A63c8D670c2B8a43f37d12eF181F997"),
        v2_pool("0xbd5c0877b524eEA37B48E67C012bcE1916EA3F97", "cUSD", "pUSD", 18, 9419624,
                "0x765DE816845861e75A25fCA122bb6898B8B1282a", "0xEadf4A7168A82D30Ba0619e64d5BCf5B30B45226"),
        v2_pool("0x8F29EB2A9Dc44cb1A4FFeD64EDa398Aba34BAEd0", "cEUR", "pEUR", 18, 9419625,
                "0xd8763cba276a3738e6de85b4b3bf5fded6d6ca73", "0xD8761DD6c7cB54febD33adD699F5E4440b62E01B"),
        v2_pool("0x2A842A5C2BBb45a321Babd2F00D9D3E513d7b642", "cREAL", "pREAL", 18, 11507382,
                "0xe8537a3d056DA446677B9E9d6c5dB704EaAb4787", "0x51d1D8F59CfDF12a5a54892AEdB1eE1683a6d8B6"),
        v1_pool("0xE74AbF23E1Fdf7ACbec2F3a30a772eF77f1601E1", "CELO", "pCELO", 18, 9419623,
                "0x471EcE3750Da237f93B8E339c536989b8978a438", "0xE74AbF23E1Fdf7ACbec2F3a30a772eF77f1601E1"),
        v1_pool("0xB4aa2986622249B1F45eb93F28Cfca2b2606d809", "cUSD", "pUSD", 18, 9419624,
                "0x765DE816845861e75A25fCA122bb6898B8B1282a", "0xB4aa2986622249B1F45eb93F28Cfca2b2606d809"),
        v1_pool("0x56072D4832642dB29225dA12d6Fd1290E4744682", "cEUR", "pEUR", 18, 9419625,
                "0xd8763cba276a3738e6de85b4b3bf5fded6d6ca73", "0x56072D4832642dB29225dA12d6Fd1290E4744682"),
    ],
    # Celo Alfajores
    44787: [
        v2_pool("0x149eB1EFDB1e75b00dB6d3865CE9E04F7a6D885E", "CELO", "pCELO", 18, 7863536,
                "0xF194afDf50B03e69Bd7D057c1Aa9e10c9954E4C9", "0x405a5c1cA9374Ca5F76a4829c6C764Dadecd2419"),
        v2_pool("0x0361cb7b746e23b15Ee33c627dCfb2c583Ff9738", "cUSD", "pUSD", 18, 7863537,
                "0x874069Fa1Eb16D44d622F2e0Ca25eeA172369bC1", "0xeB1e6776d198cd53A91451dd29A78Dd7f5F4C136"),
        v2_pool("0x9DC31b533a95FaDC87632034B2baEf216f7f5e93", "cEUR", "pEUR", 18, 7863538,
                "0x10c892A6EC43a53E45D0B916B4b7D383B1b78C0F", "0xa7260929f57D356723739fF6EB3dF80c0e0A8A33"),
        v2_pool("0xc8Af82Fea43EA4BfAB210E3AF8D42f8C8756AEAb", "cREAL", "pREAL", 18, 9951776,
                "0xE4D517785D091D3c54818832dB6094bcc2744545", "0xdd1fC5AED8b2CeF7fd69160cfBF9F9D2F0C6BE1a"),
    ],
    # Fantom testnet / mainnet
    4002: [
        v1_pool("0x56072D4832642dB29225dA12d6Fd1290E4744682", "FTM", "pFTM", 18, 4449905,
                p_token_address="0x56072D4832642dB29225dA12d6Fd1290E4744682"),
    ],
    250: [
        v1_pool("0xAdfC2a82becC26C48ed0d1A06C813d283cB39006", "FTM", "pFTM", 18, 19546119,
                p_token_address="0xAdfC2a82becC26C48ed0d1A06C813d283cB39006"),
    ],
    # Polygon Mumbai / mainnet
    80001: [
        v1_pool("0x0C171f145Ce7570cc94Cfc39b6f219F4C2d3eFCf", "MATIC", "pMATIC", 18, 20543511,
                p_token_address="0x0C171f145Ce7570cc94Cfc39b6f219F4C2d3eFCf"),
    ],
    137: [
        v1_pool("0xEfc83b8EfCc03cC2ECc28C542A7bf4D9e4Ce9a6E", "MATIC", "pMATIC", 18, 20568728,
                p_token_address="0xEfc83b8EfCc03cC2ECc28C542A7bf4D9e4Ce9a6E"),
    ],
    # Avalanche Fuji / mainnet
    43113: [
        v2_pool("0xe34b0DC9CbF083E877C40Ebd1F54092E078D5753", "AVAX", "pAVAX", 18, 3103989,
                p_token_address="0x7F1A67C7321b3d640b514eC9a6642C743669DF4D"),
        v1_pool("0x0824C3Ed3bF48E5A0dB14c36a1fa44D68f0D79AC", "AVAX", "pAVAX", 18, 2163000,
                p_token_address="0x0824C3Ed3bF48E5A0dB14c36a1fa44D68f0D79AC"),
    ],
    43114: [
        v2_pool("0x337ddAD7Fcb34E93a54a7B6df7C8Bae00fA91D09", "AVAX", "pAVAX", 18, 7775722,
                p_token_address="0xC7D074C525f04B39f21e6f8C84c9FeFcC980f49D"),
        v1_pool("0xbf03e0f7D8dFB17e4680C4D4748A614968aD5495", "AVAX", "pAVAX", 18, 6053349,
                p_token_address="0xbf03e0f7D8dFB17e4680C4D4748A614968aD5495"),
    ],
    # Ethereum Kovan / mainnet
    42: [
        v1_pool("0xD8761DD6c7cB54febD33adD699F5E4440b62E01B", "ETH", "pETH", 18, 27944314,
                p_token_address="0xD8761DD6c7cB54febD33adD699F5E4440b62E01B"),
    ],
    1: [
        v1_pool("0xd3020655F6431C9aF80fdAab66Da8Ac86abE365E", "ETH", "pETH", 18, 13487348,
                p_token_address="0xd3020655F6431C9aF80fdAab66Da8Ac86abE365E"),
    ],
}


def find_pool(
    currency: str,
    chain_id: int,
    deployments: Optional[Mapping[int, Sequence[Pool]]] = None,
) -> Pool:
    """First pool on `chain_id` whose symbol or pSymbol matches `currency` (case-insensitive)."""
    table = DEPLOYMENTS if deployments is None else deployments
    for pool in table.get(int(chain_id), ()):
        if pool.matches(currency):
            return pool
    raise PoolNotFound(currency, chain_id)


def _pool_from_json(obj: Mapping[str, Any]) -> Pool:
    try:
        system = ProvingSystem(str(obj.get("provingSystem", obj.get("proving_system"))).lower())
        return Pool(
            pool_address=str(obj.get("poolAddress", obj.get("pool_address"))),
            symbol=str(obj["symbol"]),
            p_symbol=str(obj.get("pSymbol", obj.get("p_symbol"))),
            decimals=int(obj.get("decimals", 18)),
            creation_block=int(obj.get("creationBlock", obj.get("creation_block", 0))),
            proving_system=system,
            merkle_tree_height=int(
                obj.get("merkleTreeHeight", obj.get("merkle_tree_height", 24 if system is ProvingSystem.GROTH16 else 20))
            ),
            token_address=obj.get("tokenAddress", obj.get("token_address")),
            p_token_address=obj.get("pTokenAddress", obj.get("p_token_address")),
        )
    except (KeyError, ValueError, TypeError) as e:
        raise ConfigError("malformed pool descriptor", pool=dict(obj)).with_cause(e) from e


def load_deployments_json(path: Union[str, os.PathLike]) -> Dict[int, List[Pool]]:
    """
    Load `{ "<chainId>": [ {poolAddress, symbol, pSymbol, provingSystem, ...}, ... ] }`.
    Accepts camelCase (as published) or snake_case keys.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ConfigError("deployments file must map chain ids to pool lists", path=str(path))
    return {int(chain): [_pool_from_json(p) for p in pools] for chain, pools in raw.items()}


__all__ = [
    "ProvingSystem",
    "Pool",
    "v1_pool",
    "v2_pool",
    "DEPLOYMENTS",
    "find_pool",
    "load_deployments_json",
]
