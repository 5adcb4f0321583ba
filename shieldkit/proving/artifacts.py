"""
Proving-artifact store.

Artifacts are resolved per (circuit role, proving system) from, in order:

1. bytes registered on the store (`register`), e.g. shipped by the host app;
2. a local directory: `<dir>/<system>/<Stem>.wasm[.gz]` and
   `<dir>/<system>/<Stem>_circuit_final.zkey[.gz]`, falling back to `<dir>/<file>`;
3. a base URL with the same relative layout, fetched with httpx.

Gzipped files are inflated transparently. Resolved artifacts are cached on
the store instance; nothing is cached at module level. Anything that cannot
be resolved raises MissingProvingArtifacts. A 404 moves on to the next
candidate name; any other HTTP status or transport failure raises
ArtifactFetchError instead. Downloads have no timeout by default because
proving keys can be hundreds of megabytes.
"""

from __future__ import annotations

import asyncio
import gzip
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import httpx

from shieldkit.errors import ArtifactFetchError, MissingProvingArtifacts
from shieldkit.logging import get_logger
from shieldkit.proving import CircuitArtifacts, CircuitRole, ProvingSystem

log = get_logger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

_Key = Tuple[CircuitRole, ProvingSystem]


def program_filename(role: CircuitRole) -> str:
    return f"{role.artifact_stem}.wasm"


def proving_key_filename(role: CircuitRole) -> str:
    return f"{role.artifact_stem}_circuit_final.zkey"


def _maybe_gunzip(data: bytes) -> bytes:
    return gzip.decompress(data) if data[:2] == GZIP_MAGIC else data


def _candidates(system: ProvingSystem, filename: str) -> List[str]:
    out = []
    for rel in (f"{system.value}/{filename}", filename):
        out.extend([rel + ".gz", rel])
    return out


class ArtifactStore:
    def __init__(
        self,
        base_dir: Optional[Union[str, Path]] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_dir = Path(base_dir).expanduser() if base_dir else None
        self.base_url = base_url.rstrip("/") if base_url else None
        self._client = client
        self._timeout = timeout
        self._cache: Dict[_Key, CircuitArtifacts] = {}
        self._locks: Dict[_Key, asyncio.Lock] = {}

    @classmethod
    def from_config(cls, cfg, client: Optional[httpx.AsyncClient] = None) -> "ArtifactStore":
        return cls(base_dir=cfg.artifacts_dir, base_url=cfg.artifacts_url, client=client)

    def register(
        self,
        role: CircuitRole,
        system: ProvingSystem,
        artifacts: Union[CircuitArtifacts, Tuple[bytes, bytes]],
    ) -> None:
        if not isinstance(artifacts, CircuitArtifacts):
            program, proving_key = artifacts
            artifacts = CircuitArtifacts(
                program=_maybe_gunzip(bytes(program)),
                proving_key=_maybe_gunzip(bytes(proving_key)),
            )
        self._cache[(CircuitRole(role), ProvingSystem(system))] = artifacts

    def cached(self, role: CircuitRole, system: ProvingSystem) -> bool:
        return (CircuitRole(role), ProvingSystem(system)) in self._cache

    async def get(self, role: CircuitRole, system: ProvingSystem) -> CircuitArtifacts:
        key = (CircuitRole(role), ProvingSystem(system))
        if key in self._cache:
            return self._cache[key]
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if key not in self._cache:
                self._cache[key] = await self._resolve(*key)
            return self._cache[key]

    async def require(
        self, roles: Iterable[CircuitRole], system: ProvingSystem
    ) -> Dict[CircuitRole, CircuitArtifacts]:
        """Resolve every role up front so missing artifacts fail before any proving."""
        roles = [CircuitRole(r) for r in roles]
        found = await asyncio.gather(*(self.get(r, system) for r in roles))
        return dict(zip(roles, found))

    # ------------------------------------------------------------------

    async def _resolve(self, role: CircuitRole, system: ProvingSystem) -> CircuitArtifacts:
        program = await self._load(role, system, program_filename(role))
        proving_key = await self._load(role, system, proving_key_filename(role))
        log.info(
            "proving artifacts ready",
            extra={"role": role.value, "system": system.value, "zkey_bytes": len(proving_key)},
        )
        return CircuitArtifacts(program=program, proving_key=proving_key)

    async def _load(self, role: CircuitRole, system: ProvingSystem, filename: str) -> bytes:
        names = _candidates(system, filename)
        if self.base_dir is not None:
            for rel in names:
                p = self.base_dir / rel
                if p.is_file():
                    return _maybe_gunzip(p.read_bytes())
        if self.base_url is not None:
            data = await self._fetch(names)
            if data is not None:
                return _maybe_gunzip(data)
        raise MissingProvingArtifacts(
            role.value,
            system.value,
            file=filename,
            base_dir=str(self.base_dir) if self.base_dir else None,
            base_url=self.base_url,
        )

    async def _fetch(self, names: List[str]) -> Optional[bytes]:
        owned = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        try:
            for rel in names:
                url = f"{self.base_url}/{rel}"
                try:
                    resp = await client.get(url)
                except httpx.HTTPError as e:
                    raise ArtifactFetchError(url, err=str(e)).with_cause(e) from e
                if resp.status_code == 200:
                    return resp.content
                if resp.status_code != 404:
                    raise ArtifactFetchError(url, status=resp.status_code)
                log.debug("artifact not at url", extra={"url": url})
            return None
        finally:
            if owned:
                await client.aclose()


__all__ = [
    "ArtifactStore",
    "program_filename",
    "proving_key_filename",
]
