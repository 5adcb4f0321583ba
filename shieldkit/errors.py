"""
shieldkit.errors
----------------

A small, consistent error system for the shielded-pool client.

Design goals
------------
- One root `ShieldError` with a machine-friendly `code` and optional `data`.
- Concrete subclasses for each failure the client can surface (accounts,
  proving, fees, relayer) plus a few ambient ones (encoding, tree, config).
- Safe JSON representation (`to_dict`) suitable for logs and relayer bridges.
- Clear separation of *retryable* vs *permanent* failures.

Only `RelayerTimeout` and `ArtifactFetchError` are retryable: every other
error requires the caller to change its inputs or configuration before
trying again.

`DecryptionFailure` is special: it is the normal outcome of trial decryption
during account discovery and is recovered locally there.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class ShieldErrorCode(str, Enum):
    # Generic
    INTERNAL = "SHIELD/INTERNAL"
    CONFIG = "SHIELD/CONFIG"
    ENCODING = "SHIELD/ENCODING"

    # Accounts / discovery
    INVALID_ACCOUNT = "SHIELD/INVALID_ACCOUNT"
    DECRYPTION_FAILURE = "SHIELD/DECRYPTION_FAILURE"
    ACCOUNT_NOT_FOUND = "SHIELD/ACCOUNT_NOT_FOUND"

    # Tree
    TREE_FULL = "SHIELD/TREE_FULL"

    # Fees / pools
    FEE_EXCEEDS_AMOUNT = "SHIELD/FEE_EXCEEDS_AMOUNT"
    INVALID_PRICE = "SHIELD/INVALID_PRICE"
    POOL_NOT_FOUND = "SHIELD/POOL_NOT_FOUND"

    # Proving
    MISSING_ARTIFACTS = "SHIELD/MISSING_PROVING_ARTIFACTS"
    ARTIFACT_FETCH = "SHIELD/ARTIFACT_FETCH"
    PROOF_FAILURE = "SHIELD/PROOF_GENERATION_FAILURE"

    # Relayer
    RELAYER = "SHIELD/RELAYER"
    RELAYER_TIMEOUT = "SHIELD/RELAYER_TIMEOUT"


@dataclass(eq=False)
class ShieldError(Exception):
    """
    Root error for shieldkit components.

    Attributes
    ----------
    code: str
        Machine-stable error code (see ShieldErrorCode).
    message: str
        Human hint suitable for logs; never carries keys or account secrets.
    data: dict
        Optional machine data (indices, amounts, urls). JSON-serializable.
    retryable: bool
        Whether the operation may succeed on retry without changing inputs.
    cause: Optional[BaseException]
        Wrapped original exception; not included in equality comparison.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    def with_cause(self, exc: BaseException) -> "ShieldError":
        """Return a copy with the causal exception attached."""
        dup = Exception.__new__(type(self))
        dup.__dict__.update(self.__dict__)
        Exception.__init__(dup, *self.args)
        dup.cause = exc
        return dup

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """JSON-safe shape suitable for logs."""
        out = {
            "code": str(getattr(self.code, "value", self.code)),
            "message": self.message,
            "data": _jsonmap(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:  # pragma: no cover - human formatting
        code = getattr(self.code, "value", self.code)
        parts = [f"{code}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


class InternalError(ShieldError):
    def __init__(self, message="internal error", **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.INTERNAL, message=message, data=_jsonmap(data)
        )


class ConfigError(ShieldError):
    def __init__(self, message="invalid configuration", **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.CONFIG, message=message, data=_jsonmap(data)
        )


class EncodingError(ShieldError):
    def __init__(self, message="encoding failed", **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.ENCODING, message=message, data=_jsonmap(data)
        )


class InvalidAccount(ShieldError):
    def __init__(self, message="invalid account", **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.INVALID_ACCOUNT, message=message, data=_jsonmap(data)
        )


class DecryptionFailure(ShieldError):
    def __init__(self, message="envelope not decryptable with this key", **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.DECRYPTION_FAILURE,
            message=message,
            data=_jsonmap(data),
        )


class AccountNotFound(ShieldError):
    def __init__(
        self, message="account commitment not found in the tree", **data: Any
    ) -> None:
        super().__init__(
            code=ShieldErrorCode.ACCOUNT_NOT_FOUND,
            message=message,
            data=_jsonmap(data),
        )


class TreeFull(ShieldError):
    def __init__(self, height: int) -> None:
        super().__init__(
            code=ShieldErrorCode.TREE_FULL,
            message=f"commitment tree of height {height} is full",
            data={"height": height, "capacity": 1 << height},
        )


class FeeExceedsAmount(ShieldError):
    def __init__(self, fee: int, amount: int) -> None:
        super().__init__(
            code=ShieldErrorCode.FEE_EXCEEDS_AMOUNT,
            message="relayer fee is not lower than the amount it is paid from",
            data={"fee": str(fee), "amount": str(amount)},
        )


class InvalidPrice(ShieldError):
    def __init__(self, price: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.INVALID_PRICE,
            message="currency price must be positive",
            data={"price": _coerce_json(price)},
        )


class PoolNotFound(ShieldError):
    def __init__(self, currency: str, chain_id: int | None = None) -> None:
        super().__init__(
            code=ShieldErrorCode.POOL_NOT_FOUND,
            message=f"no pool deployed for {currency!r}",
            data={"currency": currency, "chain_id": chain_id},
        )


class MissingProvingArtifacts(ShieldError):
    def __init__(self, role: str, system: str, **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.MISSING_ARTIFACTS,
            message=f"proving artifacts for {role}/{system} are not available",
            data=_jsonmap({"role": role, "system": system, **data}),
        )


class ArtifactFetchError(ShieldError):
    def __init__(self, url: str, **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.ARTIFACT_FETCH,
            message=f"could not download proving artifact from {url}",
            data=_jsonmap({"url": url, **data}),
            retryable=True,
        )


class ProofGenerationFailure(ShieldError):
    def __init__(self, message="proof generation failed", **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.PROOF_FAILURE, message=message, data=_jsonmap(data)
        )


class RelayerError(ShieldError):
    def __init__(self, message="relayer request failed", **data: Any) -> None:
        super().__init__(
            code=ShieldErrorCode.RELAYER, message=message, data=_jsonmap(data)
        )


class RelayerTimeout(ShieldError):
    def __init__(self, job_id: str, attempts: int) -> None:
        super().__init__(
            code=ShieldErrorCode.RELAYER_TIMEOUT,
            message=f"relayer job {job_id} produced no transaction after {attempts} polls",
            data={"job_id": job_id, "attempts": attempts},
            retryable=True,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    # Keep JSON primitives; stringify the rest; hex-encode bytes.
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray)):
        return v.hex()
    try:
        return str(v)
    except Exception:
        return "<unprintable>"


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "ShieldErrorCode",
    "ShieldError",
    "InternalError",
    "ConfigError",
    "EncodingError",
    "InvalidAccount",
    "DecryptionFailure",
    "AccountNotFound",
    "TreeFull",
    "FeeExceedsAmount",
    "InvalidPrice",
    "PoolNotFound",
    "MissingProvingArtifacts",
    "ArtifactFetchError",
    "ProofGenerationFailure",
    "RelayerError",
    "RelayerTimeout",
]
