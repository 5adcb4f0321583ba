"""
shieldkit configuration loader.

Layered config with clear precedence:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (SHIELDKIT_*)
    3) Config file (TOML or JSON)
    4) Built-in defaults (lowest)

The resulting `ShieldConfig` is an explicit value handed to the components
that need it (artifact store, prover, relayer client, kit). Nothing here is
cached at module level.

Keys
----
artifacts_dir          local directory holding circuit programs / proving keys
artifacts_url          base URL to fetch artifacts from when not on disk
poseidon_params_dir    directory of Poseidon parameter JSON files (bn254_t{t}.json)
snarkjs_bin            snarkjs executable used by SnarkjsProver
relayer_poll_interval  seconds between relayer job polls
relayer_max_attempts   number of job polls before giving up
fee_buffer_per_mille   safety margin added to relayer fees (1 = 0.1 %)
gas_limit              gas limit assumed when quoting relayer fees
log_level, log_json    logging setup
"""

from __future__ import annotations

import json
import os
import sys
import tomllib as _toml
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from shieldkit.errors import ConfigError



DEFAULT_RELAYER_POLL_INTERVAL = 5.0
DEFAULT_RELAYER_MAX_ATTEMPTS = 15
DEFAULT_GAS_LIMIT = 2_000_000
DEFAULT_FEE_BUFFER_PER_MILLE = 1

_ENV_PREFIX = "SHIELDKIT_"


def _expand(p: str | Path) -> Path:
    return Path(p).expanduser().resolve()


def _parse_bool(v: str) -> bool:
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass
class ShieldConfig:
    artifacts_dir: Optional[Path] = None
    artifacts_url: Optional[str] = None
    poseidon_params_dir: Optional[Path] = None
    snarkjs_bin: str = "snarkjs"
    relayer_poll_interval: float = DEFAULT_RELAYER_POLL_INTERVAL
    relayer_max_attempts: int = DEFAULT_RELAYER_MAX_ATTEMPTS
    fee_buffer_per_mille: int = DEFAULT_FEE_BUFFER_PER_MILLE
    gas_limit: int = DEFAULT_GAS_LIMIT
    log_level: str = "INFO"
    log_json: bool = False

    def validate(self) -> None:
        if self.relayer_poll_interval < 0:
            raise ConfigError("relayer_poll_interval must be >= 0", value=self.relayer_poll_interval)
        if self.relayer_max_attempts < 1:
            raise ConfigError("relayer_max_attempts must be >= 1", value=self.relayer_max_attempts)
        if self.fee_buffer_per_mille < 0:
            raise ConfigError("fee_buffer_per_mille must be >= 0", value=self.fee_buffer_per_mille)
        if self.gas_limit <= 0:
            raise ConfigError("gas_limit must be > 0", value=self.gas_limit)
        if self.artifacts_url is not None and not self.artifacts_url.startswith(("http://", "https://")):
            raise ConfigError("artifacts_url must be an http(s) URL", value=self.artifacts_url)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        return {k: (str(v) if isinstance(v, Path) else v) for k, v in d.items()}


# ------------------------------
# File loader (TOML / JSON)
# ------------------------------

def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("config file not found", path=str(path))
    suffix = path.suffix.lower()
    with path.open("rb") as f:
        if suffix in {".toml", ".tml"}:
            raw = _toml.load(f)
        elif suffix == ".json":
            raw = json.load(f)
        else:
            raise ConfigError(f"unsupported config format: {suffix}", path=str(path))
    # Allow either a flat table or a [shieldkit] section
    section = raw.get("shieldkit", raw)
    if not isinstance(section, dict):
        raise ConfigError("config root must be a table", path=str(path))
    return section


def _from_env() -> Dict[str, str]:
    out: Dict[str, str] = {}
    for f in fields(ShieldConfig):
        key = _ENV_PREFIX + f.name.upper()
        if key in os.environ and os.environ[key] != "":
            out[f.name] = os.environ[key]
    return out


def _coerce(name: str, value: Any) -> Any:
    """Coerce a raw (file/env/override) value to the field's type."""
    if value is None:
        return None
    try:
        if name in ("artifacts_dir", "poseidon_params_dir"):
            return _expand(value)
        if name in ("relayer_poll_interval",):
            return float(value)
        if name in ("relayer_max_attempts", "fee_buffer_per_mille", "gas_limit"):
            return int(value, 0) if isinstance(value, str) else int(value)
        if name == "log_json":
            return _parse_bool(value) if isinstance(value, str) else bool(value)
        return str(value).strip()
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value for {name}", value=str(value)).with_cause(e) from e


# ------------------------------
# Main loader
# ------------------------------

def load(config_file: Optional[str | Path] = None, **overrides: Any) -> ShieldConfig:
    """
    Load the client configuration.

    Precedence: overrides > env > file > defaults. Unknown keys raise ConfigError.
    """
    known = {f.name for f in fields(ShieldConfig)}
    merged: Dict[str, Any] = {}

    if config_file is None and os.environ.get(_ENV_PREFIX + "CONFIG"):
        config_file = os.environ[_ENV_PREFIX + "CONFIG"]
    if config_file:
        merged.update(_load_file(_expand(config_file)))
    merged.update(_from_env())
    merged.update({k: v for k, v in overrides.items() if v is not None})

    unknown = sorted(set(merged) - known)
    if unknown:
        raise ConfigError("unknown configuration keys", keys=unknown)

    cfg = ShieldConfig(**{k: _coerce(k, v) for k, v in merged.items()})
    cfg.validate()
    return cfg


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def main(argv: List[str] | None = None) -> int:
    """
    python -m shieldkit.config                      # defaults/env; print JSON
    python -m shieldkit.config path/to/config.toml  # load file; print JSON
    """
    argv = sys.argv[1:] if argv is None else list(argv)
    path = argv[0] if argv else None
    try:
        _print_json(load(path).to_dict())
        return 0
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
