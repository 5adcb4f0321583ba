"""
shieldkit.tests helpers

Shared utilities for shieldkit/* tests.

Exports:
- TEST_ROOT
- fixture_path(*parts) -> Path
- env_flag(name, default=False) -> bool
- configure_test_logging() -> None

Environment toggles:
- SHIELDKIT_TEST_LOG=1    → enable DEBUG logging for shieldkit.*
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

TEST_ROOT: Path = Path(__file__).resolve().parent


def fixture_path(*parts: Union[str, Path]) -> Path:
    """Return a path under shieldkit/tests/fixtures."""
    return (TEST_ROOT / "fixtures").joinpath(*map(Path, parts))


def env_flag(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on"}


def configure_test_logging(level: int | None = None) -> None:
    """Route shieldkit.* logs to stderr when SHIELDKIT_TEST_LOG is set."""
    if not env_flag("SHIELDKIT_TEST_LOG", False):
        return
    from shieldkit import logging as slog

    slog.configure(json=False, level=level if level is not None else logging.DEBUG)


__all__ = ["TEST_ROOT", "fixture_path", "env_flag", "configure_test_logging"]
