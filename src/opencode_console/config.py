"""Startup configuration for opencode-console.

The environment is read once, by ``load_config``. Everything else receives a
``ConsoleConfig`` and never looks at ``os.environ`` itself.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

DEFAULT_CODEX_STATUS_TIMEOUT = 60.0


def get_opencode_path(environ: Mapping[str, str]) -> Path:
    """Return the path to OpenCode's storage directory."""
    env = environ.get("OPENCODE_STORAGE")
    if env:
        return Path(env)

    if sys.platform == "win32":
        return Path(environ.get("USERPROFILE", "")) / ".local" / "share" / "opencode" / "storage"
    else:  # macOS and Linux
        return Path.home() / ".local" / "share" / "opencode" / "storage"


def get_codex_home(environ: Mapping[str, str]) -> Path:
    """Return the directory handed to ``codex app-server`` as CODEX_HOME."""
    env = environ.get("CODEX_HOME")
    if env:
        return Path(env)

    return Path.home() / ".codex"


@dataclass(frozen=True)
class ConsoleConfig:
    """Paths, binaries and timeouts shared by every service."""

    storage_root: Path
    opencode_bin: str = "opencode"
    codex_bin: str = "codex"
    codex_home: Path = field(default_factory=lambda: Path.home() / ".codex")
    codex_status_timeout: float = DEFAULT_CODEX_STATUS_TIMEOUT  # seconds
    fallback_cwd: Path = field(default_factory=Path.cwd)
    child_env: Mapping[str, str] = field(default_factory=dict)


def load_config(environ: Mapping[str, str] | None = None) -> ConsoleConfig:
    """Build a ``ConsoleConfig`` from environment variables."""
    if environ is None:
        environ = os.environ

    timeout = DEFAULT_CODEX_STATUS_TIMEOUT
    raw_timeout = environ.get("CODEX_STATUS_TIMEOUT_MS")
    if raw_timeout:
        try:
            timeout = int(raw_timeout) / 1000
        except ValueError:
            raise ValueError(f"CODEX_STATUS_TIMEOUT_MS must be an integer, got {raw_timeout!r}") from None

    return ConsoleConfig(
        storage_root=get_opencode_path(environ),
        opencode_bin=environ.get("OPENCODE_BIN") or "opencode",
        codex_bin=environ.get("CODEX_BIN") or "codex",
        codex_home=get_codex_home(environ),
        codex_status_timeout=timeout,
        fallback_cwd=Path.cwd(),
        child_env=dict(environ),
    )
