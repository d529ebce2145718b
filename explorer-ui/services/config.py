"""Runtime configuration read once from the environment at startup.

Environment variables
- VOLUME_ROOT: directory holding the volumes (default: /mnt)
- EXPLORER_HOST / EXPLORER_PORT: listen address (default: 0.0.0.0:3000)
- EXPLORER_TRASH_TTL_DAYS: auto-purge trash entries older than N days (default: 30, 0 disables)
- EXPLORER_TRASH_PURGE_INTERVAL_SECONDS: min seconds between auto-purges (default: 3600, min 60)
- EXPLORER_EXCLUDED_FILES: comma list of names never treated as volumes
- EXPLORER_STRICT_SYMLINKS: 0/1, refuse parents that leave the root via symlinks (default: 1)
- EXPLORER_LOG_DIR: log directory (see logging_setup)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from .trash import DEFAULT_EXCLUDED_NAMES


DEFAULT_VOLUME_ROOT = "/mnt"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
_TRASH_TTL_DAYS_DEFAULT = 30
_TRASH_PURGE_INTERVAL_SECONDS_DEFAULT = 3600
_TRASH_PURGE_INTERVAL_SECONDS_MIN = 60


@dataclass(frozen=True)
class ExplorerConfig:
    volume_root: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    trash_ttl_days: int = _TRASH_TTL_DAYS_DEFAULT
    trash_purge_interval_seconds: int = _TRASH_PURGE_INTERVAL_SECONDS_DEFAULT
    excluded_files: Tuple[str, ...] = DEFAULT_EXCLUDED_NAMES
    strict_symlinks: bool = True
    log_dir: Optional[str] = None


def _read_int_env(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        v = str(env.get(name, "") or "").strip()
        if not v:
            return int(default)
        return int(float(v))
    except (TypeError, ValueError):
        return int(default)


def _read_bool_env(env: Mapping[str, str], name: str, default: bool) -> bool:
    v = str(env.get(name, "") or "").strip().lower()
    if v in ("1", "true", "yes", "on", "y"):
        return True
    if v in ("0", "false", "no", "off", "n"):
        return False
    return default


def _read_list_env(env: Mapping[str, str], name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = env.get(name)
    if raw is None:
        return tuple(default)
    return tuple(p.strip() for p in str(raw).split(",") if p.strip())


def load_config(env: Optional[Mapping[str, str]] = None) -> ExplorerConfig:
    """Build an ``ExplorerConfig``; the volume root must be an existing directory."""
    env = os.environ if env is None else env

    raw_root = str(env.get("VOLUME_ROOT", "") or "").strip() or DEFAULT_VOLUME_ROOT
    volume_root = os.path.realpath(os.path.abspath(raw_root))
    if not os.path.isdir(volume_root):
        raise RuntimeError(f"VOLUME_ROOT is not an existing directory: {raw_root}")

    port = _read_int_env(env, "EXPLORER_PORT", DEFAULT_PORT)
    if port <= 0 or port > 65535:
        port = DEFAULT_PORT

    ttl_days = _read_int_env(env, "EXPLORER_TRASH_TTL_DAYS", _TRASH_TTL_DAYS_DEFAULT)
    if ttl_days < 0:
        ttl_days = 0

    purge_interval_s = _read_int_env(
        env, "EXPLORER_TRASH_PURGE_INTERVAL_SECONDS", _TRASH_PURGE_INTERVAL_SECONDS_DEFAULT
    )
    if purge_interval_s < _TRASH_PURGE_INTERVAL_SECONDS_MIN:
        purge_interval_s = _TRASH_PURGE_INTERVAL_SECONDS_MIN

    log_dir = str(env.get("EXPLORER_LOG_DIR", "") or "").strip() or None

    return ExplorerConfig(
        volume_root=volume_root,
        host=str(env.get("EXPLORER_HOST", "") or "").strip() or DEFAULT_HOST,
        port=port,
        trash_ttl_days=ttl_days,
        trash_purge_interval_seconds=purge_interval_s,
        excluded_files=_read_list_env(env, "EXPLORER_EXCLUDED_FILES", DEFAULT_EXCLUDED_NAMES),
        strict_symlinks=_read_bool_env(env, "EXPLORER_STRICT_SYMLINKS", True),
        log_dir=log_dir,
    )
