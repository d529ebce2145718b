"""Rotating core/access logs for the explorer backend.

Two files live in the log directory:

``core.log``
    Lines written by service modules through ``core_log`` on child loggers of
    ``explorer`` (``explorer.transfer``, ``explorer.trash`` ...). Nothing is
    written before ``setup_logging`` attaches the handler.
``access.log``
    One line per HTTP request, written by the app hooks when
    ``EXPLORER_LOG_ACCESS_ENABLE`` is on. Never mirrored into core.log.

All knobs come from ``EXPLORER_LOG_*`` variables and are re-read by
``refresh_runtime_from_env``, so they can change without a restart:

    EXPLORER_LOG_DIR              log directory (default: ./logs)
    EXPLORER_LOG_CORE_ENABLE      0/1, default 1
    EXPLORER_LOG_CORE_LEVEL       DEBUG|INFO|WARNING|ERROR|CRITICAL, default INFO
    EXPLORER_LOG_ACCESS_ENABLE    0/1, default 0
    EXPLORER_LOG_ROTATE_MAX_MB    size per file before rotation, default 2
    EXPLORER_LOG_ROTATE_BACKUPS   rotated files kept, default 3
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Mapping, Optional, Tuple


DEFAULT_LOG_DIR = os.path.join(os.getcwd(), "logs")

CORE_LOGGER_NAME = "explorer"
ACCESS_LOGGER_NAME = "explorer.access"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

# (handler key, logger, file name)
_LOG_FILES = (
    ("core", CORE_LOGGER_NAME, "core.log"),
    ("access", ACCESS_LOGGER_NAME, "access.log"),
)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
}

_ON = frozenset(("1", "true", "yes", "on", "y"))
_OFF = frozenset(("0", "false", "no", "off", "n"))

_STATE: Dict[str, Any] = {"configured": False, "log_dir": None, "handlers": {}}


def level_from_name(name: Any) -> int:
    """Map a level name to its ``logging`` constant; unknown names mean INFO."""
    return _LEVELS.get(str(name or "").strip().upper(), logging.INFO)


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = str(env.get(name, "")).strip().lower()
    if raw in _ON:
        return True
    if raw in _OFF:
        return False
    return default


def _positive(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        value = int(str(env.get(name, default)).strip())
    except ValueError:
        value = default
    return max(1, value)


@dataclass(frozen=True)
class LogSettings:
    core_enabled: bool = True
    core_level: int = logging.INFO
    access_enabled: bool = False
    max_bytes: int = 2 * 1024 * 1024
    backups: int = 3

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "LogSettings":
        env = os.environ if env is None else env
        return cls(
            core_enabled=_flag(env, "EXPLORER_LOG_CORE_ENABLE", True),
            core_level=level_from_name(env.get("EXPLORER_LOG_CORE_LEVEL")),
            access_enabled=_flag(env, "EXPLORER_LOG_ACCESS_ENABLE", False),
            max_bytes=_positive(env, "EXPLORER_LOG_ROTATE_MAX_MB", 2) * 1024 * 1024,
            backups=_positive(env, "EXPLORER_LOG_ROTATE_BACKUPS", 3),
        )


def get_log_dir(default_dir: Optional[str] = None) -> str:
    return (os.environ.get("EXPLORER_LOG_DIR") or "").strip() or default_dir or DEFAULT_LOG_DIR


def get_paths(log_dir: Optional[str] = None) -> Tuple[str, str]:
    """Return ``(core_path, access_path)`` for ``log_dir`` or the active directory."""
    base = str(log_dir or _STATE["log_dir"] or get_log_dir())
    return os.path.join(base, "core.log"), os.path.join(base, "access.log")


def _open_handler(path: str, settings: LogSettings) -> RotatingFileHandler:
    # delay=True: the file appears with its first line, not at startup.
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.max_bytes,
        backupCount=settings.backups,
        encoding="utf-8",
        delay=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logging(log_dir: Optional[str] = None) -> None:
    """Attach the rotating handlers once; later calls only refresh settings."""
    if not _STATE["configured"]:
        log_dir = log_dir or get_log_dir()
        os.makedirs(log_dir, exist_ok=True)
        settings = LogSettings.from_env()

        handlers: Dict[str, RotatingFileHandler] = {}
        for key, logger_name, filename in _LOG_FILES:
            handlers[key] = _open_handler(os.path.join(log_dir, filename), settings)
            logger = logging.getLogger(logger_name)
            logger.propagate = False
            logger.addHandler(handlers[key])

        _STATE.update(configured=True, log_dir=log_dir, handlers=handlers)

    refresh_runtime_from_env()


def refresh_runtime_from_env() -> None:
    """Re-read ``EXPLORER_LOG_*`` and apply it to the installed handlers."""
    if not _STATE["configured"]:
        return
    settings = LogSettings.from_env()
    handlers: Dict[str, RotatingFileHandler] = _STATE["handlers"]

    for handler in handlers.values():
        handler.maxBytes = settings.max_bytes
        handler.backupCount = settings.backups

    core = logging.getLogger(CORE_LOGGER_NAME)
    core.setLevel(settings.core_level)
    # Child loggers hand records straight to this handler, so detaching it is
    # the only way to silence them.
    if "core" in handlers:
        if settings.core_enabled:
            core.addHandler(handlers["core"])
        else:
            core.removeHandler(handlers["core"])

    # Access lines are gated per request by access_enabled().
    logging.getLogger(ACCESS_LOGGER_NAME).setLevel(logging.INFO)


def reset_logging() -> None:
    """Detach and close everything setup_logging() installed."""
    handlers: Dict[str, RotatingFileHandler] = _STATE["handlers"]
    for key, logger_name, _filename in _LOG_FILES:
        handler = handlers.get(key)
        if handler is None:
            continue
        logging.getLogger(logger_name).removeHandler(handler)
        handler.close()
    logging.getLogger(CORE_LOGGER_NAME).setLevel(logging.NOTSET)
    _STATE.update(configured=False, log_dir=None, handlers={})


def access_enabled() -> bool:
    return LogSettings.from_env().access_enabled


def core_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(f"{CORE_LOGGER_NAME}.{name}" if name else CORE_LOGGER_NAME)


def access_logger() -> logging.Logger:
    return logging.getLogger(ACCESS_LOGGER_NAME)


def core_log(level: str, msg: str, *, logger: Optional[logging.Logger] = None, **extra: Any) -> None:
    """Write ``msg | key=value, ...`` to core.log (``logger`` defaults to the core one)."""
    if extra:
        msg = f"{msg} | " + ", ".join(f"{key}={value}" for key, value in extra.items())
    (logger or core_logger()).log(level_from_name(level), msg)
