"""Logging setup for chatloop hosts."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["setup_logging", "get_log_path", "resolve_level"]

LOG_DIR_ENV = "CHATLOOP_LOG_DIR"
LOG_LEVEL_ENV = "CHATLOOP_LOG_LEVEL"
LOG_FILE_NAME = "chatloop.log"

_DEFAULT_LOG_DIR = Path.home() / ".chatloop" / "logs"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_LOG_PATH: Path | None = None


def setup_logging(
    level: int | str | None = None,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install a rotating file handler (and a console handler) on the root logger.

    Repeated calls are no-ops unless ``force`` is set.

    Args:
        level: Level name or number; defaults to ``$CHATLOOP_LOG_LEVEL`` or INFO.
        log_dir: Target directory; defaults to ``$CHATLOOP_LOG_DIR`` or ``~/.chatloop/logs``.
        console: Also log to stderr.
        max_bytes: Rotation threshold of the log file.
        backup_count: Number of rotated files kept.
        force: Reconfigure even if logging was already set up.

    Returns:
        Path of the active log file.
    """
    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    resolved_level = resolve_level(level)
    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / LOG_FILE_NAME

    formatter = logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [file_handler]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(resolved_level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=resolved_level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_external_loggers(resolved_level)

    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the configured log file, or None before :func:`setup_logging`."""
    return _LOG_PATH


def resolve_level(level: int | str | None) -> int:
    """Turn a level name or number into a logging level, falling back to INFO."""
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _quiet_external_loggers(root_level: int) -> None:
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
