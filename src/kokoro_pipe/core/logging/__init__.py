"""
kokoro-pipe Structured Logging.

Every module logs through small helpers that take an event name plus
keyword fields::

    from kokoro_pipe.core.logging import get_logger, info, verbose

    _LOG = get_logger("kokoro-pipe.engine")
    info(_LOG, "job_enqueued", steps=3, queue_depth=1)
    verbose(_LOG, "step_done", step=0, samples=48000, seconds=0.41)

Messages below the configured numeric level (see levels.py) are dropped
before they reach the standard logging machinery. Output goes to a
colored console handler, plus a rotating JSONL file when ``log_dir`` is
configured.

Configuration:
    export KOKORO_PIPE_LOG_LEVEL=3
    export KOKORO_PIPE_LOG_DIR=logs

    or in settings.yaml:
        logging:
          level: 2
          log_dir: logs
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .context import (
    get_job_id,
    get_level,
    get_level_name,
    get_log_config,
    is_configured,
    read_logging_config,
    reset_job_id,
    set_configured,
    set_job_id,
    set_level,
    set_log_config,
)
from .formatters import ColoredConsoleFormatter, Colors, JsonlFormatter, get_tag_color, supports_color
from .levels import LEVEL_MAP, LEVEL_NAMES, LogLevel, coerce_level


def configure_logging(level: Optional[int | str | LogLevel] = None, force: bool = False) -> None:
    """
    Install the console (and optional JSONL) handlers on the root logger.

    Args:
        level: Numeric level, level name or LogLevel; defaults to the
            configured ``logging.level`` (NORMAL when unset).
        force: Reconfigure even if logging was already set up.
    """
    if is_configured() and not force:
        return

    log_config = read_logging_config()
    set_log_config(log_config)

    current_level = coerce_level(level or log_config.get("level", LogLevel.NORMAL))
    set_level(current_level)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG - 5)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(LEVEL_MAP.get(current_level, logging.INFO))
    console.setFormatter(ColoredConsoleFormatter())
    root.addHandler(console)

    log_dir = log_config.get("log_dir")
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            Path(log_dir) / str(log_config.get("jsonl_file", "kokoro-pipe.jsonl")),
            maxBytes=int(log_config.get("rotate_max_bytes", 10 * 1024 * 1024)),
            backupCount=int(log_config.get("rotate_backup_count", 5)),
            encoding="utf-8",
            delay=True,
        )
        file_handler.setLevel(logging.DEBUG - 5)
        file_handler.setFormatter(JsonlFormatter())
        root.addHandler(file_handler)

    set_configured(True)

    if "settings_error" in log_config:
        warn(logging.getLogger("kokoro-pipe.logging"), "settings_unreadable",
             error=log_config["settings_error"])


def get_logger(name: str = "kokoro-pipe") -> logging.Logger:
    """Return a named logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)


def _log(
    logger: logging.Logger,
    level: int,
    tag: str,
    msg: str,
    numeric_level: int = 2,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    if numeric_level > get_level():
        return

    seconds = fields.pop("seconds", None)
    logger.log(
        level,
        msg,
        exc_info=exc_info,
        extra={
            "tag": tag,
            "job_id": get_job_id(),
            "seconds": seconds,
            "extra_data": fields or None,
            "numeric_level": numeric_level,
        },
    )


def info(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.INFO, "INFO", msg, numeric_level=2, **fields)


def warn(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.WARNING, "WARN", msg, numeric_level=2, **fields)


def error(logger: logging.Logger, msg: str, exc_info: bool = False, **fields: Any) -> None:
    _log(logger, logging.ERROR, "ERROR", msg, numeric_level=1, exc_info=exc_info, **fields)


def success(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.INFO, "SUCCESS", msg, numeric_level=2, **fields)


def fail(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.ERROR, "FAIL", msg, numeric_level=1, **fields)


def verbose(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.DEBUG, "INFO", msg, numeric_level=3, **fields)


def debug(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.DEBUG - 5, "DEBUG", msg, numeric_level=4, **fields)


__all__ = [
    "LogLevel",
    "LEVEL_MAP",
    "LEVEL_NAMES",
    "coerce_level",
    "Colors",
    "supports_color",
    "get_tag_color",
    "JsonlFormatter",
    "ColoredConsoleFormatter",
    "get_job_id",
    "set_job_id",
    "reset_job_id",
    "get_level",
    "set_level",
    "get_level_name",
    "get_log_config",
    "configure_logging",
    "get_logger",
    "info",
    "warn",
    "error",
    "success",
    "fail",
    "verbose",
    "debug",
]
