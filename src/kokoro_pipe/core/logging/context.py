"""
Logging Context and Configuration State.

The job id lives in a ContextVar so every message emitted while a job is
being dispatched carries it, even though dispatch runs on a background
thread. The dispatcher sets it before progressing a job and resets it
afterwards.

Environment Variables:
    - KOKORO_PIPE_LOG_LEVEL: Log level (1-4 or name)
    - KOKORO_PIPE_LOG_DIR: Directory for the JSONL log file
    - KOKORO_PIPE_JSONL_FILE: JSONL filename (default kokoro-pipe.jsonl)
    - KOKORO_PIPE_LOG_ROTATE_BYTES: Max file size before rotation
    - KOKORO_PIPE_LOG_ROTATE_BACKUP: Number of rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar, Token
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_job_id: ContextVar[str] = ContextVar("job_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_job_id() -> str:
    """Return the job id bound to the current context, or ``"-"``."""
    return _job_id.get()


def set_job_id(job_id: str) -> Token:
    """Bind a job id to the current context; returns a token for reset."""
    return _job_id.set(job_id)


def reset_job_id(token: Token) -> None:
    _job_id.reset(token)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging options from the settings file and the environment.

    The ``logging`` section of the file named by KOKORO_PIPE_SETTINGS
    (default ``config/settings.yaml``) is read first; environment
    variables override it. A missing or unreadable file means defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("KOKORO_PIPE_SETTINGS", "config/settings.yaml")
    if os.path.exists(settings_path):
        from kokoro_pipe.core.config import load_settings

        try:
            settings = load_settings(settings_path)
        except (OSError, ValueError) as exc:
            # Logging is not configured yet, so there is nowhere else to report this.
            cfg["settings_error"] = str(exc)
        else:
            cfg.update(settings.raw.get("logging", {}) or {})

    if os.getenv("KOKORO_PIPE_LOG_LEVEL"):
        cfg["level"] = os.environ["KOKORO_PIPE_LOG_LEVEL"]
    if os.getenv("KOKORO_PIPE_LOG_DIR"):
        cfg["log_dir"] = os.environ["KOKORO_PIPE_LOG_DIR"]
    if os.getenv("KOKORO_PIPE_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["KOKORO_PIPE_JSONL_FILE"]
    for env_name, key in (
        ("KOKORO_PIPE_LOG_ROTATE_BYTES", "rotate_max_bytes"),
        ("KOKORO_PIPE_LOG_ROTATE_BACKUP", "rotate_backup_count"),
    ):
        raw = os.getenv(env_name)
        if raw and raw.isdigit():
            cfg[key] = int(raw)

    return cfg
