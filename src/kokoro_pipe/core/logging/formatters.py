"""
Console and JSONL Formatters.

Console lines look like::

    14:30:05 [ INFO  ] (job-3f2a) step_done step=1 of=4 samples=48000 0.412s

JSONL lines carry the same data as one object per line::

    {"ts": "...", "level": 2, "tag": "INFO", "message": "step_done",
     "job_id": "job-3f2a", "seconds": 0.412, "extra": {"step": 1, ...}}

Colors are disabled when stdout is not a TTY, when NO_COLOR is set, or
when KOKORO_PIPE_NO_COLOR=1.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict


class Colors:
    """ANSI escape codes used by the console formatter."""
    RESET = "\033[0m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    GRAY = "\033[90m"
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


_TAG_COLORS = {
    "SUCCESS": Colors.BRIGHT_GREEN,
    "FAIL": Colors.BRIGHT_RED,
    "ERROR": Colors.BRIGHT_RED,
    "WARN": Colors.BRIGHT_YELLOW,
    "INFO": Colors.BRIGHT_CYAN,
    "DEBUG": Colors.GRAY,
}

# Job-state values get their own colors so cancellations stand out.
_STATE_COLORS = {
    "completed": Colors.GREEN,
    "canceled": Colors.YELLOW,
    "running": Colors.CYAN,
    "queued": Colors.DIM,
}


def supports_color() -> bool:
    """True when the console can render ANSI colors."""
    if os.getenv("KOKORO_PIPE_NO_COLOR", "0") == "1":
        return False
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def get_tag_color(tag: str) -> str:
    return _TAG_COLORS.get(tag.upper(), Colors.WHITE)


class JsonlFormatter(logging.Formatter):
    """One JSON object per record, for machine consumption."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "job_id": getattr(record, "job_id", "-"),
            "thread": record.threadName,
        }

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Human-readable single-line records with optional ANSI colors."""

    def __init__(self, use_colors: bool | None = None):
        super().__init__()
        self.use_colors = supports_color() if use_colors is None else use_colors

    def _paint(self, text: str, color: str) -> str:
        if not self.use_colors:
            return text
        return f"{color}{text}{Colors.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        job_id = getattr(record, "job_id", "-")

        parts = [self._paint(ts, Colors.DIM), self._paint(f"[{tag:^7}]", get_tag_color(tag))]
        if job_id != "-":
            parts.append(self._paint(f"({job_id})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for key, value in extra_data.items():
                parts.append(self._paint(f"{key}={value}", self._field_color(key, value)))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            parts.append(self._paint(f"{seconds:.3f}s", self._timing_color(seconds)))

        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))

        return " ".join(parts)

    @staticmethod
    def _timing_color(seconds: float) -> str:
        if seconds < 0.1:
            return Colors.GREEN
        if seconds < 1.0:
            return Colors.YELLOW
        return Colors.RED

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key == "state" and isinstance(value, str):
            return _STATE_COLORS.get(value.lower(), Colors.DIM)
        if key == "queue_depth" and isinstance(value, int):
            return Colors.YELLOW if value > 8 else Colors.MAGENTA
        if key in ("error", "exc"):
            return Colors.RED
        return Colors.DIM
