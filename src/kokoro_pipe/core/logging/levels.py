"""
Numeric Log Levels.

kokoro-pipe filters its own messages with four numeric levels instead of
the standard library names:

    1 = MINIMAL  - engine start/stop, failures
    2 = NORMAL   - job lifecycle, phonemizer calls (default)
    3 = VERBOSE  - per-stage timings, per-step dispatch
    4 = DEBUG    - phoneme strings, token counts, internal state

Each numeric level maps onto a Python logging level so handlers still
work with the standard machinery.
"""
from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Verbosity levels, ordered from quietest to loudest."""
    MINIMAL = 1
    NORMAL = 2
    VERBOSE = 3
    DEBUG = 4


LEVEL_MAP = {
    LogLevel.MINIMAL: logging.WARNING,
    LogLevel.NORMAL: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG - 5,
}

LEVEL_NAMES = {
    1: "MINIMAL",
    2: "NORMAL",
    3: "VERBOSE",
    4: "DEBUG",
}

_NAME_TO_LEVEL = {
    "MINIMAL": LogLevel.MINIMAL,
    "NORMAL": LogLevel.NORMAL,
    "VERBOSE": LogLevel.VERBOSE,
    "DEBUG": LogLevel.DEBUG,
    "TRACE": LogLevel.DEBUG,
    # Python level names
    "CRITICAL": LogLevel.MINIMAL,
    "ERROR": LogLevel.MINIMAL,
    "WARNING": LogLevel.MINIMAL,
    "WARN": LogLevel.MINIMAL,
    "INFO": LogLevel.NORMAL,
}


def coerce_level(value: Any) -> LogLevel:
    """
    Convert an int, name, numeric string or LogLevel into a LogLevel.

    Python logging constants are accepted too (``logging.WARNING`` becomes
    MINIMAL). Anything unparseable falls back to NORMAL.

    Examples:
        >>> coerce_level("verbose")
        <LogLevel.VERBOSE: 3>
        >>> coerce_level(logging.INFO)
        <LogLevel.NORMAL: 2>
    """
    if isinstance(value, LogLevel):
        return value

    if isinstance(value, int):
        if 1 <= value <= 4:
            return LogLevel(value)
        if value >= logging.WARNING:
            return LogLevel.MINIMAL
        if value >= logging.INFO:
            return LogLevel.NORMAL
        return LogLevel.DEBUG

    if isinstance(value, str):
        text = value.strip().upper()
        if text.isdigit():
            return coerce_level(int(text))
        return _NAME_TO_LEVEL.get(text, LogLevel.NORMAL)

    return LogLevel.NORMAL
