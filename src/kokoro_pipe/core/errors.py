"""
Error Types for kokoro-pipe.

Every error raised by the package derives from KokoroError, which carries
a stable error code and optional details so callers can report failures
uniformly (``err.to_dict()``).

Error Codes:
    PHONEMIZATION_FAILED - external phonemizer missing, crashed or emitted bad output
    UNKNOWN_SYMBOL       - a character outside the vocabulary reached tokenization
    ENGINE_DISPOSED      - the engine was used after shutdown began
    INFERENCE_FAILED     - the inference backend raised
    INVALID_CONFIG       - a configuration value failed validation
    INVALID_INPUT        - synthesis arguments (text, speed, voice) were rejected
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Stable error codes carried by KokoroError subclasses."""
    PHONEMIZATION_FAILED = "PHONEMIZATION_FAILED"
    UNKNOWN_SYMBOL = "UNKNOWN_SYMBOL"
    ENGINE_DISPOSED = "ENGINE_DISPOSED"
    INFERENCE_FAILED = "INFERENCE_FAILED"
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_INPUT = "INVALID_INPUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class KokoroError(Exception):
    """
    Base exception for kokoro-pipe.

    Attributes:
        message: Human-readable error message.
        code: One of the ErrorCode constants.
        details: Extra context (exit codes, offending symbol, ...).
    """

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"ok": False, "error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class PhonemizationError(KokoroError):
    """The external phonemizer could not produce phonemes for the input."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.PHONEMIZATION_FAILED, details)


class UnknownSymbolError(KokoroError, LookupError):
    """
    A symbol is not part of the vocabulary.

    Post-processing filters its output to the vocabulary, so seeing this
    from the text pipeline means an invariant was broken upstream.
    """

    def __init__(self, symbol: str, position: Optional[int] = None):
        details: Dict[str, Any] = {"symbol": symbol, "codepoint": f"U+{ord(symbol):04X}" if len(symbol) == 1 else None}
        if position is not None:
            details["position"] = position
        super().__init__(f"unknown symbol {symbol!r}", ErrorCode.UNKNOWN_SYMBOL, details)
        self.symbol = symbol


class EngineDisposedError(KokoroError, RuntimeError):
    """The engine has begun shutting down and accepts no more jobs."""

    def __init__(self, message: str = "engine disposed"):
        super().__init__(message, ErrorCode.ENGINE_DISPOSED)


class InferenceError(KokoroError):
    """The inference backend failed to produce samples for a step."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.INFERENCE_FAILED, details)


class ConfigValidationError(KokoroError, ValueError):
    """A configuration value is missing, malformed or out of range."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.INVALID_CONFIG, details)


class InvalidInputError(KokoroError, ValueError):
    """Synthesis arguments were rejected before any work was queued."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)
