"""Tests for error types and their serialized form."""
from __future__ import annotations

import pytest

from kokoro_pipe.core.errors import (
    ConfigValidationError,
    EngineDisposedError,
    ErrorCode,
    InferenceError,
    InvalidInputError,
    KokoroError,
    PhonemizationError,
    UnknownSymbolError,
)


class TestErrorCodes:
    """Each subclass carries its stable code."""

    @pytest.mark.parametrize("exc, code", [
        (PhonemizationError("x"), ErrorCode.PHONEMIZATION_FAILED),
        (UnknownSymbolError("1"), ErrorCode.UNKNOWN_SYMBOL),
        (EngineDisposedError(), ErrorCode.ENGINE_DISPOSED),
        (InferenceError("x"), ErrorCode.INFERENCE_FAILED),
        (ConfigValidationError("x"), ErrorCode.INVALID_CONFIG),
        (InvalidInputError("x"), ErrorCode.INVALID_INPUT),
        (KokoroError("x"), ErrorCode.INTERNAL_ERROR),
    ])
    def test_codes(self, exc, code):
        assert isinstance(exc, KokoroError)
        assert exc.code == code

    def test_builtin_bases(self):
        """Errors can also be caught by their builtin counterparts."""
        assert isinstance(UnknownSymbolError("1"), LookupError)
        assert isinstance(EngineDisposedError(), RuntimeError)
        assert isinstance(ConfigValidationError("x"), ValueError)
        assert isinstance(InvalidInputError("x"), ValueError)


class TestToDict:
    """KokoroError.to_dict()"""

    def test_without_details(self):
        assert EngineDisposedError().to_dict() == {
            "ok": False,
            "error": "ENGINE_DISPOSED",
            "message": "engine disposed",
        }

    def test_with_details(self):
        err = PhonemizationError("phonemizer exited with status 2", {"returncode": 2})
        assert err.to_dict()["details"] == {"returncode": 2}
        assert str(err) == "phonemizer exited with status 2"

    def test_unknown_symbol_details(self):
        err = UnknownSymbolError("✓", position=4)
        assert err.symbol == "✓"
        assert err.details == {"symbol": "✓", "codepoint": "U+2713", "position": 4}
