"""Shared fakes standing in for espeak-ng and the ONNX model."""
from __future__ import annotations

import re
import threading
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pytest

from kokoro_pipe.tts.model import BaseInferenceBackend
from kokoro_pipe.tts.phonemizer import BasePhonemizer

_SEGMENT_RE = re.compile(r"[:,.!?]")


class FakePhonemizer(BasePhonemizer):
    """
    Splits on punctuation like espeak-ng and "phonemizes" by lowercasing.

    ``lexicon`` maps a whole segment to fixed phonemes.
    """

    name = "fake"

    def __init__(self, lexicon: Optional[dict] = None):
        self.lexicon = lexicon or {}
        self.calls: List[Tuple[str, str]] = []

    def phonemize(self, text: str, language: str) -> List[str]:
        self.calls.append((text, language))
        segments = [s.strip() for s in _SEGMENT_RE.split(text)]
        while segments and not segments[-1]:
            segments.pop()
        return [self.lexicon.get(s, s.lower()) for s in segments]


class FakeBackend(BaseInferenceBackend):
    """
    Returns one sample per token, valued at the requested speed.

    ``gate`` (when set) blocks every infer() until released; ``fail_on``
    makes the n-th call (0-based) raise.
    """

    name = "fake"
    sample_rate = 24000

    def __init__(self, gate: Optional[threading.Event] = None, fail_on: Optional[int] = None):
        self.gate = gate
        self.fail_on = fail_on
        self.calls: List[Tuple[int, ...]] = []
        self.started = threading.Event()
        self.closed = False
        self._lock = threading.Lock()

    def infer(self, tokens: Sequence[int], voice_style: np.ndarray, speed: float = 1.0) -> np.ndarray:
        with self._lock:
            index = len(self.calls)
            self.calls.append(tuple(tokens))
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.fail_on is not None and index == self.fail_on:
            raise RuntimeError("backend exploded")
        return np.full(len(tokens), speed, dtype=np.float32)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_phonemizer() -> FakePhonemizer:
    return FakePhonemizer()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def voice_style() -> np.ndarray:
    """A small (N, 1, C) voice table whose rows are their own index."""
    return np.arange(8, dtype=np.float32).reshape(8, 1, 1).repeat(4, axis=2)
