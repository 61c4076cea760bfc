"""
Audio Sinks and WAV Encoding.

The engine hands each step's samples (float32 mono in [-1, 1], 24 kHz) to
a callback. This module provides the pieces most callers plug in there:

    SampleCollector         - thread-safe accumulator usable as on_complete
    wav_bytes_from_float32  - in-memory WAV (PCM 16-bit)
    write_wav               - WAV file on disk

Dependencies:
    - numpy: Array operations
    - soundfile: WAV writing (libsndfile)

Example:
    >>> collector = SampleCollector()
    >>> job = Job.create_multi(segments, style, on_complete=collector)
    >>> engine.enqueue(job).wait()
    >>> write_wav("out.wav", collector.samples(), 24000)
"""
from __future__ import annotations

import io
import threading
from pathlib import Path
from typing import Dict, List

import numpy as np
import soundfile as sf

from kokoro_pipe.core.logging import get_logger, verbose
from kokoro_pipe.utils.timeit import timeit

_LOG = get_logger("kokoro-pipe.audio")


def _as_mono_float32(waveform: np.ndarray) -> np.ndarray:
    wav = np.asarray(waveform, dtype=np.float32)
    if wav.ndim > 1:
        wav = wav.reshape(-1)
    return wav


def wav_bytes_from_float32(waveform: np.ndarray, sample_rate: int) -> tuple[bytes, Dict[str, float]]:
    """
    Encode float32 samples as WAV bytes (PCM 16-bit).

    Returns:
        Tuple of (wav_bytes, timing_dict) with a 'wav_encode' entry.
    """
    with timeit("wav_encode") as t:
        buf = io.BytesIO()
        sf.write(buf, _as_mono_float32(waveform), sample_rate, format="WAV", subtype="PCM_16")
        out = buf.getvalue()

    timings = {"wav_encode": t.seconds}
    verbose(_LOG, "wav_encoded", bytes=len(out), sr=sample_rate, seconds=round(t.seconds, 4))
    return out, timings


def write_wav(path: str | Path, waveform: np.ndarray, sample_rate: int) -> Path:
    """Write samples to ``path`` as a PCM 16-bit WAV file, creating parent directories."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(p), _as_mono_float32(waveform), sample_rate, format="WAV", subtype="PCM_16")
    verbose(_LOG, "wav_written", path=str(p), samples=int(np.size(waveform)), sr=sample_rate)
    return p


class SampleCollector:
    """
    Step callback that keeps every chunk it receives, in order.

    Instances are callable, so one can be passed directly as a job step's
    ``on_complete``.
    """

    def __init__(self):
        self._chunks: List[np.ndarray] = []
        self._lock = threading.Lock()

    def __call__(self, samples: np.ndarray) -> None:
        chunk = _as_mono_float32(samples)
        with self._lock:
            self._chunks.append(chunk)

    @property
    def chunk_count(self) -> int:
        with self._lock:
            return len(self._chunks)

    def samples(self) -> np.ndarray:
        """All received samples concatenated."""
        with self._lock:
            if not self._chunks:
                return np.zeros(0, dtype=np.float32)
            return np.concatenate(self._chunks)

    def duration_s(self, sample_rate: int) -> float:
        with self._lock:
            total = sum(c.shape[0] for c in self._chunks)
        return total / float(sample_rate)
