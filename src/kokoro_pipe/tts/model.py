"""
Inference Backends.

The engine only needs one operation from the acoustic model::

    infer(tokens, voice_style, speed) -> float32 mono samples

``BaseInferenceBackend`` defines it; ``KokoroOnnxBackend`` implements it
with ONNX Runtime and the Kokoro-82M ONNX export.

Model Input:
    tokens  int64[1, T + 2]   pad, up to 510 tokens, pad
    style   float32[1, C]     voice style row picked by token count
    speed   float32[1]

Voice Files:
    A voice is a float32 array of shape (N, 1, C), one style row per
    token count, stored as ``.npy``. Row ``T - 1`` conditions an input of
    T tokens.

Installation:
    pip install "kokoro-pipe[onnx]"
    # Download the model:
    # huggingface-cli download onnx-community/Kokoro-82M-v1.0-ONNX --local-dir models/kokoro
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from kokoro_pipe.core.config import Defaults, EngineConfig
from kokoro_pipe.core.errors import ConfigValidationError
from kokoro_pipe.core.logging import get_logger, info
from kokoro_pipe.utils.timeit import timeit

_LOG = get_logger("kokoro-pipe.model")

MAX_TOKENS = Defaults.ENGINE_MAX_TOKENS
SAMPLE_RATE = Defaults.ENGINE_SAMPLE_RATE


def frame_tokens(tokens: Sequence[int], max_tokens: int = MAX_TOKENS, pad_id: int = 0) -> np.ndarray:
    """Truncate to ``max_tokens`` and wrap in pad tokens, as int64[1, T + 2]."""
    body = list(tokens[:max_tokens])
    return np.array([[pad_id] + body + [pad_id]], dtype=np.int64)


def select_style(voice_style: np.ndarray, token_count: int) -> np.ndarray:
    """
    Style row for an input of ``token_count`` tokens, as float32[1, C].

    Accepts (N, 1, C) or (N, C) voice arrays. Counts beyond the table use
    its last row.
    """
    style = np.asarray(voice_style, dtype=np.float32)
    if style.ndim == 3:
        style = style[:, 0, :]
    if style.ndim != 2 or style.shape[0] == 0:
        raise ValueError(f"voice style must have shape (N, 1, C) or (N, C), got {np.shape(voice_style)}")
    row = min(max(token_count - 1, 0), style.shape[0] - 1)
    return style[row : row + 1]


def load_voice(path: str | Path) -> np.ndarray:
    """Load a ``.npy`` voice style array."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"voice file not found: {p}")
    return np.load(p).astype(np.float32, copy=False)


class BaseInferenceBackend:
    """
    Abstract inference backend.

    Subclasses implement ``infer()`` and usually ``close()``. The engine
    calls ``infer()`` from its single dispatcher thread only.
    """

    name: str = "base"
    sample_rate: int = SAMPLE_RATE

    def infer(self, tokens: Sequence[int], voice_style: np.ndarray, speed: float = 1.0) -> np.ndarray:
        raise NotImplementedError

    def close(self) -> None:
        """Release model resources. Safe to call more than once."""


class KokoroOnnxBackend(BaseInferenceBackend):
    """
    Kokoro acoustic model running in ONNX Runtime.

    The session is created lazily on the first ``infer()`` (or an explicit
    ``load()``), so constructing the backend is cheap.
    """

    name = "kokoro-onnx"

    def __init__(
        self,
        model_path: str,
        max_tokens: int = MAX_TOKENS,
        sample_rate: int = SAMPLE_RATE,
        intra_op_threads: int = Defaults.ENGINE_INTRA_OP_THREADS,
        inter_op_threads: int = Defaults.ENGINE_INTER_OP_THREADS,
    ):
        self.model_path = model_path
        self.max_tokens = max_tokens
        self.sample_rate = sample_rate
        self.intra_op_threads = intra_op_threads
        self.inter_op_threads = inter_op_threads
        self._session = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: EngineConfig) -> "KokoroOnnxBackend":
        if not config.model_path:
            raise ConfigValidationError("engine.model_path is not set (or export KOKORO_PIPE_MODEL)")
        return cls(
            model_path=config.model_path,
            max_tokens=config.max_tokens,
            sample_rate=config.sample_rate,
            intra_op_threads=config.intra_op_threads,
            inter_op_threads=config.inter_op_threads,
        )

    @property
    def loaded(self) -> bool:
        return self._session is not None

    def load(self) -> None:
        with self._lock:
            if self._session is not None:
                return

            try:
                import onnxruntime as ort
            except ImportError as exc:
                raise RuntimeError(
                    "ONNX Runtime missing. Install with: pip install \"kokoro-pipe[onnx]\""
                ) from exc

            if not Path(self.model_path).exists():
                raise RuntimeError(f"model file not found: {self.model_path}")

            options = ort.SessionOptions()
            options.enable_mem_pattern = True
            options.intra_op_num_threads = self.intra_op_threads
            options.inter_op_num_threads = self.inter_op_threads

            info(_LOG, "loading model", model=self.model_path)
            with timeit("load_model") as t:
                self._session = ort.InferenceSession(self.model_path, sess_options=options)
            info(_LOG, "model loaded", seconds=round(t.seconds, 3))

    def infer(self, tokens: Sequence[int], voice_style: np.ndarray, speed: float = 1.0) -> np.ndarray:
        if self._session is None:
            self.load()

        token_tensor = frame_tokens(tokens, self.max_tokens)
        inputs = {
            "tokens": token_tensor,
            "style": select_style(voice_style, token_tensor.shape[1] - 2),
            "speed": np.array([speed], dtype=np.float32),
        }
        outputs = self._session.run(None, inputs)
        return np.asarray(outputs[0], dtype=np.float32).reshape(-1)

    def close(self) -> None:
        with self._lock:
            if self._session is not None:
                info(_LOG, "model released", model=self.model_path)
            self._session = None


def create_backend(config: EngineConfig) -> BaseInferenceBackend:
    """Backend for the configured model file."""
    return KokoroOnnxBackend.from_config(config)


def resolve_voice(voice: str, voices_dir: Optional[str] = None) -> Path:
    """
    Path of a voice given as a file path or as a name inside ``voices_dir``.

    Example:
        resolve_voice("af_heart", "models/kokoro/voices") -> models/kokoro/voices/af_heart.npy
    """
    p = Path(voice)
    if p.suffix == ".npy" or p.exists() or not voices_dir:
        return p
    return Path(voices_dir) / f"{voice}.npy"
