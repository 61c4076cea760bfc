"""Tests for model input framing, voice handling and backend construction."""
from __future__ import annotations

import numpy as np
import pytest

from kokoro_pipe.core.config import EngineConfig
from kokoro_pipe.core.errors import ConfigValidationError
from kokoro_pipe.tts.model import (
    MAX_TOKENS,
    BaseInferenceBackend,
    KokoroOnnxBackend,
    create_backend,
    frame_tokens,
    load_voice,
    resolve_voice,
    select_style,
)


class TestFrameTokens:
    """frame_tokens()"""

    def test_pads_both_ends(self):
        framed = frame_tokens([5, 6, 7])
        assert framed.dtype == np.int64
        assert framed.tolist() == [[0, 5, 6, 7, 0]]

    def test_truncates_to_limit(self):
        framed = frame_tokens(list(range(1, 600)))
        assert framed.shape == (1, MAX_TOKENS + 2)
        assert framed[0, -2] == MAX_TOKENS

    def test_empty(self):
        assert frame_tokens([]).tolist() == [[0, 0]]


class TestSelectStyle:
    """select_style() picks row T - 1."""

    def test_row_by_token_count(self, voice_style):
        style = select_style(voice_style, 3)
        assert style.shape == (1, 4)
        assert style[0, 0] == 2.0

    def test_clamped_to_table(self, voice_style):
        assert select_style(voice_style, 100)[0, 0] == 7.0
        assert select_style(voice_style, 0)[0, 0] == 0.0

    def test_two_dimensional_table(self, voice_style):
        assert select_style(voice_style[:, 0, :], 2)[0, 0] == 1.0

    def test_bad_shape(self):
        with pytest.raises(ValueError):
            select_style(np.zeros(4, dtype=np.float32), 1)


class TestVoices:
    """load_voice() and resolve_voice()"""

    def test_load_voice(self, tmp_path, voice_style):
        path = tmp_path / "af_test.npy"
        np.save(path, voice_style.astype(np.float64))

        loaded = load_voice(path)
        assert loaded.dtype == np.float32
        np.testing.assert_array_equal(loaded, voice_style)

    def test_load_missing_voice(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_voice(tmp_path / "missing.npy")

    def test_resolve_name_in_voices_dir(self):
        assert str(resolve_voice("af_heart", "models/voices")).replace("\\", "/") == "models/voices/af_heart.npy"

    def test_resolve_explicit_path(self):
        assert str(resolve_voice("custom/bf_emma.npy", "models/voices")).replace("\\", "/") == "custom/bf_emma.npy"

    def test_resolve_without_voices_dir(self):
        assert str(resolve_voice("af_heart")) == "af_heart"


class TestBackends:
    """Backend construction without loading a model."""

    def test_base_backend_is_abstract(self, voice_style):
        with pytest.raises(NotImplementedError):
            BaseInferenceBackend().infer([1], voice_style)

    def test_from_config_requires_model_path(self):
        with pytest.raises(ConfigValidationError):
            KokoroOnnxBackend.from_config(EngineConfig())

    def test_create_backend_is_lazy(self):
        backend = create_backend(EngineConfig(model_path="does/not/exist.onnx", intra_op_threads=2))

        assert isinstance(backend, KokoroOnnxBackend)
        assert backend.intra_op_threads == 2
        assert not backend.loaded
        backend.close()
        backend.close()

    def test_missing_model_file(self, voice_style):
        pytest.importorskip("onnxruntime")
        backend = KokoroOnnxBackend("does/not/exist.onnx")
        with pytest.raises(RuntimeError, match="model file not found"):
            backend.infer([1, 2], voice_style)
