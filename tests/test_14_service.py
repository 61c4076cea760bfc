"""Tests for SynthesisService with fake phonemizer and backend."""
from __future__ import annotations

import threading

import numpy as np
import pytest

from conftest import FakeBackend, FakePhonemizer
from kokoro_pipe.core.config import Settings
from kokoro_pipe.core.errors import ErrorCode, EngineDisposedError, InferenceError, InvalidInputError, KokoroError
from kokoro_pipe.services import MAX_SPEED, MIN_SPEED, SynthesisService
from kokoro_pipe.tts.jobs import JobState
from kokoro_pipe.utils.audio import SampleCollector

LEXICON = {"Hello there": "hɛlˈoʊ ðˈɛɹ", "How are you": "hˈaʊ ɑːɹ jˈuː"}


def _service(backend=None, **segmentation):
    raw = {"segmentation": segmentation} if segmentation else {}
    return SynthesisService(Settings(raw=raw), phonemizer=FakePhonemizer(LEXICON), backend=backend or FakeBackend())


class TestSynthesize:
    """Blocking synthesis."""

    def test_returns_all_samples(self, voice_style):
        with _service() as service:
            result = service.synthesize("Hello there. How are you?", voice_style, speed=1.5)

        assert result.sample_rate == 24000
        assert result.segments == 1
        assert result.samples.dtype == np.float32
        assert result.samples.shape[0] == len(result.phonemes)
        assert np.all(result.samples == 1.5)
        assert "normalize" in result.timings_s

    def test_segments_follow_config(self, voice_style):
        backend = FakeBackend()
        with _service(backend, max_tokens=12) as service:
            result = service.synthesize("Hello there. How are you?", voice_style)

        assert result.segments == len(backend.calls) > 1
        assert sum(len(c) for c in backend.calls) == result.samples.shape[0]
        assert all(len(c) <= 12 for c in backend.calls)

    def test_backend_failure_raises_inference_error(self, voice_style):
        with _service(FakeBackend(fail_on=0)) as service:
            with pytest.raises(InferenceError):
                service.synthesize("Hello there.", voice_style)

    def test_timeout_cancels_job(self, voice_style):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        service = _service(backend)
        try:
            with pytest.raises(TimeoutError):
                service.synthesize("Hello there.", voice_style, timeout=0.05)
        finally:
            gate.set()
            service.shutdown()

    def test_canceled_by_shutdown(self, voice_style):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        service = _service(backend)
        errors = []

        def run():
            try:
                service.synthesize("Hello there.", voice_style)
            except KokoroError as exc:
                errors.append(exc)

        worker = threading.Thread(target=run)
        worker.start()
        assert backend.started.wait(5.0)
        stopper = threading.Thread(target=service.shutdown)
        stopper.start()
        worker.join(5.0)
        gate.set()
        stopper.join(5.0)

        assert len(errors) == 1
        assert "canceled" in errors[0].message


class TestSpeak:
    """Streaming synthesis through callbacks."""

    def test_chunks_arrive_in_order(self, voice_style):
        collector = SampleCollector()
        with _service(max_tokens=12) as service:
            job = service.speak("Hello there. How are you?", voice_style, on_samples=collector)
            assert job.wait(5.0)

        assert job.state is JobState.COMPLETED
        assert collector.chunk_count == len(job.steps)

    def test_speak_after_shutdown(self, voice_style):
        service = _service()
        service.shutdown()
        with pytest.raises(EngineDisposedError):
            service.speak("Hello there.", voice_style)

    def test_shutdown_closes_backend(self):
        backend = FakeBackend()
        with _service(backend):
            pass
        assert backend.closed


class TestValidation:
    """Arguments are rejected before any work is queued."""

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty_text(self, text, voice_style):
        with _service() as service:
            with pytest.raises(InvalidInputError) as exc_info:
                service.speak(text, voice_style)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    @pytest.mark.parametrize("speed", [MIN_SPEED / 2, MAX_SPEED * 2])
    def test_speed_out_of_range(self, speed, voice_style):
        backend = FakeBackend()
        with _service(backend) as service:
            with pytest.raises(InvalidInputError):
                service.synthesize("Hello there.", voice_style, speed=speed)
        assert backend.calls == []

    def test_unknown_voice(self, tmp_path):
        with _service() as service:
            with pytest.raises(InvalidInputError) as exc_info:
                service.get_voice(str(tmp_path / "nobody.npy"))
        assert "nobody.npy" in exc_info.value.details["path"]


class TestVoices:
    """Voice lookup and caching."""

    def test_voice_loaded_once(self, tmp_path, voice_style):
        np.save(tmp_path / "af_test.npy", voice_style)
        settings = Settings(raw={"engine": {"voices_dir": str(tmp_path)}})
        with SynthesisService(settings, phonemizer=FakePhonemizer(), backend=FakeBackend()) as service:
            first = service.get_voice("af_test")
            second = service.get_voice("af_test")

        assert first is second
        np.testing.assert_array_equal(first, voice_style)

    def test_array_passthrough(self, voice_style):
        with _service() as service:
            assert service.get_voice(voice_style) is voice_style
