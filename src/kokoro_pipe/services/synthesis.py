"""
SynthesisService - text in, audio callbacks out.

Ties the text pipeline, token segmentation and the engine together:

    text -> TextPipeline -> segment_tokens -> Job (one step per segment)
         -> KokoroEngine -> on_samples(chunk) per segment, in order

Example:
    >>> settings = load_settings("config/settings.yaml")
    >>> with SynthesisService(settings) as service:
    ...     collector = SampleCollector()
    ...     job = service.speak("Hello there. How are you?", "af_heart", on_samples=collector)
    ...     job.wait()
    ...     write_wav("out.wav", collector.samples(), service.sample_rate)
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

import numpy as np

from kokoro_pipe.core.config import Defaults, PipelineConfig, Settings
from kokoro_pipe.core.errors import InvalidInputError, KokoroError
from kokoro_pipe.core.logging import get_logger, info, verbose, warn
from kokoro_pipe.tts.engine import KokoroEngine
from kokoro_pipe.tts.jobs import Job, JobState, SamplesCallback
from kokoro_pipe.tts.model import BaseInferenceBackend, create_backend, load_voice, resolve_voice
from kokoro_pipe.tts.phonemizer import BasePhonemizer
from kokoro_pipe.tts.pipeline import PipelineResult, TextPipeline
from kokoro_pipe.tts.tokenizer import segment_tokens
from kokoro_pipe.utils.audio import SampleCollector

_LOG = get_logger("kokoro-pipe.service")

MIN_SPEED = 0.25
MAX_SPEED = 4.0

Voice = Union[str, np.ndarray]


@dataclass
class SynthesisResult:
    """Blocking synthesis output."""
    samples: np.ndarray
    sample_rate: int
    phonemes: str
    segments: int
    timings_s: Dict[str, float] = field(default_factory=dict)


class SynthesisService:
    """
    High-level synthesis entry point owning a pipeline and an engine.

    Args:
        settings: Loaded settings.
        phonemizer: Replaces the configured espeak-ng phonemizer.
        backend: Replaces the configured ONNX backend.
    """

    def __init__(
        self,
        settings: Settings,
        phonemizer: Optional[BasePhonemizer] = None,
        backend: Optional[BaseInferenceBackend] = None,
    ):
        self.settings = settings
        self.config: PipelineConfig = settings.get_pipeline_config()
        self.pipeline = TextPipeline.from_config(self.config, phonemizer=phonemizer)
        self.backend = backend or create_backend(self.config.engine)
        self.engine = KokoroEngine(self.backend, join_timeout_s=self.config.engine.join_timeout_s)

        self._voices: Dict[str, np.ndarray] = {}
        self._voices_lock = threading.Lock()

        info(_LOG, "service_ready", language=self.config.phonemizer.language, backend=self.backend.name)

    @property
    def sample_rate(self) -> int:
        return self.backend.sample_rate

    def get_voice(self, voice: Voice) -> np.ndarray:
        """Voice style array for a name, a ``.npy`` path or an array (returned as-is)."""
        if isinstance(voice, np.ndarray):
            return voice
        if not voice:
            raise InvalidInputError("voice is required")

        with self._voices_lock:
            cached = self._voices.get(voice)
        if cached is not None:
            return cached

        path = resolve_voice(voice, self.config.engine.voices_dir)
        try:
            style = load_voice(path)
        except (OSError, ValueError) as exc:
            raise InvalidInputError(f"cannot load voice {voice!r}: {exc}", {"path": str(path)}) from exc

        with self._voices_lock:
            self._voices.setdefault(voice, style)
        verbose(_LOG, "voice_loaded", voice=voice, shape=list(style.shape))
        return style

    def speak(
        self,
        text: str,
        voice: Voice,
        speed: float = Defaults.SPEED,
        on_samples: Optional[SamplesCallback] = None,
        language: Optional[str] = None,
    ) -> Job:
        """
        Queue ``text`` for synthesis and return the job handle.

        Samples arrive through ``on_samples`` one segment at a time, in
        text order, on the engine's dispatcher thread.

        Raises:
            InvalidInputError: For empty text, bad speed or unknown voice.
            PhonemizationError: If the phonemizer fails.
            EngineDisposedError: After ``shutdown()``.
        """
        self._check_args(text, speed)
        job, _ = self._build_job(text, voice, speed, on_samples, language)
        return self.engine.enqueue(job)

    @staticmethod
    def _check_args(text: str, speed: float) -> None:
        if not text or not text.strip():
            raise InvalidInputError("text is required")
        if not (MIN_SPEED <= speed <= MAX_SPEED):
            raise InvalidInputError(f"speed must be between {MIN_SPEED} and {MAX_SPEED}, got {speed}")

    def _build_job(
        self,
        text: str,
        voice: Voice,
        speed: float,
        on_samples: Optional[SamplesCallback],
        language: Optional[str],
    ) -> Tuple[Job, PipelineResult]:
        style = self.get_voice(voice)
        result = self.pipeline.run(text, language)
        if not result.tokens:
            warn(_LOG, "nothing_to_speak", chars=len(text))

        seg_cfg = self.config.segmentation
        segments = segment_tokens(
            result.tokens,
            max_tokens=seg_cfg.max_tokens,
            first_segment_max=seg_cfg.first_segment_max or None,
            vocab=self.pipeline.vocab,
        )
        job = Job.create_multi(segments, style, speed=speed, on_complete=on_samples)
        info(_LOG, "speak_queued", job=job.id, tokens=len(result.tokens), segments=len(segments))
        return job, result

    def synthesize(
        self,
        text: str,
        voice: Voice,
        speed: float = Defaults.SPEED,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SynthesisResult:
        """
        Synthesize ``text`` and block until every segment is done.

        Raises:
            InferenceError: If the backend failed on any segment.
            KokoroError: If the job was canceled (e.g. by shutdown).
            TimeoutError: If ``timeout`` elapsed first (the job is canceled).
        """
        collector = SampleCollector()
        self._check_args(text, speed)
        job, result = self._build_job(text, voice, speed, collector, language)
        self.engine.enqueue(job)
        if not job.wait(timeout):
            job.cancel()
            raise TimeoutError(f"synthesis did not finish within {timeout}s")
        if job.error is not None:
            raise job.error
        if job.state is not JobState.COMPLETED:
            raise KokoroError("synthesis was canceled before it completed", details={"job": job.id})

        return SynthesisResult(
            samples=collector.samples(),
            sample_rate=self.sample_rate,
            phonemes=result.phonemes,
            segments=len(job.steps),
            timings_s=dict(result.timings_s),
        )

    def shutdown(self) -> None:
        self.engine.shutdown()

    def __enter__(self) -> "SynthesisService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
