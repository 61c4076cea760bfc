"""
kokoro-pipe: text-to-token pipeline and ordered job engine for Kokoro TTS.

Raw text is normalized, phonemized with espeak-ng, restored to carry its
punctuation and mapped onto the Kokoro vocabulary. Synthesis work is then
streamed through a single dispatcher thread that runs jobs strictly in
order and honors cancellation between steps.

Key Features:
    - Deterministic text normalization (currency, decimals, domains, clock times)
    - Per-language phoneme refinement tables, configurable in YAML
    - Punctuation-aware token segmentation for long inputs
    - Ordered, cancellable multi-step jobs with per-step callbacks
    - ONNX Runtime backend for the Kokoro-82M model
    - Prometheus metrics and structured JSONL logging

Example Usage:
    >>> from kokoro_pipe.core.config import load_settings
    >>> from kokoro_pipe.services.synthesis import SynthesisService
    >>> from kokoro_pipe.utils.audio import write_wav
    >>>
    >>> with SynthesisService(load_settings("config/settings.yaml")) as service:
    ...     result = service.synthesize("Hello, world!", "af_heart")
    ...     write_wav("hello.wav", result.samples, result.sample_rate)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
