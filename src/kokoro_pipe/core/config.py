"""
Configuration Management for kokoro-pipe.

Configuration Hierarchy (highest priority first):
    1. Environment variables (KOKORO_PIPE_ESPEAK, ESPEAK_DATA_PATH, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    phonemizer:
      executable: espeak-ng
      data_path: /usr/share/espeak-ng-data
      language: en-us
      timeout_s: 30

    engine:
      model_path: models/kokoro-v1.0.onnx
      voices_dir: models/voices
      sample_rate: 24000

    segmentation:
      max_tokens: 510
      first_segment_max: 100

    languages:
      fr-fr:
        colon_artifacts: ["kɔlɔ̃"]
        refinements:
          - {pattern: "r", replacement: "ʁ"}

    logging:
      level: 2
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from kokoro_pipe.core.errors import ConfigValidationError


class Defaults:
    """Default values used when neither YAML nor environment provide one."""

    # ─────────────────────────────────────────────────────────────────────────
    # Phonemizer (espeak-ng subprocess)
    # ─────────────────────────────────────────────────────────────────────────
    PHONEMIZER_EXECUTABLE = "espeak-ng"
    PHONEMIZER_LANGUAGE = "en-us"
    PHONEMIZER_TIMEOUT_S = 30.0

    # ─────────────────────────────────────────────────────────────────────────
    # Inference engine
    # ─────────────────────────────────────────────────────────────────────────
    ENGINE_MAX_TOKENS = 510            # Longer token arrays are truncated
    ENGINE_SAMPLE_RATE = 24000         # Kokoro outputs 24kHz mono
    ENGINE_INTRA_OP_THREADS = 8
    ENGINE_INTER_OP_THREADS = 8
    ENGINE_JOIN_TIMEOUT_S = 0.0        # 0 = wait for the dispatcher indefinitely

    # ─────────────────────────────────────────────────────────────────────────
    # Token segmentation
    # ─────────────────────────────────────────────────────────────────────────
    SEGMENT_MAX_TOKENS = 510
    SEGMENT_FIRST_MAX = 0              # 0 = first segment uses max_tokens

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesis defaults
    # ─────────────────────────────────────────────────────────────────────────
    SPEED = 1.0

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2                  # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG
    LOGGING_TEXT_PREVIEW_CHARS = 60


@dataclass
class PhonemizerConfig:
    """How to invoke the external phonemizer."""
    executable: str = Defaults.PHONEMIZER_EXECUTABLE
    data_path: Optional[str] = None
    language: str = Defaults.PHONEMIZER_LANGUAGE
    timeout_s: float = Defaults.PHONEMIZER_TIMEOUT_S


@dataclass
class EngineConfig:
    """Inference backend and dispatcher settings."""
    model_path: Optional[str] = None
    voices_dir: Optional[str] = None
    max_tokens: int = Defaults.ENGINE_MAX_TOKENS
    sample_rate: int = Defaults.ENGINE_SAMPLE_RATE
    intra_op_threads: int = Defaults.ENGINE_INTRA_OP_THREADS
    inter_op_threads: int = Defaults.ENGINE_INTER_OP_THREADS
    join_timeout_s: float = Defaults.ENGINE_JOIN_TIMEOUT_S


@dataclass
class SegmentationConfig:
    """
    Splitting of long token arrays into job steps.

    A shorter first segment gets the first audio out sooner.
    """
    max_tokens: int = Defaults.SEGMENT_MAX_TOKENS
    first_segment_max: int = Defaults.SEGMENT_FIRST_MAX


@dataclass
class LoggingConfig:
    level: int = Defaults.LOGGING_LEVEL
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass
class PipelineConfig:
    """
    Validated configuration built from Settings.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = PipelineConfig.from_settings(settings)
        print(config.phonemizer.language)
    """
    phonemizer: PhonemizerConfig = field(default_factory=PhonemizerConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    languages: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PipelineConfig":
        """
        Build and validate the configuration.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Phonemizer
        # ─────────────────────────────────────────────────────────────────────
        ph_raw = cls._section(raw, "phonemizer")
        phonemizer = PhonemizerConfig(
            executable=str(ph_raw.get("executable", Defaults.PHONEMIZER_EXECUTABLE)),
            data_path=ph_raw.get("data_path"),
            language=str(ph_raw.get("language", Defaults.PHONEMIZER_LANGUAGE)),
            timeout_s=cls._number("phonemizer.timeout_s", ph_raw.get("timeout_s", Defaults.PHONEMIZER_TIMEOUT_S), float),
        )
        if not phonemizer.executable.strip():
            raise ConfigValidationError("phonemizer.executable must not be empty")
        if not phonemizer.language.strip():
            raise ConfigValidationError("phonemizer.language must not be empty")
        cls._validate_positive("phonemizer.timeout_s", phonemizer.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Engine
        # ─────────────────────────────────────────────────────────────────────
        eng_raw = cls._section(raw, "engine")
        engine = EngineConfig(
            model_path=eng_raw.get("model_path"),
            voices_dir=eng_raw.get("voices_dir"),
            max_tokens=cls._number("engine.max_tokens", eng_raw.get("max_tokens", Defaults.ENGINE_MAX_TOKENS), int),
            sample_rate=cls._number("engine.sample_rate", eng_raw.get("sample_rate", Defaults.ENGINE_SAMPLE_RATE), int),
            intra_op_threads=cls._number("engine.intra_op_threads", eng_raw.get("intra_op_threads", Defaults.ENGINE_INTRA_OP_THREADS), int),
            inter_op_threads=cls._number("engine.inter_op_threads", eng_raw.get("inter_op_threads", Defaults.ENGINE_INTER_OP_THREADS), int),
            join_timeout_s=cls._number("engine.join_timeout_s", eng_raw.get("join_timeout_s", Defaults.ENGINE_JOIN_TIMEOUT_S), float),
        )
        cls._validate_range("engine.max_tokens", engine.max_tokens, 1, Defaults.ENGINE_MAX_TOKENS)
        cls._validate_positive("engine.sample_rate", engine.sample_rate)
        cls._validate_positive("engine.intra_op_threads", engine.intra_op_threads)
        cls._validate_positive("engine.inter_op_threads", engine.inter_op_threads)
        cls._validate_non_negative("engine.join_timeout_s", engine.join_timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Segmentation
        # ─────────────────────────────────────────────────────────────────────
        seg_raw = cls._section(raw, "segmentation")
        segmentation = SegmentationConfig(
            max_tokens=cls._number("segmentation.max_tokens", seg_raw.get("max_tokens", Defaults.SEGMENT_MAX_TOKENS), int),
            first_segment_max=cls._number("segmentation.first_segment_max", seg_raw.get("first_segment_max", Defaults.SEGMENT_FIRST_MAX), int),
        )
        cls._validate_range("segmentation.max_tokens", segmentation.max_tokens, 1, engine.max_tokens)
        cls._validate_range("segmentation.first_segment_max", segmentation.first_segment_max, 0, segmentation.max_tokens)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        log_raw = cls._section(raw, "logging")
        from kokoro_pipe.core.logging.levels import coerce_level

        logging_cfg = LoggingConfig(
            level=int(coerce_level(log_raw.get("level", Defaults.LOGGING_LEVEL))),
            text_preview_chars=cls._number(
                "logging.text_preview_chars",
                log_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS),
                int,
            ),
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        # Language profiles are validated when they are turned into
        # LanguageProfile objects (tts/postprocess.py).
        languages = raw.get("languages") or {}
        if not isinstance(languages, dict):
            raise ConfigValidationError("languages must be a mapping of language code to profile")

        return cls(
            phonemizer=phonemizer,
            engine=engine,
            segmentation=segmentation,
            logging=logging_cfg,
            languages=languages,
        )

    @staticmethod
    def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = raw.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigValidationError(f"{name} must be a mapping, got {type(section).__name__}")
        return section

    @staticmethod
    def _number(name: str, value: Any, kind: type) -> Any:
        try:
            return kind(value)
        except (TypeError, ValueError) as exc:
            raise ConfigValidationError(f"{name} must be a number, got {value!r}") from exc

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable raw settings loaded from YAML.

    Use get_pipeline_config() for the validated, typed view.
    """
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def language(self) -> str:
        return str(self.raw.get("phonemizer", {}).get("language", Defaults.PHONEMIZER_LANGUAGE))

    @property
    def model_path(self) -> Optional[str]:
        return self.raw.get("engine", {}).get("model_path")

    @property
    def sample_rate(self) -> int:
        return int(self.raw.get("engine", {}).get("sample_rate", Defaults.ENGINE_SAMPLE_RATE))

    def get_pipeline_config(self) -> PipelineConfig:
        return PipelineConfig.from_settings(self)


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    exe = os.getenv("KOKORO_PIPE_ESPEAK")
    if exe:
        raw.setdefault("phonemizer", {})["executable"] = exe
    data_path = os.getenv("ESPEAK_DATA_PATH")
    if data_path:
        raw.setdefault("phonemizer", {})["data_path"] = data_path
    model = os.getenv("KOKORO_PIPE_MODEL")
    if model:
        raw.setdefault("engine", {})["model_path"] = model
    return raw


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML file and apply environment overrides.

    Environment variable overrides:
        - KOKORO_PIPE_ESPEAK: phonemizer.executable
        - ESPEAK_DATA_PATH: phonemizer.data_path
        - KOKORO_PIPE_MODEL: engine.model_path

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
        ConfigValidationError: If the file is not valid YAML or not a mapping.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"invalid YAML in {p}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigValidationError(f"settings root must be a mapping, got {type(raw).__name__}")

    return Settings(raw=_apply_env_overrides(raw))


def default_settings() -> Settings:
    """Settings with no file, environment overrides only."""
    return Settings(raw=_apply_env_overrides({}))
