"""
Text Pipeline: raw text to model tokens.

Stages:
    normalize -> phonemize -> post_process -> tokenize

Every stage is stateless, so one TextPipeline can serve many threads.

Usage:
    pipeline = TextPipeline.from_config(config)
    result = pipeline.run("Hello, world!")
    result.phonemes   # 'həlˈoʊ, wˈɜːld!'
    result.tokens     # [50, 83, 54, ...]
    result.timings_s  # {'normalize': ..., 'phonemize': ..., ...}
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from kokoro_pipe.core.config import Defaults, PipelineConfig
from kokoro_pipe.core.logging import debug, get_logger, verbose
from kokoro_pipe.tts.normalizer import normalize
from kokoro_pipe.tts.phonemizer import BasePhonemizer, EspeakPhonemizer
from kokoro_pipe.tts.postprocess import LanguageProfile, post_process, profiles_from_config
from kokoro_pipe.tts.tokenizer import tokenize
from kokoro_pipe.tts.vocab import Vocabulary, get_vocabulary
from kokoro_pipe.utils.timeit import timeit

_LOG = get_logger("kokoro-pipe.pipeline")


@dataclass
class PipelineResult:
    """Output of every stage for one input text."""
    text: str
    normalized: str
    phonemes: str
    tokens: List[int]
    language: str
    timings_s: Dict[str, float] = field(default_factory=dict)


class TextPipeline:
    """
    Composes the text stages around a phonemizer.

    Args:
        phonemizer: Any BasePhonemizer.
        language: Default language code.
        vocab: Vocabulary (the process-wide one by default).
        profiles: Language profiles for post-processing.
        preprocess: Run ``normalize()`` first. Disable for text that is
            already normalized.
        preview_chars: Characters of input text shown in logs.
    """

    def __init__(
        self,
        phonemizer: BasePhonemizer,
        language: str = Defaults.PHONEMIZER_LANGUAGE,
        vocab: Optional[Vocabulary] = None,
        profiles: Optional[Mapping[str, LanguageProfile]] = None,
        preprocess: bool = True,
        preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS,
    ):
        self.phonemizer = phonemizer
        self.language = language
        self.vocab = vocab or get_vocabulary()
        self.profiles = profiles
        self.preprocess = preprocess
        self.preview_chars = preview_chars

    @classmethod
    def from_config(cls, config: PipelineConfig, phonemizer: Optional[BasePhonemizer] = None) -> "TextPipeline":
        return cls(
            phonemizer=phonemizer or EspeakPhonemizer.from_config(config.phonemizer),
            language=config.phonemizer.language,
            profiles=profiles_from_config(config.languages),
            preview_chars=config.logging.text_preview_chars,
        )

    def run(self, text: str, language: Optional[str] = None) -> PipelineResult:
        """
        Run every stage.

        Raises:
            PhonemizationError: If the phonemizer fails.
        """
        lang = language or self.language
        timings: Dict[str, float] = {}

        with timeit("normalize") as t:
            normalized = normalize(text) if self.preprocess else text.strip()
        timings["normalize"] = t.seconds

        if not normalized:
            debug(_LOG, "empty_after_normalize", chars=len(text))
            return PipelineResult(text, normalized, "", [], lang, timings)

        with timeit("phonemize") as t:
            lines = self.phonemizer.phonemize(normalized, lang)
        timings["phonemize"] = t.seconds

        with timeit("post_process") as t:
            phonemes = post_process(normalized, lines, lang, self.vocab, self.profiles)
        timings["post_process"] = t.seconds

        with timeit("tokenize") as t:
            tokens = tokenize(phonemes, self.vocab)
        timings["tokenize"] = t.seconds

        verbose(
            _LOG,
            "text_processed",
            text=text[: self.preview_chars],
            language=lang,
            phonemes=len(phonemes),
            tokens=len(tokens),
            seconds=round(sum(timings.values()), 4),
        )
        return PipelineResult(text, normalized, phonemes, tokens, lang, timings)

    def phonemes(self, text: str, language: Optional[str] = None) -> str:
        return self.run(text, language).phonemes

    def tokens(self, text: str, language: Optional[str] = None) -> List[int]:
        return self.run(text, language).tokens

    def tokenize_phonemes(self, phonemes: str) -> List[int]:
        """
        Tokenize an already phonemized string, skipping the phonemizer.

        Raises:
            UnknownSymbolError: If the string holds a non-vocabulary symbol.
        """
        return tokenize(phonemes, self.vocab)
