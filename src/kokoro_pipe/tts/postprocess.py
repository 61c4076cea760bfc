"""
Phoneme Post-Processing.

espeak-ng drops punctuation and emits one line per punctuation-delimited
segment. ``post_process()`` rebuilds a single phoneme string the model
can tokenize:

    1. Scan the normalized text for punctuation spans (``", "``, ``"?! "``).
    2. Glue line ``i`` and span ``i`` back together, after removing the
       words espeak-ng speaks for a leading colon ("colon artifacts").
    3. Apply the language's refinement table.
    4. Condense whitespace and repeated ``!``/``?``.
    5. Drop every character that is not a vocabulary symbol.

Language Profiles:
    Refinements and colon artifacts are data, keyed by language code.
    en-us and en-gb ship with the table below; any other language gets
    an empty profile unless one is configured:

        languages:
          fr-fr:
            colon_artifacts: ["dø pwɛ̃"]
            refinements:
              - {pattern: "r", replacement: "ʁ"}
              - {pattern: "(?<=a)ʁ$", replacement: "", regex: true}

Example:
    >>> post_process("Hello, world!", ["həlˈoʊ", "wˈɜːld"], "en-us")
    'həlˈoʊ, wˈɜːld!'
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from kokoro_pipe.core.errors import ConfigValidationError
from kokoro_pipe.tts.vocab import PUNCTUATION, Vocabulary, get_vocabulary

_SPAN_RE = re.compile("[" + re.escape(PUNCTUATION) + "][" + re.escape(PUNCTUATION) + " ]*")

_CONDENSE_PASSES = 5


@dataclass(frozen=True)
class Refinement:
    """One substitution applied to the joined phoneme string."""
    pattern: str
    replacement: str
    regex: bool = False

    def __post_init__(self) -> None:
        if not self.pattern:
            raise ConfigValidationError("refinement pattern must not be empty")
        if self.regex:
            try:
                object.__setattr__(self, "_compiled", re.compile(self.pattern))
            except re.error as exc:
                raise ConfigValidationError(f"invalid refinement regex {self.pattern!r}: {exc}") from exc

    def apply(self, phonemes: str) -> str:
        if self.regex:
            return self._compiled.sub(self.replacement, phonemes)  # type: ignore[attr-defined]
        return phonemes.replace(self.pattern, self.replacement)


@dataclass(frozen=True)
class LanguageProfile:
    """Per-language post-processing data."""
    colon_artifacts: Tuple[str, ...] = ()
    refinements: Tuple[Refinement, ...] = ()

    @classmethod
    def from_mapping(cls, code: str, data: Mapping[str, Any]) -> "LanguageProfile":
        """
        Build a profile from a ``languages.<code>`` settings entry.

        Raises:
            ConfigValidationError: If the entry is malformed.
        """
        if not isinstance(data, Mapping):
            raise ConfigValidationError(f"languages.{code} must be a mapping")

        artifacts = data.get("colon_artifacts") or []
        if not isinstance(artifacts, list) or not all(isinstance(a, str) and a for a in artifacts):
            raise ConfigValidationError(f"languages.{code}.colon_artifacts must be a list of non-empty strings")

        rules = []
        for i, rule in enumerate(data.get("refinements") or []):
            if not isinstance(rule, Mapping) or "pattern" not in rule or "replacement" not in rule:
                raise ConfigValidationError(
                    f"languages.{code}.refinements[{i}] needs 'pattern' and 'replacement'"
                )
            rules.append(Refinement(str(rule["pattern"]), str(rule["replacement"]), bool(rule.get("regex", False))))

        return cls(colon_artifacts=tuple(artifacts), refinements=tuple(rules))


_ENGLISH_REFINEMENTS = (
    Refinement("ʲ", "j"),
    Refinement("r", "ɹ"),
    Refinement("x", "k"),
    Refinement("ɬ", "l"),
    Refinement("ˈɛ", "ˌɛ"),
)

DEFAULT_PROFILES: Dict[str, LanguageProfile] = {
    "en-us": LanguageProfile(
        colon_artifacts=("kˈoʊlən",),
        # "ninety" is flapped in American English.
        refinements=_ENGLISH_REFINEMENTS + (Refinement(r"(?<=nˈaɪn)ti(?!ː)", "di", regex=True),),
    ),
    "en-gb": LanguageProfile(
        colon_artifacts=("kˈəʊlən",),
        refinements=_ENGLISH_REFINEMENTS,
    ),
}

EMPTY_PROFILE = LanguageProfile()


def profiles_from_config(languages: Optional[Mapping[str, Any]]) -> Dict[str, LanguageProfile]:
    """
    Merge configured language profiles over the shipped defaults.

    A configured entry replaces the default profile for that code.
    """
    profiles = dict(DEFAULT_PROFILES)
    for code, data in (languages or {}).items():
        profiles[str(code).lower()] = LanguageProfile.from_mapping(str(code), data)
    return profiles


def profile_for(language: str, profiles: Optional[Mapping[str, LanguageProfile]] = None) -> LanguageProfile:
    table = DEFAULT_PROFILES if profiles is None else profiles
    return table.get(language.lower(), EMPTY_PROFILE)


def extract_punctuation_spans(text: str) -> List[str]:
    """
    Runs of punctuation and spaces that start with a punctuation character.

    Example:
        >>> extract_punctuation_spans("Wait... what?! Fine.")
        ['... ', '?! ', '.']
    """
    return _SPAN_RE.findall(text)


def _strip_artifacts(line: str, artifacts: Sequence[str], before_colon: bool) -> str:
    for artifact in artifacts:
        lead, lead_spaced = artifact + " ", " " + artifact
        while line.startswith(lead) or line.startswith(lead_spaced):
            line = line[len(lead):]
        if before_colon:
            while line.endswith(lead_spaced):
                line = line[: -len(lead_spaced)]
    return line


def _condense(phonemes: str) -> str:
    for _ in range(_CONDENSE_PASSES):
        phonemes = phonemes.replace("  ", " ")
    for p in PUNCTUATION:
        phonemes = phonemes.replace(" " + p, p)
    for _ in range(_CONDENSE_PASSES):
        phonemes = phonemes.replace("!!", "!").replace("??", "?").replace("!?!", "!?")
    return phonemes


def post_process(
    text: str,
    lines: Sequence[str],
    language: str,
    vocab: Optional[Vocabulary] = None,
    profiles: Optional[Mapping[str, LanguageProfile]] = None,
) -> str:
    """
    Restore punctuation into phoneme lines and clean them up for the model.

    Args:
        text: The normalized text the lines were produced from.
        lines: Phonemizer output, one line per segment.
        language: Language code used for phonemization.
        vocab: Vocabulary to filter against (process-wide one by default).
        profiles: Language profiles (the shipped defaults by default).

    Returns:
        A phoneme string containing only vocabulary symbols.
    """
    vocab = vocab or get_vocabulary()
    profile = profile_for(language, profiles)
    spans = extract_punctuation_spans(text)

    parts = []
    for i, line in enumerate(lines):
        span = spans[i] if i < len(spans) else ""
        parts.append(_strip_artifacts(line, profile.colon_artifacts, span.startswith(":")))
        parts.append(span)
    phonemes = "".join(parts).strip()

    for rule in profile.refinements:
        phonemes = rule.apply(phonemes)

    return vocab.filter(_condense(phonemes))
