"""
Token Mapping and Segmentation.

``tokenize()`` maps a post-processed phoneme string to token ids, one per
character. ``segment_tokens()`` splits a long token array into pieces the
model accepts, preferring to cut at punctuation so every piece ends on a
natural pause.

Segmentation Strategy:
    1. Take a window of at most ``max_tokens`` tokens
    2. Cut after the last punctuation token in the window
    3. Otherwise cut after the last space token
    4. Otherwise cut hard at the window end

    An optional, shorter ``first_segment_max`` gets the first audio out
    faster on long inputs.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from kokoro_pipe.core.config import Defaults
from kokoro_pipe.core.errors import UnknownSymbolError
from kokoro_pipe.tts.vocab import Vocabulary, get_vocabulary


def tokenize(phonemes: str, vocab: Optional[Vocabulary] = None) -> List[int]:
    """
    Convert a phoneme string into token ids.

    Raises:
        UnknownSymbolError: If a character is not in the vocabulary. The
            text pipeline filters its output, so this means a bug upstream.
    """
    vocab = vocab or get_vocabulary()
    tokens = []
    for position, ch in enumerate(phonemes):
        token_id = vocab.get(ch)
        if token_id is None:
            raise UnknownSymbolError(ch, position=position)
        tokens.append(token_id)
    return tokens


def segment_tokens(
    tokens: Sequence[int],
    max_tokens: int = Defaults.SEGMENT_MAX_TOKENS,
    first_segment_max: Optional[int] = None,
    vocab: Optional[Vocabulary] = None,
) -> List[List[int]]:
    if max_tokens < 1:
        raise ValueError(f"max_tokens must be positive, got {max_tokens}")
    vocab = vocab or get_vocabulary()
    punctuation = vocab.punctuation_ids
    space = vocab.get(" ")

    segments: List[List[int]] = []
    start = 0
    n = len(tokens)
    while start < n:
        limit = max_tokens
        if not segments and first_segment_max:
            limit = min(first_segment_max, max_tokens)

        end = start + limit
        if end >= n:
            segments.append(list(tokens[start:]))
            break

        cut = _last_index(tokens, start, end, punctuation)
        if cut < 0 and space is not None:
            cut = _last_index(tokens, start, end, {space})
        end = cut + 1 if cut >= 0 else end

        segments.append(list(tokens[start:end]))
        start = end
    return segments


def _last_index(tokens: Sequence[int], start: int, end: int, wanted) -> int:
    for i in range(end - 1, start - 1, -1):
        if tokens[i] in wanted:
            return i
    return -1
