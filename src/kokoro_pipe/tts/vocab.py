"""
Kokoro Symbol Vocabulary.

Maps every symbol the acoustic model understands to its integer token id.
The ids are positional: a symbol's id is its index in the symbol list
below. The list is part of the model's published contract, so entries are
never reordered, inserted or removed.

Symbol List (in id order):
    - ``$``: the pad token, id 0
    - punctuation and the space character
    - ASCII letters A-Z, a-z
    - the extended IPA alphabet, stress and length marks, intonation arrows

The IPA block contains the apostrophe twice (around the combining
syllabic mark U+0329). Lookup resolves it to the later position, and the
earlier id stays a reserved slot that no symbol maps to. This keeps the
symbol <-> id mapping one-to-one while every other id keeps its place.

Usage:
    from kokoro_pipe.tts.vocab import get_vocabulary

    vocab = get_vocabulary()
    vocab.lookup("ə")        # -> token id
    vocab.symbol_for(0)      # -> "$"
    vocab.filter("həlˈoʊ✓")  # -> "həlˈoʊ"
"""
from __future__ import annotations

import threading
from types import MappingProxyType
from typing import FrozenSet, Iterable, List, Mapping, Optional, Tuple

from kokoro_pipe.core.errors import UnknownSymbolError

PAD = "$"

# Characters the phonemizer splits its output lines on.
PUNCTUATION = ":,.!?"

_PUNCTUATION_SYMBOLS = ';:,.!?¡¿—…"«»“” '
_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_IPA_SYMBOLS = (
    "ɑɐɒæɓʙβɔɕçɗɖðʤəɘɚɛɜɝɞɟʄɡɠɢʛɦɧħɥʜɨɪʝɭɬɫɮʟɱɯɰŋɳɲɴøɵɸθœɶʘɹɺɾɻʀʁɽʂʃʈʧʉʊʋⱱʌɣɤʍχʎʏʑʐʒʔʡʕʢǀǁǂǃ"
    "ˈˌːˑʼʴʰʱʲʷˠˤ˞↓↑→↗↘"
    "'̩'ᵻ"
)

SYMBOLS: Tuple[str, ...] = (PAD,) + tuple(_PUNCTUATION_SYMBOLS) + tuple(_LETTERS) + tuple(_IPA_SYMBOLS)


class Vocabulary:
    """
    Immutable, bidirectional symbol <-> token id table.

    Build one with ``Vocabulary(SYMBOLS)`` or share the process-wide
    instance from ``get_vocabulary()``. Both mappings are exposed as
    read-only views.
    """

    __slots__ = ("_symbol_to_id", "_id_to_symbol", "_size", "_punctuation_ids")

    def __init__(self, symbols: Iterable[str]):
        symbol_to_id = {}
        ordered: List[str] = list(symbols)
        for token_id, symbol in enumerate(ordered):
            if len(symbol) != 1:
                raise ValueError(f"vocabulary symbols must be single characters, got {symbol!r}")
            # Later duplicates win; the earlier id becomes a reserved slot.
            symbol_to_id[symbol] = token_id

        self._symbol_to_id: Mapping[str, int] = MappingProxyType(symbol_to_id)
        self._id_to_symbol: Mapping[int, str] = MappingProxyType(
            {token_id: symbol for symbol, token_id in symbol_to_id.items()}
        )
        self._size = len(ordered)
        self._punctuation_ids: FrozenSet[int] = frozenset(
            symbol_to_id[p] for p in PUNCTUATION if p in symbol_to_id
        )

    @property
    def symbol_to_id(self) -> Mapping[str, int]:
        return self._symbol_to_id

    @property
    def id_to_symbol(self) -> Mapping[int, str]:
        return self._id_to_symbol

    @property
    def size(self) -> int:
        """Number of id slots, reserved ones included."""
        return self._size

    @property
    def pad_id(self) -> int:
        return self._symbol_to_id[PAD]

    @property
    def punctuation_ids(self) -> FrozenSet[int]:
        """Token ids of the phonemizer's segment-boundary punctuation."""
        return self._punctuation_ids

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._symbol_to_id

    def __len__(self) -> int:
        return len(self._symbol_to_id)

    def lookup(self, symbol: str) -> int:
        """Token id for ``symbol``; raises UnknownSymbolError if absent."""
        try:
            return self._symbol_to_id[symbol]
        except KeyError:
            raise UnknownSymbolError(symbol) from None

    def get(self, symbol: str) -> Optional[int]:
        return self._symbol_to_id.get(symbol)

    def symbol_for(self, token_id: int) -> str:
        """Symbol for ``token_id``; raises UnknownSymbolError for reserved or out-of-range ids."""
        try:
            return self._id_to_symbol[token_id]
        except KeyError:
            raise UnknownSymbolError(f"<id {token_id}>") from None

    def filter(self, text: str) -> str:
        """Drop every character that is not a vocabulary symbol."""
        return "".join(ch for ch in text if ch in self._symbol_to_id)

    def decode(self, token_ids: Iterable[int]) -> str:
        return "".join(self.symbol_for(t) for t in token_ids)


_vocabulary: Optional[Vocabulary] = None
_vocabulary_lock = threading.Lock()


def get_vocabulary() -> Vocabulary:
    """
    Return the process-wide Kokoro vocabulary, building it on first use.

    Thread-safe; the instance is never mutated or replaced afterwards.
    """
    global _vocabulary
    if _vocabulary is None:
        with _vocabulary_lock:
            if _vocabulary is None:
                _vocabulary = Vocabulary(SYMBOLS)
    return _vocabulary
