"""
Text Normalization ahead of Phonemization.

espeak-ng turns text into IPA, but it reads some constructs badly
(currency, decimals, domains, clock times, honorifics) and it drops every
punctuation character it meets, emitting one output line per segment.
``normalize()`` rewrites those constructs into words and makes sure each
punctuation character is followed by a space, so the punctuation can be
put back after phonemization (see postprocess.py).

Pass Order (each pass relies on the previous ones):
    0. Unicode NFC, CRLF -> LF
    1. Drop smart quotes / guillemets / straight double quotes, ``**`` -> ``*``
    2. Newlines and brackets -> one ``:`` per run
    3. Currency: ``$3.50`` -> ``3 50 dollars``, ``$1`` -> ``1 dollar``
    4. Decimals: ``2.75`` -> ``2 point 7 5``
    5. Domains: ``www.example.com`` -> ``www dot example dot com``
    6. Honorifics: ``Dr. Smith`` and ``Dr.Smith`` -> ``Doctor Smith``
    7. Clock times: ``9:05`` -> ``9 05``
    8. A space after each of ``:,.!?``
    9. Collapse spaces, trim, strip leading punctuation

The function is pure and idempotent on its own output.

Example:
    >>> normalize("Dr. Smith paid $3.50 at 9:05 (on www.shop.com)")
    'Doctor Smith paid 3 50 dollars at 9 05 : on www dot shop dot com:'
"""
from __future__ import annotations

import re
import unicodedata

from kokoro_pipe.tts.vocab import PUNCTUATION

CURRENCIES = {
    "$": "dollar",
    "€": "euro",
    "£": "pound",
    "¥": "yen",
    "₹": "rupee",
    "₽": "ruble",
    "₩": "won",
    "₺": "lira",
    "₫": "dong",
}

DOMAIN_TLDS = (
    "com", "net", "org", "io", "edu", "gov", "mil", "info", "biz", "co",
    "us", "uk", "ca", "de", "fr", "jp", "au", "cn", "ru", "gr",
)

_QUOTES = str.maketrans("", "", "“”«»\"")
_ASTERISKS_RE = re.compile(r"\*{2,}")

# Characters espeak-ng does not turn into a segment boundary on its own.
_BOUNDARY_CHARS_RE = re.compile(r"[\n()\[\]]+")

_CURRENCY_RE = re.compile("[" + re.escape("".join(CURRENCIES)) + r"](\d+)(?:\.(\d+))?")
_DECIMAL_RE = re.compile(r"(\d+)\.(\d+)")
_DOMAIN_RE = re.compile(
    r"\bwww\.[a-zA-Z0-9]+\b|\b[a-zA-Z0-9]+\.(?:" + "|".join(DOMAIN_TLDS) + r")\b"
)
_DOMAIN_PASSES = 5

_HONORIFICS = (
    (re.compile(r"\b(?i:dr)\. ?(?=[A-Z])"), "Doctor "),
    (re.compile(r"\b(?i:mr)\. ?(?=[A-Z])"), "Mister "),
    (re.compile(r"\b(?i:ms)\. ?(?=[A-Z])"), "Miss "),
)

_CLOCK_RE = re.compile(r"(?<!:)\b([1-9]|1[0-2]):([0-5]\d)\b(?!:)")
_PUNCT_RE = re.compile("([" + re.escape(PUNCTUATION) + "])")
_MULTI_SPACE_RE = re.compile(r" {2,}")
_LEADING_RE = re.compile("^[" + re.escape(PUNCTUATION) + " ]+")


def _spell_currency(match: re.Match) -> str:
    name = CURRENCIES[match.group(0)[0]]
    whole, cents = match.group(1), match.group(2)
    if cents is not None:
        return f"{whole} {cents} {name}s"
    return f"{whole} {name}" if whole == "1" else f"{whole} {name}s"


def _spell_decimal(match: re.Match) -> str:
    return f"{match.group(1)} point {' '.join(match.group(2))}"


def _speak_domains(text: str) -> str:
    # Chained domains (www.shop.com) need one pass per dot.
    for _ in range(_DOMAIN_PASSES):
        rewritten = _DOMAIN_RE.sub(lambda m: m.group(0).replace(".", " dot "), text)
        if rewritten == text:
            break
        text = rewritten
    return text


def normalize(text: str) -> str:
    """
    Prepare raw text for the phonemizer.

    Args:
        text: Arbitrary user text.

    Returns:
        Normalized text. Empty when the input is empty, whitespace or
        punctuation only.
    """
    if not text:
        return ""

    s = unicodedata.normalize("NFC", text).replace("\r\n", "\n")

    # 1. Quotes and emphasis markers
    s = _ASTERISKS_RE.sub("*", s.translate(_QUOTES))

    # 2. Newlines and brackets become a single hard boundary
    s = _BOUNDARY_CHARS_RE.sub(":", s)

    # 3-5. Numbers and addresses into words
    s = _CURRENCY_RE.sub(_spell_currency, s)
    s = _DECIMAL_RE.sub(_spell_decimal, s)
    s = _speak_domains(s)

    # 6. Honorifics
    for pattern, expansion in _HONORIFICS:
        s = pattern.sub(expansion, s)

    # 7. Clock times
    s = _CLOCK_RE.sub(r"\1 \2", s)

    # 8. Force a segment boundary after every punctuation character
    s = _PUNCT_RE.sub(r"\1 ", s)

    # 9. Tidy up
    s = _MULTI_SPACE_RE.sub(" ", s).strip()
    s = _LEADING_RE.sub("", s)
    return s.strip()
