# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script parsing module that turns script text into an immutable word index.

Each word keeps two representations:
1. Display text - the token exactly as it appears in the script
2. Normalized text - lowercased, punctuation stripped, digits spelled out

Character offsets into the original text are kept with every word so a
matched word range can be mapped straight back to a highlight range.
"""

import re
import unicodedata
from dataclasses import dataclass

# Digits that get spoken as a single word. Anything else is left as-is
# (multi-word numbers would break the one-token-per-word alignment).
NUMBER_WORDS: dict[str, str] = {
    '0': 'zero', '1': 'one', '2': 'two', '3': 'three', '4': 'four',
    '5': 'five', '6': 'six', '7': 'seven', '8': 'eight', '9': 'nine',
    '10': 'ten', '11': 'eleven', '12': 'twelve', '13': 'thirteen',
    '14': 'fourteen', '15': 'fifteen', '16': 'sixteen', '17': 'seventeen',
    '18': 'eighteen', '19': 'nineteen', '20': 'twenty', '30': 'thirty',
    '40': 'forty', '50': 'fifty', '60': 'sixty', '70': 'seventy',
    '80': 'eighty', '90': 'ninety', '100': 'hundred', '1000': 'thousand',
}

# Speech artifacts dropped from spoken fragments. Stop words such as
# "the" or "to" are NOT fillers; phrase matching needs them.
FILLER_WORDS: frozenset[str] = frozenset([
    'um', 'uh', 'er', 'ah', 'hmm', 'mm', 'umm', 'uhh',
    'like', 'actually', 'basically', 'so', 'well',
])

# Multi-token fillers, matched as consecutive tokens
FILLER_PHRASES: tuple[tuple[str, ...], ...] = (
    ('you', 'know'),
)

_TOKEN_RE = re.compile(r'\S+')
_DIGITS_RE = re.compile(r'\b\d+\b')


@dataclass(frozen=True)
class Word:
    """A single script word with its position in the original text."""
    text: str  # Token as written (e.g. "ago,")
    normalized_text: str  # Form used for matching (e.g. "ago")
    char_start: int  # Offset of the token in the script text
    char_end: int  # Exclusive end offset
    index: int  # Position in the word list

    def __repr__(self) -> str:
        return f"Word({self.index}: '{self.normalized_text}' @{self.char_start})"


@dataclass(frozen=True)
class Script:
    """Complete parsed representation of a script."""
    text: str
    words: tuple[Word, ...]

    def __len__(self) -> int:
        return len(self.words)

    @property
    def normalized_words(self) -> list[str]:
        """Return the normalized text of every word, in order."""
        return [w.normalized_text for w in self.words]

    def clamp_index(self, index: int) -> int:
        """Clamp a word index into the valid range (0 for an empty script)."""
        if not self.words:
            return 0
        return max(0, min(index, len(self.words) - 1))

    def char_range(self, start_index: int, end_index: int) -> tuple[int, int]:
        """Map an inclusive word range to a (start, end) character range.

        Indices are clamped; an empty script maps to (0, 0).
        """
        if not self.words:
            return 0, 0
        first = self.words[self.clamp_index(min(start_index, end_index))]
        last = self.words[self.clamp_index(max(start_index, end_index))]
        return first.char_start, last.char_end


def normalize_word(word: str) -> str:
    """Normalize a word for matching (NFC, lowercase, strip punctuation)."""
    word = unicodedata.normalize('NFC', word)
    return re.sub(r'[^\w\s]', '', word.lower()).strip()


def normalize_number(text: str) -> str:
    """Replace whole-digit tokens with their spoken word where known.

    Examples:
        "3" -> "three"
        "100" -> "hundred"
        "1234" -> "1234" (no single-word form)
    """
    return _DIGITS_RE.sub(lambda m: NUMBER_WORDS.get(m.group(0), m.group(0)), text)


def normalize_token(token: str) -> str:
    """Full normalization applied to both script words and spoken words."""
    return normalize_number(normalize_word(token))


def tokenize(text: str) -> list[str]:
    """Split text into normalized tokens, dropping ones that normalize to empty."""
    tokens: list[str] = []
    for raw in text.split():
        normalized = normalize_token(raw)
        if normalized:
            tokens.append(normalized)
    return tokens


def is_filler_word(word: str) -> bool:
    """Check if a word is a speech artifact that can be skipped."""
    return normalize_word(word) in FILLER_WORDS


def filter_filler_words(words: list[str]) -> list[str]:
    """Remove filler words and filler phrases from a token list."""
    result: list[str] = []
    i = 0
    while i < len(words):
        phrase_len = 0
        for phrase in FILLER_PHRASES:
            if tuple(words[i:i + len(phrase)]) == phrase:
                phrase_len = len(phrase)
                break
        if phrase_len:
            i += phrase_len
            continue
        if not is_filler_word(words[i]):
            result.append(words[i])
        i += 1
    return result


def parse_script(text: str) -> Script:
    """Parse script text into an immutable Script.

    Tokens that normalize to nothing (a lone dash, an ellipsis) are not
    words, but the offsets of the words around them stay exact.
    """
    words: list[Word] = []
    for match in _TOKEN_RE.finditer(text):
        normalized = normalize_token(match.group(0))
        if not normalized:
            continue
        words.append(Word(
            text=match.group(0),
            normalized_text=normalized,
            char_start=match.start(),
            char_end=match.end(),
            index=len(words),
        ))
    return Script(text=text, words=tuple(words))
