# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Stateless matching of spoken fragments against a script.

Scores candidate positions by fuzzy match quality and by proximity to the
current position. Matching is a pure function of its inputs: the same script,
fragment, position and options always produce the same candidates.
"""

import logging
from dataclasses import dataclass

from rapidfuzz import fuzz

from .script_parser import Script, filter_filler_words, parse_script, tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatcherOptions:
    """Search and scoring configuration."""
    radius: int = 100  # Words searched on each side of the current position
    min_consecutive: int = 1  # Minimum spoken words needed to form a run
    window_size: int = 3  # Trailing spoken words used for matching
    distance_weight: float = 0.3  # Score lost at the edge of the radius
    threshold: float = 0.3  # Fuzzy tolerance (0 = exact only)


@dataclass(frozen=True)
class MatchCandidate:
    """A scored alignment of the spoken window against the script."""
    start_index: int
    end_index: int
    match_quality: float  # Mean similarity over the run (0-1)
    distance: int  # Words between run start and current position
    combined_score: float  # Quality after distance penalty (0-1)
    char_start: int = 0
    char_end: int = 0

    @property
    def position(self) -> int:
        """Word index the speaker has just said (end of the run)."""
        return self.end_index


@dataclass(frozen=True)
class MatchResult:
    """Ranked candidates from one find() call."""
    candidates: tuple[MatchCandidate, ...] = ()
    best: MatchCandidate | None = None


def word_similarity(spoken: str, scripted: str) -> float:
    """Normalized similarity of two normalized words (0-1).

    Exact equality short-circuits without calling rapidfuzz.
    """
    if spoken == scripted:
        return 1.0
    if not spoken or not scripted:
        return 0.0
    return fuzz.ratio(spoken, scripted) / 100.0


def combined_score(match_quality: float, distance: int, options: MatcherOptions) -> float:
    """Apply the distance penalty to a match quality."""
    if options.radius <= 0:
        distance_penalty = 1.0 if distance > 0 else 0.0
    else:
        distance_penalty = min(1.0, distance / options.radius)
    return match_quality * (1 - options.distance_weight * distance_penalty)


class WordMatcher:
    """
    Finds where a spoken fragment sits in a script.

    The script is tokenized and indexed once. Each find() searches only a
    bounded window around the position hint, so its cost does not grow with
    the script length.

    Usage:
        matcher = WordMatcher.build(script_text)
        result = matcher.find("seven years ago", current_position=0)
        if result.best:
            print(result.best.position, result.best.combined_score)
    """

    script: Script
    options: MatcherOptions

    def __init__(self, script: Script, options: MatcherOptions | None = None) -> None:
        self.script = script
        self.options = options or MatcherOptions()
        self._words: tuple[str, ...] = tuple(self.script.normalized_words)

    @classmethod
    def build(cls, script_text: str, options: MatcherOptions | None = None) -> 'WordMatcher':
        """Tokenize and index a script."""
        return cls(parse_script(script_text), options)

    def __len__(self) -> int:
        return len(self._words)

    @property
    def words(self) -> list[str]:
        """Normalized script words."""
        return list(self._words)

    def spoken_window(self, fragment: str, options: MatcherOptions | None = None) -> list[str]:
        """Tokenize a fragment, drop fillers, and keep the trailing window."""
        opts = options or self.options
        spoken = filter_filler_words(tokenize(fragment))
        if opts.window_size <= 0:
            return []
        return spoken[-opts.window_size:]

    def find(
        self,
        fragment: str,
        current_position: int,
        options: MatcherOptions | None = None
    ) -> MatchResult:
        """
        Find and rank candidate positions for a spoken fragment.

        Args:
            fragment: Spoken text from the recognizer (interim or final)
            current_position: Position hint; clamped into script bounds
            options: Per-call override of the matcher's options

        Returns:
            MatchResult with candidates sorted best first; best is None when
            nothing clears the threshold
        """
        opts = options or self.options
        if not self._words:
            return MatchResult()

        window = self.spoken_window(fragment, opts)
        if not window or len(window) < max(1, opts.min_consecutive):
            return MatchResult()

        position = self.script.clamp_index(current_position)
        radius = max(0, opts.radius)
        search_start = max(0, position - radius)
        search_end = min(len(self._words), position + radius + 1)
        min_similarity = 1.0 - opts.threshold

        candidates: list[MatchCandidate] = []
        for start in range(search_start, search_end - len(window) + 1):
            total = 0.0
            for offset, spoken in enumerate(window):
                similarity = word_similarity(spoken, self._words[start + offset])
                if similarity < min_similarity:
                    break
                total += similarity
            else:
                end = start + len(window) - 1
                quality = total / len(window)
                distance = abs(start - position)
                char_start, char_end = self.script.char_range(start, end)
                candidates.append(MatchCandidate(
                    start_index=start,
                    end_index=end,
                    match_quality=quality,
                    distance=distance,
                    combined_score=combined_score(quality, distance, opts),
                    char_start=char_start,
                    char_end=char_end,
                ))

        candidates.sort(key=lambda c: (-c.combined_score, c.distance, c.start_index))
        logger.debug(
            "find('%s' @%d): %d candidates in [%d, %d)",
            ' '.join(window), position, len(candidates), search_start, search_end
        )
        return MatchResult(
            candidates=tuple(candidates),
            best=candidates[0] if candidates else None
        )
