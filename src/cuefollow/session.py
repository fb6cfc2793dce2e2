# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
A prompting session: one script, one reader, one scroll animation.

PromptSession owns a WordMatcher, a PositionTracker and a ScrollFollower and
wires them together. Transcript fragments go in through handle_transcript()
(or from an attached TranscriptSource), position events and scroll frames
come out through subscriptions.

Everything here runs on the caller's thread. Hosts that receive transcripts
on a different thread from their render loop should use ThreadedPromptSession.
"""

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from . import debug_log
from .config import DEFAULT_CONFIG, Config, get_follower_options, get_matcher_options, get_tracker_options
from .events import ConfidenceLevel, Mode, PositionEvent, ScrollFrame, Signal, Subscription, TranscriptEvent
from .matcher import WordMatcher
from .position_tracker import PositionTracker, ProcessResult
from .scroll_follower import ScrollFollower, ScrollGeometry
from .transcript_source import TranscriptSource

logger = logging.getLogger(__name__)

# Words highlighted around the confirmed position
HIGHLIGHT_WORDS: int = 3

CONFIDENCE_LEVELS: dict[str, ConfidenceLevel] = {
    "advanced": "high",
    "exploring": "medium",
    "none": "low",
}


def highlight_range(matcher: WordMatcher, position: int, phrase_length: int = HIGHLIGHT_WORDS) -> tuple[int, int]:
    """
    Character range of a short phrase centred on a word.

    Args:
        matcher: Matcher holding the script
        position: Word index at the centre of the phrase
        phrase_length: Number of words in the phrase

    Returns:
        (char_start, char_end) into the script text, (0, 0) for an empty script
    """
    if len(matcher) == 0:
        return 0, 0
    start = max(0, position - max(1, phrase_length) // 2)
    end = min(len(matcher) - 1, start + max(1, phrase_length) - 1)
    return matcher.script.char_range(start, end)


def to_position_event(result: ProcessResult, matcher: WordMatcher) -> PositionEvent:
    """Convert a tracker result into the event published to collaborators."""
    char_start, char_end = highlight_range(matcher, result.confirmed_position)
    return PositionEvent(
        action=result.action,
        confirmed_position=result.confirmed_position,
        prev_position=result.prev_position,
        confidence=CONFIDENCE_LEVELS[result.action],
        char_start=char_start,
        char_end=char_end
    )


class PromptSession:
    """
    Single-threaded owner of the alignment pipeline for one session.

    Usage:
        session = PromptSession(script_text)
        session.subscribe_position(lambda e: print(e.action, e.confirmed_position))
        session.subscribe_frames(lambda f: render(f.offset))

        session.handle_transcript(TranscriptEvent("four score and", is_final=False))
        session.tick(1 / 60)  # From the host's animation callback
    """

    def __init__(
        self,
        script_text: str = "",
        config: Config | None = None,
        geometry: ScrollGeometry | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize the session.

        Args:
            script_text: Script to follow; may be replaced with load_script()
            config: Settings (defaults when None)
            geometry: Display layout; usually arrives later via set_geometry()
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.config: Config = config or DEFAULT_CONFIG
        self._clock = clock
        self.interim_throttle_ms: float = float(self.config.get("interim_throttle_ms", 150))

        self.matcher = WordMatcher.build(script_text, get_matcher_options(self.config))
        self.tracker = PositionTracker(len(self.matcher), get_tracker_options(self.config), clock=clock)
        self.follower = ScrollFollower(
            lambda: self.tracker.confirmed_position,
            geometry,
            get_follower_options(self.config),
            clock=clock
        )
        if self.follower.geometry.total_words <= 0:
            self.follower.geometry.total_words = len(self.matcher)

        self.positions: Signal[PositionEvent] = Signal("positions")
        self._subscriptions: list[Subscription] = [
            self.follower.subscribe_mode(debug_log.log_mode_change)
        ]

        # Interim throttling state
        self._last_interim_text: str | None = None
        self._last_interim_time: float | None = None

    @property
    def confirmed_position(self) -> int:
        """The tracker's confirmed word index."""
        return self.tracker.confirmed_position

    @property
    def mode(self) -> Mode:
        """The follower's current mode."""
        return self.follower.mode

    def load_script(self, script_text: str) -> None:
        """Replace the script and restart from its first word."""
        self.matcher = WordMatcher.build(script_text, self.matcher.options)
        self.tracker.reset(len(self.matcher))
        self.follower.reset()
        self.follower.geometry.total_words = len(self.matcher)
        self._last_interim_text = None
        self._last_interim_time = None
        debug_log.log_script_loaded(len(self.matcher))
        logger.info("Loaded script with %d words", len(self.matcher))

    def reset(self) -> None:
        """Restart the current script from its first word."""
        self.tracker.reset()
        self.follower.reset()
        self._last_interim_text = None
        self._last_interim_time = None

    def _should_skip_interim(self, text: str) -> bool:
        if text == self._last_interim_text:
            return True
        now = self._clock()
        if self._last_interim_time is not None:
            elapsed_ms = (now - self._last_interim_time) * 1000
            if elapsed_ms < self.interim_throttle_ms:
                return True
        self._last_interim_text = text
        self._last_interim_time = now
        return False

    def handle_transcript(self, event: TranscriptEvent) -> PositionEvent | None:
        """
        Run one transcript fragment through the pipeline.

        Interim fragments that repeat the previous one, or that arrive within
        the throttle interval of the last processed interim, are skipped.
        Final fragments are always processed.

        Args:
            event: Fragment from the recognizer

        Returns:
            The published PositionEvent, or None if the fragment was skipped
        """
        debug_log.log_transcript(event.text, event.is_final)

        if event.is_final:
            self._last_interim_text = None
        elif self._should_skip_interim(event.text):
            return None

        match = self.matcher.find(event.text, self.tracker.confirmed_position)
        result = self.tracker.process(match.best)

        if result.action == "advanced":
            self.follower.on_advance(
                result.confirmed_position,
                result.prev_position,
                self.tracker.last_advance_timestamp
            )

        position_event = to_position_event(result, self.matcher)
        words = self.matcher.script.words
        debug_log.log_position_event(
            result.action,
            result.prev_position,
            result.confirmed_position,
            words[result.confirmed_position].text if words else "",
            result.candidate_position
        )
        self.positions.emit(position_event)
        return position_event

    def tick(self, delta_seconds: float) -> ScrollFrame:
        """Advance the scroll animation by one frame."""
        return self.follower.tick(delta_seconds)

    def set_geometry(
        self,
        viewport_height: float,
        content_height: float,
        word_offsets: Sequence[float] | None = None
    ) -> None:
        """Update the measured display layout."""
        self.follower.set_geometry(ScrollGeometry(
            viewport_height=viewport_height,
            content_height=content_height,
            total_words=len(self.matcher),
            word_offsets=word_offsets
        ))

    def set_caret_percent(self, percent: float) -> None:
        """Move the caret line (clamped to 10-90%)."""
        self.follower.set_caret_percent(percent)

    def subscribe_position(self, callback: Callable[[PositionEvent], None]) -> Subscription:
        """Receive a PositionEvent for every processed fragment."""
        return self._track(self.positions.subscribe(callback))

    def subscribe_frames(self, callback: Callable[[ScrollFrame], None]) -> Subscription:
        """Receive every animation frame."""
        return self._track(self.follower.subscribe_frames(callback))

    def subscribe_mode(self, callback: Callable[[Mode], None]) -> Subscription:
        """Receive tracking/holding transitions."""
        return self._track(self.follower.subscribe_mode(callback))

    def attach(self, source: TranscriptSource) -> Subscription:
        """Feed every fragment from a transcript source into this session."""
        return self._track(source.subscribe(self.handle_transcript))

    def _track(self, subscription: Subscription) -> Subscription:
        self._subscriptions.append(subscription)
        return subscription

    def close(self) -> None:
        """Cancel every subscription made through this session."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()
        debug_log.flush()

    def snapshot(self) -> dict[str, Any]:
        """Current state for status queries."""
        follower = self.follower.state
        exploration = self.tracker.exploration
        return {
            "wordCount": len(self.matcher),
            "confirmedPosition": self.tracker.confirmed_position,
            "exploring": {
                "candidatePosition": exploration.candidate_position,
                "direction": exploration.direction,
                "streakCount": exploration.streak_count,
            } if exploration else None,
            "mode": follower.mode,
            "offset": follower.current_offset,
            "pace": follower.pace,
            "caretPercent": self.follower.caret_percent,
        }
