# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Stateful arbiter of the confirmed reading position.

Nearby matches move the position immediately. Distant matches (the speaker
skipping ahead or rereading) are only accepted after a streak of
corroborating matches, so a single spurious fuzzy match can never move the
position. Backward skips need a longer streak than forward ones since they
are rarer and more often mis-detections.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from .matcher import MatchCandidate

logger = logging.getLogger(__name__)

Action = Literal["advanced", "exploring", "none"]
Direction = Literal["forward", "backward"]


@dataclass(frozen=True)
class TrackerOptions:
    """Confirmation protocol configuration."""
    nearby_threshold: int = 10  # Max distance accepted without a streak
    forward_confirm_streak: int = 4
    backward_confirm_streak: int = 6
    confidence_threshold: float = 0.7  # Min combined score to consider at all
    exploration_band: int = 5  # Max drift between corroborating candidates


@dataclass
class Exploration:
    """A skip being corroborated."""
    candidate_position: int
    direction: Direction
    streak_count: int = 1


@dataclass
class TrackerState:
    """Everything the tracker knows. Mutated only by PositionTracker.process()."""
    confirmed_position: int = 0
    exploration: Exploration | None = None
    last_advance_timestamp: float | None = None


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of processing one candidate."""
    action: Action
    confirmed_position: int
    prev_position: int
    # Populated while exploring
    candidate_position: int | None = None
    streak_count: int = 0
    required_streak: int = 0


class PositionTracker:
    """
    Converts a stream of match candidates into a confirmed position.

    States:
    - CONFIRMED: normal reading; nearby candidates advance immediately
    - EXPLORING: a distant candidate is waiting for a streak of matches
      around the same position before being promoted

    Usage:
        tracker = PositionTracker(script_length=len(matcher))
        result = tracker.process(match.best)
        if result.action == "advanced":
            follower.on_advance(result.confirmed_position, result.prev_position)
    """

    def __init__(
        self,
        script_length: int,
        options: TrackerOptions | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize the tracker.

        Args:
            script_length: Number of words in the script
            options: Confirmation protocol configuration
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.script_length = max(0, script_length)
        self.options = options or TrackerOptions()
        self._clock = clock
        self._state = TrackerState()

    @property
    def confirmed_position(self) -> int:
        """The word index accepted as currently being spoken."""
        return self._state.confirmed_position

    @property
    def exploration(self) -> Exploration | None:
        """The skip currently being corroborated, if any."""
        return self._state.exploration

    @property
    def last_advance_timestamp(self) -> float | None:
        """Clock time of the last advance, or None before the first one."""
        return self._state.last_advance_timestamp

    @property
    def state(self) -> TrackerState:
        """Snapshot copy of the tracker state."""
        exploration = self._state.exploration
        return TrackerState(
            confirmed_position=self._state.confirmed_position,
            exploration=Exploration(
                exploration.candidate_position,
                exploration.direction,
                exploration.streak_count
            ) if exploration else None,
            last_advance_timestamp=self._state.last_advance_timestamp
        )

    def required_streak(self, direction: Direction) -> int:
        """Streak length needed to promote a skip in the given direction."""
        if direction == "forward":
            return max(1, self.options.forward_confirm_streak)
        return max(1, self.options.backward_confirm_streak)

    def _clamp(self, position: int) -> int:
        if self.script_length == 0:
            return 0
        return max(0, min(position, self.script_length - 1))

    def _advance(self, position: int) -> None:
        self._state.confirmed_position = position
        self._state.exploration = None
        self._state.last_advance_timestamp = self._clock()

    def process(self, candidate: MatchCandidate | None) -> ProcessResult:
        """
        Process a match candidate and decide whether to move the position.

        Rules:
        1. No candidate, or combined score below the confidence threshold:
           nothing happens
        2. Within nearby_threshold of the confirmed position: advance now
           and drop any exploration
        3. Otherwise it is a skip: continue the exploration if the candidate
           lands within the band of it (same direction), else start a new one;
           promote once the streak reaches the direction's threshold

        Args:
            candidate: Best match from the matcher, or None

        Returns:
            ProcessResult describing what happened
        """
        prev = self._state.confirmed_position

        if candidate is None or candidate.combined_score < self.options.confidence_threshold:
            return ProcessResult("none", prev, prev)

        position = self._clamp(candidate.position)
        delta = position - prev

        if abs(delta) <= self.options.nearby_threshold:
            self._advance(position)
            logger.debug("Advanced %d -> %d (nearby)", prev, position)
            return ProcessResult("advanced", position, prev)

        direction: Direction = "forward" if delta > 0 else "backward"
        exploration = self._state.exploration

        if (
            exploration is not None
            and exploration.direction == direction
            and abs(position - exploration.candidate_position) <= self.options.exploration_band
        ):
            exploration.streak_count += 1
            exploration.candidate_position = position
        else:
            if exploration is not None:
                logger.debug(
                    "Exploration at %d broken by candidate at %d",
                    exploration.candidate_position, position
                )
            exploration = Exploration(candidate_position=position, direction=direction)
            self._state.exploration = exploration

        required = self.required_streak(direction)
        if exploration.streak_count >= required:
            target = exploration.candidate_position
            self._advance(target)
            logger.info("Confirmed %s skip %d -> %d", direction, prev, target)
            return ProcessResult("advanced", target, prev)

        logger.debug(
            "Exploring %s skip to %d (%d/%d)",
            direction, exploration.candidate_position, exploration.streak_count, required
        )
        return ProcessResult(
            "exploring",
            prev,
            prev,
            candidate_position=exploration.candidate_position,
            streak_count=exploration.streak_count,
            required_streak=required
        )

    def reset(self, script_length: int | None = None) -> None:
        """Reset to the start of the script (optionally for a new script length)."""
        if script_length is not None:
            self.script_length = max(0, script_length)
        self._state = TrackerState()
