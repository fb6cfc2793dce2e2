# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Reactive scroll animation that follows the confirmed position.

The follower never decides where the speaker is. It reads the confirmed
position on every tick, maps it to a scroll offset that puts that word on
the caret line, and eases the displayed offset toward it:

    current += (target - current) * (1 - exp(-speed * dt))

which converges the same way whatever the tick interval. Speed follows the
observed speaking pace, with a temporary boost after a confirmed skip. If no
advance arrives for a while the follower switches to holding and stops.
"""

import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .events import Mode, ScrollFrame, Signal, Subscription

logger = logging.getLogger(__name__)

# Bounds for the user-configurable caret line
MIN_CARET_PERCENT: float = 10.0
MAX_CARET_PERCENT: float = 90.0


@dataclass(frozen=True)
class FollowerOptions:
    """Animation, pace and hold configuration."""
    hold_timeout_ms: float = 5000  # Silence before holding
    caret_percent: float = 33  # Caret line, % from top of viewport
    min_pace: float = 0.5  # words/sec
    max_pace: float = 10.0  # words/sec
    base_speed: float = 4.0  # Smoothing rate (1/s) at calibration pace
    jump_speed: float = 12.0  # Smoothing rate (1/s) while catching up after a skip
    calibration_pace: float = 2.5  # words/sec (~150 wpm)
    pace_gap_seconds: float = 5.0  # Longer gaps are pauses, not pace samples
    nearby_threshold: int = 10  # Advances beyond this distance are skips
    converge_epsilon: float = 1.0  # Offset error (px) that ends a jump boost


@dataclass
class ScrollGeometry:
    """
    Measured layout of the script display.

    Without word_offsets, words are assumed evenly spread through the content
    area, which has padding_fraction * viewport_height of padding above and
    below (so the first and last lines can reach the caret).
    """
    viewport_height: float = 0.0
    content_height: float = 0.0  # Full scroll height, padding included
    total_words: int = 0
    padding_fraction: float = 0.5
    word_offsets: Sequence[float] | None = None  # Measured top of each word

    @property
    def max_scroll(self) -> float:
        """Largest valid scroll offset (0 when the display cannot scroll)."""
        value = _finite(self.content_height) - _finite(self.viewport_height)
        return max(0.0, value)

    def position_to_document_offset(self, word_index: int) -> float:
        """Offset of a word from the top of the document."""
        if self.word_offsets:
            index = max(0, min(word_index, len(self.word_offsets) - 1))
            return _finite(self.word_offsets[index])

        viewport = max(0.0, _finite(self.viewport_height))
        if self.total_words <= 0:
            return 0.0
        padding = viewport * self.padding_fraction
        content = max(0.0, _finite(self.content_height) - 2 * padding)
        return padding + (word_index / self.total_words) * content


@dataclass
class FollowerState:
    """Animation state. Mutated only by tick() and on_advance()."""
    target_offset: float = 0.0
    current_offset: float = 0.0
    pace: float = 2.5  # Smoothed words/sec
    mode: Mode = "tracking"
    jump_boost_active: bool = False
    last_advance_time: float | None = None


def _finite(value: float, default: float = 0.0) -> float:
    """Replace NaN/inf (unmeasured geometry) with a default."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


class ScrollFollower:
    """
    Turns confirmed positions into a smoothly animated scroll offset.

    Usage:
        follower = ScrollFollower(lambda: tracker.confirmed_position, geometry)
        follower.subscribe_mode(lambda mode: print("now", mode))

        # After each advance from the tracker:
        follower.on_advance(result.confirmed_position, result.prev_position)

        # From the host's animation callback:
        frame = follower.tick(delta_seconds)
        render(frame.offset)
    """

    def __init__(
        self,
        position_source: Callable[[], int],
        geometry: ScrollGeometry | None = None,
        options: FollowerOptions | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize the follower.

        Args:
            position_source: Returns the tracker's confirmed position
            geometry: Display layout; may be set later via set_geometry()
            options: Animation configuration
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.position_source = position_source
        self.geometry = geometry or ScrollGeometry()
        self.options = options or FollowerOptions()
        self._clock = clock
        self.caret_percent = self._clamp_caret(self.options.caret_percent)
        self._state = FollowerState(pace=self._clamp_pace(self.options.calibration_pace))
        self._started_at: float = self._clock()
        self.frames: Signal[ScrollFrame] = Signal("frames")
        self.mode_changes: Signal[Mode] = Signal("mode_changes")

    @property
    def state(self) -> FollowerState:
        """Snapshot copy of the follower state."""
        s = self._state
        return FollowerState(
            target_offset=s.target_offset,
            current_offset=s.current_offset,
            pace=s.pace,
            mode=s.mode,
            jump_boost_active=s.jump_boost_active,
            last_advance_time=s.last_advance_time
        )

    @property
    def mode(self) -> Mode:
        """Current mode: 'tracking' or 'holding'."""
        return self._state.mode

    @property
    def pace(self) -> float:
        """Smoothed speaking pace in words/second."""
        return self._state.pace

    @property
    def current_offset(self) -> float:
        """Displayed scroll offset."""
        return self._state.current_offset

    def subscribe_frames(self, callback: Callable[[ScrollFrame], None]) -> Subscription:
        """Receive every frame produced by tick()."""
        return self.frames.subscribe(callback)

    def subscribe_mode(self, callback: Callable[[Mode], None]) -> Subscription:
        """Receive tracking/holding transitions."""
        return self.mode_changes.subscribe(callback)

    def _clamp_caret(self, percent: float) -> float:
        return max(MIN_CARET_PERCENT, min(MAX_CARET_PERCENT, _finite(percent, 33.0)))

    def _clamp_pace(self, pace: float) -> float:
        return max(self.options.min_pace, min(self.options.max_pace, pace))

    def _clamp_offset(self, offset: float) -> float:
        return max(0.0, min(self.geometry.max_scroll, _finite(offset)))

    def set_caret_percent(self, percent: float) -> None:
        """Move the caret line (clamped to 10-90%)."""
        self.caret_percent = self._clamp_caret(percent)

    def set_geometry(self, geometry: ScrollGeometry) -> None:
        """Replace the display layout (e.g. after a resize)."""
        self.geometry = geometry
        self._state.current_offset = self._clamp_offset(self._state.current_offset)

    def target_for(self, word_index: int) -> float:
        """Scroll offset that puts a word on the caret line."""
        viewport = max(0.0, _finite(self.geometry.viewport_height))
        caret_offset = (self.caret_percent / 100) * viewport
        return self._clamp_offset(
            self.geometry.position_to_document_offset(word_index) - caret_offset
        )

    def _update_pace(self, new_position: int, prev_position: int, now: float) -> None:
        last = self._state.last_advance_time
        if last is None:
            return
        elapsed = now - last
        delta = new_position - prev_position
        # Pauses and rereads say nothing about speaking pace
        if elapsed <= 0 or elapsed > self.options.pace_gap_seconds or delta <= 0:
            return
        instant_pace = self._clamp_pace(delta / elapsed)
        self._state.pace = self._clamp_pace(self._state.pace * 0.7 + instant_pace * 0.3)

    def _set_mode(self, mode: Mode) -> None:
        if self._state.mode == mode:
            return
        self._state.mode = mode
        logger.info("Scroll follower %s", mode)
        self.mode_changes.emit(mode)

    def on_advance(
        self,
        new_position: int,
        prev_position: int,
        timestamp: float | None = None
    ) -> None:
        """
        Notify the follower that the confirmed position advanced.

        Updates the pace estimate, starts a jump boost for skips, and
        resumes tracking if the follower was holding.

        Args:
            new_position: New confirmed position
            prev_position: Confirmed position before the advance
            timestamp: Clock time of the advance (defaults to now)
        """
        now = self._clock() if timestamp is None else timestamp
        self._update_pace(new_position, prev_position, now)
        self._state.last_advance_time = now

        if abs(new_position - prev_position) > self.options.nearby_threshold:
            self._state.jump_boost_active = True
            logger.debug("Jump boost %d -> %d", prev_position, new_position)

        self._state.target_offset = self.target_for(new_position)
        self._set_mode("tracking")

    def current_speed(self) -> float:
        """Smoothing rate for the next tick."""
        if self._state.jump_boost_active:
            return self.options.jump_speed
        return self.options.base_speed * (self._state.pace / self.options.calibration_pace)

    def tick(self, delta_seconds: float) -> ScrollFrame:
        """
        Advance the animation by one frame.

        Args:
            delta_seconds: Time since the previous tick

        Returns:
            The frame to render (also published to frame subscribers)
        """
        dt = max(0.0, _finite(delta_seconds))
        state = self._state

        last = state.last_advance_time if state.last_advance_time is not None else self._started_at
        idle_ms = (self._clock() - last) * 1000
        if state.mode == "tracking" and idle_ms > self.options.hold_timeout_ms:
            self._set_mode("holding")

        state.target_offset = self.target_for(self.position_source())

        if state.mode == "tracking":
            factor = 1 - math.exp(-self.current_speed() * dt)
            state.current_offset += (state.target_offset - state.current_offset) * factor
            state.current_offset = self._clamp_offset(state.current_offset)

            if state.jump_boost_active and (
                abs(state.target_offset - state.current_offset) <= self.options.converge_epsilon
            ):
                state.jump_boost_active = False
                logger.debug("Jump boost ended at offset %.1f", state.current_offset)

        frame = ScrollFrame(offset=state.current_offset, mode=state.mode)
        self.frames.emit(frame)
        return frame

    def reset(self) -> None:
        """Return to the top of the script with default pace, tracking."""
        previous_mode = self._state.mode
        self._state = FollowerState(pace=self._clamp_pace(self.options.calibration_pace))
        self._started_at = self._clock()
        if previous_mode != "tracking":
            self.mode_changes.emit("tracking")
