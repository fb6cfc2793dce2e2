# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for PromptSession: the matcher, tracker and follower wired together.
"""

import pytest

from cuefollow.events import TranscriptEvent
from cuefollow.matcher import WordMatcher
from cuefollow.session import PromptSession, highlight_range
from cuefollow.transcript_source import ReplayTranscriptSource

GETTYSBURG = "Four score and seven years ago our fathers brought forth on this continent a new nation"


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestHandleTranscript:
    """Fragments flow through matching and tracking into position events."""

    def setup_method(self):
        self.clock = FakeClock()
        self.session = PromptSession(GETTYSBURG, clock=self.clock)
        self.events = []
        self.session.subscribe_position(self.events.append)

    def test_first_phrase_advances(self):
        event = self.session.handle_transcript(TranscriptEvent("four score and", is_final=True))

        assert event is not None
        assert event.action == "advanced"
        assert event.confirmed_position == 2
        assert event.prev_position == 0
        assert event.confidence == "high"
        assert GETTYSBURG[event.char_start:event.char_end] == "score and seven"
        assert self.events == [event]

    def test_reading_through_the_script(self):
        lines = [
            "four score and",
            "seven years ago",
            "our fathers brought",
            "forth on this",
            "continent a new",
            "nation",
        ]
        positions = []
        for line in lines:
            self.clock.now += 1.0
            positions.append(self.session.handle_transcript(TranscriptEvent(line, is_final=True)).confirmed_position)

        assert positions == [2, 5, 8, 11, 14, 15]
        assert self.session.confirmed_position == 15

    def test_unmatched_fragment(self):
        event = self.session.handle_transcript(TranscriptEvent("purple elephants", is_final=True))
        assert event.action == "none"
        assert event.confidence == "low"
        assert event.confirmed_position == 0

    def test_distant_fragment_explores(self):
        event = self.session.handle_transcript(TranscriptEvent("a new nation", is_final=True))
        assert event.action == "exploring"
        assert event.confidence == "medium"
        assert self.session.confirmed_position == 0

    def test_advance_notifies_follower(self):
        self.session.set_geometry(1000, 3000)
        self.session.handle_transcript(TranscriptEvent("four score and", is_final=True))
        assert self.session.follower.state.last_advance_time == 0.0
        assert self.session.tick(1 / 60).offset > 0

    def test_failing_subscriber_does_not_break_pipeline(self):
        def broken(event):
            raise RuntimeError("boom")

        self.session.subscribe_position(broken)
        event = self.session.handle_transcript(TranscriptEvent("four score and", is_final=True))

        assert event.confirmed_position == 2
        assert len(self.events) == 1


class TestInterimThrottle:
    """Interim fragments are rate limited; finals never are."""

    def setup_method(self):
        self.clock = FakeClock()
        self.session = PromptSession(GETTYSBURG, clock=self.clock)

    def test_interim_within_throttle_is_skipped(self):
        assert self.session.handle_transcript(TranscriptEvent("four")) is not None
        self.clock.now = 0.05
        assert self.session.handle_transcript(TranscriptEvent("four score")) is None
        self.clock.now = 0.2
        assert self.session.handle_transcript(TranscriptEvent("four score")) is not None

    def test_repeated_interim_is_skipped(self):
        self.session.handle_transcript(TranscriptEvent("four score"))
        self.clock.now = 1.0
        assert self.session.handle_transcript(TranscriptEvent("four score")) is None

    def test_finals_are_always_processed(self):
        self.session.handle_transcript(TranscriptEvent("four score"))
        self.clock.now = 0.01
        event = self.session.handle_transcript(TranscriptEvent("four score and", is_final=True))
        assert event is not None
        assert event.confirmed_position == 2

    def test_final_clears_repeat_suppression(self):
        self.session.handle_transcript(TranscriptEvent("four score"))
        self.session.handle_transcript(TranscriptEvent("four score", is_final=True))
        self.clock.now = 1.0
        assert self.session.handle_transcript(TranscriptEvent("four score")) is not None


class TestLifecycle:
    """Script loading, reset, subscriptions and snapshots."""

    def setup_method(self):
        self.clock = FakeClock()
        self.session = PromptSession(GETTYSBURG, clock=self.clock)

    def test_load_script_restarts(self):
        self.session.handle_transcript(TranscriptEvent("four score and", is_final=True))
        self.session.load_script("We choose to go to the moon")

        assert self.session.confirmed_position == 0
        assert len(self.session.matcher) == 7
        assert self.session.follower.geometry.total_words == 7
        event = self.session.handle_transcript(TranscriptEvent("to go to", is_final=True))
        assert event.confirmed_position == 4

    def test_reset(self):
        self.session.handle_transcript(TranscriptEvent("four score and", is_final=True))
        self.session.reset()
        assert self.session.confirmed_position == 0
        assert self.session.mode == "tracking"

    def test_attach_source(self):
        source = ReplayTranscriptSource.from_lines(["four score and", "seven years ago"])
        events = []
        self.session.subscribe_position(events.append)

        self.session.attach(source)
        source.start()

        assert [e.confirmed_position for e in events] == [2, 5]

    def test_close_cancels_subscriptions(self):
        events = []
        frames = []
        subscription = self.session.subscribe_position(events.append)
        self.session.subscribe_frames(frames.append)

        self.session.close()
        self.session.handle_transcript(TranscriptEvent("four score and", is_final=True))
        self.session.tick(1 / 60)

        assert events == []
        assert frames == []
        assert not subscription.active

    def test_mode_subscription(self):
        modes = []
        self.session.subscribe_mode(modes.append)
        self.clock.now = 6.0
        self.session.tick(1 / 60)
        assert modes == ["holding"]

    def test_caret_percent(self):
        self.session.set_caret_percent(120)
        assert self.session.follower.caret_percent == 90

    def test_snapshot(self):
        self.session.handle_transcript(TranscriptEvent("four score and", is_final=True))
        self.session.handle_transcript(TranscriptEvent("a new nation", is_final=True))

        snapshot = self.session.snapshot()

        assert snapshot["wordCount"] == 16
        assert snapshot["confirmedPosition"] == 2
        assert snapshot["exploring"] == {
            "candidatePosition": 15,
            "direction": "forward",
            "streakCount": 1,
        }
        assert snapshot["mode"] == "tracking"
        assert snapshot["caretPercent"] == 33
        assert snapshot["pace"] == pytest.approx(2.5)

    def test_empty_session(self):
        session = PromptSession(clock=self.clock)
        event = session.handle_transcript(TranscriptEvent("anything", is_final=True))
        assert event.action == "none"
        assert (event.char_start, event.char_end) == (0, 0)
        assert session.snapshot()["wordCount"] == 0


class TestHighlightRange:
    """Highlight phrase centred on the confirmed word."""

    def test_centred_phrase(self):
        matcher = WordMatcher.build(GETTYSBURG)
        start, end = highlight_range(matcher, 4)
        assert GETTYSBURG[start:end] == "seven years ago"

    def test_start_of_script(self):
        matcher = WordMatcher.build(GETTYSBURG)
        start, end = highlight_range(matcher, 0)
        assert GETTYSBURG[start:end] == "Four score and"

    def test_end_of_script(self):
        matcher = WordMatcher.build(GETTYSBURG)
        start, end = highlight_range(matcher, 15)
        assert GETTYSBURG[start:end] == "new nation"

    def test_empty_script(self):
        assert highlight_range(WordMatcher.build(""), 3) == (0, 0)
