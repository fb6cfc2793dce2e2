"""Tests for following a reader through a whole script.

These tests feed a session the way a streaming recognizer does (growing
interim fragments per line, then a final) and verify that:
1. The confirmed position follows the reader to the end of the script
2. It is never ahead of the word actually being spoken
3. Skips forward and rereads backward are followed once corroborated
4. The scroll offset follows the confirmed position
"""

import pytest

from cuefollow.events import TranscriptEvent
from cuefollow.session import PromptSession

LINES = [
    "four score and seven years ago",
    "our fathers brought forth on this continent",
    "a new nation conceived in liberty",
    "and dedicated to the proposition",
    "that all men are created equal",
    "now we are engaged in a great civil war",
    "testing whether that nation or any nation",
    "so conceived and so dedicated",
    "can long endure",
]

SCRIPT = (
    "Four score and seven years ago our fathers brought forth on this continent, "
    "a new nation, conceived in Liberty, and dedicated to the proposition that all "
    "men are created equal. Now we are engaged in a great civil war, testing whether "
    "that nation, or any nation so conceived and so dedicated, can long endure."
)

# Index of the first script word of each line
LINE_STARTS = [0, 6, 13, 19, 24, 30, 39, 46, 51]
LAST_WORD = 53


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class Reader:
    """Speaks lines into a session one word at a time."""

    def __init__(self, session: PromptSession, clock: FakeClock, seconds_per_word: float = 0.3) -> None:
        self.session = session
        self.clock = clock
        self.seconds_per_word = seconds_per_word
        # (true index of the last spoken word, confirmed position) per fragment
        self.trace: list[tuple[int, int]] = []

    def read_line(self, line_number: int) -> None:
        words = LINES[line_number].split()
        start = LINE_STARTS[line_number]
        for count in range(1, len(words) + 1):
            self.clock.now += self.seconds_per_word
            self.session.handle_transcript(TranscriptEvent(" ".join(words[:count]), is_final=False))
            self.session.tick(self.seconds_per_word)
            self.trace.append((start + count - 1, self.session.confirmed_position))
        self.session.handle_transcript(TranscriptEvent(LINES[line_number], is_final=True))
        self.trace.append((start + len(words) - 1, self.session.confirmed_position))


class TestReadingSession:
    """Integration tests for following a reader."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def session(self, clock: FakeClock) -> PromptSession:
        session = PromptSession(SCRIPT, clock=clock)
        session.set_geometry(viewport_height=600, content_height=2000)
        return session

    def test_script_word_count(self, session: PromptSession) -> None:
        assert len(session.matcher) == LAST_WORD + 1
        words = session.matcher.words
        for line, start in zip(LINES, LINE_STARTS):
            assert words[start] == line.split()[0]

    def test_straight_read_reaches_the_end(self, session: PromptSession, clock: FakeClock) -> None:
        reader = Reader(session, clock)
        for line_number in range(len(LINES)):
            reader.read_line(line_number)

        assert session.confirmed_position == LAST_WORD
        for spoken, confirmed in reader.trace:
            assert confirmed <= spoken

    def test_scroll_follows_reading(self, session: PromptSession, clock: FakeClock) -> None:
        reader = Reader(session, clock)
        offsets = []
        for line_number in range(len(LINES)):
            reader.read_line(line_number)
            offsets.append(session.follower.current_offset)

        assert offsets[-1] > offsets[0]
        assert session.mode == "tracking"
        assert session.follower.state.target_offset == pytest.approx(
            session.follower.target_for(LAST_WORD)
        )

    def test_forward_skip_is_followed(self, session: PromptSession, clock: FakeClock) -> None:
        reader = Reader(session, clock)
        for line_number in range(4):
            reader.read_line(line_number)
        assert session.confirmed_position == 23

        # The reader jumps over two lines
        for line_number in range(6, len(LINES)):
            reader.read_line(line_number)

        assert session.confirmed_position == LAST_WORD
        skipped = range(LINE_STARTS[4], LINE_STARTS[6])
        assert not any(confirmed in skipped for _, confirmed in reader.trace)

    def test_reread_backward_is_followed(self, session: PromptSession, clock: FakeClock) -> None:
        reader = Reader(session, clock)
        for line_number in range(4):
            reader.read_line(line_number)
        assert session.confirmed_position == 23

        reader.trace.clear()
        reader.read_line(1)

        # Five corroborating fragments hold the position, the sixth moves it
        assert [confirmed for _, confirmed in reader.trace[:5]] == [23] * 5
        assert reader.trace[5][1] == 11
        assert session.confirmed_position == 12
