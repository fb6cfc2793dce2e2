"""
Base interface for the speech recognition collaborator.

Recognition itself happens outside this package. Anything that produces
transcript fragments (a Vosk loop, a browser bridge, a replayed file) plugs
into a session by implementing TranscriptSource.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from .events import Signal, Subscription, TranscriptEvent

logger = logging.getLogger(__name__)


class TranscriptSource(ABC):
    """Base interface for producers of transcript fragments."""

    @abstractmethod
    def subscribe(self, callback: Callable[[TranscriptEvent], None]) -> Subscription:
        """
        Register a callback for transcript fragments.

        Args:
            callback: Called with each interim or final fragment

        Returns:
            Subscription that stops delivery when cancelled
        """

    @abstractmethod
    def start(self) -> None:
        """Begin producing fragments."""

    @abstractmethod
    def stop(self) -> None:
        """Stop producing fragments."""


class ReplayTranscriptSource(TranscriptSource):
    """Replays a fixed sequence of fragments, synchronously, on start()."""

    def __init__(self, events: Iterable[TranscriptEvent]) -> None:
        self.events: list[TranscriptEvent] = list(events)
        self._signal: Signal[TranscriptEvent] = Signal("transcripts")
        self._running: bool = False

    @classmethod
    def from_lines(cls, lines: Iterable[str], word_by_word: bool = False) -> 'ReplayTranscriptSource':
        """
        Build a replay from transcript lines.

        Each line becomes one final fragment. With word_by_word, every line
        is first delivered as growing interim fragments, the way streaming
        recognizers report partial results.
        """
        events: list[TranscriptEvent] = []
        for line in lines:
            words = line.split()
            if not words:
                continue
            if word_by_word:
                for i in range(1, len(words)):
                    events.append(TranscriptEvent(" ".join(words[:i]), is_final=False))
            events.append(TranscriptEvent(" ".join(words), is_final=True))
        return cls(events)

    def subscribe(self, callback: Callable[[TranscriptEvent], None]) -> Subscription:
        return self._signal.subscribe(callback)

    def start(self) -> None:
        self._running = True
        for event in self.events:
            if not self._running:
                logger.debug("Replay stopped early")
                break
            self._signal.emit(event)
        self._running = False

    def stop(self) -> None:
        self._running = False
