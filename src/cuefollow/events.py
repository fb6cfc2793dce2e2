# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Event records passed between the pipeline and its collaborators, and a
small observer primitive whose subscriptions can be cancelled.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

Mode = Literal["tracking", "holding"]
ConfidenceLevel = Literal["high", "medium", "low"]


@dataclass(frozen=True)
class TranscriptEvent:
    """Recognized speech from the recognition collaborator."""
    text: str
    is_final: bool = False

    def __repr__(self) -> str:
        status: str = "final" if self.is_final else "interim"
        return f"TranscriptEvent({status}: '{self.text}')"


@dataclass(frozen=True)
class PositionEvent:
    """Result of processing one transcript fragment."""
    action: Literal["advanced", "exploring", "none"]
    confirmed_position: int
    prev_position: int
    confidence: ConfidenceLevel = "low"
    # Highlight range in the script text around the confirmed word
    char_start: int = 0
    char_end: int = 0

    def to_message(self) -> dict[str, object]:
        """Serialize for the WebSocket protocol."""
        return {
            "type": "position",
            "action": self.action,
            "confirmedPosition": self.confirmed_position,
            "prevPosition": self.prev_position,
            "confidence": self.confidence,
            "charStart": self.char_start,
            "charEnd": self.char_end,
        }


@dataclass(frozen=True)
class ScrollFrame:
    """One animation frame for the rendering collaborator."""
    offset: float
    mode: Mode

    def to_message(self) -> dict[str, object]:
        """Serialize for the WebSocket protocol."""
        return {"type": "frame", "offset": self.offset, "mode": self.mode}


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop delivery."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel: Callable[[], None] | None = cancel

    @property
    def active(self) -> bool:
        """True until unsubscribe() has been called."""
        return self._cancel is not None

    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once."""
        cancel, self._cancel = self._cancel, None
        if cancel is not None:
            cancel()


class Signal(Generic[T]):
    """
    Synchronous observer list.

    Callbacks run in subscription order on the emitting thread. A callback
    that raises is logged and does not stop delivery to the others.
    """

    def __init__(self, name: str = "signal") -> None:
        self.name = name
        self._callbacks: list[Callable[[T], None]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """Register a callback and return its cancellable handle."""
        self._callbacks.append(callback)

        def cancel() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return Subscription(cancel)

    def emit(self, value: T) -> None:
        """Deliver a value to every subscriber."""
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception:
                logger.exception("Subscriber of %s failed", self.name)

    def clear(self) -> None:
        """Drop all subscribers."""
        self._callbacks.clear()
