# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Threaded prompting session for hosts with a separate render loop.

Matching and tracking run on a worker thread fed by a bounded queue, so a
recognizer callback never waits for a search. The worker is the only writer
of the tracker; the render thread reads a lock-guarded snapshot of the
confirmed position and receives position events through a result queue that
tick() drains before animating.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from . import debug_log
from .config import DEFAULT_CONFIG, Config, get_follower_options, get_matcher_options, get_tracker_options
from .events import Mode, PositionEvent, ScrollFrame, Signal, Subscription, TranscriptEvent
from .matcher import WordMatcher
from .position_tracker import PositionTracker
from .scroll_follower import ScrollFollower, ScrollGeometry
from .session import to_position_event

logger = logging.getLogger(__name__)


@dataclass
class TrackingRequest:
    """A transcript fragment waiting for the worker."""
    text: str
    is_final: bool
    generation: int


@dataclass
class TrackingResult:
    """Outcome of one fragment, handed back to the render thread."""
    event: PositionEvent
    generation: int
    advance_timestamp: float | None
    processing_time: float


@dataclass
class ControlCommand:
    """Control command for the worker thread."""
    command: str  # 'load_script', 'reset', 'flush', 'shutdown'
    param: Any = None
    generation: int = 0


class ThreadedPromptSession:
    """
    Thread-safe prompting session.

    Features:
    - Non-blocking submit_transcript() that queues fragments
    - Throttling of interim fragments and suppression of repeated interims
    - Backpressure handling (drops old interims when the queue is full)
    - Worker thread owns the matcher and tracker
    - Render thread owns the scroll follower and sees only the snapshot

    Usage:
        session = ThreadedPromptSession(script_text)
        session.subscribe_position(send_to_ui)

        # From the recognizer's thread
        session.submit_transcript(TranscriptEvent(text, is_final=False))

        # From the render loop
        frame = session.tick(delta_seconds)
    """

    def __init__(
        self,
        script_text: str = "",
        config: Config | None = None,
        geometry: ScrollGeometry | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_queue_size: int = 10
    ) -> None:
        """
        Initialize the threaded session.

        Args:
            script_text: Script to follow
            config: Settings (defaults when None)
            geometry: Display layout; usually arrives later via set_geometry()
            clock: Monotonic time source in seconds, shared with the worker
            max_queue_size: Queue size before backpressure kicks in
        """
        self.config: Config = config or DEFAULT_CONFIG
        self.script_text = script_text
        self.interim_throttle_ms: float = float(self.config.get("interim_throttle_ms", 150))
        self.max_queue_size = max_queue_size
        self._clock = clock

        # Queues for communication
        self.request_queue: queue.Queue[TrackingRequest | ControlCommand] = queue.Queue(
            maxsize=max_queue_size
        )
        self.result_queue: queue.Queue[TrackingResult] = queue.Queue()

        # Thread control
        self.worker_thread: threading.Thread | None = None
        self.shutdown_flag = threading.Event()
        self.started = threading.Event()

        # Shared state (guarded by state_lock)
        self.state_lock = threading.Lock()
        self._generation = 0
        self._snapshot_generation = 0
        self._snapshot_position = 0
        self._word_count = 0
        self.latest_event: PositionEvent | None = None
        self._latest_event_generation = 0

        # Interim throttling state (submitting thread only)
        self._last_interim_text: str | None = None
        self._last_interim_time: float | None = None

        # Render-thread side
        self.follower = ScrollFollower(
            self.confirmed_position_snapshot,
            geometry,
            get_follower_options(self.config),
            clock=clock
        )
        self.positions: Signal[PositionEvent] = Signal("positions")
        self._subscriptions: list[Subscription] = [
            self.follower.subscribe_mode(debug_log.log_mode_change)
        ]

        self._start_worker()

        # Wait for worker to be ready
        self.started.wait(timeout=5.0)
        if not self.started.is_set():
            raise RuntimeError("Worker thread failed to start")

        if self.follower.geometry.total_words <= 0:
            self.follower.geometry.total_words = self.word_count

    def _start_worker(self) -> None:
        """Start the worker thread."""
        self.worker_thread = threading.Thread(
            target=self._worker_loop,
            name="PromptSessionWorker",
            daemon=True
        )
        self.worker_thread.start()

    def _worker_loop(self) -> None:
        """Main loop for the worker thread."""
        try:
            # The matcher and tracker live only on this thread
            matcher = WordMatcher.build(self.script_text, get_matcher_options(self.config))
            tracker = PositionTracker(len(matcher), get_tracker_options(self.config), clock=self._clock)
            generation = 0
            with self.state_lock:
                self._word_count = len(matcher)

            logger.info("PromptSession worker started")
            self.started.set()

            while not self.shutdown_flag.is_set():
                try:
                    # Get next request with timeout to allow checking shutdown flag
                    item = self.request_queue.get(timeout=0.1)
                except queue.Empty:
                    continue

                try:
                    if isinstance(item, ControlCommand):
                        if item.command == 'load_script':
                            matcher = WordMatcher.build(str(item.param), matcher.options)
                            tracker.reset(len(matcher))
                        elif item.command == 'reset':
                            tracker.reset()
                        elif item.command == 'flush':
                            item.param.set()
                        elif item.command == 'shutdown':
                            self.shutdown_flag.set()
                        if item.command in ('load_script', 'reset'):
                            generation = item.generation
                            self._publish_snapshot(generation, 0, len(matcher))
                            logger.debug("Worker %s (generation %d)", item.command, generation)
                    elif item.generation == generation:
                        self._handle_tracking_request(matcher, tracker, item)
                except Exception as e:
                    logger.error("Error in worker loop: %s", e, exc_info=True)

        finally:
            logger.info("PromptSession worker stopped")

    def _publish_snapshot(self, generation: int, position: int, word_count: int | None = None) -> None:
        with self.state_lock:
            self._snapshot_generation = generation
            self._snapshot_position = position
            if word_count is not None:
                self._word_count = word_count

    def _handle_tracking_request(
        self,
        matcher: WordMatcher,
        tracker: PositionTracker,
        req: TrackingRequest
    ) -> None:
        """Match one fragment and publish the outcome."""
        start_time = time.perf_counter()

        match = matcher.find(req.text, tracker.confirmed_position)
        result = tracker.process(match.best)
        event = to_position_event(result, matcher)

        if result.action == "advanced":
            self._publish_snapshot(req.generation, result.confirmed_position)

        words = matcher.script.words
        debug_log.log_position_event(
            result.action,
            result.prev_position,
            result.confirmed_position,
            words[result.confirmed_position].text if words else "",
            result.candidate_position
        )

        with self.state_lock:
            self.latest_event = event
            self._latest_event_generation = req.generation

        self.result_queue.put(TrackingResult(
            event=event,
            generation=req.generation,
            advance_timestamp=tracker.last_advance_timestamp if result.action == "advanced" else None,
            processing_time=time.perf_counter() - start_time
        ))

    def confirmed_position_snapshot(self) -> int:
        """Latest confirmed position published by the worker."""
        with self.state_lock:
            if self._snapshot_generation != self._generation:
                return 0
            return self._snapshot_position

    @property
    def word_count(self) -> int:
        """Number of words in the script the worker is following."""
        with self.state_lock:
            return self._word_count

    @property
    def mode(self) -> Mode:
        """The follower's current mode."""
        return self.follower.mode

    def _should_skip_interim(self, text: str) -> bool:
        if text == self._last_interim_text:
            return True
        now = self._clock()
        if self._last_interim_time is not None:
            if (now - self._last_interim_time) * 1000 < self.interim_throttle_ms:
                return True
        self._last_interim_text = text
        self._last_interim_time = now
        return False

    def submit_transcript(self, event: TranscriptEvent) -> bool:
        """
        Submit a transcript fragment for tracking (non-blocking).

        Args:
            event: Fragment from the recognizer

        Returns:
            True if the fragment was queued, False if it was dropped
        """
        debug_log.log_transcript(event.text, event.is_final)

        if event.is_final:
            self._last_interim_text = None
        elif self._should_skip_interim(event.text):
            return False

        with self.state_lock:
            generation = self._generation
        request = TrackingRequest(text=event.text, is_final=event.is_final, generation=generation)

        # Try to queue (with backpressure handling)
        try:
            self.request_queue.put_nowait(request)
            return True
        except queue.Full:
            pass

        if not event.is_final:
            # Drop old interims from the head of the queue
            dropped = 0
            kept: list[TrackingRequest | ControlCommand] = []
            while True:
                try:
                    old_item = self.request_queue.get_nowait()
                except queue.Empty:
                    break
                if isinstance(old_item, TrackingRequest) and not old_item.is_final:
                    dropped += 1
                else:
                    kept.append(old_item)
            for old_item in kept:
                self.request_queue.put_nowait(old_item)

            try:
                self.request_queue.put_nowait(request)
                logger.warning("Backpressure: dropped %d old interims", dropped)
                return True
            except queue.Full:
                logger.warning("Backpressure: dropping current interim")
                return False

        # Final fragment: wait briefly for space before giving up
        try:
            self.request_queue.put(request, timeout=0.5)
            return True
        except queue.Full:
            logger.warning("Backpressure: dropping final transcript (queue full)")
            return False

    def _drain_results(self) -> None:
        with self.state_lock:
            generation = self._generation
        while True:
            try:
                result = self.result_queue.get_nowait()
            except queue.Empty:
                return
            if result.generation != generation:
                continue
            event = result.event
            logger.debug("Fragment processed in %.2fms", result.processing_time * 1000)
            if event.action == "advanced":
                self.follower.on_advance(
                    event.confirmed_position,
                    event.prev_position,
                    result.advance_timestamp
                )
            self.positions.emit(event)

    def tick(self, delta_seconds: float) -> ScrollFrame:
        """
        Deliver pending position events and advance the animation.

        Must be called from the render thread.
        """
        self._drain_results()
        word_count = self.word_count
        if self.follower.geometry.total_words != word_count:
            self.follower.geometry.total_words = word_count
        return self.follower.tick(delta_seconds)

    def get_cached_event(self) -> PositionEvent | None:
        """Latest position event without consuming from the result queue."""
        with self.state_lock:
            if self._latest_event_generation != self._generation:
                return None
            return self.latest_event

    def _send_command(self, command: ControlCommand) -> None:
        try:
            self.request_queue.put(command, timeout=1.0)
        except queue.Full:
            logger.warning("Failed to queue %s command (queue full)", command.command)

    def _next_generation(self) -> int:
        with self.state_lock:
            self._generation += 1
            return self._generation

    def load_script(self, script_text: str) -> None:
        """Replace the script and restart from its first word."""
        self.script_text = script_text
        generation = self._next_generation()
        self._last_interim_text = None
        self._last_interim_time = None
        self.follower.reset()
        self._send_command(ControlCommand('load_script', script_text, generation))

    def reset(self) -> None:
        """Restart the current script from its first word."""
        generation = self._next_generation()
        self._last_interim_text = None
        self._last_interim_time = None
        self.follower.reset()
        self._send_command(ControlCommand('reset', generation=generation))

    def flush(self, timeout: float = 2.0) -> bool:
        """
        Wait until everything queued so far has been processed.

        Returns:
            True if the worker caught up within the timeout
        """
        done = threading.Event()
        self._send_command(ControlCommand('flush', done))
        return done.wait(timeout)

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
            total_words=self.word_count,
            word_offsets=word_offsets
        ))

    def set_caret_percent(self, percent: float) -> None:
        """Move the caret line (clamped to 10-90%)."""
        self.follower.set_caret_percent(percent)

    def subscribe_position(self, callback: Callable[[PositionEvent], None]) -> Subscription:
        """Receive position events (delivered on the render thread by tick())."""
        subscription = self.positions.subscribe(callback)
        self._subscriptions.append(subscription)
        return subscription

    def subscribe_frames(self, callback: Callable[[ScrollFrame], None]) -> Subscription:
        """Receive every animation frame."""
        subscription = self.follower.subscribe_frames(callback)
        self._subscriptions.append(subscription)
        return subscription

    def subscribe_mode(self, callback: Callable[[Mode], None]) -> Subscription:
        """Receive tracking/holding transitions."""
        subscription = self.follower.subscribe_mode(callback)
        self._subscriptions.append(subscription)
        return subscription

    def shutdown(self) -> None:
        """Cancel subscriptions and stop the worker thread."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()

        try:
            self.request_queue.put(ControlCommand('shutdown'), timeout=1.0)
        except queue.Full:
            pass

        self.shutdown_flag.set()

        if self.worker_thread and self.worker_thread.is_alive():
            self.worker_thread.join(timeout=2.0)
        debug_log.flush()
