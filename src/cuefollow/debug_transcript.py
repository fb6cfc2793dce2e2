# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through a prompting session.

This CLI tool takes a transcript file and a script file, simulates the
recognizer delivering it, and outputs detailed tracking information (every
advance, every skip being corroborated, the final pace and scroll offset)
to help debug tracking issues.
"""

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, TextIO

from .config import DEFAULT_CONFIG, Config, load_config
from .events import TranscriptEvent
from .scroll_follower import ScrollGeometry
from .session import PromptSession
from .transcript_source import ReplayTranscriptSource

EventType = Literal["advance", "FORWARD_SKIP", "BACKWARD_SKIP", "exploring", "no_match", "throttled"]

# Simulated display used to report scroll offsets
REPLAY_VIEWPORT_HEIGHT: float = 600.0
REPLAY_LINE_HEIGHT: float = 40.0
REPLAY_WORDS_PER_LINE: int = 8


@dataclass
class TrackingEvent:
    """A single tracking event during transcript replay."""
    transcript_line: int
    fragment: str
    is_final: bool
    event_type: EventType
    prev_position: int
    confirmed_position: int
    script_word: str
    candidate_position: int | None = None
    streak_count: int = 0


class SimulatedClock:
    """Clock that only moves when told to, so replays are repeatable."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def load_transcript(path: Path) -> list[str]:
    """Load transcript file and extract transcript lines.

    Filters out metadata lines (starting with '===').
    Returns list of transcript text lines.
    """
    lines: list[str] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            # Skip metadata lines and empty lines
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(stripped_line)
    return lines


def load_script(path: Path) -> str:
    """Load script file content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def _replay_geometry(total_words: int) -> ScrollGeometry:
    lines = max(1, -(-total_words // REPLAY_WORDS_PER_LINE))
    return ScrollGeometry(
        viewport_height=REPLAY_VIEWPORT_HEIGHT,
        content_height=lines * REPLAY_LINE_HEIGHT + REPLAY_VIEWPORT_HEIGHT,
        total_words=total_words
    )


def _classify(action: str, prev: int, confirmed: int, nearby_threshold: int) -> EventType:
    if action == "exploring":
        return "exploring"
    if action == "none":
        return "no_match"
    if confirmed - prev > nearby_threshold:
        return "FORWARD_SKIP"
    if prev - confirmed > nearby_threshold:
        return "BACKWARD_SKIP"
    return "advance"


def _run_replay(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool,
    word_by_word: bool,
    seconds_per_word: float,
    config: Config
) -> list[TrackingEvent]:
    clock = SimulatedClock()
    session = PromptSession(script_text, config, clock=clock)
    geometry = _replay_geometry(len(session.matcher))
    session.set_geometry(geometry.viewport_height, geometry.content_height)
    nearby_threshold = session.tracker.options.nearby_threshold
    script_words = session.matcher.script.words
    events: list[TrackingEvent] = []

    def word_at(index: int) -> str:
        return script_words[index].text if index < len(script_words) else "<END>"

    # Write header
    output.write("=" * 80 + "\n")
    output.write("TRANSCRIPT DEBUG LOG" + (" (WORD-BY-WORD MODE)" if word_by_word else "") + "\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Script words: {len(script_words)}\n")
    output.write(f"Transcript lines: {len(transcript_lines)}\n")
    output.write("=" * 80 + "\n\n")

    # Write script words reference
    output.write("SCRIPT WORDS:\n")
    output.write("-" * 40 + "\n")
    for word in script_words:
        output.write(f"  [{word.index:4d}] {word.text}\n")
    output.write("\n" + "=" * 80 + "\n\n")

    output.write("TRACKING LOG:\n")
    output.write("-" * 40 + "\n")

    line_num = 0
    spoken_words = 0
    at_line_start = True

    def on_fragment(fragment: TranscriptEvent) -> None:
        nonlocal line_num, spoken_words, at_line_start
        if at_line_start:
            line_num += 1
            output.write(f"\n--- Line {line_num} ---\n")
        at_line_start = fragment.is_final

        # A fragment one word longer than the last arrives one word later
        words_in_fragment = len(fragment.text.split())
        new_words = max(1, words_in_fragment - spoken_words)
        spoken_words = 0 if fragment.is_final else words_in_fragment

        elapsed = new_words * seconds_per_word
        clock.advance(elapsed)
        position = session.handle_transcript(fragment)
        session.tick(elapsed)

        if position is None:
            event_type: EventType = "throttled"
            prev = confirmed = session.confirmed_position
        else:
            prev, confirmed = position.prev_position, position.confirmed_position
            event_type = _classify(position.action, prev, confirmed, nearby_threshold)

        exploration = session.tracker.exploration
        event = TrackingEvent(
            transcript_line=line_num,
            fragment=fragment.text,
            is_final=fragment.is_final,
            event_type=event_type,
            prev_position=prev,
            confirmed_position=confirmed,
            script_word=word_at(confirmed),
            candidate_position=exploration.candidate_position if exploration else None,
            streak_count=exploration.streak_count if exploration else 0
        )
        events.append(event)

        if event_type in ("FORWARD_SKIP", "BACKWARD_SKIP"):
            output.write(f"  *** {event_type.replace('_', ' ')} CONFIRMED ***\n")
            output.write(f"      Position: {prev} -> {confirmed}\n")
            output.write(f"      Script word at new position: \"{event.script_word}\"\n")
        elif event_type == "exploring" and exploration is not None:
            required = session.tracker.required_streak(exploration.direction)
            output.write(
                f"    exploring [{event.candidate_position:4d}] "
                f"\"{word_at(event.candidate_position)}\" "
                f"streak {event.streak_count}/{required}\n"
            )
        elif verbose:
            kind = "final" if fragment.is_final else "interim"
            output.write(
                f"  [{confirmed:4d}] \"{event.script_word}\" ({event_type}, {kind})\n"
            )

    source = ReplayTranscriptSource.from_lines(transcript_lines, word_by_word=word_by_word)
    subscription = source.subscribe(on_fragment)
    try:
        source.start()
    finally:
        subscription.unsubscribe()
        session.close()

    # Write summary
    output.write("\n" + "=" * 80 + "\n")
    output.write("SUMMARY:\n")
    output.write("-" * 40 + "\n")

    def count(kind: EventType) -> int:
        return sum(1 for e in events if e.event_type == kind)

    follower = session.follower.state
    output.write(f"Total fragments processed: {len(events)}\n")
    output.write(f"Final position: {session.confirmed_position} / {len(script_words)}\n")
    output.write(f"Advances: {count('advance')}\n")
    output.write(f"Forward skips: {count('FORWARD_SKIP')}\n")
    output.write(f"Backward skips: {count('BACKWARD_SKIP')}\n")
    output.write(f"Exploring: {count('exploring')}\n")
    output.write(f"No match: {count('no_match')}\n")
    if word_by_word:
        output.write(f"Throttled: {count('throttled')}\n")
    output.write(f"Pace: {follower.pace:.2f} words/s\n")
    output.write(f"Scroll offset: {follower.current_offset:.1f} ({follower.mode})\n")

    skips = [e for e in events if e.event_type in ("FORWARD_SKIP", "BACKWARD_SKIP")]
    if skips:
        output.write("\nSkip events:\n")
        for e in skips:
            output.write(
                f"  Line {e.transcript_line}: {e.prev_position} -> position "
                f"{e.confirmed_position} \"{e.script_word}\"\n"
            )

    return events


def replay_transcript(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool = False,
    seconds_per_word: float = 0.4,
    config: Config | None = None
) -> list[TrackingEvent]:
    """Replay transcript lines as final results and log events.

    Args:
        transcript_lines: Lines of transcript text
        script_text: The script content
        output: File handle to write log output
        verbose: If True, log every fragment. If False, only skips and exploration.
        seconds_per_word: Simulated speaking time per word
        config: Settings (defaults when None)

    Returns:
        List of all tracking events
    """
    return _run_replay(
        transcript_lines, script_text, output, verbose,
        word_by_word=False,
        seconds_per_word=seconds_per_word,
        config=config or DEFAULT_CONFIG
    )


def replay_transcript_word_by_word(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool = False,
    seconds_per_word: float = 0.4,
    config: Config | None = None
) -> list[TrackingEvent]:
    """Replay transcript word-by-word (simulating interim results).

    Each line is delivered as growing interim fragments followed by a final
    one, the way streaming recognizers report partial results.

    Args:
        transcript_lines: Lines of transcript text
        script_text: The script content
        output: File handle to write log output
        verbose: If True, log every fragment. If False, only skips and exploration.
        seconds_per_word: Simulated speaking time per word
        config: Settings (defaults when None)

    Returns:
        List of all tracking events
    """
    return _run_replay(
        transcript_lines, script_text, output, verbose,
        word_by_word=True,
        seconds_per_word=seconds_per_word,
        config=config or DEFAULT_CONFIG
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for debug transcript tool."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Debug transcript tracking by replaying a transcript through a session"
    )

    parser.add_argument(
        "transcript",
        type=Path,
        help="Path to transcript file"
    )

    parser.add_argument(
        "script",
        type=Path,
        help="Path to script file"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output log file path (default: stdout)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every fragment, not just skips"
    )

    parser.add_argument(
        "-w", "--word-by-word",
        action="store_true",
        help="Process transcript word-by-word (simulates interim results)"
    )

    parser.add_argument(
        "--seconds-per-word",
        type=float,
        default=0.4,
        help="Simulated speaking time per word (default: 0.4)"
    )

    args: argparse.Namespace = parser.parse_args(argv)

    # Validate inputs
    if not args.transcript.exists():
        print(
            f"Error: Transcript file not found: {args.transcript}", file=sys.stderr)
        sys.exit(1)

    if not args.script.exists():
        print(f"Error: Script file not found: {args.script}", file=sys.stderr)
        sys.exit(1)

    # Load files
    try:
        transcript_lines: list[str] = load_transcript(args.transcript)
        script_text: str = load_script(args.script)
    except OSError as e:
        print(f"Error loading files: {e}", file=sys.stderr)
        sys.exit(1)

    if not transcript_lines:
        print("Error: No transcript lines found", file=sys.stderr)
        sys.exit(1)

    replay = replay_transcript_word_by_word if args.word_by_word else replay_transcript
    config = load_config()

    # Run replay
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            replay(transcript_lines, script_text, f, args.verbose, args.seconds_per_word, config)
        print(f"Debug log written to: {args.output}")
    else:
        replay(transcript_lines, script_text, sys.stdout, args.verbose, args.seconds_per_word, config)


if __name__ == "__main__":
    main()
