"""
Debug logging for diagnosing alignment behaviour over a whole session.

Writes one plain-text file, logs/session_events.log (relative to the working
directory), with every transcript fragment received, every position event
produced, and every tracking/holding flip of the scroll follower.

Logging is disabled by default. Call enable() to turn it on.

Mode flips happen inside the animation tick, so they are buffered in memory
and written ahead of the next entry, or by flush().
"""

import threading
from datetime import datetime
from pathlib import Path

# Log file location (in the working directory)
LOG_DIR: Path = Path.cwd() / "logs"
SESSION_LOG: Path = LOG_DIR / "session_events.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name

# Lines waiting to be written (guarded by _pending_lock)
_pending: list[str] = []
_pending_lock = threading.Lock()


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    SESSION_LOG.parent.mkdir(parents=True, exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _take_pending() -> list[str]:
    with _pending_lock:
        lines = _pending[:]
        _pending.clear()
    return lines


def _write(line: str | None = None) -> None:
    lines = _take_pending()
    if line is not None:
        lines.append(f"[{_timestamp()}] {line}\n")
    if not lines:
        return
    _ensure_log_dir()
    with open(SESSION_LOG, 'a', encoding='utf-8') as f:
        f.writelines(lines)


def flush() -> None:
    """Write any buffered mode changes."""
    if not _ENABLED:
        return
    _write()


def clear_logs() -> None:
    """Truncate the log file for a fresh session."""
    if not _ENABLED:
        return
    _take_pending()
    _ensure_log_dir()
    with open(SESSION_LOG, 'w', encoding='utf-8') as f:
        f.write(
            f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_script_loaded(word_count: int) -> None:
    """Log that a new script replaced the previous one."""
    if not _ENABLED:
        return
    _write(f"script loaded: {word_count} words")


def log_transcript(text: str, is_final: bool) -> None:
    """Log a transcript fragment as received from the recognizer."""
    if not _ENABLED:
        return
    kind = "final" if is_final else "interim"
    _write(f"transcript {kind:7} \"{text[-60:]}\"")


def log_position_event(
    action: str,
    prev_position: int,
    confirmed_position: int,
    word: str = "",
    candidate_position: int | None = None
) -> None:
    """
    Log the outcome of processing one fragment.

    Args:
        action: 'advanced', 'exploring' or 'none'
        prev_position: Confirmed position before the fragment
        confirmed_position: Confirmed position after the fragment
        word: Script word at the confirmed position
        candidate_position: Skip target being corroborated, if exploring
    """
    if not _ENABLED:
        return
    line = f"{action:10} pos={prev_position:4d} -> {confirmed_position:4d} word=\"{word}\""
    if candidate_position is not None:
        line += f" candidate={candidate_position}"
    _write(line)


def log_mode_change(mode: str) -> None:
    """Log a tracking/holding transition of the scroll follower."""
    if not _ENABLED:
        return
    with _pending_lock:
        _pending.append(f"[{_timestamp()}] MODE -> {mode}\n")
