"""
cuefollow - Voice-to-script alignment for teleprompters.

Follows a reader through a script using transcript fragments from any speech
recognizer, and turns the confirmed reading position into a smoothly
animated scroll offset.
"""

__version__ = "0.1.0"

from .events import PositionEvent, ScrollFrame, Subscription, TranscriptEvent
from .matcher import MatchCandidate, MatcherOptions, MatchResult, WordMatcher
from .position_tracker import PositionTracker, ProcessResult, TrackerOptions
from .scroll_follower import FollowerOptions, ScrollFollower, ScrollGeometry
from .server import WebServer
from .session import PromptSession
from .threaded_session import ThreadedPromptSession
from .transcript_source import ReplayTranscriptSource, TranscriptSource

__all__ = [
    "WordMatcher",
    "MatcherOptions",
    "MatchCandidate",
    "MatchResult",
    "PositionTracker",
    "TrackerOptions",
    "ProcessResult",
    "ScrollFollower",
    "FollowerOptions",
    "ScrollGeometry",
    "PromptSession",
    "ThreadedPromptSession",
    "TranscriptEvent",
    "PositionEvent",
    "ScrollFrame",
    "Subscription",
    "TranscriptSource",
    "ReplayTranscriptSource",
    "WebServer",
]
