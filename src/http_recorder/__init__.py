"""http-recorder — Record, replay, and diff HTTP interactions."""

__version__ = "0.1.0"

from http_recorder.core.format import RecordEntry, SessionMetadata, SessionRecording
from http_recorder.core.matcher import FunctionMatcher, RecordMatcher, RequestMatcher
from http_recorder.core.records import KeyNotFoundError, Records
from http_recorder.core.utilities import format_string
from http_recorder.config import RecorderConfig
from http_recorder.recorder import HttpRecorder
from http_recorder.replayer import HttpReplayer
from http_recorder.diff import RecordingDiff

__all__ = [
    "RecordEntry",
    "SessionMetadata",
    "SessionRecording",
    "RecordMatcher",
    "RequestMatcher",
    "FunctionMatcher",
    "Records",
    "KeyNotFoundError",
    "format_string",
    "RecorderConfig",
    "HttpRecorder",
    "HttpReplayer",
    "RecordingDiff",
]
