"""Core data models and utilities for http-recorder."""

from http_recorder.core.format import RecordEntry, SessionMetadata, SessionRecording
from http_recorder.core.matcher import FunctionMatcher, RecordMatcher, RequestMatcher
from http_recorder.core.records import KeyNotFoundError, Records
from http_recorder.core.session import SessionManager
from http_recorder.core.utilities import format_string

__all__ = [
    "RecordEntry",
    "SessionMetadata",
    "SessionRecording",
    "RecordMatcher",
    "RequestMatcher",
    "FunctionMatcher",
    "Records",
    "KeyNotFoundError",
    "SessionManager",
    "format_string",
]
