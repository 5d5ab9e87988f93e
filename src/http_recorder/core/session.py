"""Session manager for tracking record/replay state and session file lifecycle."""

import logging
import random
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Literal, Optional

from http_recorder.core.format import RecordEntry, SessionMetadata, SessionRecording
from http_recorder.core.matcher import (
    DEFAULT_IGNORED_QUERY_PARAMS,
    MatcherLike,
    RecordMatcher,
    RequestMatcher,
    as_matcher,
)
from http_recorder.core.records import KeyNotFoundError, Records
from http_recorder.core.utilities import format_string

logger = logging.getLogger(__name__)


SessionState = Literal["idle", "recording", "replaying"]


class SessionManager:
    """Manages one recording or replay session.

    Tracks:
    - Current state (idle, recording, replaying)
    - The session store and the file it is persisted to
    - Global sequence numbering of recorded interactions
    - Generated asset names, so random resource names replay identically
    """

    def __init__(self, matcher: Optional[MatcherLike] = None) -> None:
        """Initialize the session manager in idle state.

        Args:
            matcher: Matching strategy for the session store
                (defaults to RequestMatcher(); on replay, to the strategy and
                ignored query parameters stored with the session)
        """
        self._matcher: RecordMatcher = as_matcher(matcher)
        self._matcher_given = matcher is not None
        self._state: SessionState = "idle"
        self._records: Optional[Records] = None
        self._path: Optional[str] = None
        self._metadata: Optional[SessionMetadata] = None
        self._names: Dict[str, Deque[str]] = {}
        self._sequence = 0

    @property
    def matcher(self) -> RecordMatcher:
        return self._matcher

    @property
    def is_recording(self) -> bool:
        return self._state == "recording"

    @property
    def is_replaying(self) -> bool:
        return self._state == "replaying"

    @property
    def current_state(self) -> SessionState:
        return self._state

    @property
    def records(self) -> Optional[Records]:
        """The active session store, or None when idle."""
        return self._records

    @property
    def path(self) -> Optional[str]:
        return self._path

    def start_recording(
        self,
        path: str,
        session_name: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        """Start a new recording session that will be saved to ``path``.

        Raises:
            RuntimeError: If a session is already active
        """
        self._require_idle()
        self._records = Records(matcher=self._matcher)
        ignored = getattr(self._matcher, "ignore_query_params", None)
        self._metadata = SessionMetadata(
            recorded_at=datetime.now(),
            session_name=session_name,
            match_strategy=getattr(self._matcher, "strategy", None),
            ignore_query_params=sorted(ignored) if ignored is not None else None,
            tags=tags or {},
        )
        self._path = path
        self._names = {}
        self._sequence = 0
        self._state = "recording"
        logger.info(f"Recording session started (output={path})")

    def record(self, record: RecordEntry) -> RecordEntry:
        """Number ``record`` with the next sequence and add it to the store.

        Returns:
            The stored entry (a copy carrying the sequence number)

        Raises:
            RuntimeError: If not currently recording
        """
        self._require_state("recording")
        entry = record.model_copy(update={"sequence": self._sequence})
        self._sequence += 1
        self._records.enqueue(entry)
        return entry

    def record_exchange(
        self,
        method: str,
        uri: str,
        status_code: int,
        request_body: Optional[str] = None,
        response_body: Optional[str] = None,
        request_headers: Optional[Dict[str, List[str]]] = None,
        response_headers: Optional[Dict[str, List[str]]] = None,
        reason: Optional[str] = None,
        latency_ms: float = 0.0,
    ) -> RecordEntry:
        """Capture one request/response exchange with normalized bodies.

        Raises:
            RuntimeError: If not currently recording
        """
        entry = RecordEntry(
            method=method,
            uri=uri,
            request_headers=request_headers or {},
            request_body=format_string(request_body) or "",
            status_code=status_code,
            reason=reason,
            response_headers=response_headers or {},
            response_body=format_string(response_body) or "",
            recorded_at=datetime.now(),
            latency_ms=latency_ms,
        )
        return self.record(entry)

    def stop_recording(self) -> SessionRecording:
        """Stop recording and save the session file.

        Returns:
            The saved SessionRecording

        Raises:
            RuntimeError: If not currently recording
            IOError: If the session file cannot be written
        """
        self._require_state("recording")
        recording = self._records.to_recording(
            metadata=self._metadata,
            names={name: list(values) for name, values in self._names.items()},
        )
        path = self._path
        recording.save(path)
        self.reset()
        logger.info(f"Recording saved to {path} ({recording.record_count} records)")
        return recording

    def start_replaying(self, path: str) -> SessionRecording:
        """Load ``path`` and start serving its records.

        Raises:
            RuntimeError: If a session is already active
            IOError: If the file cannot be read
            ValueError: If the file is not a valid session recording
        """
        self._require_idle()
        recording = SessionRecording.load(path)
        matcher = self._matcher if self._matcher_given else _recorded_matcher(recording.metadata)
        self._records = Records.from_dict(recording.records, matcher=matcher)
        self._metadata = recording.metadata
        self._names = {name: deque(values) for name, values in recording.names.items()}
        self._path = path
        self._state = "replaying"
        logger.info(f"Replaying {recording.record_count} records from {path}")
        return recording

    def next_record(
        self,
        method: str,
        uri: str,
        body: Optional[str] = None,
        headers: Optional[Dict[str, List[str]]] = None,
    ) -> RecordEntry:
        """Return the next recorded response for an outgoing request.

        Raises:
            RuntimeError: If not currently replaying
            KeyNotFoundError: If nothing recorded remains for the request
        """
        self._require_state("replaying")
        probe = RecordEntry.for_request(method, uri, format_string(body), headers)
        key = self._records.matcher.get_matching_key(probe)
        record = self._records.dequeue(key)
        logger.debug(f"Replaying {record.status_code} for '{key}'")
        return record

    def stop_replaying(self) -> int:
        """Stop replaying.

        Returns:
            Number of recorded interactions that were never consumed
        """
        self._require_state("replaying")
        remaining = len(self._records)
        if remaining:
            logger.warning(
                f"{remaining} recorded interactions were not replayed "
                f"(keys: {', '.join(self._records.keys())})"
            )
        self.reset()
        return remaining

    def get_asset_name(self, test_name: str, prefix: str = "onesdk") -> str:
        """Return a resource name that is random when recording and stable on replay.

        Raises:
            RuntimeError: If no session is active
            KeyNotFoundError: On replay, when no recorded name remains for ``test_name``
        """
        if self.is_recording:
            name = f"{prefix}{random.randint(1000, 9999)}"
            self._names.setdefault(test_name, deque()).append(name)
            return name
        if self.is_replaying:
            names = self._names.get(test_name)
            if not names:
                raise KeyNotFoundError(
                    test_name, f"No recorded asset names remaining for '{test_name}'"
                )
            return names.popleft()
        raise RuntimeError("No active session. Call start_recording() or start_replaying() first.")

    def reset(self) -> None:
        """Reset to idle state, discarding the current store."""
        self._state = "idle"
        self._records = None
        self._path = None
        self._metadata = None
        self._names = {}
        self._sequence = 0

    def _require_idle(self) -> None:
        if self._state != "idle":
            raise RuntimeError(
                f"Session already active (state '{self._state}'). Stop it first."
            )

    def _require_state(self, state: SessionState) -> None:
        if self._state != state:
            raise RuntimeError(
                f"Not {state}. Current state is '{self._state}'."
            )


def _recorded_matcher(metadata: SessionMetadata) -> RequestMatcher:
    """Rebuild the matcher a session was recorded with from its metadata."""
    ignored = metadata.ignore_query_params
    return RequestMatcher(
        strategy=metadata.match_strategy or "method_and_uri",  # type: ignore[arg-type]
        ignore_query_params=DEFAULT_IGNORED_QUERY_PARAMS if ignored is None else ignored,
    )
