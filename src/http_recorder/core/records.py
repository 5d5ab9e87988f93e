"""Session store — match key to FIFO queue of recorded interactions."""

import logging
from collections import deque
from typing import Deque, Dict, Iterable, Iterator, List, Optional

from http_recorder.core.format import RecordEntry, SessionMetadata, SessionRecording
from http_recorder.core.matcher import MatcherLike, RecordMatcher, as_matcher

logger = logging.getLogger(__name__)


class KeyNotFoundError(KeyError):
    """No recorded interaction remains for a match key."""

    def __init__(self, key: str, message: Optional[str] = None) -> None:
        super().__init__(key)
        self.key = key
        self.message = message or f"No recorded interactions remaining for key '{key}'"

    def __str__(self) -> str:
        return self.message


class Records:
    """Recorded interactions grouped by match key.

    Records sharing a key are replayed strictly in first-recorded order.
    The store is not thread-safe; one store belongs to one session.
    """

    def __init__(
        self,
        matcher: Optional[MatcherLike] = None,
        records: Optional[Dict[str, Iterable[RecordEntry]]] = None,
    ) -> None:
        """Initialize the store.

        Args:
            matcher: RecordMatcher or ``RecordEntry -> str`` callable
                (defaults to RequestMatcher())
            records: Optional pre-grouped records, copied into the store
        """
        self.matcher: RecordMatcher = as_matcher(matcher)
        self._records: Dict[str, Deque[RecordEntry]] = {}
        for key, entries in (records or {}).items():
            self._records[key] = deque(entries)

    def enqueue(self, record: RecordEntry) -> str:
        """Append ``record`` to the queue for its match key.

        Returns:
            The match key the record was filed under
        """
        key = self.matcher.get_matching_key(record)
        if key not in self._records:
            self._records[key] = deque()
        self._records[key].append(record)
        logger.debug(f"Enqueued {record.method} {record.uri} under '{key}'")
        return key

    def enqueue_range(self, records: Iterable[RecordEntry]) -> None:
        for record in records:
            self.enqueue(record)

    def dequeue(self, key: str) -> RecordEntry:
        """Remove and return the oldest record for ``key``.

        Raises:
            KeyNotFoundError: If no record remains for ``key``
        """
        queue = self._records.get(key)
        if not queue:
            raise KeyNotFoundError(key)
        record = queue.popleft()
        if not queue:
            del self._records[key]
        return record

    def dequeue_all_by_key(self, key: str) -> List[RecordEntry]:
        """Remove and return every record for ``key`` in recorded order.

        Raises:
            KeyNotFoundError: If ``key`` was never recorded or is already drained
        """
        queue = self._records.pop(key, None)
        if not queue:
            raise KeyNotFoundError(key)
        return list(queue)

    def drain_all(self) -> Iterator[RecordEntry]:
        """Lazily yield every record, consuming the store as it goes.

        Keys are visited in the order they were first recorded; within a key
        records come out in FIFO order. Records are not interleaved across
        keys by recording time. Use peek_all() to look without consuming.
        """
        for key in list(self._records):
            queue = self._records.get(key)
            while queue:
                yield queue.popleft()
            self._records.pop(key, None)

    def peek_all(self, chronological: bool = False) -> List[RecordEntry]:
        """Return all records without consuming them.

        Args:
            chronological: Order by recorded sequence number instead of by key.
                Records without a sequence number sort last.
        """
        entries = [entry for queue in self._records.values() for entry in queue]
        if chronological:
            entries.sort(
                key=lambda e: (e.sequence is None, e.sequence if e.sequence is not None else 0)
            )
        return entries

    def keys(self) -> List[str]:
        return list(self._records)

    def count(self, key: str) -> int:
        """Number of records remaining for ``key`` (0 if unknown)."""
        return len(self._records.get(key, ()))

    def __getitem__(self, key: str) -> Deque[RecordEntry]:
        try:
            return self._records[key]
        except KeyError:
            raise KeyNotFoundError(key) from None

    def __setitem__(self, key: str, entries: Iterable[RecordEntry]) -> None:
        self._records[key] = deque(entries)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._records.values())

    def __repr__(self) -> str:
        return f"Records(keys={len(self._records)}, records={len(self)}, matcher={self.matcher!r})"

    def to_dict(self) -> Dict[str, List[RecordEntry]]:
        """Copy of the store as ``{key: [records]}`` (non-destructive)."""
        return {key: list(queue) for key, queue in self._records.items()}

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Iterable[RecordEntry]],
        matcher: Optional[MatcherLike] = None,
    ) -> "Records":
        return cls(matcher=matcher, records=data)

    def to_recording(
        self,
        metadata: Optional[SessionMetadata] = None,
        names: Optional[Dict[str, List[str]]] = None,
    ) -> SessionRecording:
        return SessionRecording(
            metadata=metadata or SessionMetadata(),
            records=self.to_dict(),
            names=names or {},
        )

    def save(self, path: str, metadata: Optional[SessionMetadata] = None) -> SessionRecording:
        """Persist the store to a session file.

        Raises:
            IOError: If the file cannot be written
        """
        recording = self.to_recording(metadata)
        recording.save(path)
        logger.info(f"Saved {len(self)} records under {len(self._records)} keys to {path}")
        return recording

    @classmethod
    def load(cls, path: str, matcher: Optional[MatcherLike] = None) -> "Records":
        """Load a store from a session file.

        Raises:
            IOError: If the file cannot be read
            ValueError: If the file is not a valid session recording
        """
        recording = SessionRecording.load(path)
        store = cls.from_dict(recording.records, matcher=matcher)
        logger.info(f"Loaded {len(store)} records from {path}")
        return store
