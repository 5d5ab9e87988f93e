"""Session file format — Pydantic models for recorded HTTP sessions.

A session file captures every HTTP exchange made during one test session:
- Session metadata (timestamp, session name, matching strategy, tags)
- Recorded interactions grouped by match key, in first-recorded order
- Generated asset names, so random resource names replay identically
"""

import json
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


FORMAT_VERSION = "1.0.0"


class RecordEntry(BaseModel):
    """Single captured request/response exchange.

    Entries are immutable once created; bodies are stored already normalized.
    """

    model_config = ConfigDict(frozen=True)

    method: str = Field(description="HTTP method (upper-case)")
    uri: str = Field(description="Request target, absolute URL or path")
    request_headers: Dict[str, List[str]] = Field(default_factory=dict)
    request_body: str = Field(default="", description="Request payload text")
    status_code: int = Field(default=0, description="HTTP response status")
    reason: Optional[str] = Field(None, description="Response reason phrase")
    response_headers: Dict[str, List[str]] = Field(default_factory=dict)
    response_body: str = Field(default="", description="Response payload text")
    sequence: Optional[int] = Field(
        None, description="Global recording order across all match keys"
    )
    recorded_at: Optional[datetime] = Field(
        None, description="When the exchange was captured (ISO 8601)"
    )
    latency_ms: float = Field(
        default=0.0, description="Time in milliseconds between request and response"
    )

    @field_validator("method")
    @classmethod
    def upper_method(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def for_request(
        cls,
        method: str,
        uri: str,
        body: Optional[str] = None,
        headers: Optional[Dict[str, List[str]]] = None,
    ) -> "RecordEntry":
        """Build a request-only entry, used to derive a match key on replay."""
        return cls(
            method=method,
            uri=uri,
            request_body=body or "",
            request_headers=headers or {},
        )

    def response_json(self) -> Any:
        """Parse the response body as JSON.

        Raises:
            ValueError: If the body is not valid JSON
        """
        return json.loads(self.response_body)


class SessionMetadata(BaseModel):
    """Metadata about the recorded session."""

    recorded_at: datetime = Field(
        default_factory=datetime.now, description="When the session was recorded"
    )
    session_name: Optional[str] = Field(None, description="Test or session name")
    match_strategy: Optional[str] = Field(
        None, description="Matching strategy the keys were derived with"
    )
    ignore_query_params: Optional[List[str]] = Field(
        None, description="Query parameters left out of the match keys"
    )
    tags: Dict[str, str] = Field(
        default_factory=dict, description="Arbitrary tags for organization"
    )


class SessionRecording(BaseModel):
    """Top-level session file model."""

    format_version: str = Field(
        default=FORMAT_VERSION, description="Session file schema version"
    )
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)
    records: Dict[str, List[RecordEntry]] = Field(
        default_factory=dict, description="Match key -> records in recorded order"
    )
    names: Dict[str, List[str]] = Field(
        default_factory=dict, description="Test name -> generated asset names"
    )

    @field_validator("format_version")
    @classmethod
    def check_major_version(cls, v: str) -> str:
        if v.split(".")[0] != FORMAT_VERSION.split(".")[0]:
            raise ValueError(
                f"Unsupported session format version {v} (expected {FORMAT_VERSION})"
            )
        return v

    def save(self, path: str) -> None:
        """Save the recording to a JSON file.

        The document is written to a temporary file first and moved into
        place, so a failed save never leaves a truncated session file.

        Args:
            path: File path to save to

        Raises:
            IOError: If the file cannot be written
        """
        directory = os.path.dirname(os.path.abspath(path))
        tmp_path = f"{path}.tmp"
        try:
            os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(self.to_json())
            os.replace(tmp_path, path)
        except (IOError, OSError) as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise IOError(f"Failed to save session recording to {path}: {e}") from e

    @classmethod
    def load(cls, path: str) -> "SessionRecording":
        """Load a recording from a JSON file.

        Args:
            path: File path to load from

        Returns:
            SessionRecording instance

        Raises:
            IOError: If the file cannot be read
            ValueError: If the file contains invalid data
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls.model_validate(data)
        except (IOError, OSError) as e:
            raise IOError(f"Failed to read session recording from {path}: {e}") from e
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            raise ValueError(f"Invalid session recording format in {path}: {e}") from e

    def to_json(self) -> str:
        """Convert the recording to a JSON string."""
        return json.dumps(
            self.model_dump(mode="json"),
            indent=2,
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, json_str: str) -> "SessionRecording":
        """Create a recording from a JSON string.

        Raises:
            ValueError: If the JSON is invalid or doesn't match the schema
        """
        try:
            data = json.loads(json_str)
            return cls.model_validate(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in session recording: {e}") from e
        except ValidationError as e:
            raise ValueError(f"Invalid session recording format: {e}") from e

    @property
    def record_count(self) -> int:
        """Total number of records across all match keys."""
        return sum(len(entries) for entries in self.records.values())

    def iter_records(self) -> List[RecordEntry]:
        """All records, in key order then queue order."""
        return [entry for entries in self.records.values() for entry in entries]
