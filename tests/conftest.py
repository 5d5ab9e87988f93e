"""Shared fixtures and test utilities for http-recorder tests."""

from datetime import datetime
from pathlib import Path

import pytest

from http_recorder.core.format import RecordEntry, SessionMetadata, SessionRecording
from http_recorder.core.matcher import RequestMatcher
from http_recorder.core.records import Records


# ===== Record Fixtures =====


@pytest.fixture
def list_subscriptions_entry() -> RecordEntry:
    """GET of the subscription list."""
    return RecordEntry(
        method="GET",
        uri="https://management.example.com/subscriptions?api-version=2014-04-01",
        request_headers={"Accept": ["application/json"]},
        status_code=200,
        reason="OK",
        response_headers={"Content-Type": ["application/json; charset=utf-8"]},
        response_body='{\n  "value": [\n    {\n      "subscriptionId": "sub-1"\n    }\n  ]\n}',
        sequence=0,
        recorded_at=datetime(2024, 1, 15, 10, 30, 0),
        latency_ms=42.0,
    )


@pytest.fixture
def create_nsg_entry() -> RecordEntry:
    """PUT creating a network security group."""
    return RecordEntry(
        method="PUT",
        uri="https://management.example.com/networking/nsg/web-nsg",
        request_headers={"Content-Type": ["application/xml"]},
        request_body="<NetworkSecurityGroup>\n  <Name>web-nsg</Name>\n</NetworkSecurityGroup>",
        status_code=201,
        reason="Created",
        response_headers={"x-ms-request-id": ["req-1"]},
        response_body="",
        sequence=1,
        recorded_at=datetime(2024, 1, 15, 10, 30, 1),
        latency_ms=120.0,
    )


@pytest.fixture
def get_job_entries() -> list[RecordEntry]:
    """Two polls of the same automation job, first running then completed."""
    return [
        RecordEntry(
            method="GET",
            uri=f"https://management.example.com/automation/jobs/job-1?t={i}",
            status_code=200,
            response_body=f'{{\n  "status": "{status}"\n}}',
            sequence=2 + i,
            recorded_at=datetime(2024, 1, 15, 10, 30, 2 + i),
            latency_ms=10.0,
        )
        for i, status in enumerate(["Running", "Completed"])
    ]


@pytest.fixture
def sample_records(list_subscriptions_entry, create_nsg_entry, get_job_entries) -> Records:
    """Store holding a subscription list, an NSG create and two job polls."""
    records = Records(RequestMatcher())
    records.enqueue_range([list_subscriptions_entry, create_nsg_entry, *get_job_entries])
    return records


@pytest.fixture
def sample_recording(sample_records: Records) -> SessionRecording:
    """Complete session recording built from sample_records."""
    return sample_records.to_recording(
        metadata=SessionMetadata(
            recorded_at=datetime(2024, 1, 15, 10, 30, 0),
            session_name="SubscriptionTests.test_list",
            match_strategy="method_and_uri",
            tags={"environment": "test"},
        ),
        names={"test_list": ["onesdk1234"]},
    )


@pytest.fixture
def sample_recording_file(tmp_path: Path, sample_recording: SessionRecording) -> Path:
    """sample_recording saved to a temporary session file."""
    path = tmp_path / "session.json"
    sample_recording.save(str(path))
    return path
