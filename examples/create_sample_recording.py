#!/usr/bin/env python3
"""
Create a sample session recording and replay it.

This script builds a session file without any network traffic:
- A subscription list call (JSON response)
- A network security group create (XML request body)
- Two polls of the same automation job, replayed in recorded order
- A generated resource name that replays identically

Usage:
    python create_sample_recording.py [output_path]

Example:
    python create_sample_recording.py SessionRecords/Samples/test_sample.json
    http-recorder inspect SessionRecords/Samples/test_sample.json --format table
"""

import sys

from http_recorder.core.session import SessionManager
from http_recorder.replayer import HttpReplayer

BASE_URL = "https://management.example.com"


def create_sample_recording(output_path: str) -> None:
    """Record a handful of management API exchanges into ``output_path``."""
    manager = SessionManager()
    manager.start_recording(output_path, session_name="Samples.test_sample", tags={"purpose": "demonstration"})

    manager.record_exchange(
        "GET",
        f"{BASE_URL}/subscriptions?api-version=2014-04-01",
        200,
        response_body='{"value":[{"subscriptionId":"sub-1","state":"Enabled"}]}',
        response_headers={"Content-Type": ["application/json; charset=utf-8"]},
        latency_ms=45.2,
    )

    nsg_name = manager.get_asset_name("test_sample", "nsg")
    manager.record_exchange(
        "PUT",
        f"{BASE_URL}/networking/nsg/{nsg_name}",
        201,
        request_body=f"<NetworkSecurityGroup><Name>{nsg_name}</Name><Location>West US</Location></NetworkSecurityGroup>",
        response_headers={"x-ms-request-id": ["req-1"]},
        latency_ms=123.5,
    )

    for i, status in enumerate(["Running", "Completed"]):
        manager.record_exchange(
            "GET",
            f"{BASE_URL}/automation/jobs/job-1?t={i}",
            200,
            response_body=f'{{"status":"{status}"}}',
            latency_ms=10.0,
        )

    recording = manager.stop_recording()
    print(f"Created sample recording: {output_path}")
    print(f"  Format version: {recording.format_version}")
    print(f"  Records: {recording.record_count}")
    print(f"  Match keys: {len(recording.records)}")


def replay_sample_recording(path: str) -> None:
    """Replay the job polls and show they come back in order."""
    replayer = HttpReplayer.from_file(path)
    print("\nReplay preview:")
    for _ in range(2):
        entry = replayer.handle_request("GET", f"{BASE_URL}/automation/jobs/job-1?t=999")
        print(f"  GET /automation/jobs/job-1 -> {entry.status_code} {entry.response_json()['status']}")
    print(f"  Unreplayed records: {replayer.remaining}")


def main() -> None:
    """Main entry point."""
    output_path = sys.argv[1] if len(sys.argv) > 1 else "sample_session.json"

    try:
        create_sample_recording(output_path)
        replay_sample_recording(output_path)
    except (IOError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
