"""Pytest plugin for http-recorder - record once, replay in every later run.

Provides pytest options, a marker and fixtures for recording and replaying
HTTP interactions. Session files live at
``<recordings dir>/<suite>/<test name>.json`` where the suite is the test
class name (or module name for plain functions).

Usage:
    # Record against the live service once:
    #   pytest --recorder-mode record
    # Later runs replay (the default mode is playback):
    #   pytest

    @pytest.mark.recording("list_subscriptions")
    def test_list_subscriptions(http_recorder):
        async def scenario():
            async with http_recorder as rec:
                entry = await rec.request("GET", f"{BASE_URL}/subscriptions")
                assert entry.status_code == 200

        asyncio.run(scenario())
"""

from __future__ import annotations

import re
from typing import Any, Optional

import pytest

from http_recorder.config import RecorderConfig
from http_recorder.recorder import HttpRecorder

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def sanitize_name(name: str) -> str:
    """Make a test node name safe for use as a file name."""
    return _UNSAFE_CHARS.sub("_", name).strip("_") or "session"


def session_location(node: Any) -> tuple[str, str]:
    """Return ``(suite, test_name)`` for a collected test item.

    The ``recording`` marker's first argument overrides the test name and its
    ``suite`` keyword overrides the suite.
    """
    cls = getattr(node, "cls", None)
    if cls is not None:
        suite = cls.__name__
    else:
        module = getattr(node, "module", None)
        suite = module.__name__.rsplit(".", 1)[-1] if module is not None else "default"
    test_name = node.name

    marker = node.get_closest_marker("recording")
    if marker is not None:
        if marker.args:
            test_name = marker.args[0]
        suite = marker.kwargs.get("suite", suite)

    return sanitize_name(suite), sanitize_name(test_name)


def build_config(
    mode: Optional[str] = None,
    recordings_dir: Optional[str] = None,
    base: Optional[RecorderConfig] = None,
) -> RecorderConfig:
    """Environment config with command-line overrides applied."""
    config = base or RecorderConfig.from_env()
    update: dict[str, Any] = {}
    if mode:
        update["mode"] = mode
    if recordings_dir:
        update["recordings_dir"] = recordings_dir
    if update:
        config = RecorderConfig.model_validate({**config.model_dump(), **update})
    return config


def pytest_addoption(parser: Any) -> None:
    """Add pytest command-line options for http-recorder.

    Options:
        --recorder-mode: record, playback or none (default: HTTP_RECORDER_MODE or playback)
        --recordings-dir: Directory for session files (default: HTTP_RECORDER_DIR or SessionRecords)
    """
    group = parser.getgroup("http_recorder")
    group.addoption(
        "--recorder-mode",
        choices=["record", "playback", "none"],
        default=None,
        help="Record live HTTP traffic, replay recorded sessions, or pass through",
    )
    group.addoption(
        "--recordings-dir",
        default=None,
        help="Directory for recorded session files",
    )


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers",
        "recording(name, suite=None): Session file name (and suite directory) for this test",
    )
    try:
        config.http_recorder_config = build_config(
            mode=config.getoption("--recorder-mode"),
            recordings_dir=config.getoption("--recordings-dir"),
        )
    except ValueError as e:
        raise pytest.UsageError(f"http-recorder: {e}") from e


@pytest.fixture
def recorder_config(request: Any) -> RecorderConfig:
    """The resolved RecorderConfig for this test run."""
    return request.config.http_recorder_config


@pytest.fixture
def http_recorder(request: Any, recorder_config: RecorderConfig) -> HttpRecorder:
    """An HttpRecorder (not yet started) bound to this test's session file.

    Use it with ``async with http_recorder as rec:``; record mode saves the
    session file on exit, playback mode fails fast when it is missing.
    """
    suite, test_name = session_location(request.node)
    if recorder_config.mode == "playback":
        path = recorder_config.session_path(suite, test_name)
        if not path.exists():
            pytest.fail(
                f"Recorded session not found: {path}. "
                f"Run with --recorder-mode record to create it."
            )
    return HttpRecorder.from_config(recorder_config, suite, test_name)
