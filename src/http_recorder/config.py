"""Recorder configuration from environment variables or a JSON config file.

Environment variables:
    HTTP_RECORDER_MODE              record | playback | none (default: playback)
    HTTP_RECORDER_DIR               directory for session files (default: SessionRecords)
    HTTP_RECORDER_MATCH_STRATEGY    matching strategy (default: method_and_uri)
    HTTP_RECORDER_IGNORE_PARAMS     comma-separated volatile query parameters
    HTTP_RECORDER_SIMULATE_LATENCY  1/true to sleep for recorded latency on replay
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from http_recorder.core.matcher import DEFAULT_IGNORED_QUERY_PARAMS, RequestMatcher

RecorderMode = Literal["record", "playback", "none"]

ENV_PREFIX = "HTTP_RECORDER_"
DEFAULT_RECORDINGS_DIR = "SessionRecords"


class RecorderConfig(BaseModel):
    """Settings shared by the recorder, the replayer and the pytest plugin."""

    mode: RecorderMode = Field(default="playback", description="Record/replay mode")
    recordings_dir: Path = Field(
        default=Path(DEFAULT_RECORDINGS_DIR), description="Directory for session files"
    )
    match_strategy: str = Field(default="method_and_uri")
    ignore_query_params: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_IGNORED_QUERY_PARAMS)
    )
    simulate_latency: bool = False

    @field_validator("mode", mode="before")
    @classmethod
    def lower_mode(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("match_strategy")
    @classmethod
    def check_strategy(cls, v: str) -> str:
        if v not in RequestMatcher.VALID_STRATEGIES:
            raise ValueError(
                f"Unknown matching strategy: '{v}'. "
                f"Valid strategies: {', '.join(sorted(RequestMatcher.VALID_STRATEGIES))}"
            )
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> RecorderConfig:
        """Build a config from HTTP_RECORDER_* environment variables.

        Raises:
            ValueError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        if environ.get(f"{ENV_PREFIX}MODE"):
            data["mode"] = environ[f"{ENV_PREFIX}MODE"]
        if environ.get(f"{ENV_PREFIX}DIR"):
            data["recordings_dir"] = environ[f"{ENV_PREFIX}DIR"]
        if environ.get(f"{ENV_PREFIX}MATCH_STRATEGY"):
            data["match_strategy"] = environ[f"{ENV_PREFIX}MATCH_STRATEGY"]
        if f"{ENV_PREFIX}IGNORE_PARAMS" in environ:
            data["ignore_query_params"] = [
                p.strip() for p in environ[f"{ENV_PREFIX}IGNORE_PARAMS"].split(",") if p.strip()
            ]
        if environ.get(f"{ENV_PREFIX}SIMULATE_LATENCY"):
            data["simulate_latency"] = environ[f"{ENV_PREFIX}SIMULATE_LATENCY"].lower() in (
                "1", "true", "yes", "on",
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid {ENV_PREFIX}* environment: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> RecorderConfig:
        """Load a config from a JSON file.

        Raises:
            IOError: If the file cannot be read
            ValueError: If the file is not a valid config
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (IOError, OSError) as e:
            raise IOError(f"Failed to read recorder config from {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in recorder config {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Recorder config {path} must be a JSON object")
        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid recorder config in {path}: {e}") from e

        # Relative recordings_dir is resolved against the config file's directory
        if not config.recordings_dir.is_absolute():
            config = config.model_copy(
                update={"recordings_dir": path.resolve().parent / config.recordings_dir}
            )
        return config

    def build_matcher(self) -> RequestMatcher:
        return RequestMatcher(
            strategy=self.match_strategy,  # type: ignore[arg-type]
            ignore_query_params=self.ignore_query_params,
        )

    def session_path(self, suite: str, test_name: str) -> Path:
        """Session file for one test: ``<recordings_dir>/<suite>/<test_name>.json``."""
        return self.recordings_dir / suite / f"{test_name}.json"


__all__ = ["RecorderConfig", "RecorderMode", "DEFAULT_RECORDINGS_DIR", "ENV_PREFIX"]
