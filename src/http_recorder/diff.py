"""RecordingDiff — Compare two session recordings and produce a structured diff.

Useful when re-recording: diff the fresh session against the committed one to
see which responses changed before replacing it.

Usage:
    diff = RecordingDiff.compare("baseline.json", "current.json")
    print(diff.summary())
    diff.print_detailed()

    assert diff.is_compatible, f"Breaking changes detected: {diff.breaking_changes}"
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from deepdiff import DeepDiff
from rich.console import Console
from rich.table import Table

from http_recorder.core.format import RecordEntry, SessionRecording

logger = logging.getLogger(__name__)


def _parsed_body(body: str) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return body


def _response_view(entry: RecordEntry) -> dict[str, Any]:
    return {"status_code": entry.status_code, "body": _parsed_body(entry.response_body)}


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


@dataclass
class ModifiedRecord:
    """A record present in both sessions whose response differs.

    Attributes:
        key: Match key the records are filed under
        index: Position within the key's queue
        baseline: Record from the baseline session
        current: Record from the current session
        response_diff: DeepDiff of status code and (parsed) body
    """

    key: str
    index: int
    baseline: RecordEntry
    current: RecordEntry
    response_diff: dict[str, Any] = field(default_factory=dict)

    @property
    def removed_fields(self) -> list[str]:
        """Top-level JSON response fields present in baseline but missing now."""
        before = _parsed_body(self.baseline.response_body)
        after = _parsed_body(self.current.response_body)
        if isinstance(before, dict) and isinstance(after, dict):
            return sorted(set(before) - set(after))
        return []

    @property
    def is_compatible(self) -> bool:
        """A change is compatible if success stays success and no fields vanish."""
        if _is_success(self.baseline.status_code) != _is_success(self.current.status_code):
            return False
        return not self.removed_fields

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "index": self.index,
            "baseline_status": self.baseline.status_code,
            "current_status": self.current.status_code,
            "removed_fields": self.removed_fields,
            "response_diff": self.response_diff,
            "is_compatible": self.is_compatible,
        }


@dataclass
class RecordingDiffResult:
    """Result of comparing two session recordings."""

    is_identical: bool
    is_compatible: bool
    added_records: list[tuple[str, RecordEntry]] = field(default_factory=list)
    removed_records: list[tuple[str, RecordEntry]] = field(default_factory=list)
    modified_records: list[ModifiedRecord] = field(default_factory=list)
    breaking_changes: list[str] = field(default_factory=list)

    def summary(self) -> str:
        """Generate a concise text summary of the diff."""
        if self.is_identical:
            return "Recordings are identical."

        lines = ["Differences detected:"]
        lines.append(f"  Added records: {len(self.added_records)}")
        lines.append(f"  Removed records: {len(self.removed_records)}")
        lines.append(f"  Modified records: {len(self.modified_records)}")

        if self.is_compatible:
            lines.append("\nStatus: COMPATIBLE (no breaking changes)")
        else:
            lines.append("\nStatus: INCOMPATIBLE (breaking changes detected)")
            lines.append("\nBreaking changes:")
            for change in self.breaking_changes:
                lines.append(f"  - {change}")

        return "\n".join(lines)

    def print_detailed(self, console: Optional[Console] = None) -> None:
        """Print a richly formatted diff."""
        console = console or Console()

        if self.is_identical:
            console.print("[green]✓[/green] Recordings are identical")
            return

        summary_table = Table(show_header=True, header_style="bold magenta")
        summary_table.add_column("Category")
        summary_table.add_column("Count")
        summary_table.add_row("Added", str(len(self.added_records)))
        summary_table.add_row("Removed", str(len(self.removed_records)))
        summary_table.add_row("Modified", str(len(self.modified_records)))
        console.print(summary_table)

        for title, style, records in (
            ("Added Records", "green", self.added_records),
            ("Removed Records", "red", self.removed_records),
        ):
            if not records:
                continue
            console.print(f"\n[bold {style}]{title}[/bold {style}]")
            table = Table(show_header=True, header_style="bold")
            table.add_column("Key")
            table.add_column("Status")
            for key, entry in records:
                table.add_row(key, str(entry.status_code))
            console.print(table)

        if self.modified_records:
            console.print("\n[bold yellow]Modified Records[/bold yellow]")
            table = Table(show_header=True, header_style="bold")
            table.add_column("Key")
            table.add_column("#")
            table.add_column("Status")
            table.add_column("Compatible")
            for mod in self.modified_records:
                status = f"{mod.baseline.status_code} → {mod.current.status_code}"
                compatible = "[green]Yes[/green]" if mod.is_compatible else "[red]No[/red]"
                table.add_row(mod.key, str(mod.index), status, compatible)
            console.print(table)

        if self.breaking_changes:
            console.print("\n[bold red]Breaking Changes[/bold red]")
            for change in self.breaking_changes:
                console.print(f"  [red]✗[/red] {change}")
        else:
            console.print("\n[bold green]No breaking changes detected[/bold green]")

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_identical": self.is_identical,
            "is_compatible": self.is_compatible,
            "added": [{"key": k, "status_code": e.status_code} for k, e in self.added_records],
            "removed": [{"key": k, "status_code": e.status_code} for k, e in self.removed_records],
            "modified": [m.to_dict() for m in self.modified_records],
            "breaking_changes": self.breaking_changes,
        }


class RecordingDiff:
    """Utility for comparing two session recordings."""

    @classmethod
    def compare(
        cls,
        baseline: str | Path | SessionRecording,
        current: str | Path | SessionRecording,
    ) -> RecordingDiffResult:
        """Compare two recordings key by key, pairing records by queue position.

        Raises:
            FileNotFoundError: If file paths don't exist
            ValueError: If recordings are invalid
        """
        baseline_recording = cls._coerce(baseline)
        current_recording = cls._coerce(current)

        logger.info(
            f"Comparing recordings: {baseline_recording.record_count} baseline vs "
            f"{current_recording.record_count} current"
        )

        added: list[tuple[str, RecordEntry]] = []
        removed: list[tuple[str, RecordEntry]] = []
        modified: list[ModifiedRecord] = []
        breaking_changes: list[str] = []

        base_records = baseline_recording.records
        cur_records = current_recording.records

        for key, base_list in base_records.items():
            cur_list = cur_records.get(key)
            if cur_list is None:
                removed.extend((key, e) for e in base_list)
                breaking_changes.append(f"Request no longer made: {key}")
                continue

            for index, (base_entry, cur_entry) in enumerate(zip(base_list, cur_list)):
                mod = cls._diff_records(key, index, base_entry, cur_entry)
                if mod is None:
                    continue
                modified.append(mod)
                if not mod.is_compatible:
                    if mod.removed_fields:
                        breaking_changes.append(
                            f"{key} #{index}: response fields removed: {', '.join(mod.removed_fields)}"
                        )
                    else:
                        breaking_changes.append(
                            f"{key} #{index}: status {base_entry.status_code} → {cur_entry.status_code}"
                        )

            removed.extend((key, e) for e in base_list[len(cur_list):])
            added.extend((key, e) for e in cur_list[len(base_list):])

        for key, cur_list in cur_records.items():
            if key not in base_records:
                added.extend((key, e) for e in cur_list)

        is_identical = not added and not removed and not modified
        is_compatible = not breaking_changes

        logger.info(f"Diff complete: identical={is_identical}, compatible={is_compatible}")

        return RecordingDiffResult(
            is_identical=is_identical,
            is_compatible=is_compatible,
            added_records=added,
            removed_records=removed,
            modified_records=modified,
            breaking_changes=breaking_changes,
        )

    @staticmethod
    def _coerce(recording: str | Path | SessionRecording) -> SessionRecording:
        if isinstance(recording, SessionRecording):
            return recording
        path = Path(recording)
        if not path.exists():
            raise FileNotFoundError(f"Session file not found: {path}")
        return SessionRecording.load(str(path))

    @staticmethod
    def _diff_records(
        key: str, index: int, baseline: RecordEntry, current: RecordEntry
    ) -> Optional[ModifiedRecord]:
        before = _response_view(baseline)
        after = _response_view(current)
        if before == after:
            return None
        return ModifiedRecord(
            key=key,
            index=index,
            baseline=baseline,
            current=current,
            response_diff=DeepDiff(before, after).to_dict(),
        )


__all__ = ["RecordingDiff", "RecordingDiffResult", "ModifiedRecord"]
