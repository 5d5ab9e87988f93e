"""http-recorder CLI for recording, replaying, inspecting and diffing HTTP sessions."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections import Counter
from pathlib import Path

import click
from rich.console import Console
from rich.json import JSON
from rich.logging import RichHandler
from rich.table import Table

from http_recorder import __version__
from http_recorder.core.format import SessionRecording
from http_recorder.core.matcher import RequestMatcher
from http_recorder.core.utilities import clean_directory, format_string
from http_recorder.diff import RecordingDiff, RecordingDiffResult
from http_recorder.recorder import HttpRecorder
from http_recorder.replayer import HttpReplayer

console = Console()

STRATEGY_CHOICE = click.Choice(sorted(RequestMatcher.VALID_STRATEGIES))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging level for recorder internals",
)
def cli(log_level: str) -> None:
    """http-recorder - Record, replay, and diff HTTP interactions."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


@cli.command()
@click.option("--upstream", required=True, help="Base URL of the live service to record")
@click.option(
    "--output", "-o", required=True, type=click.Path(), help="Output path for the session file"
)
@click.option("--host", default="127.0.0.1", help="Host to bind the recording proxy to")
@click.option("--port", type=int, default=8089, help="Port to bind the recording proxy to")
@click.option(
    "--match-strategy",
    type=STRATEGY_CHOICE,
    default="method_and_uri",
    help="Strategy for grouping recorded requests",
)
@click.option(
    "--tag",
    "tags",
    multiple=True,
    help="Add tags to the recording (key=value, can be specified multiple times)",
)
def record(
    upstream: str,
    output: str,
    host: str,
    port: int,
    match_strategy: str,
    tags: tuple[str, ...],
) -> None:
    """Record HTTP traffic through a local proxy into a session file.

    Example:
        http-recorder record --upstream https://management.example.com -o session.json
    """
    tag_dict = {}
    for tag in tags:
        if "=" not in tag:
            raise click.ClickException(f"Invalid tag format: {tag}. Use key=value")
        key, value = tag.split("=", 1)
        tag_dict[key] = value

    recorder = HttpRecorder(
        mode="record",
        path=output,
        matcher=RequestMatcher(strategy=match_strategy),  # type: ignore[arg-type]
        session_name=Path(output).stem,
        tags=tag_dict,
    )

    console.print("[bold green]Starting recording proxy[/bold green]")
    console.print(f"  Upstream: {upstream}")
    console.print(f"  Proxy: http://{host}:{port}")
    console.print(f"  Output: {output}")
    console.print()
    console.print("[yellow]Press Ctrl+C to stop recording[/yellow]")

    try:
        asyncio.run(recorder.serve_proxy(upstream, host=host, port=port))
    except KeyboardInterrupt:
        console.print(f"\n[green]Recording saved to {output}[/green]")
    except Exception as e:
        raise click.ClickException(f"Recording failed: {e}")


@cli.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--host", default="127.0.0.1", help="Host to bind the replay server to")
@click.option("--port", type=int, default=8089, help="Port to bind the replay server to")
@click.option(
    "--match-strategy",
    type=STRATEGY_CHOICE,
    default=None,
    help="Override the strategy the session was recorded with",
)
@click.option("--simulate-latency", is_flag=True, help="Sleep for the recorded latency")
def replay(
    file: str,
    host: str,
    port: int,
    match_strategy: str | None,
    simulate_latency: bool,
) -> None:
    """Serve a session file as a mock HTTP backend.

    Example:
        http-recorder replay session.json --port 8089
    """
    try:
        replayer = HttpReplayer.from_file(
            file, match_strategy=match_strategy, simulate_latency=simulate_latency
        )
    except Exception as e:
        raise click.ClickException(f"Replay failed: {e}")

    console.print("[bold green]Loaded recording[/bold green]")
    console.print(f"  Records: {replayer.remaining}")
    console.print(f"  Match strategy: {replayer.match_strategy}")
    console.print(f"  URL: http://{host}:{port}")
    console.print("[yellow]Waiting for requests...[/yellow]")

    try:
        asyncio.run(replayer.serve(host, port))
    except KeyboardInterrupt:
        console.print("\n[yellow]Replay interrupted by user[/yellow]")
    except Exception as e:
        raise click.ClickException(f"Replay failed: {e}")


@cli.command()
@click.argument("file", type=click.Path(exists=True))
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["text", "json", "table"]),
    default="text",
    help="Output format for inspection",
)
def inspect(file: str, fmt: str) -> None:
    """Inspect the contents of a session file.

    Example:
        http-recorder inspect session.json --format table
    """
    try:
        recording = SessionRecording.load(file)
    except Exception as e:
        raise click.ClickException(f"Inspection failed: {e}")

    if fmt == "json":
        _output_inspect_json(recording)
    elif fmt == "table":
        _output_inspect_table(recording)
    else:
        _output_inspect_text(recording)


@cli.command()
@click.argument("baseline", type=click.Path(exists=True))
@click.argument("current", type=click.Path(exists=True))
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format for the diff report",
)
@click.option("--fail-on-breaking", is_flag=True, help="Exit with code 1 on breaking changes")
def diff(baseline: str, current: str, fmt: str, fail_on_breaking: bool) -> None:
    """Compare two session files.

    Example:
        http-recorder diff baseline.json current.json --fail-on-breaking
    """
    try:
        result = RecordingDiff.compare(baseline, current)
    except Exception as e:
        raise click.ClickException(f"Diff failed: {e}")

    if fmt == "json":
        console.print(JSON(json.dumps(result.to_dict(), default=str)))
    else:
        _output_diff_text(result)

    if fail_on_breaking and result.breaking_changes:
        sys.exit(1)


@cli.command()
@click.argument("file", type=click.File("r", encoding="utf-8"))
def normalize(file) -> None:
    """Print a payload file in normalized (indented) form.

    Example:
        http-recorder normalize response.xml
    """
    click.echo(format_string(file.read()))


@cli.command()
@click.argument("directory", type=click.Path(file_okay=False))
@click.confirmation_option(prompt="Delete every recorded session in this directory?")
def clean(directory: str) -> None:
    """Remove every session file under DIRECTORY."""
    removed = clean_directory(directory)
    console.print(f"[green]Removed {removed} entries from {directory}[/green]")


def _output_diff_text(result: RecordingDiffResult) -> None:
    console.print(result.summary())
    console.print()
    if result.is_identical:
        console.print("[bold green]✓ Recordings are identical[/bold green]")
        return
    if result.is_compatible:
        console.print("[bold yellow]⚠ Recordings are compatible but differ[/bold yellow]")
    else:
        console.print("[bold red]✗ Recordings are incompatible[/bold red]")
    console.print()
    result.print_detailed(console)


def _key_counts(recording: SessionRecording) -> Counter:
    return Counter({key: len(entries) for key, entries in recording.records.items()})


def _output_inspect_text(recording: SessionRecording) -> None:
    meta = recording.metadata
    console.print("[bold cyan]Metadata[/bold cyan]")
    console.print(f"  Format: {recording.format_version}")
    console.print(f"  Recorded: {meta.recorded_at}")
    if meta.session_name:
        console.print(f"  Session: {meta.session_name}")
    if meta.match_strategy:
        console.print(f"  Match strategy: {meta.match_strategy}")
    console.print(f"  Tags: {json.dumps(meta.tags)}")

    console.print()
    console.print("[bold cyan]Statistics[/bold cyan]")
    console.print(f"  Total records: {recording.record_count}")
    console.print(f"  Match keys: {len(recording.records)}")
    for key, count in _key_counts(recording).most_common():
        console.print(f"    • {key}: {count}")

    if recording.names:
        console.print()
        console.print("[bold cyan]Asset names[/bold cyan]")
        for test_name, names in recording.names.items():
            console.print(f"  {test_name}: {', '.join(names)}")


def _output_inspect_json(recording: SessionRecording) -> None:
    output = {
        "format_version": recording.format_version,
        "metadata": recording.metadata.model_dump(mode="json"),
        "statistics": {
            "total_records": recording.record_count,
            "keys": dict(_key_counts(recording)),
        },
    }
    console.print(JSON(json.dumps(output, indent=2)))


def _output_inspect_table(recording: SessionRecording) -> None:
    table = Table(title="Recorded Requests")
    table.add_column("#", justify="right")
    table.add_column("Method", style="cyan")
    table.add_column("URI")
    table.add_column("Status", style="magenta", justify="right")
    table.add_column("Latency (ms)", justify="right")

    entries = sorted(
        recording.iter_records(),
        key=lambda e: (e.sequence is None, e.sequence if e.sequence is not None else 0),
    )
    for entry in entries:
        table.add_row(
            "" if entry.sequence is None else str(entry.sequence),
            entry.method,
            entry.uri,
            str(entry.status_code),
            f"{entry.latency_ms:.1f}",
        )
    console.print(table)
    console.print(f"[bold cyan]Total records: {recording.record_count}[/bold cyan]")


def main() -> None:
    """Entry point for the http-recorder CLI."""
    cli()


if __name__ == "__main__":
    main()
