"""HttpReplayer — Serve recorded HTTP sessions as a mock backend.

The replayer loads a session file and answers requests with the recorded
responses, in first-recorded order per match key.

Usage:
    replayer = HttpReplayer.from_file("SessionRecords/Suite/test_list.json")

    # Programmatic usage:
    entry = replayer.handle_request("GET", "/subscriptions?api-version=2014-04-01")

    # As an HTTP server (point your client's base URL at it):
    await replayer.serve(host="127.0.0.1", port=8089)
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from aiohttp import web
from multidict import CIMultiDict

from http_recorder.core.format import RecordEntry, SessionRecording
from http_recorder.core.matcher import DEFAULT_IGNORED_QUERY_PARAMS, RequestMatcher
from http_recorder.core.records import KeyNotFoundError, Records
from http_recorder.core.utilities import format_string

logger = logging.getLogger(__name__)

# Headers describing the original connection or encoding; aiohttp recomputes them.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-length",
        "content-encoding",
        "host",
    }
)

MISS_HEADER = "X-Http-Recorder"


def headers_to_lists(headers: Any) -> dict[str, list[str]]:
    """Collapse a (multi-)mapping of headers into ``{name: [values]}``."""
    result: dict[str, list[str]] = {}
    if not headers:
        return result
    for name, value in headers.items():
        result.setdefault(name, []).append(value)
    return result


def strip_hop_by_hop(headers: dict[str, list[str]]) -> CIMultiDict[str]:
    out: CIMultiDict[str] = CIMultiDict()
    for name, values in headers.items():
        if name.lower() in HOP_BY_HOP_HEADERS:
            continue
        for value in values:
            out.add(name, value)
    return out


def build_web_response(entry: RecordEntry) -> web.Response:
    """Turn a recorded entry back into an aiohttp response."""
    return web.Response(
        status=entry.status_code,
        reason=entry.reason,
        headers=strip_hop_by_hop(entry.response_headers),
        body=entry.response_body.encode("utf-8"),
    )


def miss_response(error: KeyNotFoundError) -> web.Response:
    """404 answer for a request with no recorded interaction left."""
    return web.json_response(
        {"error": "no recorded interaction", "key": error.key, "message": str(error)},
        status=404,
        headers={MISS_HEADER: "miss"},
    )


class HttpReplayer:
    """Mock HTTP backend that replays a recorded session.

    Attributes:
        recording: The SessionRecording being replayed
        match_strategy: Strategy used to derive keys for incoming requests
        simulate_latency: If True, sleep for the recorded latency before responding
        latency_multiplier: Multiplier for simulated latency (e.g. 0.5 = half speed)
    """

    def __init__(
        self,
        recording: SessionRecording,
        match_strategy: Optional[str] = None,
        ignore_query_params: Optional[Iterable[str]] = None,
        simulate_latency: bool = False,
        latency_multiplier: float = 1.0,
    ) -> None:
        """Initialize the HttpReplayer.

        Args:
            recording: SessionRecording to replay
            match_strategy: Matching strategy; defaults to the one the session
                was recorded with
            ignore_query_params: Volatile query parameters left out of keys;
                defaults to the ones the session was recorded with
            simulate_latency: Whether to sleep for recorded latency before responding
            latency_multiplier: Multiplier for simulated latency (default 1.0)

        Raises:
            ValueError: If match_strategy is invalid
        """
        self.recording = recording
        self.match_strategy = (
            match_strategy or recording.metadata.match_strategy or "method_and_uri"
        )
        self.simulate_latency = simulate_latency
        self.latency_multiplier = latency_multiplier

        if ignore_query_params is None:
            ignore_query_params = recording.metadata.ignore_query_params
        if ignore_query_params is None:
            ignore_query_params = DEFAULT_IGNORED_QUERY_PARAMS

        self._matcher = RequestMatcher(
            strategy=self.match_strategy,  # type: ignore[arg-type]
            ignore_query_params=ignore_query_params,
        )
        self._records = Records.from_dict(recording.records, matcher=self._matcher)

        logger.info(
            f"HttpReplayer initialized with {len(self._records)} records "
            f"(strategy={self.match_strategy})"
        )

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> HttpReplayer:
        """Load a session file and build a replayer for it.

        Raises:
            FileNotFoundError: If the file does not exist
            IOError: If the file cannot be read
            ValueError: If the file is not a valid session recording
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Session file not found: {path}")
        return cls(SessionRecording.load(str(path)), **kwargs)

    @property
    def remaining(self) -> int:
        """Number of recorded interactions not yet replayed."""
        return len(self._records)

    def handle_request(
        self,
        method: str,
        uri: str,
        body: Optional[str] = None,
        headers: Optional[dict[str, list[str]]] = None,
    ) -> RecordEntry:
        """Return the next recorded interaction matching the request.

        Raises:
            KeyNotFoundError: If no recorded interaction remains for the request
        """
        probe = RecordEntry.for_request(method, uri, format_string(body), headers)
        key = self._matcher.get_matching_key(probe)
        entry = self._records.dequeue(key)
        logger.debug(f"Replaying {entry.status_code} for '{key}'")
        return entry

    async def handle_request_async(
        self,
        method: str,
        uri: str,
        body: Optional[str] = None,
        headers: Optional[dict[str, list[str]]] = None,
    ) -> RecordEntry:
        """Like handle_request(), sleeping for the recorded latency when enabled."""
        entry = self.handle_request(method, uri, body, headers)
        if self.simulate_latency and entry.latency_ms > 0:
            delay = (entry.latency_ms / 1000.0) * self.latency_multiplier
            if delay > 0:
                logger.debug(f"Simulating latency: {delay:.3f}s")
                await asyncio.sleep(delay)
        return entry

    def build_app(self) -> web.Application:
        """aiohttp application answering every route from the recording."""
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle_http)
        return app

    async def serve(self, host: str = "127.0.0.1", port: int = 8089) -> None:
        """Serve the recording over HTTP until cancelled."""
        logger.info(f"Starting replay server on {host}:{port}")

        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()

        logger.info(f"Replay server listening on http://{host}:{port}")

        try:
            await asyncio.Event().wait()
        finally:
            if self.remaining:
                logger.warning(f"{self.remaining} recorded interactions were not replayed")
            await runner.cleanup()

    async def _handle_http(self, request: web.Request) -> web.Response:
        raw = await request.read()
        body = raw.decode("utf-8", errors="replace") if raw else None
        try:
            entry = await self.handle_request_async(
                request.method,
                request.rel_url.path_qs,
                body,
                headers_to_lists(request.headers),
            )
        except KeyNotFoundError as e:
            logger.error(f"No recorded interaction for {request.method} {request.rel_url}: {e}")
            return miss_response(e)
        return build_web_response(entry)


__all__ = [
    "HttpReplayer",
    "build_web_response",
    "headers_to_lists",
    "miss_response",
    "HOP_BY_HOP_HEADERS",
    "MISS_HEADER",
]
