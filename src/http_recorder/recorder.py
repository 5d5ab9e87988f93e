"""HttpRecorder — Record or replay outbound HTTP calls around a test session.

In ``record`` mode every call goes to the live backend and is captured into
the session store, which is saved when the recorder stops. In ``playback``
mode calls are answered from a previously saved session file, and no network
traffic happens. ``none`` passes calls through without recording.

Usage:
    async with HttpRecorder(mode="record", path="SessionRecords/Suite/test.json") as rec:
        entry = await rec.request("GET", "https://management.example.com/subscriptions")
        print(entry.status_code, entry.response_json())

    # Or as a recording reverse proxy in front of a real service:
    recorder = HttpRecorder(mode="record", path="session.json")
    await recorder.serve_proxy("https://management.example.com", port=8089)
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from pathlib import Path
from typing import Any, Optional

import aiohttp
from aiohttp import web

from http_recorder.config import RecorderConfig, RecorderMode
from http_recorder.core.format import RecordEntry, SessionRecording
from http_recorder.core.matcher import MatcherLike
from http_recorder.core.records import KeyNotFoundError
from http_recorder.core.session import SessionManager
from http_recorder.core.utilities import format_string
from http_recorder.replayer import (
    HOP_BY_HOP_HEADERS,
    build_web_response,
    headers_to_lists,
    miss_response,
)

logger = logging.getLogger(__name__)

VALID_MODES = ("record", "playback", "none")


class HttpRecorder:
    """Records or replays HTTP exchanges for one session file.

    Attributes:
        mode: "record", "playback" or "none"
        path: Session file written in record mode and read in playback mode
        session_name: Name stored in the session metadata
        tags: Custom tags stored in the session metadata
        timeout: Total timeout in seconds for live calls
    """

    def __init__(
        self,
        mode: RecorderMode = "playback",
        path: Optional[str | Path] = None,
        matcher: Optional[MatcherLike] = None,
        session_name: Optional[str] = None,
        tags: Optional[dict[str, str]] = None,
        client_session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the HttpRecorder.

        Args:
            mode: "record", "playback" or "none"
            path: Session file path (required unless mode is "none")
            matcher: Matching strategy for the session store
            session_name: Name stored in the session metadata
            tags: Custom metadata tags
            client_session: Existing aiohttp session for live calls (not closed on stop)
            timeout: Total timeout in seconds for live calls

        Raises:
            ValueError: If mode is invalid or path is missing
        """
        if mode not in VALID_MODES:
            raise ValueError(f"Invalid mode: {mode}. Must be one of {', '.join(VALID_MODES)}")
        if mode != "none" and not path:
            raise ValueError(f"path required for {mode} mode")

        self.mode = mode
        self.path = str(path) if path else None
        self.session_name = session_name
        self.tags = tags or {}
        self.timeout = timeout

        self._session_manager = SessionManager(matcher=matcher)
        self._client = client_session
        self._owns_client = client_session is None
        self._started = False

        logger.info(f"HttpRecorder initialized with mode={mode}")

    @classmethod
    def from_config(
        cls,
        config: RecorderConfig,
        suite: str,
        test_name: str,
        **kwargs: Any,
    ) -> HttpRecorder:
        """Build a recorder bound to ``<recordings_dir>/<suite>/<test_name>.json``."""
        return cls(
            mode=config.mode,
            path=config.session_path(suite, test_name),
            matcher=config.build_matcher(),
            session_name=f"{suite}.{test_name}",
            **kwargs,
        )

    @property
    def session_manager(self) -> SessionManager:
        return self._session_manager

    async def __aenter__(self) -> HttpRecorder:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        """Begin the session: open the store for recording or load it for playback.

        Raises:
            RuntimeError: If already started
            IOError: If the playback session file cannot be read
            ValueError: If the playback session file is invalid
        """
        if self._started:
            raise RuntimeError("Recorder is already started")

        if self.mode == "record":
            self._session_manager.start_recording(
                self.path, session_name=self.session_name, tags=self.tags
            )
        elif self.mode == "playback":
            self._session_manager.start_replaying(self.path)

        self._started = True
        logger.info(f"Recorder started (mode={self.mode})")

    async def stop(self) -> Optional[SessionRecording]:
        """End the session.

        Returns:
            The saved SessionRecording in record mode, otherwise None

        Raises:
            RuntimeError: If not started
            IOError: If the session file cannot be written
        """
        if not self._started:
            raise RuntimeError("Recorder is not started")

        self._started = False
        try:
            if self.mode == "record":
                return self._session_manager.stop_recording()
            if self.mode == "playback":
                self._session_manager.stop_replaying()
            return None
        finally:
            if self._client is not None and self._owns_client:
                await self._client.close()
                self._client = None
            logger.info("Recorder stopped")

    async def request(
        self,
        method: str,
        url: str,
        data: Optional[str | bytes] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> RecordEntry:
        """Send a request (or replay it) and return the exchange.

        Raises:
            RuntimeError: If the recorder is not started
            KeyNotFoundError: In playback mode, if nothing recorded matches
            aiohttp.ClientError: If a live call fails
        """
        if not self._started:
            raise RuntimeError("Recorder is not started. Use 'async with' or call start().")

        body = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data

        if self.mode == "playback":
            request_headers = {k: [v] for k, v in (headers or {}).items()}
            return self._session_manager.next_record(method, url, body, request_headers)

        return await self._live_request(method, url, body, headers)

    def get_asset_name(self, test_name: str, prefix: str = "onesdk") -> str:
        """Random resource name when recording, the recorded one on playback."""
        if self.mode == "none":
            return f"{prefix}{random.randint(1000, 9999)}"
        return self._session_manager.get_asset_name(test_name, prefix)

    async def _live_request(
        self,
        method: str,
        url: str,
        body: Optional[str],
        headers: Optional[dict[str, str]],
    ) -> RecordEntry:
        client = self._get_client()
        started = time.time()
        async with client.request(
            method,
            url,
            data=body.encode("utf-8") if body is not None else None,
            headers=headers,
        ) as resp:
            raw = await resp.read()
            latency_ms = (time.time() - started) * 1000.0
            request_headers = headers_to_lists(resp.request_info.headers)
            response_headers = headers_to_lists(resp.headers)
            status = resp.status
            reason = resp.reason

        response_body = raw.decode("utf-8", errors="replace")
        logger.debug(f"{method} {url} -> {status} ({latency_ms:.1f}ms)")

        if self.mode == "record":
            return self._session_manager.record_exchange(
                method=method,
                uri=url,
                status_code=status,
                request_body=body,
                response_body=response_body,
                request_headers=request_headers,
                response_headers=response_headers,
                reason=reason,
                latency_ms=latency_ms,
            )

        return RecordEntry(
            method=method,
            uri=url,
            request_headers=request_headers,
            request_body=format_string(body) or "",
            status_code=status,
            reason=reason,
            response_headers=response_headers,
            response_body=response_body,
            latency_ms=latency_ms,
        )

    def _get_client(self) -> aiohttp.ClientSession:
        if self._client is None:
            self._client = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._client

    def build_proxy_app(self, upstream_url: str) -> web.Application:
        """aiohttp application forwarding every request to ``upstream_url``.

        In record mode responses are captured; in playback mode they are
        served from the session file.
        """
        upstream = upstream_url.rstrip("/")

        async def handle(request: web.Request) -> web.Response:
            raw = await request.read()
            headers = {
                name: value
                for name, value in request.headers.items()
                if name.lower() not in HOP_BY_HOP_HEADERS
            }
            target = f"{upstream}{request.rel_url.path_qs}"
            try:
                entry = await self.request(request.method, target, data=raw or None, headers=headers)
            except KeyNotFoundError as e:
                logger.error(f"No recorded interaction for {request.method} {request.rel_url}: {e}")
                return miss_response(e)
            except aiohttp.ClientError as e:
                logger.error(f"Upstream request failed for {request.method} {target}: {e}")
                return web.json_response(
                    {"error": "upstream request failed", "message": str(e)}, status=502
                )
            return build_web_response(entry)

        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", handle)
        return app

    async def serve_proxy(
        self,
        upstream_url: str,
        host: str = "127.0.0.1",
        port: int = 8089,
    ) -> None:
        """Run the recording proxy until cancelled, then stop the session."""
        await self.start()
        logger.info(f"Starting proxy on {host}:{port} -> {upstream_url}")

        runner = web.AppRunner(self.build_proxy_app(upstream_url))
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()

        logger.info(f"Proxy listening on http://{host}:{port}")

        try:
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()
            await self.stop()


__all__ = ["HttpRecorder", "VALID_MODES"]
