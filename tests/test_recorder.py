"""Tests for HttpRecorder against a local upstream service."""

import asyncio
import json

import pytest
from aiohttp import test_utils, web

from http_recorder.config import RecorderConfig
from http_recorder.core.format import SessionRecording
from http_recorder.recorder import HttpRecorder
from http_recorder.replayer import MISS_HEADER


def create_upstream_app() -> web.Application:
    """Small management-style API used as the live backend."""
    calls = {"counter": 0}

    async def list_subscriptions(request: web.Request) -> web.Response:
        return web.json_response({"value": [{"subscriptionId": "sub-1"}]})

    async def create_job(request: web.Request) -> web.Response:
        return web.json_response({"received": json.loads(await request.text())}, status=201)

    async def counter(request: web.Request) -> web.Response:
        calls["counter"] += 1
        return web.json_response({"count": calls["counter"]})

    app = web.Application()
    app.router.add_get("/subscriptions", list_subscriptions)
    app.router.add_post("/jobs", create_job)
    app.router.add_get("/counter", counter)
    return app


async def with_upstream(scenario):
    """Run ``scenario(base_url)`` while the upstream app is being served."""
    server = test_utils.TestServer(create_upstream_app())
    await server.start_server()
    try:
        return await scenario(str(server.make_url("/")).rstrip("/"))
    finally:
        await server.close()


class TestInit:
    """Tests for HttpRecorder construction."""

    def test_invalid_mode(self, tmp_path):
        """Unknown modes raise ValueError."""
        with pytest.raises(ValueError):
            HttpRecorder(mode="rewind", path=tmp_path / "s.json")  # type: ignore[arg-type]

    @pytest.mark.parametrize("mode", ["record", "playback"])
    def test_path_required(self, mode):
        """record and playback need a session file."""
        with pytest.raises(ValueError):
            HttpRecorder(mode=mode)

    def test_none_mode_without_path(self):
        """Pass-through mode needs no session file."""
        assert HttpRecorder(mode="none").path is None

    def test_from_config(self, tmp_path):
        """from_config binds the recorder to <dir>/<suite>/<test>.json."""
        config = RecorderConfig(mode="record", recordings_dir=tmp_path, match_strategy="method")
        recorder = HttpRecorder.from_config(config, "JobTests", "test_create")
        assert recorder.mode == "record"
        assert recorder.path == str(tmp_path / "JobTests" / "test_create.json")
        assert recorder.session_name == "JobTests.test_create"
        assert recorder.session_manager.matcher.strategy == "method"


class TestLifecycle:
    """Tests for start/stop handling."""

    def test_request_before_start(self, tmp_path):
        """Requests before start() raise RuntimeError."""
        recorder = HttpRecorder(mode="record", path=tmp_path / "s.json")
        with pytest.raises(RuntimeError):
            asyncio.run(recorder.request("GET", "http://127.0.0.1/"))

    def test_stop_before_start(self, tmp_path):
        """stop() without start() raises RuntimeError."""
        recorder = HttpRecorder(mode="record", path=tmp_path / "s.json")
        with pytest.raises(RuntimeError):
            asyncio.run(recorder.stop())

    def test_playback_missing_file(self, tmp_path):
        """Starting playback without a session file raises IOError."""
        recorder = HttpRecorder(mode="playback", path=tmp_path / "missing.json")
        with pytest.raises(IOError):
            asyncio.run(recorder.start())


class TestRecordAndReplay:
    """Tests for the record then playback round trip."""

    def test_record_saves_session(self, tmp_path):
        """Record mode calls the live service and saves the exchange."""
        path = tmp_path / "Suite" / "test_list.json"

        async def scenario(base_url):
            async with HttpRecorder(mode="record", path=path, session_name="Suite.test_list") as rec:
                return await rec.request("GET", f"{base_url}/subscriptions?api-version=2014-04-01&t=5")

        entry = asyncio.run(with_upstream(scenario))

        assert entry.status_code == 200
        assert entry.response_body == '{\n  "value": [\n    {\n      "subscriptionId": "sub-1"\n    }\n  ]\n}'
        assert entry.sequence == 0
        recording = SessionRecording.load(str(path))
        assert recording.metadata.session_name == "Suite.test_list"
        assert list(recording.records) == ["GET:/subscriptions?api-version=2014-04-01"]

    def test_playback_needs_no_network(self, tmp_path):
        """Playback answers from the session file in recorded order."""
        path = tmp_path / "counter.json"

        async def record(base_url):
            async with HttpRecorder(mode="record", path=path) as rec:
                await rec.request("GET", f"{base_url}/counter")
                await rec.request("GET", f"{base_url}/counter")
                await rec.request("POST", f"{base_url}/jobs", data='{"name":"job-1"}')

        asyncio.run(with_upstream(record))

        async def playback():
            async with HttpRecorder(mode="playback", path=path) as rec:
                first = await rec.request("GET", "http://unreachable.invalid/counter")
                second = await rec.request("GET", "http://unreachable.invalid/counter")
                job = await rec.request("POST", "http://unreachable.invalid/jobs", data=b'{"name":"job-1"}')
                return first, second, job

        first, second, job = asyncio.run(playback())
        assert first.response_json() == {"count": 1}
        assert second.response_json() == {"count": 2}
        assert job.status_code == 201
        assert job.response_json() == {"received": {"name": "job-1"}}

    def test_stop_returns_recording(self, tmp_path):
        """stop() returns the saved recording in record mode."""
        path = tmp_path / "s.json"

        async def scenario(base_url):
            recorder = HttpRecorder(mode="record", path=path, tags={"env": "test"})
            await recorder.start()
            await recorder.request("GET", f"{base_url}/subscriptions")
            return await recorder.stop()

        recording = asyncio.run(with_upstream(scenario))
        assert recording.record_count == 1
        assert recording.metadata.tags == {"env": "test"}

    def test_none_mode_passes_through(self, tmp_path):
        """Pass-through mode calls the service without writing anything."""

        async def scenario(base_url):
            async with HttpRecorder(mode="none") as rec:
                return await rec.request("GET", f"{base_url}/counter")

        entry = asyncio.run(with_upstream(scenario))
        assert entry.status_code == 200
        assert entry.sequence is None
        assert list(tmp_path.iterdir()) == []

    def test_asset_names_replayed(self, tmp_path):
        """Names generated while recording are handed back on playback."""
        path = tmp_path / "names.json"

        async def record():
            async with HttpRecorder(mode="record", path=path) as rec:
                return rec.get_asset_name("test_vm", "vm")

        async def playback():
            async with HttpRecorder(mode="playback", path=path) as rec:
                return rec.get_asset_name("test_vm", "vm")

        name = asyncio.run(record())
        assert asyncio.run(playback()) == name

    def test_none_mode_asset_name(self):
        """Pass-through mode produces a fresh random name."""
        name = HttpRecorder(mode="none").get_asset_name("test_vm", "vm")
        assert name.startswith("vm") and len(name) == 6


class TestProxy:
    """Tests for the recording reverse proxy."""

    def test_proxy_records_traffic(self, tmp_path):
        """Requests through the proxy reach upstream and are recorded."""
        path = tmp_path / "proxy.json"

        async def scenario(base_url):
            recorder = HttpRecorder(mode="record", path=path)
            await recorder.start()
            async with test_utils.TestClient(test_utils.TestServer(recorder.build_proxy_app(base_url))) as client:
                async with client.get("/subscriptions", params={"api-version": "1"}) as resp:
                    status, body = resp.status, await resp.json()
            await recorder.stop()
            return status, body

        status, body = asyncio.run(with_upstream(scenario))
        assert status == 200
        assert body == {"value": [{"subscriptionId": "sub-1"}]}
        assert list(SessionRecording.load(str(path)).records) == ["GET:/subscriptions?api-version=1"]

    def test_proxy_playback_miss(self, sample_recording_file):
        """The proxy answers unrecorded requests with a 404 miss."""

        async def scenario():
            recorder = HttpRecorder(mode="playback", path=sample_recording_file)
            await recorder.start()
            async with test_utils.TestClient(
                test_utils.TestServer(recorder.build_proxy_app("http://unreachable.invalid"))
            ) as client:
                async with client.get("/unknown") as resp:
                    result = resp.status, resp.headers.get(MISS_HEADER)
                async with client.get("/subscriptions?api-version=2014-04-01") as resp:
                    result += (resp.status,)
            await recorder.stop()
            return result

        assert asyncio.run(scenario()) == (404, "miss", 200)
