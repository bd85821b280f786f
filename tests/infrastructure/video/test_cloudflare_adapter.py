"""Tests for the Cloudflare Stream adapter."""

import json
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio

from stream_reconciler.domain.exceptions import (
    ProviderRejectedError,
    ProviderUnavailableError,
)
from stream_reconciler.domain.models.provider_state import LiveInputRequest, RecordingState, ResourceKind
from stream_reconciler.infrastructure.video.base_adapter import ProviderHttpConfig
from stream_reconciler.infrastructure.video.cloudflare_adapter import (
    CloudflareConfig,
    CloudflareStreamAdapter,
)

BASE = "https://api.cloudflare.com/client/v4/accounts/acc-1/stream"


def envelope(result, success=True, errors=None):
    return {"success": success, "errors": errors or [], "messages": [], "result": result}


class ScriptedTransport:
    """Replies to requests from a queue and records what was sent."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def config():
    return CloudflareConfig(account_id="acc-1", api_token="cf-token", customer_code="abc123")


@pytest_asyncio.fixture
async def make_adapter(config):
    adapters = []

    async def factory(*responses):
        script = ScriptedTransport(*responses)
        adapter = CloudflareStreamAdapter(
            config,
            http=ProviderHttpConfig(timeout=1.0, max_retries=3, retry_delay=0),
            transport=httpx.MockTransport(script),
        )
        await adapter.initialize()
        adapters.append(adapter)
        return adapter, script

    yield factory
    for adapter in adapters:
        await adapter.shutdown()


@pytest.mark.asyncio
async def test_create_live_input(make_adapter):
    adapter, script = await make_adapter(httpx.Response(200, json=envelope({
        "uid": "cf-123",
        "rtmps": {"url": "rtmps://live.cloudflare.com:443/live/", "streamKey": "secret-key"},
        "webRTC": {"url": "https://customer-abc123.cloudflarestream.com/cf-123/webRTC/publish"},
        "webRTCPlayback": {"url": "https://customer-abc123.cloudflarestream.com/cf-123/webRTC/play"},
    })))

    allocation = await adapter.create_live_input(
        LiveInputRequest(name="Funeral service", memorial_id="memorial-1", stream_id="s1")
    )

    assert allocation.provider_input_id == "cf-123"
    assert allocation.ingest_credentials.stream_key == "secret-key"
    assert allocation.ingest_credentials.whip_url.endswith("/webRTC/publish")
    request = script.requests[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE}/live_inputs"
    assert request.headers["Authorization"] == "Bearer cf-token"
    body = json.loads(request.content)
    assert body["meta"] == {"name": "Funeral service", "memorialId": "memorial-1", "streamId": "s1"}
    assert body["recording"]["mode"] == "automatic"


@pytest.mark.asyncio
async def test_create_is_not_retried(make_adapter):
    adapter, script = await make_adapter(
        httpx.Response(503, json=envelope(None, success=False)),
        httpx.Response(200, json=envelope({"uid": "cf-123"})),
    )

    with pytest.raises(ProviderUnavailableError):
        await adapter.create_live_input(LiveInputRequest(name="x", memorial_id="m"))

    assert len(script.requests) == 1


@pytest.mark.asyncio
async def test_rejection_carries_vendor_message(make_adapter):
    adapter, _ = await make_adapter(httpx.Response(
        403,
        json=envelope(None, success=False, errors=[{"code": 10000, "message": "Authentication error"}]),
    ))

    with pytest.raises(ProviderRejectedError) as exc_info:
        await adapter.create_live_input(LiveInputRequest(name="x", memorial_id="m"))

    assert exc_info.value.status_code == 403
    assert "Authentication error" in str(exc_info.value)


@pytest.mark.asyncio
async def test_unsuccessful_envelope_is_rejected(make_adapter):
    adapter, _ = await make_adapter(httpx.Response(
        200,
        json=envelope(None, success=False, errors=[{"message": "Live input limit reached"}]),
    ))

    with pytest.raises(ProviderRejectedError, match="Live input limit reached"):
        await adapter.create_live_input(LiveInputRequest(name="x", memorial_id="m"))


@pytest.mark.asyncio
@pytest.mark.parametrize("result,expected_live,expected_state", [
    ({"status": {"current": {"state": "connected"}}}, True, "connected"),
    ({"current": {"state": "disconnected"}}, False, "disconnected"),
    ({"status": None}, False, "unknown"),
])
async def test_live_status_shapes(make_adapter, result, expected_live, expected_state):
    adapter, _ = await make_adapter(httpx.Response(200, json=envelope({"uid": "cf-123", **result})))

    status = await adapter.get_live_status("cf-123")

    assert status.is_live is expected_live
    assert status.vendor_state == expected_state
    assert status.is_reliable
    assert status.hls_url == "https://customer-abc123.cloudflarestream.com/cf-123/manifest/video.m3u8"


@pytest.mark.asyncio
async def test_live_status_retries_transient_errors(make_adapter):
    adapter, script = await make_adapter(
        httpx.ConnectError("connection refused"),
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, json=envelope({"status": {"current": {"state": "connected"}}})),
    )

    status = await adapter.get_live_status("cf-123")

    assert status.is_live is True
    assert len(script.requests) == 3


@pytest.mark.asyncio
async def test_live_status_never_raises(make_adapter):
    adapter, script = await make_adapter(*[httpx.Response(503, text="unavailable") for _ in range(3)])

    status = await adapter.get_live_status("cf-123")

    assert status.is_live is False
    assert status.is_reliable is False
    assert "503" in status.warning
    assert len(script.requests) == 3


@pytest.mark.asyncio
async def test_list_recordings(make_adapter):
    adapter, script = await make_adapter(httpx.Response(200, json=envelope([
        {
            "uid": "older",
            "created": "2025-06-10T15:00:00.000000Z",
            "status": {"state": "ready"},
            "readyToStream": True,
            "duration": 3600.5,
            "playback": {"hls": "https://customer-abc123.cloudflarestream.com/older/manifest/video.m3u8"},
            "thumbnail": "https://customer-abc123.cloudflarestream.com/older/thumbnails/thumbnail.jpg",
        },
        {
            "uid": "newer",
            "created": "2025-06-14T15:00:05Z",
            "status": {"state": "inprogress"},
            "duration": -1,
        },
    ])))

    assets = await adapter.list_recordings("cf-123")

    assert str(script.requests[0].url) == f"{BASE}/live_inputs/cf-123/videos"
    assert [asset.asset_id for asset in assets] == ["newer", "older"]
    newer, older = assets
    assert newer.state == RecordingState.PROCESSING
    assert newer.duration is None
    assert newer.created_at == datetime(2025, 6, 14, 15, 0, 5, tzinfo=timezone.utc)
    assert older.is_ready
    assert older.duration == 3600.5
    assert older.thumbnail_url.endswith("thumbnail.jpg")


@pytest.mark.asyncio
async def test_delete_paths(make_adapter):
    adapter, script = await make_adapter(
        httpx.Response(200, json=envelope(None)),
        httpx.Response(200, json=envelope(None)),
    )

    assert await adapter.delete_resource("cf-123", ResourceKind.LIVE_INPUT) is True
    assert await adapter.delete_resource("video-1", ResourceKind.ASSET) is True

    assert [(r.method, str(r.url)) for r in script.requests] == [
        ("DELETE", f"{BASE}/live_inputs/cf-123"),
        ("DELETE", f"{BASE}/video-1"),
    ]


@pytest.mark.asyncio
async def test_delete_missing_resource_counts_as_deleted(make_adapter):
    adapter, _ = await make_adapter(httpx.Response(404, json=envelope(None, success=False)))

    assert await adapter.delete_resource("cf-123", ResourceKind.LIVE_INPUT) is True


@pytest.mark.asyncio
async def test_delete_failure_is_reported(make_adapter):
    adapter, _ = await make_adapter(httpx.Response(403, json=envelope(None, success=False)))

    assert await adapter.delete_resource("cf-123", ResourceKind.LIVE_INPUT) is False


@pytest.mark.asyncio
async def test_requires_initialize(config):
    adapter = CloudflareStreamAdapter(config)

    with pytest.raises(RuntimeError):
        await adapter.create_live_input(LiveInputRequest(name="x", memorial_id="m"))


def test_hls_url_needs_customer_code():
    adapter = CloudflareStreamAdapter(CloudflareConfig(account_id="acc-1", api_token="t"))

    assert adapter.hls_url("cf-123") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [
    httpx.Response(200, text="<html>gateway</html>"),
    httpx.Response(200, json=["not", "an", "object"]),
    httpx.Response(200, json=envelope(None)),
    httpx.Response(200, json=envelope("connected")),
])
async def test_live_status_with_unusable_body(make_adapter, reply):
    adapter, script = await make_adapter(reply)

    status = await adapter.get_live_status("cf-123")

    assert status.is_live is False
    assert "malformed" in status.warning
    assert len(script.requests) == 1


@pytest.mark.asyncio
async def test_live_status_with_odd_field_types(make_adapter):
    adapter, _ = await make_adapter(httpx.Response(200, json=envelope({
        "uid": "cf-123",
        "current": "connected",
        "status": {"current": {"state": ["connected"]}},
        "webRTCPlayback": "nope",
    })))

    status = await adapter.get_live_status("cf-123")

    assert status.is_live is False
    assert status.vendor_state == "unknown"
    assert status.preview_url is None


@pytest.mark.asyncio
async def test_recordings_with_unusable_body(make_adapter):
    adapter, _ = await make_adapter(
        httpx.Response(200, text="<html>gateway</html>"),
        httpx.Response(200, json=envelope({"uid": "video-1"})),
    )

    with pytest.raises(ProviderUnavailableError, match="not JSON"):
        await adapter.list_recordings("cf-123")
    with pytest.raises(ProviderUnavailableError, match="expected list"):
        await adapter.list_recordings("cf-123")


@pytest.mark.asyncio
async def test_recordings_skip_entries_without_uid(make_adapter):
    adapter, _ = await make_adapter(httpx.Response(200, json=envelope([
        "garbage",
        {"status": {"state": "ready"}},
        {"uid": "video-1", "status": {"state": "ready"}, "created": "2025-06-14T16:00:00Z"},
    ])))

    assets = await adapter.list_recordings("cf-123")

    assert [asset.asset_id for asset in assets] == ["video-1"]


@pytest.mark.asyncio
async def test_create_without_uid_is_unavailable(make_adapter):
    adapter, _ = await make_adapter(httpx.Response(200, json=envelope({"rtmps": {}})))

    with pytest.raises(ProviderUnavailableError, match="no uid"):
        await adapter.create_live_input(LiveInputRequest(name="Service", memorial_id="memorial-1"))
