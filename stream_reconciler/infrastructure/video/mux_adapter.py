"""Mux Video implementation of the video provider port."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from ...domain.models.provider_state import (
    LiveInputAllocation,
    LiveInputRequest,
    LiveStatus,
    RecordingAsset,
    RecordingState,
    ResourceKind,
)
from ...domain.models.stream import IngestCredentials, VideoProvider
from .base_adapter import HttpVideoProviderAdapter, ProviderHttpConfig

logger = logging.getLogger(__name__)

MUX_INGEST_URL = "rtmps://global-live.mux.com:443/app"

ASSET_STATES = {
    "ready": RecordingState.READY,
    "errored": RecordingState.ERRORED,
}


class MuxConfig(BaseModel):
    """Configuration for the Mux adapter."""

    token_id: str
    token_secret: str
    reconnect_window_seconds: int = 60
    base_url: str = "https://api.mux.com/video/v1"


def playback_url(playback_id: str) -> str:
    return f"https://stream.mux.com/{playback_id}.m3u8"


def thumbnail_url(playback_id: str) -> str:
    return f"https://image.mux.com/{playback_id}/thumbnail.jpg"


def _public_playback_id(resource: Dict[str, Any]) -> Optional[str]:
    playback_ids = resource.get("playback_ids")
    if not isinstance(playback_ids, list):
        return None
    entries = [entry for entry in playback_ids if isinstance(entry, dict) and isinstance(entry.get("id"), str)]
    for entry in entries:
        if entry.get("policy") == "public":
            return entry["id"]
    return entries[0]["id"] if entries else None


def _parse_unix(value: Any) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


class MuxAdapter(HttpVideoProviderAdapter):
    """Mux live streams and the assets they record."""

    def __init__(
        self,
        config: MuxConfig,
        http: Optional[ProviderHttpConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(http or ProviderHttpConfig(), transport=transport)
        self._config = config

    @property
    def provider(self) -> VideoProvider:
        return VideoProvider.MUX

    def _client_options(self) -> Dict[str, Any]:
        return {
            "base_url": self._config.base_url,
            "auth": httpx.BasicAuth(self._config.token_id, self._config.token_secret),
        }

    async def _data(self, method: str, path: str, expect: type = dict, **kwargs) -> Any:
        """Send a request and unwrap the ``data`` member, which must be ``expect``."""
        response = await self._request(method, path, **kwargs)
        data = self._json_body(response, method, path).get("data")
        if data is None and expect is list:
            return []
        if not isinstance(data, expect):
            raise self._malformed(method, path, f"data is {type(data).__name__}, expected {expect.__name__}")
        return data

    async def create_live_input(self, request: LiveInputRequest) -> LiveInputAllocation:
        """Create a live stream whose broadcasts are recorded as public assets."""
        logger.info(f"🎬 Creating Mux live stream: {request.name}")
        data = await self._data(
            "POST",
            "/live-streams",
            json={
                "playback_policy": ["public"],
                "reconnect_window": self._config.reconnect_window_seconds,
                "new_asset_settings": {"playback_policy": ["public"]},
                "passthrough": request.stream_id or request.memorial_id,
            },
        )

        stream_id = data.get("id")
        if not isinstance(stream_id, str) or not stream_id:
            raise self._malformed("POST", "/live-streams", "live stream has no id")
        playback_id = _public_playback_id(data)
        logger.info(f"✅ Mux live stream created: {stream_id}")
        return LiveInputAllocation(
            provider_input_id=stream_id,
            ingest_credentials=IngestCredentials(
                ingest_url=MUX_INGEST_URL,
                stream_key=data.get("stream_key"),
                playback_url=playback_url(playback_id) if playback_id else None,
            ),
        )

    async def _fetch_live_status(self, provider_input_id: str) -> LiveStatus:
        data = await self._data("GET", f"/live-streams/{provider_input_id}")
        state = data.get("status")
        if not isinstance(state, str) or not state:
            state = "unknown"
        playback_id = _public_playback_id(data)
        hls = playback_url(playback_id) if playback_id else None
        return LiveStatus(
            is_live=state == "active",
            preview_url=hls,
            hls_url=hls,
            vendor_state=state,
        )

    async def list_recordings(self, provider_input_id: str) -> List[RecordingAsset]:
        """Assets recorded from a live stream, newest first."""
        data = await self._data("GET", "/assets", expect=list, params={"live_stream_id": provider_input_id})
        assets = [self._to_asset(asset) for asset in data if isinstance(asset, dict) and asset.get("id")]
        logger.info(f"📹 Mux live stream {provider_input_id} has {len(assets)} assets")
        return sorted(assets, key=lambda asset: asset.created_at.timestamp() if asset.created_at else 0, reverse=True)

    def _to_asset(self, asset: Dict[str, Any]) -> RecordingAsset:
        playback_id = _public_playback_id(asset)
        status = asset.get("status")
        duration = asset.get("duration")
        return RecordingAsset(
            asset_id=asset["id"],
            state=ASSET_STATES.get(status, RecordingState.PROCESSING) if isinstance(status, str) else RecordingState.PROCESSING,
            playback_url=playback_url(playback_id) if playback_id else None,
            duration=float(duration) if isinstance(duration, (int, float)) else None,
            thumbnail_url=thumbnail_url(playback_id) if playback_id else None,
            created_at=_parse_unix(asset.get("created_at")),
        )

    def _resource_path(self, resource_id: str, kind: ResourceKind) -> str:
        if kind == ResourceKind.LIVE_INPUT:
            return f"/live-streams/{resource_id}"
        return f"/assets/{resource_id}"
