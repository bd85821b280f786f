"""Cloudflare Stream implementation of the video provider port."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from ...domain.exceptions import ProviderRejectedError
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

# Live input states that mean a broadcaster is connected.
LIVE_STATES = frozenset({"connected", "live"})

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class CloudflareConfig(BaseModel):
    """Configuration for the Cloudflare Stream adapter."""

    account_id: str
    api_token: str
    customer_code: Optional[str] = None
    recording_timeout_seconds: int = 60
    base_url: str = "https://api.cloudflare.com/client/v4"

    @property
    def stream_base_url(self) -> str:
        return f"{self.base_url}/accounts/{self.account_id}/stream"


def _error_messages(body: Dict[str, Any]) -> str:
    errors = body.get("errors")
    if not isinstance(errors, list):
        return ""
    return ", ".join(str(error.get("message", "")) for error in errors if isinstance(error, dict))


def _parse_created(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class CloudflareStreamAdapter(HttpVideoProviderAdapter):
    """Cloudflare Stream live inputs with automatic recording."""

    def __init__(
        self,
        config: CloudflareConfig,
        http: Optional[ProviderHttpConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(http or ProviderHttpConfig(), transport=transport)
        self._config = config

    @property
    def provider(self) -> VideoProvider:
        return VideoProvider.CLOUDFLARE

    def _client_options(self) -> Dict[str, Any]:
        return {
            "base_url": self._config.stream_base_url,
            "headers": {"Authorization": f"Bearer {self._config.api_token}"},
        }

    def hls_url(self, uid: str) -> Optional[str]:
        """Customer playback manifest for an input or video uid."""
        if not self._config.customer_code:
            return None
        return f"https://customer-{self._config.customer_code}.cloudflarestream.com/{uid}/manifest/video.m3u8"

    async def _result(self, method: str, path: str, expect: type = dict, **kwargs) -> Any:
        """Send a request and unwrap the ``{success, result, errors}`` envelope.

        Args:
            method: HTTP method
            path: Path below the account's stream API
            expect: Type the ``result`` member must have; a null list is empty

        Raises:
            ProviderUnavailableError: On transport failures or an unusable body
            ProviderRejectedError: On 4xx or ``success: false``
        """
        response = await self._request(method, path, **kwargs)
        data = self._json_body(response, method, path)
        if not data.get("success", False):
            messages = _error_messages(data)
            raise ProviderRejectedError(
                f"cloudflare API error: {messages or 'request failed'}",
                provider=self.provider.value,
                status_code=response.status_code,
            )
        result = data.get("result")
        if result is None and expect is list:
            return []
        if not isinstance(result, expect):
            raise self._malformed(method, path, f"result is {type(result).__name__}, expected {expect.__name__}")
        return result

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        return (_error_messages(body) if isinstance(body, dict) else "") or response.text[:200]

    async def create_live_input(self, request: LiveInputRequest) -> LiveInputAllocation:
        """Create a live input with automatic recording enabled."""
        logger.info(f"🎬 Creating Cloudflare live input: {request.name}")
        meta = {"name": request.name, "memorialId": request.memorial_id}
        if request.stream_id:
            meta["streamId"] = request.stream_id

        result = await self._result(
            "POST",
            "/live_inputs",
            json={
                "meta": meta,
                "recording": {
                    "mode": "automatic",
                    "timeoutSeconds": self._config.recording_timeout_seconds,
                },
            },
        )

        uid = result.get("uid")
        if not isinstance(uid, str) or not uid:
            raise self._malformed("POST", "/live_inputs", "live input has no uid")
        rtmps = result.get("rtmps") or {}
        whip = (result.get("webRTC") or {}).get("url")
        playback = (result.get("webRTCPlayback") or {}).get("url") or self.hls_url(uid)
        logger.info(f"✅ Cloudflare live input created: {uid}")
        return LiveInputAllocation(
            provider_input_id=uid,
            ingest_credentials=IngestCredentials(
                ingest_url=rtmps.get("url"),
                stream_key=rtmps.get("streamKey"),
                whip_url=whip,
                playback_url=playback,
            ),
        )

    async def _fetch_live_status(self, provider_input_id: str) -> LiveStatus:
        result = await self._result("GET", f"/live_inputs/{provider_input_id}")

        # State sits in current.state, or status.current.state on newer responses
        status = result.get("status")
        current = result.get("current") or (status.get("current") if isinstance(status, dict) else None)
        state = current.get("state") if isinstance(current, dict) else None
        if not isinstance(state, str) or not state:
            state = status if isinstance(status, str) and status else "unknown"
        playback = result.get("webRTCPlayback")

        return LiveStatus(
            is_live=state in LIVE_STATES,
            preview_url=playback.get("url") if isinstance(playback, dict) else None,
            hls_url=self.hls_url(provider_input_id),
            vendor_state=state,
        )

    async def list_recordings(self, provider_input_id: str) -> List[RecordingAsset]:
        """Videos recorded from a live input, newest first."""
        result = await self._result("GET", f"/live_inputs/{provider_input_id}/videos", expect=list)
        assets = [self._to_asset(video) for video in result if isinstance(video, dict) and video.get("uid")]
        logger.info(f"📹 Cloudflare input {provider_input_id} has {len(assets)} recordings")
        return sorted(assets, key=lambda asset: asset.created_at or EPOCH, reverse=True)

    def _to_asset(self, video: Dict[str, Any]) -> RecordingAsset:
        state = (video.get("status") or {}).get("state")
        if state == "ready" or video.get("readyToStream"):
            recording_state = RecordingState.READY
        elif state == "error":
            recording_state = RecordingState.ERRORED
        else:
            recording_state = RecordingState.PROCESSING

        uid = video["uid"]
        duration = video.get("duration")
        return RecordingAsset(
            asset_id=uid,
            state=recording_state,
            playback_url=(video.get("playback") or {}).get("hls") or self.hls_url(uid),
            # -1 while the duration is unknown
            duration=float(duration) if isinstance(duration, (int, float)) and duration >= 0 else None,
            thumbnail_url=video.get("thumbnail"),
            created_at=_parse_created(video.get("created")),
        )

    def _resource_path(self, resource_id: str, kind: ResourceKind) -> str:
        if kind == ResourceKind.LIVE_INPUT:
            return f"/live_inputs/{resource_id}"
        return f"/{resource_id}"
